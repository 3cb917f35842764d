# tests/test_presence.py — Presence registry
import threading

from presence import PresenceRegistry


def test_two_channels_online_until_both_closed():
    reg = PresenceRegistry()
    reg.register("u", "c1")
    reg.register("u", "c2")
    assert reg.is_online("u")

    reg.unregister("c1")
    assert reg.is_online("u")
    assert reg.channels_for("u") == frozenset({"c2"})

    reg.unregister("c2")
    assert not reg.is_online("u")
    assert reg.channels_for("u") == frozenset()


def test_register_is_idempotent():
    reg = PresenceRegistry()
    reg.register("u", "c1")
    reg.register("u", "c1")
    assert reg.channels_for("u") == frozenset({"c1"})
    assert reg.get_stats() == {"online_users": 1, "open_channels": 1}


def test_unregister_unknown_channel():
    reg = PresenceRegistry()
    assert reg.unregister("nope") is None
    reg.register("u", "c1")
    assert reg.unregister("c1") == "u"
    assert reg.unregister("c1") is None


def test_channel_moves_to_new_owner():
    reg = PresenceRegistry()
    reg.register("a", "c1")
    reg.register("b", "c1")
    assert not reg.is_online("a")
    assert reg.channels_for("b") == frozenset({"c1"})


def test_channels_for_returns_snapshot():
    reg = PresenceRegistry()
    reg.register("u", "c1")
    snapshot = reg.channels_for("u")
    reg.register("u", "c2")
    assert snapshot == frozenset({"c1"})
    assert reg.is_online("u")


def test_concurrent_register_unregister_stays_consistent():
    reg = PresenceRegistry()
    errors = []

    def churn(user_id, n):
        try:
            for i in range(200):
                channel = f"{user_id}-{n}-{i}"
                reg.register(user_id, channel)
                assert channel in reg.channels_for(user_id)
                reg.unregister(channel)
        except AssertionError as e:
            errors.append(e)

    threads = [threading.Thread(target=churn, args=(f"user{k % 3}", k)) for k in range(12)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert not any(reg.is_online(f"user{k}") for k in range(3))
    assert reg.get_stats() == {"online_users": 0, "open_channels": 0}
