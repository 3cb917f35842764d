# tests/test_dispatcher.py — Recipient rules and best-effort delivery
import pytest

from dispatcher import (
    Audience, Delivery, DomainEvent, EventKind, NotificationDispatcher,
    plan_deliveries, resolve_recipients,
)
from presence import PresenceRegistry
from tests.conftest import RecordingTransport

PAYLOAD = {"task": {"id": "t1"}, "message": "hello"}


def test_resolve_recipients_order_and_exclusions():
    event = DomainEvent(
        EventKind.TASK_UPDATED, PAYLOAD, actor_id="actor",
        recipients=("u2", "u1"), team_id="g", notify_management=True, exclude=frozenset({"m2"}),
    )
    audience = Audience(team_members={"g": frozenset({"u1", "m3", "actor"})}, management=frozenset({"m2", "admin"}))
    assert resolve_recipients(event, audience) == ["u2", "u1", "m3", "admin"]


def test_actor_never_notified():
    event = DomainEvent(EventKind.TASK_ASSIGNED, PAYLOAD, actor_id="a", recipients=("a", "b"))
    assert resolve_recipients(event, Audience()) == ["b"]


def test_unknown_team_contributes_nobody():
    event = DomainEvent(EventKind.TASK_ASSIGNED_TO_TEAM, PAYLOAD, actor_id="a", team_id="missing")
    assert resolve_recipients(event, Audience()) == []


def test_plan_keeps_event_order_per_recipient():
    events = [
        DomainEvent(EventKind.TASK_ASSIGNED, PAYLOAD, actor_id="a", recipients=("u",)),
        DomainEvent(EventKind.TASK_UPDATED, PAYLOAD, actor_id="a", recipients=("u",)),
    ]
    plan = plan_deliveries(events, Audience())
    assert plan == [
        Delivery("u", "taskAssigned", PAYLOAD),
        Delivery("u", "taskUpdated", PAYLOAD),
    ]


@pytest.mark.asyncio
async def test_deliver_to_every_channel_of_online_user():
    presence = PresenceRegistry()
    presence.register("u", "c1")
    presence.register("u", "c2")
    transport = RecordingTransport()
    dispatcher = NotificationDispatcher(presence, transport)

    sent = await dispatcher.deliver([Delivery("u", "teamAdded", PAYLOAD)])

    assert sent == 2
    assert sorted(ch for ch, _, _ in transport.sent) == ["c1", "c2"]


@pytest.mark.asyncio
async def test_offline_recipient_is_skipped_without_error():
    transport = RecordingTransport()
    dispatcher = NotificationDispatcher(PresenceRegistry(), transport)
    event = DomainEvent(EventKind.TASK_ASSIGNED, PAYLOAD, actor_id="a", recipients=("offline",))

    assert await dispatcher.fanout([event], Audience()) == 0
    assert transport.sent == []


@pytest.mark.asyncio
async def test_failing_channel_is_dropped_and_others_still_receive():
    presence = PresenceRegistry()
    presence.register("u", "bad")
    presence.register("u", "good")
    presence.register("v", "other")
    transport = RecordingTransport()
    transport.failing.add("bad")
    dispatcher = NotificationDispatcher(presence, transport)

    sent = await dispatcher.deliver([
        Delivery("u", "taskUpdated", PAYLOAD),
        Delivery("v", "taskUpdated", PAYLOAD),
    ])

    assert sent == 2
    assert transport.kinds("good") == ["taskUpdated"]
    assert transport.kinds("other") == ["taskUpdated"]
    assert presence.channels_for("u") == frozenset({"good"})
