# presence.py — Which users have a live connection, and through which channels
import logging
import threading
from typing import Dict, FrozenSet, Optional, Set

logger = logging.getLogger("taskhub.presence")


class PresenceRegistry:
    """In-memory map of user id -> open channel ids.

    One lock guards both directions of the mapping; reads hand back frozen
    copies so callers never observe a set mid-update. Not persisted: the
    registry is rebuilt from live connections after a restart.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._channels: Dict[str, Set[str]] = {}  # user_id -> {channel_id}
        self._owners: Dict[str, str] = {}  # channel_id -> user_id

    def register(self, user_id: str, channel_id: str) -> None:
        with self._lock:
            previous = self._owners.get(channel_id)
            if previous == user_id:
                return
            if previous is not None:
                self._discard(previous, channel_id)
            self._owners[channel_id] = user_id
            self._channels.setdefault(user_id, set()).add(channel_id)
            count = len(self._channels[user_id])
        logger.info(f"Channel registered: user={user_id[:8]} channel={channel_id[:8]} open={count}")

    def unregister(self, channel_id: str) -> Optional[str]:
        """Drop a channel. Returns the owning user id, or None if it was unknown."""
        with self._lock:
            user_id = self._owners.pop(channel_id, None)
            if user_id is None:
                return None
            self._discard(user_id, channel_id)
            online = user_id in self._channels
        logger.info(f"Channel removed: user={user_id[:8]} channel={channel_id[:8]} online={online}")
        return user_id

    def _discard(self, user_id: str, channel_id: str) -> None:
        channels = self._channels.get(user_id)
        if channels is None:
            return
        channels.discard(channel_id)
        if not channels:
            del self._channels[user_id]

    def is_online(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._channels

    def channels_for(self, user_id: str) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._channels.get(user_id, ()))

    def get_stats(self) -> dict:
        with self._lock:
            return {
                "online_users": len(self._channels),
                "open_channels": len(self._owners),
            }
