# dispatcher.py — Presence-aware notification fan-out
"""
Turns domain events into (recipient, kind, payload) deliveries and pushes
each delivery to every live channel of the recipient.

Recipient rules, applied per event:
    1. explicit recipients named by the coordinator
    2. every current member of the event's team, if it has one
    3. every admin and manager of the tenant, for lifecycle events
    4. minus the acting user and anyone in `exclude`

Delivery is at-most-once and best-effort: no queue, no retry, nothing kept
for offline users. Deliveries for one mutation go out in plan order.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, NamedTuple, Optional, Protocol, Tuple

from presence import PresenceRegistry

logger = logging.getLogger("taskhub.dispatcher")


class EventKind(str, Enum):
    TASK_ASSIGNED = "taskAssigned"
    TASK_UNASSIGNED = "taskUnassigned"
    TASK_ASSIGNED_TO_TEAM = "taskAssignedToTeam"
    TASK_UPDATED = "taskUpdated"
    TEAM_ADDED = "teamAdded"
    TEAM_REMOVED = "teamRemoved"
    TEAM_UPDATED = "teamUpdated"
    COMMENT_ADDED = "commentAdded"
    COMMENT_DELETED = "commentDeleted"


@dataclass(frozen=True)
class DomainEvent:
    kind: EventKind
    payload: Dict[str, Any]
    actor_id: str
    recipients: Tuple[str, ...] = ()
    team_id: Optional[str] = None
    notify_management: bool = False
    exclude: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class Audience:
    """Relationship lookups the recipient rules need, resolved by the caller."""
    team_members: Mapping[str, FrozenSet[str]] = field(default_factory=dict)
    management: FrozenSet[str] = frozenset()


class Delivery(NamedTuple):
    recipient_id: str
    kind: str
    payload: Dict[str, Any]


class Transport(Protocol):
    async def emit(self, channel_id: str, event_kind: str, payload: Dict[str, Any]) -> None:
        ...


def resolve_recipients(event: DomainEvent, audience: Audience) -> List[str]:
    ordered: List[str] = list(event.recipients)
    if event.team_id:
        ordered.extend(sorted(audience.team_members.get(event.team_id, ())))
    if event.notify_management:
        ordered.extend(sorted(audience.management))

    skip = set(event.exclude)
    skip.add(event.actor_id)
    recipients = []
    for user_id in ordered:
        if user_id and user_id not in skip:
            recipients.append(user_id)
            skip.add(user_id)
    return recipients


def plan_deliveries(events: Iterable[DomainEvent], audience: Audience) -> List[Delivery]:
    deliveries = []
    for event in events:
        kind = event.kind.value if isinstance(event.kind, EventKind) else str(event.kind)
        for user_id in resolve_recipients(event, audience):
            deliveries.append(Delivery(user_id, kind, event.payload))
    return deliveries


class NotificationDispatcher:
    def __init__(self, presence: PresenceRegistry, transport: Transport):
        self.presence = presence
        self.transport = transport

    async def deliver(self, deliveries: Iterable[Delivery]) -> int:
        """Push deliveries to online recipients. Returns the number of channel emits that succeeded."""
        sent = 0
        for delivery in deliveries:
            channels = self.presence.channels_for(delivery.recipient_id)
            if not channels:
                logger.debug(f"Skip {delivery.kind}: user={delivery.recipient_id[:8]} offline")
                continue
            for channel_id in sorted(channels):
                try:
                    await self.transport.emit(channel_id, delivery.kind, delivery.payload)
                    sent += 1
                except Exception as e:
                    logger.warning(
                        f"Emit {delivery.kind} failed on channel={channel_id[:8]}: {e}; dropping channel"
                    )
                    self.presence.unregister(channel_id)
        return sent

    def plan(self, events: Iterable[DomainEvent], audience: Audience) -> List[Delivery]:
        return plan_deliveries(events, audience)

    async def fanout(self, events: Iterable[DomainEvent], audience: Audience) -> int:
        deliveries = self.plan(events, audience)
        logger.debug(f"Fanout: {len(deliveries)} deliveries")
        return await self.deliver(deliveries)
