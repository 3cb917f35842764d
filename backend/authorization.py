# authorization.py — Relationship-aware authorization engine
"""
Pure decision function over a declarative rule table.

    decide(actor_role, facts, delta, action) -> Decision

The caller computes the relationship facts against the current resource
snapshot and passes them in. Nothing here touches storage, transport or
the clock, so every rule can be exercised directly in unit tests.

Rules (per role):
    admin    allow (tenant match is checked by the caller)
    manager  allow iff is_creator or is_team_manager
    user     allow iff the delta touches only `status`
             and (is_current_assignee or is_team_member)

Deletion is stricter: managers must be the creator, users are never allowed.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Tuple

from models import UserRole


class Decision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


class Action(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class RelationshipFacts:
    """Actor's relationship to one task or team snapshot."""
    is_creator: bool = False
    is_current_assignee: bool = False
    is_team_member: bool = False
    is_team_manager: bool = False

    def holds(self, fact: str) -> bool:
        return bool(getattr(self, fact))


@dataclass(frozen=True)
class Rule:
    allow: bool = True
    # Allowed when any of these facts holds. Empty means no relationship needed.
    any_of: Tuple[str, ...] = ()
    # Fields the delta may touch. None means any field.
    fields: Optional[FrozenSet[str]] = None


DENY_ALL = Rule(allow=False)

DECISION_TABLE: Dict[Tuple[UserRole, Action], Rule] = {
    (UserRole.ADMIN, Action.CREATE): Rule(),
    (UserRole.ADMIN, Action.UPDATE): Rule(),
    (UserRole.ADMIN, Action.DELETE): Rule(),

    (UserRole.MANAGER, Action.CREATE): Rule(any_of=("is_creator", "is_team_manager")),
    (UserRole.MANAGER, Action.UPDATE): Rule(any_of=("is_creator", "is_team_manager")),
    (UserRole.MANAGER, Action.DELETE): Rule(any_of=("is_creator",)),

    (UserRole.USER, Action.CREATE): Rule(
        any_of=("is_current_assignee", "is_team_member"), fields=frozenset({"status"}),
    ),
    (UserRole.USER, Action.UPDATE): Rule(
        any_of=("is_current_assignee", "is_team_member"), fields=frozenset({"status"}),
    ),
    (UserRole.USER, Action.DELETE): DENY_ALL,
}

VIEW_FACTS = ("is_creator", "is_current_assignee", "is_team_member", "is_team_manager")


def task_facts(
    actor_id: str,
    created_by: Optional[str],
    assignee_ids: Iterable[str] = (),
    team_member_ids: Iterable[str] = (),
    team_manager_ids: Iterable[str] = (),
) -> RelationshipFacts:
    return RelationshipFacts(
        is_creator=created_by == actor_id,
        is_current_assignee=actor_id in set(assignee_ids),
        is_team_member=actor_id in set(team_member_ids),
        is_team_manager=actor_id in set(team_manager_ids),
    )


def team_facts(
    actor_id: str,
    created_by: Optional[str],
    member_ids: Iterable[str] = (),
    manager_ids: Iterable[str] = (),
) -> RelationshipFacts:
    return task_facts(actor_id, created_by, (), member_ids, manager_ids)


def _as_role(role) -> Optional[UserRole]:
    try:
        return UserRole(role)
    except ValueError:
        return None


def evaluate(rule: Rule, facts: RelationshipFacts, delta_keys: Iterable[str]) -> Decision:
    if not rule.allow:
        return Decision.DENY
    if rule.fields is not None:
        keys = set(delta_keys)
        # An empty delta carries no status change, so it cannot satisfy a field-restricted rule
        if not keys or not keys <= rule.fields:
            return Decision.DENY
    if rule.any_of and not any(facts.holds(f) for f in rule.any_of):
        return Decision.DENY
    return Decision.ALLOW


def decide(
    role,
    facts: RelationshipFacts,
    delta: Mapping,
    action: Action = Action.UPDATE,
    table: Mapping[Tuple[UserRole, Action], Rule] = DECISION_TABLE,
) -> Decision:
    """May an actor with `role` and `facts` apply `delta`? Unknown roles are denied."""
    user_role = _as_role(role)
    if user_role is None:
        return Decision.DENY
    rule = table.get((user_role, action), DENY_ALL)
    return evaluate(rule, facts, delta.keys())


def can_view(role, facts: RelationshipFacts) -> bool:
    """Read access to a task or team: admins, or anyone with a relationship to it."""
    if _as_role(role) is UserRole.ADMIN:
        return True
    return any(facts.holds(f) for f in VIEW_FACTS)


def can_delete_comment(role, is_author: bool) -> bool:
    return is_author or _as_role(role) in (UserRole.ADMIN, UserRole.MANAGER)
