# coordinator.py — Orchestrates task/team/comment mutations
"""
Every mutation runs the same sequence:

    1. validate structure          -> ValidationError, nothing else happens
    2. load snapshot, resolve refs -> NotFoundError
    3. authorization decision      -> AuthorizationError, no audit, no events
    4. apply + commit              -> PersistenceError, no audit, no events
    5. audit append                -> failures logged and swallowed
    6. plan + deliver events       -> failures logged and swallowed

The result returned to the caller depends only on step 4. Delivery runs on
the supplied background runner when there is one, otherwise inline.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from audit import AuditLog, AuditEntry
from authorization import (
    Action, Decision, RelationshipFacts, decide,
    task_facts, team_facts, can_view, can_delete_comment,
)
from dispatcher import Audience, DomainEvent, EventKind, NotificationDispatcher
from errors import AuthorizationError, NotFoundError, PersistenceError, ValidationError
from models import (
    User, Team, Task, Comment, UserRole, TaskStatus, TaskPriority,
    ActivityAction, EntityKind, enum_value,
)
from schemas import task_snapshot, team_snapshot, comment_out

logger = logging.getLogger("taskhub.coordinator")

TASK_FIELDS = frozenset({"title", "description", "status", "priority", "due_date", "assignees", "team_id"})
TEAM_FIELDS = frozenset({"name", "description", "members", "managers"})


# ============================================================
# STEP 1: STRUCTURAL VALIDATION
# ============================================================

def _require_text(data: dict, key: str, label: str) -> None:
    value = data.get(key)
    if value is None or not str(value).strip():
        raise ValidationError(f"{label} is required", code="TH-VAL-002")
    data[key] = str(value).strip()


def _id_list(value, label: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str) or not isinstance(value, (list, tuple, set)):
        raise ValidationError(f"{label} must be a list of user ids")
    seen: List[str] = []
    for item in value:
        if not isinstance(item, str) or not item:
            raise ValidationError(f"{label} must be a list of user ids")
        if item not in seen:
            seen.append(item)
    return seen


def _parse_due_date(value) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"Invalid due date: {value}")


def validate_task_fields(fields: Dict[str, Any], creating: bool) -> Dict[str, Any]:
    """Normalise a task create payload or update delta. Raises ValidationError."""
    unknown = set(fields) - TASK_FIELDS
    if unknown:
        raise ValidationError(f"Unknown task field(s): {', '.join(sorted(unknown))}", code="TH-VAL-004")

    data = dict(fields)
    if "assignees" in data:
        data["assignees"] = _id_list(data["assignees"], "assignees")
    if data.get("assignees") and data.get("team_id"):
        raise ValidationError(code="TH-VAL-001")

    if creating or "title" in data:
        _require_text(data, "title", "Title")
    if "status" in data:
        try:
            data["status"] = TaskStatus(data["status"]) if data["status"] is not None else TaskStatus.TODO
        except ValueError:
            raise ValidationError(f"Invalid status: {data['status']}")
    if "priority" in data:
        try:
            data["priority"] = TaskPriority(data["priority"]) if data["priority"] is not None else TaskPriority.MEDIUM
        except ValueError:
            raise ValidationError(f"Invalid priority: {data['priority']}")
    if "due_date" in data:
        data["due_date"] = _parse_due_date(data["due_date"])
    if "team_id" in data and not data["team_id"]:
        data["team_id"] = None
    return data


def validate_team_fields(fields: Dict[str, Any], creating: bool) -> Dict[str, Any]:
    unknown = set(fields) - TEAM_FIELDS
    if unknown:
        raise ValidationError(f"Unknown team field(s): {', '.join(sorted(unknown))}", code="TH-VAL-004")

    data = dict(fields)
    if creating or "name" in data:
        _require_text(data, "name", "Team name")
    if "members" in data:
        data["members"] = _id_list(data["members"], "members")
    if "managers" in data:
        data["managers"] = _id_list(data["managers"], "managers")
        if not creating and not data["managers"]:
            raise ValidationError("A team needs at least one manager", code="TH-VAL-002")
    return data


def _names(users: Iterable[User]) -> str:
    return ", ".join(u.name or u.email for u in users)


def _day(dt: Optional[datetime]) -> str:
    return dt.date().isoformat() if dt else ""


def _classify(changed: set) -> ActivityAction:
    if changed == {"status"}:
        return ActivityAction.STATUS
    if changed and changed <= {"assignees", "team"}:
        return ActivityAction.ASSIGN
    return ActivityAction.UPDATE


class MutationCoordinator:
    def __init__(self, audit_log: AuditLog, dispatcher: NotificationDispatcher, decide_fn=decide):
        self.audit_log = audit_log
        self.dispatcher = dispatcher
        self.decide = decide_fn

    # ============================================================
    # STEP 2: SNAPSHOTS AND REFERENCES
    # ============================================================

    async def get_task(self, db: AsyncSession, actor, task_id: str) -> Task:
        result = await db.execute(
            select(Task)
            .where(Task.id == task_id, Task.tenant_id == actor.tenant_id)
            .execution_options(populate_existing=True)
        )
        task = result.scalar_one_or_none()
        if not task:
            raise NotFoundError(code="TH-NF-001")
        return task

    async def get_team(self, db: AsyncSession, actor, team_id: str) -> Team:
        result = await db.execute(
            select(Team)
            .where(Team.id == team_id, Team.tenant_id == actor.tenant_id)
            .execution_options(populate_existing=True)
        )
        team = result.scalar_one_or_none()
        if not team:
            raise NotFoundError(code="TH-NF-002")
        return team

    async def resolve_users(self, db: AsyncSession, actor, user_ids: List[str], current: Iterable[str] = ()) -> List[User]:
        """Tenant users by id, in the given order.

        Deactivated users resolve only when they are already in `current`,
        so re-sending an existing member or assignee list still works.
        """
        if not user_ids:
            return []
        keep = set(current)
        result = await db.execute(
            select(User).where(User.id.in_(user_ids), User.tenant_id == actor.tenant_id)
        )
        found = {u.id: u for u in result.scalars().all() if u.is_active or u.id in keep}
        missing = [uid for uid in user_ids if uid not in found]
        if missing:
            raise NotFoundError(f"User not found: {missing[0]}", code="TH-NF-003")
        return [found[uid] for uid in user_ids]

    # ============================================================
    # STEPS 3-6
    # ============================================================

    def _authorize(self, actor, facts: RelationshipFacts, delta: dict, action: Action, label: str) -> None:
        decision = self.decide(actor.role, facts, delta, action)
        if decision is not Decision.ALLOW:
            logger.warning(
                f"Denied {action.value} {label}: actor={actor.id[:8]} role={actor.role} "
                f"fields={sorted(delta)}"
            )
            raise AuthorizationError(f"Not authorized to {action.value} this {label}")

    async def _commit(self, db: AsyncSession) -> None:
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Persist failed: {e}")
            raise PersistenceError() from e

    async def record_activity(self, db: AsyncSession, actor, entries: List[AuditEntry]) -> None:
        """Append audit entries; never raises.

        The append runs in its own session on the same engine, so a failed
        append rolls back only the audit rows and leaves the caller's
        already-committed objects loaded.
        """
        if not entries:
            return
        try:
            async with AsyncSession(bind=db.bind, expire_on_commit=False, autoflush=False) as audit_db:
                await self.audit_log.append_many(audit_db, actor.tenant_id, entries)
        except Exception:
            logger.error(
                f"Audit append failed for tenant={actor.tenant_id[:8]} ({len(entries)} entries)",
                exc_info=True,
            )

    async def _management_ids(self, db: AsyncSession, tenant_id: str) -> frozenset:
        result = await db.execute(
            select(User.id).where(
                User.tenant_id == tenant_id,
                User.role.in_([UserRole.ADMIN, UserRole.MANAGER]),
                User.is_active == True,  # noqa: E712
            )
        )
        return frozenset(result.scalars().all())

    async def _notify(self, db: AsyncSession, actor, events: List[DomainEvent], teams: Iterable[Optional[Team]], background=None) -> None:
        if not events:
            return
        try:
            management = frozenset()
            if any(e.notify_management for e in events):
                management = await self._management_ids(db, actor.tenant_id)
            audience = Audience(
                team_members={t.id: frozenset(t.member_ids) for t in teams if t is not None},
                management=management,
            )
            deliveries = self.dispatcher.plan(events, audience)
        except Exception:
            logger.error("Planning notifications failed", exc_info=True)
            return

        if background is not None:
            background.add_task(self._deliver, deliveries)
        else:
            await self._deliver(deliveries)

    async def _deliver(self, deliveries) -> None:
        try:
            await self.dispatcher.deliver(deliveries)
        except Exception:
            logger.error("Notification delivery failed", exc_info=True)

    # ============================================================
    # TASKS
    # ============================================================

    async def create_task(self, db: AsyncSession, actor, fields: Dict[str, Any], background=None) -> Task:
        data = validate_task_fields(fields, creating=True)

        assignees = await self.resolve_users(db, actor, data.get("assignees", []))
        team = await self.get_team(db, actor, data["team_id"]) if data.get("team_id") else None

        facts = task_facts(
            actor.id, actor.id, [u.id for u in assignees],
            team.member_ids if team else (), team.manager_ids if team else (),
        )
        self._authorize(actor, facts, data, Action.CREATE, "task")

        task = Task(
            tenant_id=actor.tenant_id,
            title=data["title"],
            description=data.get("description"),
            status=data.get("status") or TaskStatus.TODO,
            priority=data.get("priority") or TaskPriority.MEDIUM,
            due_date=data.get("due_date"),
            team_id=team.id if team else None,
            created_by=actor.id,
        )
        task.assignees = assignees
        db.add(task)
        await self._commit(db)
        task = await self.get_task(db, actor, task.id)
        logger.info(f"Task created: id={task.id[:8]} actor={actor.id[:8]}")

        details = f'Task "{task.title}" was created'
        if assignees:
            details += f" and assigned to {_names(assignees)}"
        elif team:
            details += f" and assigned to team {team.name}"
        await self.record_activity(db, actor, [
            AuditEntry(ActivityAction.CREATE, EntityKind.TASK, task.id, actor.id, details),
        ])

        snapshot = task_snapshot(task)
        events = []
        notified = set()
        if assignees:
            ids = tuple(u.id for u in assignees)
            events.append(DomainEvent(EventKind.TASK_ASSIGNED, {
                "task": snapshot,
                "message": f'Task "{task.title}" has been assigned to you by {actor.name}',
            }, actor.id, recipients=ids))
            notified.update(ids)
        if team:
            events.append(DomainEvent(EventKind.TASK_ASSIGNED_TO_TEAM, {
                "task": snapshot,
                "message": f'Task "{task.title}" has been assigned to your team "{team.name}" by {actor.name}',
            }, actor.id, team_id=team.id))
            notified.update(team.member_ids)
        events.append(DomainEvent(EventKind.TASK_UPDATED, {
            "task": snapshot,
            "message": f'Task "{task.title}" was created by {actor.name}',
        }, actor.id, notify_management=True, exclude=frozenset(notified)))
        await self._notify(db, actor, events, [team], background)
        return task

    async def update_task(self, db: AsyncSession, actor, task_id: str, delta: Dict[str, Any], background=None) -> Task:
        data = validate_task_fields(delta, creating=False)

        task = await self.get_task(db, actor, task_id)
        new_assignees = (
            await self.resolve_users(db, actor, data["assignees"], task.assignee_ids) if "assignees" in data else None
        )
        new_team = await self.get_team(db, actor, data["team_id"]) if data.get("team_id") else None

        old_team = task.team if task.team_id else None
        facts = task_facts(
            actor.id, task.created_by, task.assignee_ids,
            old_team.member_ids if old_team else (), old_team.manager_ids if old_team else (),
        )
        self._authorize(actor, facts, data, Action.UPDATE, "task")

        before = {
            "title": task.title,
            "description": task.description,
            "status": enum_value(task.status),
            "priority": enum_value(task.priority),
            "due_date": _day(task.due_date),
        }
        old_assignees = list(task.assignees)

        for key in ("title", "description", "status", "priority", "due_date"):
            if key in data:
                setattr(task, key, data[key])
        if new_assignees is not None:
            task.assignees = new_assignees
            if new_assignees:
                task.team = None
        if "team_id" in data:
            task.team = new_team
            if new_team is not None:
                task.assignees = []

        await self._commit(db)
        task = await self.get_task(db, actor, task.id)
        current_team = task.team if task.team_id else None

        changes, changed = [], set()
        if before["title"] != task.title:
            changes.append(f'title from "{before["title"]}" to "{task.title}"')
            changed.add("title")
        if (before["description"] or "") != (task.description or ""):
            changes.append("description")
            changed.add("description")
        for key in ("status", "priority"):
            new_value = enum_value(getattr(task, key))
            if before[key] != new_value:
                changes.append(f'{key} from "{before[key]}" to "{new_value}"')
                changed.add(key)
        if before["due_date"] != _day(task.due_date):
            changes.append(f'due date from "{before["due_date"] or "none"}" to "{_day(task.due_date) or "none"}"')
            changed.add("due_date")

        old_ids = [u.id for u in old_assignees]
        added = [u for u in task.assignees if u.id not in old_ids]
        removed = [u for u in old_assignees if u.id not in task.assignee_ids]
        if added or removed:
            changes.append(f"assignees changed ({len(added)} added, {len(removed)} removed)")
            changed.add("assignees")

        team_changed = (old_team.id if old_team else None) != (current_team.id if current_team else None)
        if team_changed:
            if current_team:
                changes.append(f'assigned to team "{current_team.name}"')
            if old_team:
                changes.append(f'unassigned from team "{old_team.name}"')
            changed.add("team")

        details = f'Task "{task.title}" was updated.'
        if changes:
            details = f'Task "{task.title}" updated: {", ".join(changes)}.'
        logger.info(f"Task updated: id={task.id[:8]} actor={actor.id[:8]} changed={sorted(changed)}")
        await self.record_activity(db, actor, [
            AuditEntry(_classify(changed), EntityKind.TASK, task.id, actor.id, details),
        ])

        snapshot = task_snapshot(task)
        events, notified = [], set()
        if added:
            ids = tuple(u.id for u in added)
            events.append(DomainEvent(EventKind.TASK_ASSIGNED, {
                "task": snapshot,
                "message": f'Task "{task.title}" has been assigned to you by {actor.name}',
            }, actor.id, recipients=ids))
            notified.update(ids)
        if removed:
            ids = tuple(u.id for u in removed)
            events.append(DomainEvent(EventKind.TASK_UNASSIGNED, {
                "task": snapshot,
                "message": f'Task "{task.title}" has been unassigned from you by {actor.name}',
            }, actor.id, recipients=ids))
            notified.update(ids)
        if team_changed and current_team:
            events.append(DomainEvent(EventKind.TASK_ASSIGNED_TO_TEAM, {
                "task": snapshot,
                "message": f'Task "{task.title}" has been assigned to your team "{current_team.name}" by {actor.name}',
            }, actor.id, team_id=current_team.id))
            notified.update(current_team.member_ids)
        if team_changed and old_team:
            old_members = tuple(sorted(old_team.member_ids))
            events.append(DomainEvent(EventKind.TASK_UNASSIGNED, {
                "task": snapshot,
                "message": f'Task "{task.title}" has been unassigned from your team "{old_team.name}" by {actor.name}',
            }, actor.id, recipients=old_members))
            notified.update(old_members)
        if changed:
            events.append(DomainEvent(EventKind.TASK_UPDATED, {
                "task": snapshot,
                "message": f'Task "{task.title}" has been updated by {actor.name}',
            }, actor.id,
                recipients=tuple(u.id for u in task.assignees),
                team_id=current_team.id if current_team else None,
                notify_management=True,
                exclude=frozenset(notified),
            ))
        await self._notify(db, actor, events, [old_team, current_team], background)
        return task

    async def delete_task(self, db: AsyncSession, actor, task_id: str, background=None) -> dict:
        task = await self.get_task(db, actor, task_id)
        team = task.team if task.team_id else None
        facts = task_facts(
            actor.id, task.created_by, task.assignee_ids,
            team.member_ids if team else (), team.manager_ids if team else (),
        )
        self._authorize(actor, facts, {}, Action.DELETE, "task")

        snapshot = task_snapshot(task)
        assignee_ids = tuple(u.id for u in task.assignees)
        title = task.title

        await db.execute(delete(Comment).where(Comment.task_id == task.id))
        await db.delete(task)
        await self._commit(db)
        logger.info(f"Task deleted: id={task_id[:8]} actor={actor.id[:8]}")

        await self.record_activity(db, actor, [
            AuditEntry(ActivityAction.DELETE, EntityKind.TASK, task_id, actor.id, f'Task "{title}" was deleted'),
        ])

        message = f'Task "{title}" has been deleted by {actor.name}'
        if team:
            message = f'Task "{title}" has been deleted from your team "{team.name}" by {actor.name}'
        events = [DomainEvent(EventKind.TASK_UNASSIGNED, {
            "task": snapshot,
            "message": message,
        }, actor.id,
            recipients=assignee_ids,
            team_id=team.id if team else None,
            notify_management=True,
        )]
        await self._notify(db, actor, events, [team], background)
        return snapshot

    # ============================================================
    # TEAMS
    # ============================================================

    async def create_team(self, db: AsyncSession, actor, fields: Dict[str, Any], background=None) -> Team:
        data = validate_team_fields(fields, creating=True)

        members = await self.resolve_users(db, actor, data.get("members", []))
        managers = await self.resolve_users(db, actor, data.get("managers") or [actor.id])

        facts = team_facts(actor.id, actor.id, [u.id for u in members], [u.id for u in managers])
        self._authorize(actor, facts, data, Action.CREATE, "team")

        team = Team(
            tenant_id=actor.tenant_id,
            name=data["name"],
            description=data.get("description"),
            created_by=actor.id,
        )
        team.members = members
        team.managers = managers
        db.add(team)
        await self._commit(db)
        team = await self.get_team(db, actor, team.id)
        logger.info(f"Team created: id={team.id[:8]} actor={actor.id[:8]}")

        await self.record_activity(db, actor, [
            AuditEntry(ActivityAction.CREATE, EntityKind.TEAM, team.id, actor.id,
                       f'Team "{team.name}" was created by {actor.name}'),
        ])

        snapshot = team_snapshot(team)
        member_ids = tuple(u.id for u in team.members)
        events = [
            DomainEvent(EventKind.TEAM_ADDED, {
                "team": snapshot,
                "message": f'You have been added to team "{team.name}" by {actor.name}',
            }, actor.id, recipients=member_ids),
            DomainEvent(EventKind.TEAM_UPDATED, {
                "team": snapshot,
                "message": f'Team "{team.name}" was created by {actor.name}',
            }, actor.id, notify_management=True, exclude=frozenset(member_ids)),
        ]
        await self._notify(db, actor, events, [team], background)
        return team

    async def update_team(self, db: AsyncSession, actor, team_id: str, delta: Dict[str, Any], background=None) -> Team:
        data = validate_team_fields(delta, creating=False)

        team = await self.get_team(db, actor, team_id)
        new_members = (
            await self.resolve_users(db, actor, data["members"], team.member_ids) if "members" in data else None
        )
        new_managers = (
            await self.resolve_users(db, actor, data["managers"], team.manager_ids) if "managers" in data else None
        )

        facts = team_facts(actor.id, team.created_by, team.member_ids, team.manager_ids)
        self._authorize(actor, facts, data, Action.UPDATE, "team")

        old_name, old_description = team.name, team.description
        old_members = list(team.members)
        old_manager_ids = team.manager_ids

        if "name" in data:
            team.name = data["name"]
        if "description" in data:
            team.description = data["description"]
        if new_members is not None:
            team.members = new_members
        if new_managers is not None:
            team.managers = new_managers

        await self._commit(db)
        team = await self.get_team(db, actor, team.id)

        changes = []
        if old_name != team.name:
            changes.append(f'name from "{old_name}" to "{team.name}"')
        if (old_description or "") != (team.description or ""):
            changes.append("description")
        old_ids = [u.id for u in old_members]
        added = [u for u in team.members if u.id not in old_ids]
        removed = [u for u in old_members if u.id not in team.member_ids]
        if added or removed:
            parts = []
            if added:
                parts.append(f"{len(added)} member(s) added")
            if removed:
                parts.append(f"{len(removed)} member(s) removed")
            changes.append(f"members: {' and '.join(parts)}")
        if old_manager_ids != team.manager_ids:
            changes.append("managers")

        details = f'Team "{team.name}" was updated by {actor.name}.'
        if changes:
            details = f'Team "{team.name}" updated by {actor.name}: {", ".join(changes)}.'
        entries = [AuditEntry(ActivityAction.UPDATE, EntityKind.TEAM, team.id, actor.id, details)]
        entries += [
            AuditEntry(ActivityAction.ASSIGN, EntityKind.USER, u.id, actor.id,
                       f'You were added to team "{team.name}" by {actor.name}')
            for u in added
        ]
        entries += [
            AuditEntry(ActivityAction.DELETE, EntityKind.USER, u.id, actor.id,
                       f'You were removed from team "{old_name}" by {actor.name}')
            for u in removed
        ]
        logger.info(f"Team updated: id={team.id[:8]} actor={actor.id[:8]} changes={len(changes)}")
        await self.record_activity(db, actor, entries)

        snapshot = team_snapshot(team)
        added_ids = tuple(u.id for u in added)
        removed_ids = tuple(u.id for u in removed)
        events = []
        if added_ids:
            events.append(DomainEvent(EventKind.TEAM_ADDED, {
                "team": snapshot,
                "message": f'You have been added to team "{team.name}" by {actor.name}',
            }, actor.id, recipients=added_ids))
        if removed_ids:
            events.append(DomainEvent(EventKind.TEAM_REMOVED, {
                "team": snapshot,
                "message": f'You have been removed from team "{old_name}" by {actor.name}',
            }, actor.id, recipients=removed_ids))
        events.append(DomainEvent(EventKind.TEAM_UPDATED, {
            "team": snapshot,
            "message": f'Team "{team.name}" has been updated by {actor.name}',
        }, actor.id,
            team_id=team.id,
            notify_management=True,
            exclude=frozenset(added_ids + removed_ids),
        ))
        await self._notify(db, actor, events, [team], background)
        return team

    async def delete_team(self, db: AsyncSession, actor, team_id: str, background=None) -> dict:
        team = await self.get_team(db, actor, team_id)
        facts = team_facts(actor.id, team.created_by, team.member_ids, team.manager_ids)
        self._authorize(actor, facts, {}, Action.DELETE, "team")

        snapshot = team_snapshot(team)
        member_ids = tuple(u.id for u in team.members)
        name = team.name

        # Tasks of a deleted team become unassigned
        await db.execute(
            update(Task)
            .where(Task.team_id == team.id, Task.tenant_id == actor.tenant_id)
            .values(team_id=None)
        )
        await db.delete(team)
        await self._commit(db)
        logger.info(f"Team deleted: id={team_id[:8]} actor={actor.id[:8]}")

        entries = [AuditEntry(ActivityAction.DELETE, EntityKind.TEAM, team_id, actor.id,
                              f'Team "{name}" was deleted by {actor.name}')]
        entries += [
            AuditEntry(ActivityAction.DELETE, EntityKind.USER, uid, actor.id,
                       f'The team "{name}" you were a member of was deleted by {actor.name}')
            for uid in member_ids if uid != actor.id
        ]
        await self.record_activity(db, actor, entries)

        events = [DomainEvent(EventKind.TEAM_REMOVED, {
            "team": snapshot,
            "message": f'Team "{name}" has been deleted by {actor.name}',
        }, actor.id, recipients=member_ids, notify_management=True)]
        await self._notify(db, actor, events, [], background)
        return snapshot

    # ============================================================
    # COMMENTS
    # ============================================================

    def _comment_audience(self, task: Task) -> tuple:
        ids = [u.id for u in task.assignees]
        if task.created_by not in ids:
            ids.append(task.created_by)
        return tuple(ids)

    async def add_comment(self, db: AsyncSession, actor, task_id: str, text: str,
                          reply_to: Optional[str] = None, background=None) -> Comment:
        if text is None or not str(text).strip():
            raise ValidationError("Comment text is required", code="TH-VAL-002")

        task = await self.get_task(db, actor, task_id)
        team = task.team if task.team_id else None
        facts = task_facts(
            actor.id, task.created_by, task.assignee_ids,
            team.member_ids if team else (), team.manager_ids if team else (),
        )
        if not can_view(actor.role, facts):
            raise AuthorizationError("Not authorized to comment on this task")

        if reply_to:
            parent = (await db.execute(
                select(Comment.id).where(Comment.id == reply_to, Comment.task_id == task.id)
            )).scalar_one_or_none()
            if not parent:
                raise NotFoundError(code="TH-NF-004")

        comment = Comment(
            tenant_id=actor.tenant_id,
            task_id=task.id,
            user_id=actor.id,
            text=str(text).strip(),
            reply_to_id=reply_to or None,
        )
        db.add(comment)
        await self._commit(db)
        comment = (await db.execute(
            select(Comment).where(Comment.id == comment.id).execution_options(populate_existing=True)
        )).scalar_one()

        events = [DomainEvent(EventKind.COMMENT_ADDED, {
            "task": task_snapshot(task),
            "comment": comment_out(comment).model_dump(),
            "message": f'{actor.name} commented on task "{task.title}"',
        }, actor.id, recipients=self._comment_audience(task), team_id=team.id if team else None)]
        await self._notify(db, actor, events, [team], background)
        return comment

    async def delete_comment(self, db: AsyncSession, actor, comment_id: str, background=None) -> None:
        comment = (await db.execute(
            select(Comment).where(
                Comment.id == comment_id,
                Comment.tenant_id == actor.tenant_id,
                Comment.is_deleted == False,  # noqa: E712
            )
        )).scalar_one_or_none()
        if not comment:
            raise NotFoundError(code="TH-NF-004")
        if not can_delete_comment(actor.role, comment.user_id == actor.id):
            raise AuthorizationError("Not authorized to delete this comment")

        task = await self.get_task(db, actor, comment.task_id)
        team = task.team if task.team_id else None

        await db.delete(comment)
        await self._commit(db)

        events = [DomainEvent(EventKind.COMMENT_DELETED, {
            "task": task_snapshot(task),
            "commentId": comment_id,
            "message": f'A comment on task "{task.title}" was deleted by {actor.name}',
        }, actor.id, recipients=self._comment_audience(task), team_id=team.id if team else None)]
        await self._notify(db, actor, events, [team], background)
