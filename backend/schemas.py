# schemas.py — Shared output models and JSON-safe snapshots
from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel

from models import User, Team, Task, Comment, ActivityLog, enum_value


class UserBrief(BaseModel):
    id: str
    name: str
    email: str


class UserOut(UserBrief):
    role: str
    tenant_id: str
    profile_picture: Optional[str] = None
    is_active: bool
    created_at: Optional[str] = None


class TeamBrief(BaseModel):
    id: str
    name: str


class TeamOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    members: List[UserBrief] = []
    managers: List[UserBrief] = []
    created_by: Optional[UserBrief] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class TaskOut(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    status: str
    priority: str
    due_date: Optional[str] = None
    assignees: List[UserBrief] = []
    team: Optional[TeamBrief] = None
    created_by: Optional[UserBrief] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class CommentOut(BaseModel):
    id: str
    task_id: str
    text: str
    user: Optional[UserBrief] = None
    reply_to: Optional[str] = None
    is_pinned: bool = False
    created_at: Optional[str] = None


class ActivityLogOut(BaseModel):
    id: int
    action: str
    entity: str
    entity_id: str
    performed_by: Optional[UserBrief] = None
    details: Optional[str] = None
    created_at: Optional[str] = None


def _ts(dt) -> Optional[str]:
    if dt is None:
        return None
    return dt.isoformat() if isinstance(dt, datetime) else str(dt)


def user_brief(u: Optional[User]) -> Optional[UserBrief]:
    if u is None:
        return None
    return UserBrief(id=u.id, name=u.name or "", email=u.email)


def user_out(u: User) -> UserOut:
    return UserOut(
        id=u.id, name=u.name or "", email=u.email,
        role=enum_value(u.role), tenant_id=u.tenant_id,
        profile_picture=u.profile_picture,
        is_active=bool(u.is_active),
        created_at=_ts(u.created_at),
    )


def team_out(team: Team) -> TeamOut:
    return TeamOut(
        id=team.id,
        name=team.name,
        description=team.description,
        members=[user_brief(u) for u in team.members],
        managers=[user_brief(u) for u in team.managers],
        created_by=user_brief(team.creator),
        created_at=_ts(team.created_at),
        updated_at=_ts(team.updated_at),
    )


def task_out(task: Task) -> TaskOut:
    # A team_id that no longer resolves renders as no team
    team = task.team if task.team_id else None
    return TaskOut(
        id=task.id,
        title=task.title,
        description=task.description,
        status=enum_value(task.status),
        priority=enum_value(task.priority),
        due_date=_ts(task.due_date),
        assignees=[user_brief(u) for u in task.assignees],
        team=TeamBrief(id=team.id, name=team.name) if team is not None else None,
        created_by=user_brief(task.creator),
        created_at=_ts(task.created_at),
        updated_at=_ts(task.updated_at),
    )


def comment_out(c: Comment) -> CommentOut:
    return CommentOut(
        id=c.id, task_id=c.task_id, text=c.text,
        user=user_brief(c.author),
        reply_to=c.reply_to_id,
        is_pinned=bool(c.is_pinned),
        created_at=_ts(c.created_at),
    )


def activity_out(entry: ActivityLog) -> ActivityLogOut:
    return ActivityLogOut(
        id=entry.id,
        action=enum_value(entry.action),
        entity=enum_value(entry.entity),
        entity_id=entry.entity_id,
        performed_by=user_brief(entry.performer),
        details=entry.details,
        created_at=_ts(entry.created_at),
    )


def task_snapshot(task: Task) -> dict:
    return task_out(task).model_dump()


def team_snapshot(team: Team) -> dict:
    return team_out(team).model_dump()
