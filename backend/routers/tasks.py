# routers/tasks.py — Task CRUD with role-scoped listing
from datetime import datetime
from typing import Optional, List

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy import select, func, or_, case
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, CurrentUser
from authorization import task_facts, can_view
from coordinator import MutationCoordinator
from database import get_db_session
from dependencies import get_coordinator
from errors import AuthorizationError, ValidationError
from models import (
    Task, TaskStatus, TaskPriority, UserRole,
    task_assignees, team_members, team_managers,
)
from schemas import TaskOut, task_out

router = APIRouter(prefix="/api/v1/tasks", tags=["Tasks"])

SORT_FIELDS = ("created_at", "due_date", "priority", "title")


# ============================================================
# SCHEMAS
# ============================================================

# Extra keys pass through so unknown fields are rejected with a domain error
class TaskCreate(BaseModel):
    model_config = ConfigDict(extra="allow")

    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    due_date: Optional[datetime] = None
    assignees: Optional[List[str]] = None
    team_id: Optional[str] = None


class TaskUpdate(TaskCreate):
    pass


# ============================================================
# SCOPING
# ============================================================

def scoped_tasks(stmt, actor: CurrentUser):
    """Restrict a Task select to what the actor's role may list."""
    if actor.role == UserRole.ADMIN.value:
        return stmt.where(Task.tenant_id == actor.tenant_id)

    assigned = select(task_assignees.c.task_id).where(task_assignees.c.user_id == actor.id)
    if actor.role == UserRole.MANAGER.value:
        managed = select(team_managers.c.team_id).where(team_managers.c.user_id == actor.id)
        scope = or_(Task.created_by == actor.id, Task.id.in_(assigned), Task.team_id.in_(managed))
    else:
        member_of = select(team_members.c.team_id).where(team_members.c.user_id == actor.id)
        scope = or_(Task.id.in_(assigned), Task.team_id.in_(member_of))
    return stmt.where(Task.tenant_id == actor.tenant_id, scope)


def _parse_statuses(raw: str) -> List[TaskStatus]:
    statuses = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            statuses.append(TaskStatus(part))
        except ValueError:
            raise ValidationError(f"Invalid status: {part}")
    return statuses


def _sort_column(sort: str):
    if sort == "priority":
        return case(
            (Task.priority == TaskPriority.HIGH, 3),
            (Task.priority == TaskPriority.MEDIUM, 2),
            else_=1,
        )
    return getattr(Task, sort)


def ensure_can_view(actor: CurrentUser, task: Task) -> None:
    team = task.team if task.team_id else None
    facts = task_facts(
        actor.id, task.created_by, task.assignee_ids,
        team.member_ids if team else (), team.manager_ids if team else (),
    )
    if not can_view(actor.role, facts):
        raise AuthorizationError("Not authorized to view this task")


# ============================================================
# ENDPOINTS
# ============================================================

@router.get("")
async def list_tasks(
    status: Optional[str] = Query(None, description="Comma-separated statuses"),
    priority: Optional[str] = None,
    assignee: Optional[str] = None,
    search: Optional[str] = None,
    sort: str = Query("created_at"),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """List tasks visible to the current user"""
    if sort not in SORT_FIELDS:
        raise ValidationError(f"Invalid sort field: {sort}")

    stmt = scoped_tasks(select(Task), user)
    if status:
        statuses = _parse_statuses(status)
        if statuses:
            stmt = stmt.where(Task.status.in_(statuses))
    if priority:
        try:
            stmt = stmt.where(Task.priority == TaskPriority(priority))
        except ValueError:
            raise ValidationError(f"Invalid priority: {priority}")
    if assignee:
        stmt = stmt.where(Task.id.in_(
            select(task_assignees.c.task_id).where(task_assignees.c.user_id == assignee)
        ))
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(Task.title.ilike(pattern), Task.description.ilike(pattern)))

    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar() or 0

    column = _sort_column(sort)
    stmt = stmt.order_by(column.asc() if order == "asc" else column.desc(), Task.id)
    result = await db.execute(stmt.limit(limit).offset(offset))
    tasks = result.scalars().all()

    return {
        "tasks": [task_out(t) for t in tasks],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("/stats/priority")
async def priority_stats(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Task counts per priority over the tasks the user can see"""
    stmt = scoped_tasks(select(Task.priority, func.count(Task.id)), user).group_by(Task.priority)
    counts = {p: 0 for p in TaskPriority}
    for priority, count in (await db.execute(stmt)).all():
        counts[TaskPriority(priority)] = count
    return {
        "low": counts[TaskPriority.LOW],
        "medium": counts[TaskPriority.MEDIUM],
        "high": counts[TaskPriority.HIGH],
    }


@router.get("/{task_id}", response_model=TaskOut)
async def get_task(
    task_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    coordinator: MutationCoordinator = Depends(get_coordinator),
):
    task = await coordinator.get_task(db, user, task_id)
    ensure_can_view(user, task)
    return task_out(task)


@router.post("", response_model=TaskOut, status_code=201)
async def create_task(
    body: TaskCreate,
    background_tasks: BackgroundTasks,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    coordinator: MutationCoordinator = Depends(get_coordinator),
):
    task = await coordinator.create_task(db, user, body.model_dump(exclude_unset=True), background_tasks)
    return task_out(task)


@router.patch("/{task_id}", response_model=TaskOut)
async def update_task(
    task_id: str,
    body: TaskUpdate,
    background_tasks: BackgroundTasks,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    coordinator: MutationCoordinator = Depends(get_coordinator),
):
    """Partial update; users may only change status"""
    task = await coordinator.update_task(db, user, task_id, body.model_dump(exclude_unset=True), background_tasks)
    return task_out(task)


@router.delete("/{task_id}")
async def delete_task(
    task_id: str,
    background_tasks: BackgroundTasks,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    coordinator: MutationCoordinator = Depends(get_coordinator),
):
    await coordinator.delete_task(db, user, task_id, background_tasks)
    return {"status": "deleted", "id": task_id}
