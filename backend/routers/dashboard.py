# routers/dashboard.py — Role-scoped dashboard counters with 30-day trends
from datetime import timedelta

from fastapi import APIRouter, Depends
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, CurrentUser
from database import get_db_session
from models import Task, Team, User, TaskStatus, TaskPriority, UserRole, utcnow
from routers.tasks import scoped_tasks
from routers.teams import scoped_teams

router = APIRouter(prefix="/api/v1/dashboard", tags=["Dashboard"])

TREND_WINDOW = timedelta(days=30)


def trend(current: int, previous: int) -> int:
    """Percent change between two periods, rounded"""
    if previous == 0:
        return 100 if current > 0 else 0
    return round((current - previous) / previous * 100)


async def _count(db: AsyncSession, stmt) -> int:
    return (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar() or 0


@router.get("")
async def dashboard_stats(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    now = utcnow()
    current_start = now - TREND_WINDOW
    previous_start = now - 2 * TREND_WINDOW

    tasks = scoped_tasks(select(Task.id), user)
    total_tasks = await _count(db, tasks)
    created_now = await _count(db, tasks.where(Task.created_at >= current_start))
    created_before = await _count(db, tasks.where(
        Task.created_at >= previous_start, Task.created_at < current_start,
    ))
    tasks_trend = trend(created_now, created_before)

    pending = await _count(db, tasks.where(Task.status.in_([TaskStatus.TODO, TaskStatus.IN_PROGRESS])))

    # updated_at stands in for completion time
    done = tasks.where(Task.status == TaskStatus.DONE)
    completed = await _count(db, done)
    completed_now = await _count(db, done.where(Task.updated_at >= current_start))
    completed_before = await _count(db, done.where(
        Task.updated_at >= previous_start, Task.updated_at < current_start,
    ))

    teams = scoped_teams(select(Team.id), user)
    active_teams = await _count(db, teams)
    teams_now = await _count(db, teams.where(Team.created_at >= current_start))
    teams_before = await _count(db, teams.where(
        Team.created_at >= previous_start, Team.created_at < current_start,
    ))

    high_priority = await _count(db, tasks.where(Task.priority == TaskPriority.HIGH))

    total_users = 0
    if user.role in (UserRole.ADMIN.value, UserRole.MANAGER.value):
        total_users = await _count(db, select(User.id).where(User.tenant_id == user.tenant_id))

    return {
        "totalTasks": {"value": total_tasks, "trend": tasks_trend},
        "pendingTasks": {"value": pending, "trend": tasks_trend},
        "completedTasks": {"value": completed, "trend": trend(completed_now, completed_before)},
        "activeTeams": {"value": active_teams, "trend": trend(teams_now, teams_before)},
        "highPriorityTasks": high_priority,
        "totalUsers": total_users,
    }
