# routers/teams.py — Team management
from typing import Optional, List

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel, ConfigDict
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, CurrentUser
from authorization import team_facts, can_view
from coordinator import MutationCoordinator
from database import get_db_session
from dependencies import get_coordinator
from errors import AuthorizationError
from models import Team, UserRole, team_members, team_managers
from schemas import TeamOut, team_out

router = APIRouter(prefix="/api/v1/teams", tags=["Teams"])


# ============================================================
# SCHEMAS
# ============================================================

class TeamCreate(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    description: Optional[str] = None
    members: Optional[List[str]] = None
    managers: Optional[List[str]] = None


class TeamUpdate(TeamCreate):
    pass


def scoped_teams(stmt, actor: CurrentUser):
    stmt = stmt.where(Team.tenant_id == actor.tenant_id)
    if actor.role == UserRole.ADMIN.value:
        return stmt
    member_of = select(team_members.c.team_id).where(team_members.c.user_id == actor.id)
    if actor.role == UserRole.MANAGER.value:
        managed = select(team_managers.c.team_id).where(team_managers.c.user_id == actor.id)
        return stmt.where(or_(
            Team.created_by == actor.id, Team.id.in_(managed), Team.id.in_(member_of),
        ))
    return stmt.where(Team.id.in_(member_of))


# ============================================================
# ENDPOINTS
# ============================================================

@router.get("")
async def list_teams(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    result = await db.execute(scoped_teams(select(Team), user).order_by(Team.created_at.desc()))
    teams = result.scalars().all()
    return {"teams": [team_out(t) for t in teams], "total": len(teams)}


@router.get("/{team_id}", response_model=TeamOut)
async def get_team(
    team_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    coordinator: MutationCoordinator = Depends(get_coordinator),
):
    team = await coordinator.get_team(db, user, team_id)
    facts = team_facts(user.id, team.created_by, team.member_ids, team.manager_ids)
    if not can_view(user.role, facts):
        raise AuthorizationError("Not authorized to view this team")
    return team_out(team)


@router.post("", response_model=TeamOut, status_code=201)
async def create_team(
    body: TeamCreate,
    background_tasks: BackgroundTasks,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    coordinator: MutationCoordinator = Depends(get_coordinator),
):
    team = await coordinator.create_team(db, user, body.model_dump(exclude_unset=True), background_tasks)
    return team_out(team)


@router.patch("/{team_id}", response_model=TeamOut)
async def update_team(
    team_id: str,
    body: TeamUpdate,
    background_tasks: BackgroundTasks,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    coordinator: MutationCoordinator = Depends(get_coordinator),
):
    team = await coordinator.update_team(db, user, team_id, body.model_dump(exclude_unset=True), background_tasks)
    return team_out(team)


@router.delete("/{team_id}")
async def delete_team(
    team_id: str,
    background_tasks: BackgroundTasks,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    coordinator: MutationCoordinator = Depends(get_coordinator),
):
    """Delete a team; its tasks are left without a team"""
    await coordinator.delete_team(db, user, team_id, background_tasks)
    return {"status": "deleted", "id": team_id}
