# routers/users.py — Tenant user management
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, EmailStr, Field, field_validator
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from audit import AuditEntry
from auth import AuthService, CurrentUser, get_current_user, require_role, validate_password_strength
from coordinator import MutationCoordinator
from database import get_db_session
from dependencies import get_coordinator, get_presence
from errors import AuthorizationError, NotFoundError, PersistenceError, ValidationError
from models import User, UserRole, ActivityAction, EntityKind, enum_value
from presence import PresenceRegistry
from routers.websocket_router import drop_user_channels
from schemas import UserOut, user_out

router = APIRouter(prefix="/api/v1/users", tags=["Users"])

ASSIGNABLE_ROLES = (UserRole.MANAGER.value, UserRole.USER.value)


# --- Schemas ---

class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str
    role: str = UserRole.USER.value

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return validate_password_strength(v)


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    role: Optional[str] = None
    is_active: Optional[bool] = None


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    profile_picture: Optional[str] = None


# --- Helpers ---

async def _get_tenant_user(db: AsyncSession, actor: CurrentUser, user_id: str) -> User:
    result = await db.execute(
        select(User).where(User.id == user_id, User.tenant_id == actor.tenant_id)
    )
    target = result.scalar_one_or_none()
    if not target:
        raise NotFoundError(code="TH-NF-003")
    return target


def _check_assignable(role: str) -> None:
    if role not in ASSIGNABLE_ROLES:
        raise ValidationError(f"Role must be one of: {', '.join(ASSIGNABLE_ROLES)}")


async def _commit(db: AsyncSession) -> None:
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise PersistenceError() from e


# --- Endpoints ---

@router.get("")
async def list_users(
    role: Optional[str] = Query(None),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Tenant users; plain users see an empty list"""
    if user.role == UserRole.USER.value:
        return {"users": [], "total": 0}

    stmt = select(User).where(User.tenant_id == user.tenant_id)
    if role:
        try:
            stmt = stmt.where(User.role == UserRole(role))
        except ValueError:
            raise ValidationError(f"Invalid role: {role}")
    result = await db.execute(stmt.order_by(User.name))
    users = result.scalars().all()
    return {"users": [user_out(u) for u in users], "total": len(users)}


@router.post("", response_model=UserOut, status_code=201)
async def create_user(
    body: UserCreate,
    admin: CurrentUser = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db_session),
    coordinator: MutationCoordinator = Depends(get_coordinator),
):
    _check_assignable(body.role)
    await AuthService.ensure_email_free(body.email, db)

    new_user = User(
        name=body.name,
        email=body.email,
        password_hash=AuthService.hash_password(body.password),
        role=UserRole(body.role),
        tenant_id=admin.tenant_id,
        is_active=True,
    )
    db.add(new_user)
    await _commit(db)

    await coordinator.record_activity(db, admin, [
        AuditEntry(ActivityAction.CREATE, EntityKind.USER, new_user.id, admin.id,
                   f'User "{new_user.name}" was created as {body.role} by {admin.name}'),
    ])
    return user_out(new_user)


@router.put("/profile", response_model=UserOut)
async def update_profile(
    body: ProfileUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    coordinator: MutationCoordinator = Depends(get_coordinator),
):
    me = await _get_tenant_user(db, user, user.id)
    if body.email is not None and body.email != me.email:
        await AuthService.ensure_email_free(body.email, db, exclude_id=me.id)
        me.email = body.email
    if body.name is not None:
        me.name = body.name
    if body.profile_picture is not None:
        me.profile_picture = body.profile_picture
    await _commit(db)

    await coordinator.record_activity(db, user, [
        AuditEntry(ActivityAction.UPDATE, EntityKind.USER, me.id, user.id,
                   f'User "{me.name}" updated their profile'),
    ])
    return user_out(me)


@router.patch("/{user_id}", response_model=UserOut)
async def update_user(
    user_id: str,
    body: UserUpdate,
    request: Request,
    admin: CurrentUser = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db_session),
    coordinator: MutationCoordinator = Depends(get_coordinator),
    presence: PresenceRegistry = Depends(get_presence),
):
    """Admin edit, including the explicit role change"""
    target = await _get_tenant_user(db, admin, user_id)
    changes = []

    if body.role is not None and body.role != enum_value(target.role):
        if target.id == target.tenant_id:
            raise AuthorizationError("The tenant admin's role cannot be changed")
        _check_assignable(body.role)
        changes.append(f'role from "{enum_value(target.role)}" to "{body.role}"')
        target.role = UserRole(body.role)
    if body.email is not None and body.email != target.email:
        await AuthService.ensure_email_free(body.email, db, exclude_id=target.id)
        changes.append("email")
        target.email = body.email
    if body.name is not None and body.name != target.name:
        changes.append(f'name from "{target.name}" to "{body.name}"')
        target.name = body.name
    if body.is_active is not None and body.is_active != target.is_active:
        if target.id == admin.id and not body.is_active:
            raise ValidationError("You cannot deactivate your own account")
        changes.append("activated" if body.is_active else "deactivated")
        target.is_active = body.is_active

    await _commit(db)
    if not target.is_active:
        await drop_user_channels(presence, request.app.state.connections, target.id)

    if changes:
        await coordinator.record_activity(db, admin, [
            AuditEntry(ActivityAction.UPDATE, EntityKind.USER, target.id, admin.id,
                       f'User "{target.name}" updated by {admin.name}: {", ".join(changes)}.'),
        ])
    return user_out(target)


@router.delete("/{user_id}")
async def deactivate_user(
    user_id: str,
    request: Request,
    admin: CurrentUser = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db_session),
    coordinator: MutationCoordinator = Depends(get_coordinator),
    presence: PresenceRegistry = Depends(get_presence),
):
    if user_id == admin.id:
        raise ValidationError("You cannot deactivate your own account")
    target = await _get_tenant_user(db, admin, user_id)
    target.is_active = False
    await _commit(db)
    await drop_user_channels(presence, request.app.state.connections, target.id)

    await coordinator.record_activity(db, admin, [
        AuditEntry(ActivityAction.UPDATE, EntityKind.USER, target.id, admin.id,
                   f'User "{target.name}" was deactivated by {admin.name}'),
    ])
    return {"status": "deactivated", "id": user_id}
