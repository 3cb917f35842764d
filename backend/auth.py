# auth.py — Identity provider for TaskHub
# Features:
# - HS256 JWT access tokens with JTI
# - 3-tier roles (admin, manager, user), tenant = root admin
# - bcrypt password hashing with a minimal password policy
# - Registration creates a new tenant admin

import os
import uuid
import secrets
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, List

import bcrypt
from jose import jwt, JWTError, ExpiredSignatureError
from fastapi import HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr, Field, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db_session
from errors import ConflictError
from models import User, UserRole, team_members, enum_value, new_uuid

logger = logging.getLogger("taskhub.auth")

# ============================================================
# CONFIGURATION
# ============================================================

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
if not SECRET_KEY or SECRET_KEY == "change-this-to-a-secure-random-key-in-production":
    SECRET_KEY = secrets.token_urlsafe(64)
    logger.warning(
        "⚠️  JWT_SECRET_KEY not set or insecure. Generated ephemeral key. "
        "Set JWT_SECRET_KEY in production!"
    )

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))
MIN_PASSWORD_LENGTH = 8

security = HTTPBearer()


# ============================================================
# PYDANTIC SCHEMAS
# ============================================================

def validate_password_strength(v: str) -> str:
    if len(v) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if not any(c.isdigit() for c in v):
        raise ValueError("Password must contain at least one digit")
    return v


class UserRegister(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return validate_password_strength(v)


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: Dict[str, Any]


class CurrentUser(BaseModel):
    """Authenticated actor handed to every mutation and query"""
    id: str
    name: str
    email: str
    role: str
    tenant_id: str
    team_ids: List[str] = []


# ============================================================
# AUTH SERVICE
# ============================================================

class AuthService:

    @staticmethod
    def hash_password(password: str) -> str:
        salt = bcrypt.gensalt(rounds=12)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    @staticmethod
    def verify_password(password: str, password_hash: str) -> bool:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))

    @staticmethod
    def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
        to_encode = data.copy()
        now = datetime.now(timezone.utc)
        to_encode.update({
            "exp": now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)),
            "iat": now,
            "type": "access",
            "jti": str(uuid.uuid4()),
        })
        return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

    @staticmethod
    def token_for(user: User) -> str:
        return AuthService.create_access_token({
            "sub": user.id,
            "email": user.email,
            "tenant_id": user.tenant_id,
            "role": enum_value(user.role),
        })

    @staticmethod
    def verify_token(token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        except ExpiredSignatureError:
            raise HTTPException(status_code=401, detail="Token expired")
        except JWTError:
            raise HTTPException(status_code=401, detail="Invalid token")

    @staticmethod
    async def ensure_email_free(email: str, db: AsyncSession, exclude_id: Optional[str] = None) -> None:
        stmt = select(User.id).where(User.email == email)
        if exclude_id:
            stmt = stmt.where(User.id != exclude_id)
        if (await db.execute(stmt)).scalar_one_or_none():
            raise ConflictError()

    @staticmethod
    async def register_admin(user_data: UserRegister, db: AsyncSession) -> User:
        """Create a new tenant whose root is the registering admin"""
        await AuthService.ensure_email_free(user_data.email, db)

        user_id = new_uuid()
        new_user = User(
            id=user_id,
            name=user_data.name,
            email=user_data.email,
            password_hash=AuthService.hash_password(user_data.password),
            role=UserRole.ADMIN,
            tenant_id=user_id,
            is_active=True,
        )
        db.add(new_user)
        await db.commit()
        logger.info(f"Tenant registered: admin={user_id[:8]}")
        return new_user

    @staticmethod
    async def authenticate_user(email: str, password: str, db: AsyncSession) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()
        if not user or not AuthService.verify_password(password, user.password_hash):
            return None
        if not user.is_active:
            return None
        return user


def decode_ws_token(token: str) -> Optional[dict]:
    """Verify a JWT for WebSocket authentication; None when invalid"""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != "access" or not payload.get("sub"):
        return None
    return payload


# ============================================================
# FASTAPI DEPENDENCIES
# ============================================================

async def load_actor(user: User, db: AsyncSession) -> CurrentUser:
    result = await db.execute(
        select(team_members.c.team_id).where(team_members.c.user_id == user.id)
    )
    return CurrentUser(
        id=user.id,
        name=user.name or "",
        email=user.email,
        role=enum_value(user.role),
        tenant_id=user.tenant_id,
        team_ids=sorted(result.scalars().all()),
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db_session),
) -> CurrentUser:
    payload = AuthService.verify_token(credentials.credentials)

    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")

    return await load_actor(user, db)


def require_role(*roles: UserRole):
    """Dependency factory: require user to have one of the specified roles"""
    async def _check(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if UserRole(user.role) not in roles:
            raise HTTPException(status_code=403, detail="Not authorized for this action")
        return user
    return _check
