# models.py — Database models for TaskHub
# - UUID string primary keys (activity log uses an autoincrement id for ordering)
# - Every row carries tenant_id (the root admin's user id)
# - Teams keep members and managers in separate association tables
# - Tasks are assigned to a set of users OR to a team, never both

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import (
    Column, String, DateTime, Boolean, Integer,
    Enum as SQLEnum, ForeignKey, Text, Index, Table,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


# ============================================================
# ENUMS
# ============================================================

class UserRole(str, PyEnum):
    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"


class TaskStatus(str, PyEnum):
    TODO = "To Do"
    IN_PROGRESS = "In Progress"
    DONE = "Done"


class TaskPriority(str, PyEnum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class ActivityAction(str, PyEnum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    ASSIGN = "assign"
    STATUS = "status"


class EntityKind(str, PyEnum):
    TASK = "task"
    TEAM = "team"
    USER = "user"


def enum_value(v):
    return v.value if isinstance(v, PyEnum) else v


# ============================================================
# ASSOCIATION TABLES
# ============================================================

team_members = Table(
    "team_members",
    Base.metadata,
    Column("team_id", String, ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", String, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True),
)

team_managers = Table(
    "team_managers",
    Base.metadata,
    Column("team_id", String, ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", String, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True),
)

task_assignees = Table(
    "task_assignees",
    Base.metadata,
    Column("task_id", String, ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", String, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True),
)


# ============================================================
# USERS
# ============================================================

class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=new_uuid)
    name = Column(String, nullable=False, default="")
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    role = Column(SQLEnum(UserRole), default=UserRole.USER, nullable=False, index=True)
    tenant_id = Column(String, nullable=False, index=True)
    profile_picture = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_user_tenant_role", "tenant_id", "role"),
    )


# ============================================================
# TEAMS
# ============================================================

class Team(Base):
    __tablename__ = "teams"

    id = Column(String, primary_key=True, default=new_uuid)
    tenant_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    created_by = Column(String, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    members = relationship("User", secondary=team_members, lazy="selectin", order_by="User.name")
    managers = relationship("User", secondary=team_managers, lazy="selectin", order_by="User.name")
    creator = relationship("User", foreign_keys=[created_by], lazy="selectin")

    @property
    def member_ids(self) -> set:
        return {u.id for u in self.members}

    @property
    def manager_ids(self) -> set:
        return {u.id for u in self.managers}


# ============================================================
# TASKS
# ============================================================

class Task(Base):
    __tablename__ = "tasks"

    id = Column(String, primary_key=True, default=new_uuid)
    tenant_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(SQLEnum(TaskStatus), default=TaskStatus.TODO, nullable=False, index=True)
    priority = Column(SQLEnum(TaskPriority), default=TaskPriority.MEDIUM, nullable=False, index=True)
    due_date = Column(DateTime(timezone=True), nullable=True)
    team_id = Column(String, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True, index=True)
    created_by = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    assignees = relationship("User", secondary=task_assignees, lazy="selectin", order_by="User.name")
    team = relationship("Team", lazy="selectin")
    creator = relationship("User", foreign_keys=[created_by], lazy="selectin")

    @property
    def assignee_ids(self) -> set:
        return {u.id for u in self.assignees}

    __table_args__ = (
        Index("idx_task_tenant_created", "tenant_id", "created_at"),
    )


class Comment(Base):
    """Comment on a task"""
    __tablename__ = "comments"

    id = Column(String, primary_key=True, default=new_uuid)
    tenant_id = Column(String, nullable=False, index=True)
    task_id = Column(String, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    text = Column(Text, nullable=False)
    reply_to_id = Column(String, ForeignKey("comments.id", ondelete="SET NULL"), nullable=True)
    is_pinned = Column(Boolean, default=False)
    is_deleted = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    author = relationship("User", lazy="selectin")


# ============================================================
# ACTIVITY LOG (bounded per tenant, see audit.py)
# ============================================================

class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String, nullable=False, index=True)
    action = Column(SQLEnum(ActivityAction), nullable=False)
    entity = Column(SQLEnum(EntityKind), nullable=False)
    entity_id = Column(String, nullable=False, index=True)
    performed_by = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    details = Column(Text, nullable=True)
    size_bytes = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    performer = relationship("User", lazy="selectin")

    __table_args__ = (
        Index("idx_activity_tenant_id", "tenant_id", "id"),
    )
