# audit.py — Bounded, tenant-scoped activity log
"""
Recent-history audit trail, not a compliance log.

Each tenant keeps at most AUDIT_LOG_MAX_ENTRIES entries and at most
AUDIT_LOG_MAX_BYTES of serialized entries. Appends run insert-then-trim as
one critical section per tenant: an asyncio lock inside the process and, on
PostgreSQL, a transaction-scoped advisory lock across processes. The trim
deletes everything outside the newest-first window, oldest first.

Visibility is evaluated against current relationships at query time.
"""

import asyncio
import json
import logging
import os
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, delete, func, or_, and_, text
from sqlalchemy.ext.asyncio import AsyncSession

from models import (
    ActivityLog, ActivityAction, EntityKind, Task, UserRole,
    task_assignees, team_members, enum_value, utcnow,
)

logger = logging.getLogger("taskhub.audit")

MAX_ENTRIES = int(os.getenv("AUDIT_LOG_MAX_ENTRIES", "25"))
MAX_BYTES = int(os.getenv("AUDIT_LOG_MAX_BYTES", "16384"))
MAX_DETAILS_LENGTH = 1000


@dataclass
class AuditEntry:
    action: ActivityAction
    entity: EntityKind
    entity_id: str
    performed_by: str
    details: str = ""


def _truncate(details: Optional[str]) -> str:
    details = (details or "").strip()
    if len(details) > MAX_DETAILS_LENGTH:
        return details[:MAX_DETAILS_LENGTH - 3] + "..."
    return details


def entry_size(row: ActivityLog) -> int:
    """Serialized size in bytes, used against the byte budget."""
    return len(json.dumps({
        "action": enum_value(row.action),
        "entity": enum_value(row.entity),
        "entity_id": row.entity_id,
        "performed_by": row.performed_by,
        "tenant_id": row.tenant_id,
        "details": row.details,
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }).encode("utf-8"))


class AuditLog:
    def __init__(self, max_entries: int = MAX_ENTRIES, max_bytes: int = MAX_BYTES):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self.max_bytes = max_bytes
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, tenant_id: str) -> asyncio.Lock:
        lock = self._locks.get(tenant_id)
        if lock is None:
            lock = self._locks.setdefault(tenant_id, asyncio.Lock())
        return lock

    async def append(self, db: AsyncSession, tenant_id: str, entry: AuditEntry) -> ActivityLog:
        rows = await self.append_many(db, tenant_id, [entry])
        return rows[0]

    async def append_many(self, db: AsyncSession, tenant_id: str, entries: Iterable[AuditEntry]) -> List[ActivityLog]:
        """Timestamp, tag and store entries for one tenant, then trim to the bound.

        Commits once. On failure the session is rolled back and the error re-raised.
        """
        async with self._lock_for(tenant_id):
            try:
                await self._acquire_store_lock(db, tenant_id)
                rows = []
                for entry in entries:
                    row = ActivityLog(
                        tenant_id=tenant_id,
                        action=entry.action,
                        entity=entry.entity,
                        entity_id=entry.entity_id,
                        performed_by=entry.performed_by,
                        details=_truncate(entry.details),
                        created_at=utcnow(),
                    )
                    row.size_bytes = entry_size(row)
                    db.add(row)
                    rows.append(row)
                await db.flush()
                evicted = await self._trim(db, tenant_id)
                await db.commit()
            except Exception:
                await db.rollback()
                raise
        if evicted:
            logger.debug(f"Evicted {evicted} activity entries for tenant={tenant_id[:8]}")
        return rows

    async def _acquire_store_lock(self, db: AsyncSession, tenant_id: str) -> None:
        if db.get_bind().dialect.name == "postgresql":
            await db.execute(
                text("SELECT pg_advisory_xact_lock(hashtext(:tenant))"),
                {"tenant": tenant_id},
            )

    async def _trim(self, db: AsyncSession, tenant_id: str) -> int:
        result = await db.execute(
            select(ActivityLog.id, ActivityLog.size_bytes)
            .where(ActivityLog.tenant_id == tenant_id)
            .order_by(ActivityLog.id.desc())
        )
        rows = result.all()

        keep, total = 0, 0
        for _, size in rows:
            if keep >= self.max_entries or total + (size or 0) > self.max_bytes:
                break
            keep += 1
            total += size or 0
        # The newest entry always stays
        keep = max(keep, 1)

        stale = [row_id for row_id, _ in rows[keep:]]
        if stale:
            await db.execute(delete(ActivityLog).where(ActivityLog.id.in_(stale)))
        return len(stale)

    async def query(self, db: AsyncSession, actor, limit: int = MAX_ENTRIES) -> List[ActivityLog]:
        """Entries visible to `actor`, most recent first."""
        stmt = select(ActivityLog).where(ActivityLog.tenant_id == actor.tenant_id)

        if actor.role != UserRole.ADMIN.value:
            member_teams = select(team_members.c.team_id).where(team_members.c.user_id == actor.id)
            assigned_tasks = select(task_assignees.c.task_id).where(task_assignees.c.user_id == actor.id)
            reachable_tasks = select(Task.id).where(
                Task.tenant_id == actor.tenant_id,
                or_(Task.id.in_(assigned_tasks), Task.team_id.in_(member_teams)),
            )
            stmt = stmt.where(or_(
                ActivityLog.performed_by == actor.id,
                and_(ActivityLog.entity == EntityKind.TEAM, ActivityLog.entity_id.in_(member_teams)),
                and_(ActivityLog.entity == EntityKind.TASK, ActivityLog.entity_id.in_(reachable_tasks)),
                and_(ActivityLog.entity == EntityKind.USER, ActivityLog.entity_id == actor.id),
            ))

        stmt = stmt.order_by(ActivityLog.id.desc()).limit(max(limit, 0))
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def count(self, db: AsyncSession, tenant_id: str) -> int:
        result = await db.execute(
            select(func.count(ActivityLog.id)).where(ActivityLog.tenant_id == tenant_id)
        )
        return result.scalar() or 0
