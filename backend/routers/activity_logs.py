# routers/activity_logs.py — Recent activity feed
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from audit import AuditLog
from auth import get_current_user, CurrentUser
from database import get_db_session
from dependencies import get_audit_log
from schemas import activity_out

router = APIRouter(prefix="/api/v1/activity-logs", tags=["Activity"])


@router.get("")
async def list_activity(
    limit: int = Query(25, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    audit_log: AuditLog = Depends(get_audit_log),
):
    """Most recent entries the user may see, newest first"""
    entries = await audit_log.query(db, user, limit)
    return {"logs": [activity_out(e) for e in entries], "total": len(entries)}
