# routers/comments.py — Task comments
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, CurrentUser
from coordinator import MutationCoordinator
from database import get_db_session
from dependencies import get_coordinator
from models import Comment
from routers.tasks import ensure_can_view
from schemas import CommentOut, comment_out

router = APIRouter(prefix="/api/v1/comments", tags=["Comments"])


class CommentCreate(BaseModel):
    text: Optional[str] = None
    reply_to: Optional[str] = None


@router.get("/task/{task_id}")
async def list_comments(
    task_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    coordinator: MutationCoordinator = Depends(get_coordinator),
):
    task = await coordinator.get_task(db, user, task_id)
    ensure_can_view(user, task)

    result = await db.execute(
        select(Comment)
        .where(Comment.task_id == task.id, Comment.is_deleted == False)  # noqa: E712
        .order_by(Comment.created_at.asc())
    )
    comments = result.scalars().all()
    return {"comments": [comment_out(c) for c in comments], "total": len(comments)}


@router.post("/task/{task_id}", response_model=CommentOut, status_code=201)
async def add_comment(
    task_id: str,
    body: CommentCreate,
    background_tasks: BackgroundTasks,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    coordinator: MutationCoordinator = Depends(get_coordinator),
):
    comment = await coordinator.add_comment(db, user, task_id, body.text, body.reply_to, background_tasks)
    return comment_out(comment)


@router.delete("/{comment_id}")
async def delete_comment(
    comment_id: str,
    background_tasks: BackgroundTasks,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    coordinator: MutationCoordinator = Depends(get_coordinator),
):
    await coordinator.delete_comment(db, user, comment_id, background_tasks)
    return {"status": "deleted", "id": comment_id}
