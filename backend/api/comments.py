"""
Task comments API endpoints - comments live in Jira and are mirrored locally
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel

from backend.database import get_db
from backend.models.user import User
from backend.models.task import Task
from backend.models.comment import Comment
from backend.api.auth import get_current_user
from backend.services.task_sync import TaskSyncService, get_task_sync_service
from backend.utils.validators import validate_comment_content

router = APIRouter()


class CommentResponse(BaseModel):
    id: int
    jira_comment_id: str
    task_id: int
    author_name: str
    author_email: Optional[str]
    author_avatar: Optional[str]
    body: str
    jira_created_at: Optional[datetime]
    jira_updated_at: Optional[datetime]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class CommentRequest(BaseModel):
    content: Optional[str] = None


def _content(data: CommentRequest) -> str:
    try:
        return validate_comment_content(data.content)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


async def _get_task_or_404(db: AsyncSession, task_id: int) -> Task:
    task = await db.get(Task, task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


async def _get_comment_or_404(db: AsyncSession, task: Task, comment_id: int) -> Comment:
    comment = await db.get(Comment, comment_id)
    if not comment or comment.task_id != task.id:
        raise HTTPException(status_code=404, detail="Comment not found")
    return comment


@router.get("/{task_id}/comments", response_model=List[CommentResponse])
async def list_comments(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    service: TaskSyncService = Depends(get_task_sync_service),
    current_user: User = Depends(get_current_user)
):
    """Refresh the task's comments from Jira and return them oldest first"""
    task = await _get_task_or_404(db, task_id)
    return await service.refresh_comments(task)


@router.post("/{task_id}/comments", response_model=CommentResponse, status_code=201)
async def add_comment(
    task_id: int,
    data: CommentRequest,
    db: AsyncSession = Depends(get_db),
    service: TaskSyncService = Depends(get_task_sync_service),
    current_user: User = Depends(get_current_user)
):
    content = _content(data)
    task = await _get_task_or_404(db, task_id)
    return await service.add_comment(task, content)


@router.put("/{task_id}/comments/{comment_id}", response_model=CommentResponse)
async def update_comment(
    task_id: int,
    comment_id: int,
    data: CommentRequest,
    db: AsyncSession = Depends(get_db),
    service: TaskSyncService = Depends(get_task_sync_service),
    current_user: User = Depends(get_current_user)
):
    content = _content(data)
    task = await _get_task_or_404(db, task_id)
    comment = await _get_comment_or_404(db, task, comment_id)
    return await service.update_comment(task, comment, content)


@router.delete("/{task_id}/comments/{comment_id}")
async def delete_comment(
    task_id: int,
    comment_id: int,
    db: AsyncSession = Depends(get_db),
    service: TaskSyncService = Depends(get_task_sync_service),
    current_user: User = Depends(get_current_user)
):
    task = await _get_task_or_404(db, task_id)
    comment = await _get_comment_or_404(db, task, comment_id)
    await service.delete_comment(task, comment)
    return {"success": True}
