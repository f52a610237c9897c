"""
Tasks API endpoints - local mirror of Jira issues
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload
from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel

from backend.config import get_settings
from backend.database import get_db
from backend.models.user import User
from backend.models.partner import Partner, Platform, PartnerStatus
from backend.models.task import Task, TaskType
from backend.api.auth import get_current_user
from backend.services.jira_client import issue_browse_url
from backend.services.task_sync import TaskSyncService, UNSET, get_task_sync_service
from backend.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


# --- Pydantic Schemas ---

class CreatorSummary(BaseModel):
    name: Optional[str]
    email: str
    image: Optional[str]

    class Config:
        from_attributes = True


class PartnerSummary(BaseModel):
    id: int
    name: str
    platform: Optional[Platform]
    partner_status: PartnerStatus

    class Config:
        from_attributes = True


class TaskResponse(BaseModel):
    id: int
    jira_key: str
    jira_id: Optional[str]
    summary: str
    description: Optional[str]
    status: str
    priority: str
    assignee: Optional[str]
    task_type: Optional[TaskType]
    partner_id: Optional[int]
    user_id: int
    last_synced_at: Optional[datetime]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    created_by: Optional[CreatorSummary] = None
    partner: Optional[PartnerSummary] = None
    jira_url: Optional[str] = None

    class Config:
        from_attributes = True


class TransitionResponse(BaseModel):
    id: str
    name: str
    to_status: str


class TaskDetailResponse(BaseModel):
    task: TaskResponse
    transitions: List[TransitionResponse] = []


class SyncResponse(BaseModel):
    message: str
    synced: int
    created: int
    updated: int
    tasks: List[TaskResponse] = []


class TaskCreate(BaseModel):
    summary: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None
    task_type: Optional[TaskType] = None
    partner_id: Optional[int] = None


class TaskUpdate(BaseModel):
    transition_id: Optional[str] = None
    partner_id: Optional[int] = None
    task_type: Optional[TaskType] = None


# --- Helpers ---

def _task_query():
    return select(Task).options(selectinload(Task.created_by), selectinload(Task.partner))


async def _load_task(db: AsyncSession, task_id: int) -> Optional[Task]:
    result = await db.execute(
        _task_query().where(Task.id == task_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _get_task_or_404(db: AsyncSession, task_id: int) -> Task:
    task = await _load_task(db, task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


async def _list_tasks(db: AsyncSession) -> List[Task]:
    result = await db.execute(
        _task_query().order_by(Task.created_at.desc(), Task.id.desc()).execution_options(populate_existing=True)
    )
    return result.scalars().all()


def _build_task_response(task: Task) -> TaskResponse:
    response = TaskResponse.model_validate(task)
    response.jira_url = issue_browse_url(get_settings().JIRA_BASE_URL, task.jira_key)
    return response


async def _ensure_partner(db: AsyncSession, partner_id: Optional[int]):
    if partner_id is not None and await db.get(Partner, partner_id) is None:
        raise HTTPException(status_code=404, detail="Partner not found")


# --- Endpoints ---

@router.get("/", response_model=List[TaskResponse])
async def list_tasks(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List all tasks, newest first"""
    return [_build_task_response(t) for t in await _list_tasks(db)]


@router.post("/", response_model=TaskResponse, status_code=201)
async def create_task(
    data: TaskCreate,
    db: AsyncSession = Depends(get_db),
    service: TaskSyncService = Depends(get_task_sync_service),
    current_user: User = Depends(get_current_user)
):
    """Create the Jira issue first, then the local task"""
    summary = (data.summary or "").strip()
    if not summary:
        raise HTTPException(status_code=400, detail="Summary is required")
    await _ensure_partner(db, data.partner_id)

    task = await service.create_task(
        current_user,
        summary=summary,
        description=(data.description or "").strip() or None,
        priority=data.priority or "Medium",
        task_type=data.task_type.value if data.task_type else None,
        partner_id=data.partner_id,
    )
    return _build_task_response(await _load_task(db, task.id))


@router.post("/sync", response_model=SyncResponse)
async def sync_tasks(
    db: AsyncSession = Depends(get_db),
    service: TaskSyncService = Depends(get_task_sync_service),
    current_user: User = Depends(get_current_user)
):
    """Pull every tracked Jira issue into the local database"""
    result = await service.sync_all(current_user)
    tasks = await _list_tasks(db)
    return SyncResponse(
        message=result.message,
        synced=result.synced,
        created=result.created,
        updated=result.updated,
        tasks=[_build_task_response(t) for t in tasks],
    )


@router.get("/{task_id}", response_model=TaskDetailResponse)
async def get_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    service: TaskSyncService = Depends(get_task_sync_service),
    current_user: User = Depends(get_current_user)
):
    """Task details plus the transitions that would complete it"""
    task = await _get_task_or_404(db, task_id)
    transitions = await service.get_done_transitions(task)
    return TaskDetailResponse(
        task=_build_task_response(task),
        transitions=[TransitionResponse(**t) for t in transitions],
    )


@router.patch("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: int,
    data: TaskUpdate,
    db: AsyncSession = Depends(get_db),
    service: TaskSyncService = Depends(get_task_sync_service),
    current_user: User = Depends(get_current_user)
):
    """Transition a task and/or change its partner and task type"""
    provided = data.model_fields_set
    wants_transition = bool(data.transition_id)
    wants_metadata = "partner_id" in provided or "task_type" in provided
    if not wants_transition and not wants_metadata:
        raise HTTPException(status_code=400, detail="Transition ID or partner/task type is required")

    task = await _get_task_or_404(db, task_id)

    if wants_transition:
        task = await service.transition_task(task, data.transition_id)
        logger.info(f"{current_user.email} transitioned {task.jira_key} to {task.status}")

    if wants_metadata:
        partner_id = data.partner_id if "partner_id" in provided else UNSET
        if partner_id is not UNSET:
            await _ensure_partner(db, partner_id)
        task_type = UNSET
        if "task_type" in provided:
            task_type = data.task_type.value if data.task_type else None
        task = await service.update_task_metadata(task, partner_id=partner_id, task_type=task_type)

    return _build_task_response(await _load_task(db, task.id))
