"""
Partners API endpoints
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from typing import Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel

from backend.database import get_db
from backend.models.user import User
from backend.models.partner import (
    Partner, Platform, PartnerType, ConfigType, PartnerStatus,
    PLATFORM_LABELS, PARTNER_TYPE_LABELS, CONFIG_TYPE_LABELS, PARTNER_STATUS_LABELS,
)
from backend.models.task import Task
from backend.api.auth import get_current_user
from backend.utils.helpers import clean_text, generate_upload_key, sort_by_status
from backend.utils.validators import commission_for, validate_commission, validate_partner_name
from backend.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()

SORTABLE_FIELDS = ("name", "date_added", "partner_status")
RECENT_TASK_LIMIT = 5


# --- Pydantic Schemas ---

class RecentTask(BaseModel):
    id: int
    jira_key: str
    summary: str
    status: str
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class PartnerResponse(BaseModel):
    id: int
    name: str
    upload_key: str
    date_added: Optional[datetime]
    platform: Optional[Platform]
    partner_type: Optional[PartnerType]
    config: Optional[ConfigType]
    partner_status: PartnerStatus
    has_landing_page: bool
    support_channel: Optional[str]
    contact_name: Optional[str]
    contact_email: Optional[str]
    commission: Optional[int]
    notes: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    task_count: int = 0
    platform_label: Optional[str] = None
    partner_type_label: Optional[str] = None
    config_label: Optional[str] = None
    partner_status_label: Optional[str] = None

    class Config:
        from_attributes = True


class PartnerDetailResponse(PartnerResponse):
    tasks: List[RecentTask] = []


class PartnerCreate(BaseModel):
    name: Optional[str] = None
    platform: Optional[Platform] = None
    partner_type: Optional[PartnerType] = None
    config: Optional[ConfigType] = None
    partner_status: Optional[PartnerStatus] = None
    has_landing_page: bool = False
    support_channel: Optional[str] = None
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    commission: Optional[int] = None
    notes: Optional[str] = None


class PartnerUpdate(BaseModel):
    name: Optional[str] = None
    platform: Optional[Platform] = None
    partner_type: Optional[PartnerType] = None
    config: Optional[ConfigType] = None
    partner_status: Optional[PartnerStatus] = None
    has_landing_page: Optional[bool] = None
    support_channel: Optional[str] = None
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    commission: Optional[int] = None
    notes: Optional[str] = None


# --- Helpers ---

async def _task_counts(db: AsyncSession) -> Dict[int, int]:
    result = await db.execute(
        select(Task.partner_id, func.count(Task.id))
        .where(Task.partner_id.isnot(None))
        .group_by(Task.partner_id)
    )
    return {partner_id: count for partner_id, count in result.all()}


async def _task_count(db: AsyncSession, partner_id: int) -> int:
    result = await db.execute(select(func.count(Task.id)).where(Task.partner_id == partner_id))
    return result.scalar_one()


async def _get_partner_or_404(db: AsyncSession, partner_id: int) -> Partner:
    partner = await db.get(Partner, partner_id)
    if not partner:
        raise HTTPException(status_code=404, detail="Partner not found")
    return partner


async def _ensure_unique_name(db: AsyncSession, name: str):
    result = await db.execute(select(Partner.id).where(Partner.name == name))
    if result.scalar_one_or_none() is not None:
        raise HTTPException(status_code=400, detail="A partner with this name already exists")


def _label(labels: dict, enum_cls, value) -> Optional[str]:
    return labels.get(enum_cls(value)) if value else None


def _build_partner_response(partner: Partner, task_count: int) -> PartnerResponse:
    response = PartnerResponse.model_validate(partner)
    response.task_count = task_count
    response.platform_label = _label(PLATFORM_LABELS, Platform, partner.platform)
    response.partner_type_label = _label(PARTNER_TYPE_LABELS, PartnerType, partner.partner_type)
    response.config_label = _label(CONFIG_TYPE_LABELS, ConfigType, partner.config)
    response.partner_status_label = _label(PARTNER_STATUS_LABELS, PartnerStatus, partner.partner_status)
    return response


def _checked(fn, value):
    try:
        return fn(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# --- Endpoints ---

@router.get("/", response_model=List[PartnerResponse])
async def list_partners(
    search: Optional[str] = None,
    platform: Optional[Platform] = None,
    partner_type: Optional[PartnerType] = None,
    status: Optional[PartnerStatus] = None,
    sort_by: str = "name",
    sort_order: str = "asc",
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List partners with filters, sorting and per-partner task counts"""
    query = select(Partner)
    if search:
        query = query.where(func.lower(Partner.name).contains(search.strip().lower()))
    if platform:
        query = query.where(Partner.platform == platform)
    if partner_type:
        query = query.where(Partner.partner_type == partner_type)
    if status:
        query = query.where(Partner.partner_status == status)

    if sort_by not in SORTABLE_FIELDS:
        sort_by = "name"
    descending = sort_order == "desc"
    if sort_by != "partner_status":
        column = getattr(Partner, sort_by)
        query = query.order_by(column.desc() if descending else column.asc())
    else:
        query = query.order_by(Partner.name)

    result = await db.execute(query)
    partners = result.scalars().all()
    if sort_by == "partner_status":
        # Display order (LIVE first), not alphabetical
        partners = sort_by_status(partners)
        if descending:
            partners.reverse()

    counts = await _task_counts(db)
    return [_build_partner_response(p, counts.get(p.id, 0)) for p in partners]


@router.post("/", response_model=PartnerResponse, status_code=201)
async def create_partner(
    data: PartnerCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Create a partner with a freshly generated upload key"""
    name = _checked(validate_partner_name, data.name)
    await _ensure_unique_name(db, name)

    partner = Partner(
        name=name,
        upload_key=generate_upload_key(),
        platform=data.platform,
        partner_type=data.partner_type,
        config=data.config,
        partner_status=data.partner_status or PartnerStatus.PRE_SALES,
        has_landing_page=bool(data.has_landing_page),
        support_channel=clean_text(data.support_channel),
        contact_name=clean_text(data.contact_name),
        contact_email=clean_text(data.contact_email),
        commission=_checked(lambda c: commission_for(data.partner_type, c), data.commission),
        notes=clean_text(data.notes),
    )
    db.add(partner)
    await db.commit()
    await db.refresh(partner)
    logger.info(f"{current_user.email} created partner {partner.name}")
    return _build_partner_response(partner, 0)


@router.get("/{partner_id}", response_model=PartnerDetailResponse)
async def get_partner(
    partner_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Get a partner with its most recent tasks"""
    partner = await _get_partner_or_404(db, partner_id)
    recent = await db.execute(
        select(Task)
        .where(Task.partner_id == partner_id)
        .order_by(Task.created_at.desc(), Task.id.desc())
        .limit(RECENT_TASK_LIMIT)
    )
    return PartnerDetailResponse(
        **_build_partner_response(partner, await _task_count(db, partner_id)).model_dump(),
        tasks=[RecentTask.model_validate(t) for t in recent.scalars().all()],
    )


@router.patch("/{partner_id}", response_model=PartnerResponse)
async def update_partner(
    partner_id: int,
    data: PartnerUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Partially update a partner; the upload key never changes"""
    partner = await _get_partner_or_404(db, partner_id)
    provided = data.model_fields_set

    if "name" in provided:
        name = _checked(validate_partner_name, data.name)
        if name != partner.name:
            await _ensure_unique_name(db, name)
        partner.name = name

    for field in ("platform", "partner_type", "config"):
        if field in provided:
            setattr(partner, field, getattr(data, field))
    if "partner_status" in provided and data.partner_status is not None:
        partner.partner_status = data.partner_status
    if "has_landing_page" in provided and data.has_landing_page is not None:
        partner.has_landing_page = data.has_landing_page
    for field in ("support_channel", "contact_name", "contact_email", "notes"):
        if field in provided:
            setattr(partner, field, clean_text(getattr(data, field)))

    # Commission only survives on affiliates
    if partner.partner_type == PartnerType.AFFILIATE:
        if "commission" in provided:
            partner.commission = _checked(validate_commission, data.commission)
    else:
        partner.commission = None

    await db.commit()
    await db.refresh(partner)
    return _build_partner_response(partner, await _task_count(db, partner_id))


@router.delete("/{partner_id}")
async def delete_partner(
    partner_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Delete a partner that has no tasks"""
    partner = await _get_partner_or_404(db, partner_id)
    task_count = await _task_count(db, partner_id)
    if task_count > 0:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot delete partner with {task_count} associated task(s). Reassign tasks first.",
        )

    await db.delete(partner)
    await db.commit()
    logger.info(f"{current_user.email} deleted partner {partner.name}")
    return {"success": True}
