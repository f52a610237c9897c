"""
Bulk partner import from the legacy spreadsheet export.

Upload keys are always taken from the CSV and never generated: partners
already upload with those keys. Rows without a name or key are skipped, as
are rows whose name or key already exists.
"""
import csv
import io
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.models.partner import Partner, PartnerType
from backend.utils.helpers import clean_text
from backend.utils.logger import get_logger

logger = get_logger(__name__)

PLATFORM_MAP = {
    "whmcs": "WHMCS",
    "broker panel": "BROKER_PANEL",
    "partner portal": "PARTNER_PORTAL",
}

PARTNER_TYPE_MAP = {
    "broker": "BROKER",
    "affiliate": "AFFILIATE",
    "ea": "EA",
    "other": "OTHER",
}

CONFIG_MAP = {
    "locked-down": "LOCKED_DOWN",
    "standard": "STANDARD",
    "custom": "CUSTOM",
}

# Includes the spreadsheet's older pipeline statuses
STATUS_MAP = {
    "live": "LIVE",
    "in-progress": "IN_PROGRESS",
    "pre-sales": "PRE_SALES",
    "inactive": "INACTIVE",
    "pending requirements": "IN_PROGRESS",
    "pending partner reply": "IN_PROGRESS",
    "pending contract": "PRE_SALES",
    "build in progress": "IN_PROGRESS",
}


@dataclass
class ImportStats:
    total: int = 0
    created: int = 0
    skipped: int = 0
    no_name: int = 0
    no_key: int = 0
    errors: int = 0

    def summary(self) -> str:
        return "\n".join([
            "=" * 40,
            "Import Summary:",
            "=" * 40,
            f"Total rows in CSV:     {self.total}",
            f"Rows without name:     {self.no_name}",
            f"Rows without key:      {self.no_key}",
            f"Created:               {self.created}",
            f"Skipped (duplicate):   {self.skipped}",
            f"Errors:                {self.errors}",
            "=" * 40,
        ])


def map_value(value: Optional[str], mapping: Dict[str, str]) -> Optional[str]:
    if not value or not value.strip():
        return None
    return mapping.get(value.strip().lower())


def parse_bool(value: Optional[str]) -> bool:
    if not value:
        return False
    return value.strip().lower() in ("yes", "true", "1")


def parse_commission(value: Optional[str]) -> Optional[int]:
    """'15%' -> 15, clamped to 0..100; unparseable -> None"""
    if not value or not value.strip():
        return None
    cleaned = value.replace("%", "").strip()
    try:
        number = int(float(cleaned))
    except ValueError:
        return None
    return min(100, max(0, number))


def parse_date(value: Optional[str]) -> datetime:
    if not value or not value.strip():
        return datetime.utcnow()
    text = value.strip()
    for fmt in ("%Y-%m-%d", "%Y-%m-%d %H:%M:%S", "%m/%d/%Y", "%d/%m/%Y"):
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return datetime.utcnow()


def read_csv(content: str) -> list:
    """Parse CSV text into dict rows with trimmed header names, skipping blank lines"""
    reader = csv.DictReader(io.StringIO(content))
    rows = []
    for raw in reader:
        row = {(k or "").strip(): (v.strip() if isinstance(v, str) else v) for k, v in raw.items()}
        if any(row.values()):
            rows.append(row)
    return rows


def partner_from_row(row: dict) -> Partner:
    partner_type = map_value(row.get("Partner Type"), PARTNER_TYPE_MAP)
    commission = parse_commission(row.get("Commission")) if partner_type == PartnerType.AFFILIATE.value else None
    return Partner(
        name=row["Partner Name"].strip(),
        upload_key=row["Upload Key"].strip(),
        date_added=parse_date(row.get("Date Added")),
        platform=map_value(row.get("Platform"), PLATFORM_MAP),
        partner_type=partner_type,
        config=map_value(row.get("Config"), CONFIG_MAP),
        partner_status=map_value(row.get("Partner Status"), STATUS_MAP) or "PRE_SALES",
        has_landing_page=parse_bool(row.get("Landing Page")),
        support_channel=clean_text(row.get("Support Channel")),
        contact_name=clean_text(row.get("Contact Name")),
        contact_email=clean_text(row.get("Contact Email")),
        commission=commission,
        notes=clean_text(row.get("Notes")),
    )


async def import_partners(db: AsyncSession, rows: Iterable[dict]) -> ImportStats:
    stats = ImportStats()
    for row in rows:
        stats.total += 1
        name = (row.get("Partner Name") or "").strip()
        upload_key = (row.get("Upload Key") or "").strip()

        if not name:
            stats.no_name += 1
            continue
        if not upload_key:
            logger.warning(f"Skipping \"{name}\" - no upload key in CSV")
            stats.no_key += 1
            continue

        try:
            by_name = await db.execute(select(Partner).where(Partner.name == name))
            if by_name.scalar_one_or_none():
                logger.info(f"Skipping \"{name}\" - already exists")
                stats.skipped += 1
                continue

            by_key = await db.execute(select(Partner).where(Partner.upload_key == upload_key))
            holder = by_key.scalar_one_or_none()
            if holder:
                logger.warning(f"Skipping \"{name}\" - upload key already in use by \"{holder.name}\"")
                stats.skipped += 1
                continue

            db.add(partner_from_row(row))
            await db.commit()
            logger.info(f"Created: {name} ({upload_key[:8]}...)")
            stats.created += 1
        except (SQLAlchemyError, ValueError, KeyError) as e:
            await db.rollback()
            logger.error(f"Error importing \"{name}\": {e}")
            stats.errors += 1

    return stats
