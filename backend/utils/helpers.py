"""
General helper utilities
"""
import secrets
import string
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from backend.models.partner import PartnerStatus, STATUS_ORDER

UPLOAD_KEY_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits
UPLOAD_KEY_LENGTH = 32


def generate_upload_key() -> str:
    """Generate a 32-character alphanumeric upload key from a CSPRNG"""
    return "".join(secrets.choice(UPLOAD_KEY_ALPHABET) for _ in range(UPLOAD_KEY_LENGTH))


def clean_text(value: Optional[str]) -> Optional[str]:
    """Trim a free-text field; blank becomes None"""
    if value is None:
        return None
    value = value.strip()
    return value or None


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse Jira timestamps such as 2024-01-15T10:30:00.000+0000 into naive UTC"""
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # Jira omits the colon in the UTC offset
    if len(text) > 5 and text[-5] in "+-" and text[-3] != ":":
        text = f"{text[:-2]}:{text[-2:]}"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def status_rank(status) -> int:
    """Position of a partner status in display order; unknown statuses sort last"""
    try:
        return STATUS_ORDER.index(PartnerStatus(status))
    except ValueError:
        return len(STATUS_ORDER)


def sort_by_status(partners: Iterable) -> List:
    """Sort partners LIVE first, then In-Progress, Pre-sales, Inactive"""
    return sorted(partners, key=lambda p: status_rank(p.partner_status))
