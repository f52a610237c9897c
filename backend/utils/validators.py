"""
Input validation utilities
"""
from typing import Optional

from backend.models.partner import PartnerType


def validate_partner_name(name: Optional[str]) -> str:
    """Partner names are required and stored trimmed"""
    if name is None or not name.strip():
        raise ValueError("Partner name is required")
    return name.strip()


def validate_commission(commission: Optional[int]) -> Optional[int]:
    """Commission is a whole percentage"""
    if commission is None:
        return None
    if commission < 0 or commission > 100:
        raise ValueError("Commission must be between 0 and 100")
    return commission


def commission_for(partner_type, commission: Optional[int]) -> Optional[int]:
    """Only affiliates carry a commission; everyone else is forced to None"""
    if partner_type is None:
        return None
    if PartnerType(partner_type) != PartnerType.AFFILIATE:
        return None
    return validate_commission(commission)


def validate_comment_content(content: Optional[str]) -> str:
    if content is None or not content.strip():
        raise ValueError("Comment content is required")
    return content.strip()


def validate_totp_code(code: Optional[str]) -> str:
    if not code or not isinstance(code, str):
        raise ValueError("Verification code is required")
    return code.strip()
