"""
Sign-in policy: which Google accounts may use the tracker and what a session
exposes about them.
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import Settings
from backend.models.user import User, UserRole
from backend.utils.logger import get_logger

logger = get_logger(__name__)


class AccessDeniedError(Exception):
    """Account is outside the approved organization domain"""


def is_allowed_email(email: Optional[str], domain: str) -> bool:
    if not email or not domain:
        return False
    return email.strip().lower().endswith("@" + domain.strip().lower().lstrip("@"))


async def sign_in(db: AsyncSession, profile: dict, settings: Settings) -> User:
    """Find or create the local user for a Google profile"""
    email = (profile.get("email") or "").strip().lower()
    if not is_allowed_email(email, settings.ALLOWED_EMAIL_DOMAIN):
        logger.warning(f"Rejected sign-in from {email or '<no email>'}")
        raise AccessDeniedError(
            f"Access denied. Only @{settings.ALLOWED_EMAIL_DOMAIN} accounts are allowed."
        )

    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is None:
        is_superadmin = bool(settings.SUPERADMIN_EMAIL) and email == settings.SUPERADMIN_EMAIL.strip().lower()
        user = User(
            email=email,
            name=profile.get("name"),
            image=profile.get("image"),
            role=UserRole.SUPERADMIN.value if is_superadmin else UserRole.USER.value,
            two_factor_enabled=False,
        )
        db.add(user)
        logger.info(f"Created user {email} (role={user.role})")
    else:
        user.name = profile.get("name") or user.name
        user.image = profile.get("image") or user.image

    await db.commit()
    await db.refresh(user)
    return user


def session_payload(user: User, two_factor_verified: bool = False) -> dict:
    return {
        "user_id": user.id,
        "email": user.email,
        "name": user.name,
        "image": user.image,
        "role": user.role,
        "two_factor_enabled": bool(user.two_factor_enabled),
        "two_factor_verified": bool(two_factor_verified) or not user.two_factor_enabled,
    }
