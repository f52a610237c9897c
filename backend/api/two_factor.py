"""
Two-factor authentication endpoints
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from pydantic import BaseModel

from backend.database import get_db
from backend.models.user import User
from backend.api.auth import create_user_token, get_session_user
from backend.services.two_factor import generate_two_factor_secret, verify_two_factor_code
from backend.utils.validators import validate_totp_code
from backend.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


class CodeRequest(BaseModel):
    code: Optional[str] = None


def _require_verified(user: User) -> None:
    # A pending-2FA token must not be able to replace or remove the second factor
    if user.two_factor_enabled and not user.two_factor_verified:
        raise HTTPException(status_code=401, detail="Two-factor verification required")


def _require_code(data: CodeRequest) -> str:
    try:
        return validate_totp_code(data.code)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/setup")
async def start_setup(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_session_user)
):
    """Store a fresh, unconfirmed secret and return the QR code to scan"""
    _require_verified(current_user)
    setup = generate_two_factor_secret(current_user.email)
    current_user.two_factor_secret = setup.secret
    await db.commit()
    logger.info(f"2FA setup started for {current_user.email}")
    return {
        "qr_code_url": setup.qr_code_url,
        "otpauth_url": setup.otpauth_url,
        "message": "Scan this QR code with Google Authenticator",
    }


@router.post("/setup")
async def confirm_setup(
    data: CodeRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_session_user)
):
    """Enable 2FA once a code from the pending secret verifies"""
    _require_verified(current_user)
    code = _require_code(data)
    if not current_user.two_factor_secret:
        raise HTTPException(status_code=400, detail="2FA setup not initiated. Please generate QR code first.")
    if not verify_two_factor_code(current_user.two_factor_secret, code):
        raise HTTPException(status_code=400, detail="Invalid verification code")

    current_user.two_factor_enabled = True
    await db.commit()
    logger.info(f"2FA enabled for {current_user.email}")
    return {
        "success": True,
        "two_factor_enabled": True,
        "access_token": create_user_token(current_user, two_factor_verified=True),
    }


@router.delete("/setup")
async def disable(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_session_user)
):
    """Turn 2FA off and forget the secret"""
    _require_verified(current_user)
    current_user.two_factor_secret = None
    current_user.two_factor_enabled = False
    await db.commit()
    logger.info(f"2FA disabled for {current_user.email}")
    return {"success": True, "two_factor_enabled": False}


@router.post("/verify")
async def verify(
    data: CodeRequest,
    current_user: User = Depends(get_session_user)
):
    """Check a login-time code and upgrade the session token"""
    code = _require_code(data)
    if not current_user.two_factor_enabled or not current_user.two_factor_secret:
        raise HTTPException(status_code=400, detail="2FA is not enabled for this account")
    if not verify_two_factor_code(current_user.two_factor_secret, code):
        logger.warning(f"Failed 2FA verification for {current_user.email}")
        raise HTTPException(status_code=400, detail="Invalid verification code")

    return {
        "success": True,
        "verified": True,
        "access_token": create_user_token(current_user, two_factor_verified=True),
    }
