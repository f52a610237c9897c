"""
Authentication API endpoints and session dependencies.

Sign-in goes through Google; the API then issues its own bearer token. The
``tfa`` claim records whether the second factor was verified for this token,
so users with 2FA enabled can only reach the 2FA endpoints until they verify.
"""
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import get_settings
from backend.database import get_db
from backend.models.user import User
from backend.services.google_oauth import GoogleOAuthClient, OAuthError, get_google_oauth_client
from backend.services.identity import AccessDeniedError, session_payload, sign_in
from backend.utils.logger import get_logger

settings = get_settings()
logger = get_logger(__name__)

router = APIRouter()

bearer_scheme = HTTPBearer(auto_error=False)

OAUTH_STATE_MINUTES = 10


# --- Tokens ---

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_user_token(user: User, two_factor_verified: bool = False) -> str:
    return create_access_token({"sub": str(user.id), "tfa": bool(two_factor_verified)})


def create_oauth_state() -> str:
    return jwt.encode(
        {"type": "oauth_state", "exp": datetime.utcnow() + timedelta(minutes=OAUTH_STATE_MINUTES)},
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
    )


def verify_oauth_state(state: Optional[str]) -> bool:
    if not state:
        return False
    try:
        claims = jwt.decode(state, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return False
    return claims.get("type") == "oauth_state"


def _decode_access_token(token: str) -> dict:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise credentials_exception
    if claims.get("type") != "access" or not claims.get("sub"):
        raise credentials_exception
    return claims


# --- Dependencies ---

async def _resolve_session(credentials, db: AsyncSession) -> Optional[tuple]:
    if credentials is None:
        return None
    claims = _decode_access_token(credentials.credentials)
    try:
        user_id = int(claims["sub"])
    except (TypeError, ValueError):
        return None
    user = await db.get(User, user_id)
    if user is None:
        return None
    return user, bool(claims.get("tfa"))


async def get_session_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Any signed-in user, whether or not their second factor is verified yet"""
    session = await _resolve_session(credentials, db)
    if session is None:
        raise HTTPException(status_code=401, detail="Unauthorized", headers={"WWW-Authenticate": "Bearer"})
    user, verified = session
    user.two_factor_verified = verified or not user.two_factor_enabled
    return user


async def get_optional_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Optional[dict]:
    """Session accessor: the session payload, or None when not signed in"""
    if credentials is None:
        return None
    try:
        session = await _resolve_session(credentials, db)
    except HTTPException:
        return None
    if session is None:
        return None
    user, verified = session
    return session_payload(user, verified)


async def get_current_user(user: User = Depends(get_session_user)) -> User:
    """Signed-in user who has passed the second factor when it is enabled"""
    if not user.two_factor_verified:
        raise HTTPException(status_code=401, detail="Two-factor verification required")
    return user


# --- Endpoints ---

@router.get("/google/login")
async def google_login(oauth: GoogleOAuthClient = Depends(get_google_oauth_client)):
    """URL of Google's consent screen for the sign-in flow"""
    return {"authorization_url": oauth.authorization_url(create_oauth_state())}


@router.get("/google/callback")
async def google_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    oauth: GoogleOAuthClient = Depends(get_google_oauth_client),
):
    """Finish Google sign-in and issue an API token"""
    if not code:
        raise HTTPException(status_code=400, detail="Authorization code is required")
    if not verify_oauth_state(state):
        raise HTTPException(status_code=400, detail="Invalid or expired sign-in state")

    try:
        profile = await oauth.fetch_profile(code)
    except OAuthError as e:
        logger.warning(f"Google sign-in failed: {e}")
        raise HTTPException(status_code=401, detail="Google sign-in failed")

    try:
        user = await sign_in(db, profile, settings)
    except AccessDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))

    return {
        "access_token": create_user_token(user),
        "token_type": "bearer",
        "user": session_payload(user),
    }


@router.get("/me")
async def get_me(session: Optional[dict] = Depends(get_optional_session)):
    """Current session, including role and two-factor state"""
    if session is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return session
