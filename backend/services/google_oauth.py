"""
Google OAuth 2.0 authorization-code flow, just enough to read the signed-in
account's email, name and picture.
"""
from typing import Optional
from urllib.parse import urlencode

import httpx

from backend.config import Settings, get_settings
from backend.utils.logger import get_logger

logger = get_logger(__name__)

AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"


class OAuthError(Exception):
    """Google rejected the code or could not be reached"""


class GoogleOAuthClient:
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=15)

    @classmethod
    def from_settings(cls, settings: Settings) -> "GoogleOAuthClient":
        return cls(
            client_id=settings.GOOGLE_CLIENT_ID,
            client_secret=settings.GOOGLE_CLIENT_SECRET,
            redirect_uri=settings.GOOGLE_REDIRECT_URI,
        )

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": "openid email profile",
            "state": state,
            "prompt": "select_account",
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> str:
        """Trade an authorization code for an access token"""
        try:
            response = await self._http.post(TOKEN_URL, data={
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.redirect_uri,
                "grant_type": "authorization_code",
            })
        except httpx.HTTPError as e:
            raise OAuthError(f"Token exchange failed: {e}") from e
        if not response.is_success:
            logger.warning(f"Google token exchange failed ({response.status_code}): {response.text}")
            raise OAuthError(f"Token exchange failed: {response.text}")
        return response.json()["access_token"]

    async def fetch_userinfo(self, access_token: str) -> dict:
        try:
            response = await self._http.get(
                USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"}
            )
        except httpx.HTTPError as e:
            raise OAuthError(f"Userinfo request failed: {e}") from e
        if not response.is_success:
            raise OAuthError(f"Userinfo request failed: {response.text}")
        data = response.json()
        return {
            "email": data.get("email"),
            "name": data.get("name"),
            "image": data.get("picture"),
        }

    async def fetch_profile(self, code: str) -> dict:
        return await self.fetch_userinfo(await self.exchange_code(code))


async def get_google_oauth_client():
    """Dependency: request-scoped Google OAuth client"""
    client = GoogleOAuthClient.from_settings(get_settings())
    try:
        yield client
    finally:
        await client.aclose()
