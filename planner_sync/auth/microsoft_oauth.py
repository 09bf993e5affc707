"""
Microsoft identity platform token refresh.

The consent and code exchange happen in the account-linking flow. This
module only turns a stored refresh token into a short-lived Graph access
token:
1. POST refresh_token grant to the tenant's v2.0 token endpoint
2. Use access_token to call Microsoft Graph
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx

from planner_sync.config import get_settings

logger = logging.getLogger(__name__)

TOKEN_REQUEST_TIMEOUT = 10.0  # seconds


class TokenRefreshError(Exception):
    """The token endpoint refused to issue an access token."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class OAuthTokens:
    """OAuth token response from Microsoft."""

    access_token: str
    refresh_token: Optional[str]
    expires_in: int
    token_type: str
    scope: str

    @property
    def expiry(self) -> datetime:
        """Calculate token expiry time."""
        return datetime.now(timezone.utc) + timedelta(seconds=self.expires_in)


class MicrosoftOAuthFlow:
    """
    Exchanges Microsoft refresh tokens for access tokens.

    Usage:
        flow = MicrosoftOAuthFlow()
        tokens = await flow.refresh_token(binding.refresh_token)
        client = OutlookCalendarClient(tokens.access_token)
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        settings = get_settings()
        self.client_id = settings.microsoft_client_id
        self.client_secret = settings.microsoft_client_secret
        self.token_url = settings.microsoft_token_url
        self.scopes = settings.microsoft_scopes
        self._transport = transport

        if not self.client_id or not self.client_secret:
            logger.warning(
                "Microsoft OAuth not configured. Set MICROSOFT_CLIENT_ID and "
                "MICROSOFT_CLIENT_SECRET in environment."
            )

    async def refresh_token(self, refresh_token: str) -> OAuthTokens:
        """
        Exchange a refresh token for a new access token.

        Args:
            refresh_token: The long-lived refresh token from account linking

        Returns:
            OAuthTokens with a fresh access_token

        Raises:
            TokenRefreshError: If the token endpoint returns a non-2xx response
                or a response without an access token
            httpx.RequestError: If the token endpoint cannot be reached
        """
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
            "scope": self.scopes,
        }

        async with httpx.AsyncClient(
            timeout=TOKEN_REQUEST_TIMEOUT, transport=self._transport
        ) as client:
            response = await client.post(self.token_url, data=data)

        if not response.is_success:
            try:
                error = response.json().get("error_description") or response.json().get("error")
            except ValueError:
                error = response.text[:200]
            raise TokenRefreshError(
                f"Token refresh failed ({response.status_code}): {error}",
                status_code=response.status_code,
            )

        try:
            token_data = response.json()
        except ValueError:
            token_data = {}
        if not isinstance(token_data, dict) or not token_data.get("access_token"):
            raise TokenRefreshError(
                "Token response did not include an access token",
                status_code=response.status_code,
            )
        logger.debug("Refreshed Microsoft access token")

        return OAuthTokens(
            access_token=token_data["access_token"],
            refresh_token=token_data.get("refresh_token", refresh_token),
            expires_in=int(token_data.get("expires_in", 3600)),
            token_type=token_data.get("token_type", "Bearer"),
            scope=token_data.get("scope", ""),
        )


# Module-level convenience functions
_flow: Optional[MicrosoftOAuthFlow] = None


def _get_flow() -> MicrosoftOAuthFlow:
    """Get or create the OAuth flow singleton."""
    global _flow
    if _flow is None:
        _flow = MicrosoftOAuthFlow()
    return _flow


async def refresh_access_token(refresh_token: str) -> OAuthTokens:
    """Refresh access token. See MicrosoftOAuthFlow.refresh_token."""
    return await _get_flow().refresh_token(refresh_token)
