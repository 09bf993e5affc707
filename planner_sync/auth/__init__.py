"""
Authentication module for Planner Outlook Sync.

Provides refresh-token exchange against the Microsoft identity platform
and storage of the per-user calendar binding.
"""

from planner_sync.auth.microsoft_oauth import (
    MicrosoftOAuthFlow,
    OAuthTokens,
    TokenRefreshError,
    refresh_access_token,
)
from planner_sync.auth.bindings import (
    cache_calendar_id,
    clear_binding,
    get_binding,
    save_binding,
)

__all__ = [
    # Token refresh
    "MicrosoftOAuthFlow",
    "OAuthTokens",
    "TokenRefreshError",
    "refresh_access_token",
    # Binding storage
    "cache_calendar_id",
    "clear_binding",
    "get_binding",
    "save_binding",
]
