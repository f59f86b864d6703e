"""
Threads OAuth 2.0 Adapter

Threads uses Meta's Graph infrastructure but its own grants.

OAuth Flow:
1. Authorization: Redirect user to Threads OAuth URL
2. Token Exchange: Exchange authorization code for short-lived access token (1 hour)
3. Long-Lived Token: th_exchange_token grant, valid for 60 days
4. Token Refresh: th_refresh_token grant on the long-lived token itself

Threads never issues a refresh token, and a long-lived token may only be
refreshed once it is at least 24 hours old.

API Documentation:
- https://developers.facebook.com/docs/threads
"""
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from config.settings import settings
from utils.oauth_base import (
    OAuth2Base,
    TokenSet,
    RefreshError,
    RefreshNotAllowedError,
    ProfileFetchError,
    TokenExchangeError,
)


# ============================================================================
# Threads OAuth Configuration
# ============================================================================

THREADS_AUTH_URL = "https://threads.net/oauth/authorize"
THREADS_TOKEN_URL = "https://graph.threads.net/oauth/access_token"
THREADS_LONG_LIVED_TOKEN_URL = "https://graph.threads.net/access_token"
THREADS_REFRESH_TOKEN_URL = "https://graph.threads.net/refresh_access_token"
THREADS_USERINFO_URL = "https://graph.threads.net/v1.0/me"

# Threads required scopes
THREADS_SCOPES = [
    "threads_basic",            # Basic profile access
    "threads_content_publish"   # Permission to publish posts
]

TOKEN_TOO_YOUNG_MESSAGE = "Token must be at least 24 hours old to refresh"


# ============================================================================
# Threads OAuth 2.0 Implementation
# ============================================================================

class ThreadsOAuth(OAuth2Base):
    """
    Threads OAuth 2.0 implementation using base class.

    Tokens travel as query parameters rather than bearer headers, and both
    the long-lived exchange and the refresh are GET requests.
    """

    def __init__(self, transport=None, timeout=None):
        super().__init__(platform_name="threads", transport=transport, timeout=timeout)
        self.min_token_age = timedelta(hours=settings.THREADS_MIN_TOKEN_AGE_HOURS)

    def get_platform_config(self) -> Dict[str, Any]:
        """
        Get Threads-specific OAuth configuration.

        Returns:
            Configuration dictionary for OAuth2Base
        """
        return {
            "auth_url": THREADS_AUTH_URL,
            "token_url": THREADS_TOKEN_URL,
            "userinfo_url": THREADS_USERINFO_URL,
            "scopes": THREADS_SCOPES,
            "scope_separator": ",",  # Threads uses comma-separated scopes
            "token_auth_style": "body",
            "refresh_input": "access_token",
            "token_user_id_field": "user_id",
            "userinfo_params": {
                "fields": "id,username,name,threads_profile_picture_url,threads_biography"
            },
        }

    async def finalize_token(
        self, token_set: TokenSet, client_id: str, client_secret: Optional[str]
    ) -> TokenSet:
        """
        Exchange the short-lived token for a long-lived (60 day) token.

        The platform user id only arrives with the short-lived token, so it
        is carried over.
        """
        data = await self._make_http_request(
            "GET",
            THREADS_LONG_LIVED_TOKEN_URL,
            error_cls=TokenExchangeError,
            params={
                "grant_type": "th_exchange_token",
                "client_secret": client_secret,
                "access_token": token_set.access_token,
            },
        )
        long_lived = self._parse_token_response(data, TokenExchangeError)
        long_lived.platform_user_id = long_lived.platform_user_id or token_set.platform_user_id
        long_lived.scope = long_lived.scope or token_set.scope
        self._log_success("long-lived token exchange", f"expires in {long_lived.expires_in or 'N/A'}s")
        return long_lived

    def check_refresh_preconditions(self, token_issued_at: Optional[datetime], now: datetime) -> None:
        if token_issued_at is not None and now - token_issued_at < self.min_token_age:
            raise RefreshNotAllowedError(TOKEN_TOO_YOUNG_MESSAGE)

    async def refresh_token(
        self,
        token: str,
        client_id: str,
        client_secret: Optional[str] = None,
    ) -> TokenSet:
        """
        Refresh a long-lived Threads token (th_refresh_token).

        Args:
            token: The current long-lived access token

        Returns:
            TokenSet with a new 60 day access token
        """
        data = await self._make_http_request(
            "GET",
            THREADS_REFRESH_TOKEN_URL,
            error_cls=RefreshError,
            params={"grant_type": "th_refresh_token", "access_token": token},
        )
        token_set = self._parse_token_response(data, RefreshError)
        self._log_success("token refresh", f"new token expires in {token_set.expires_in or 'N/A'}s")
        return token_set

    async def fetch_profile(self, access_token: str) -> Dict[str, Any]:
        """
        Get Threads user profile information.

        Returns:
            Example: {
                "id": "12345678901234567",
                "username": "my_username",
                "name": "Display Name",
                "threads_profile_picture_url": "https://..."
            }
        """
        config = self.get_platform_config()
        data = await self._make_http_request(
            "GET",
            THREADS_USERINFO_URL,
            error_cls=ProfileFetchError,
            params={**config["userinfo_params"], "access_token": access_token},
        )
        self._log_success("user info fetch", f"@{data.get('username')}")
        return data
