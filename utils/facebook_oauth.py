"""
Facebook OAuth 2.0 Adapter via the Graph API

Facebook (and Instagram, which rides on Facebook Login) never issues a
refresh token. A short-lived user token is exchanged for a ~60 day token
with the fb_exchange_token grant, and the same grant is repeated on the
long-lived token to extend it.

API Documentation:
- https://developers.facebook.com/docs/facebook-login/guides/access-tokens/get-long-lived
- https://developers.facebook.com/docs/graph-api/reference/user/accounts
"""

import base64
import binascii
import copy
import hashlib
import hmac
import json
from typing import Optional, Dict, List, Any, Type

from config.settings import settings
from utils.oauth_base import (
    OAuth2Base,
    TokenSet,
    ProviderRequestError,
    RefreshError,
    TokenExchangeError,
    ProfileFetchError,
)


GRAPH_BASE_URL = "https://graph.facebook.com"
DIALOG_BASE_URL = "https://www.facebook.com"

FACEBOOK_SCOPES = [
    "pages_show_list",
    "pages_read_engagement",
    "pages_read_user_content",
    "pages_manage_posts",
    "pages_manage_engagement",
    "business_management",
]

PAGE_FIELDS = "id,name,category,fan_count"


class MetaGraphOAuth(OAuth2Base):
    """
    Shared Graph API behaviour for Facebook and Instagram.

    The Graph API version comes from the integration's config_data
    ("api_version") and falls back to FACEBOOK_API_VERSION.
    """

    scopes: List[str] = []
    page_fields = PAGE_FIELDS

    def __init__(self, platform_name: str, transport=None, timeout=None, api_version: Optional[str] = None):
        super().__init__(platform_name=platform_name, transport=transport, timeout=timeout)
        self.api_version = api_version or settings.FACEBOOK_API_VERSION

    def configure(self, config_data: Optional[Dict[str, Any]] = None) -> "MetaGraphOAuth":
        api_version = (config_data or {}).get("api_version")
        if not api_version or api_version == self.api_version:
            return self
        variant = copy.copy(self)
        variant.api_version = api_version
        return variant

    @property
    def graph_url(self) -> str:
        return f"{GRAPH_BASE_URL}/{self.api_version}"

    def get_platform_config(self) -> Dict[str, Any]:
        return {
            "auth_url": f"{DIALOG_BASE_URL}/{self.api_version}/dialog/oauth",
            "token_url": f"{self.graph_url}/oauth/access_token",
            "userinfo_url": f"{self.graph_url}/me",
            "scopes": self.scopes,
            "scope_separator": ",",  # Facebook uses comma-separated scopes
            "token_auth_style": "body",
            "refresh_input": "access_token",
            "userinfo_params": {"fields": "id,name"},
        }

    async def _exchange_long_lived(
        self,
        access_token: str,
        client_id: str,
        client_secret: Optional[str],
        error_cls: Type[ProviderRequestError],
    ) -> TokenSet:
        data = await self._make_http_request(
            "GET",
            f"{self.graph_url}/oauth/access_token",
            error_cls=error_cls,
            params={
                "grant_type": "fb_exchange_token",
                "client_id": client_id,
                "client_secret": client_secret,
                "fb_exchange_token": access_token,
            },
        )
        return self._parse_token_response(data, error_cls)

    async def finalize_token(
        self, token_set: TokenSet, client_id: str, client_secret: Optional[str]
    ) -> TokenSet:
        """Swap the 1 hour user token for a ~60 day token."""
        long_lived = await self._exchange_long_lived(
            token_set.access_token, client_id, client_secret, TokenExchangeError
        )
        long_lived.scope = long_lived.scope or token_set.scope
        self._log_success("long-lived token exchange", f"expires in {long_lived.expires_in or 'N/A'}s")
        return long_lived

    async def refresh_token(
        self,
        token: str,
        client_id: str,
        client_secret: Optional[str] = None,
    ) -> TokenSet:
        """
        Extend a long-lived token by re-running fb_exchange_token on it.

        Args:
            token: Current long-lived access token (not a refresh token)
        """
        token_set = await self._exchange_long_lived(token, client_id, client_secret, RefreshError)
        self._log_success("token refresh", f"new token expires in {token_set.expires_in or 'N/A'}s")
        return token_set

    async def get_pages(self, access_token: str) -> List[Dict[str, Any]]:
        """
        Pages managed by the user.

        Page access tokens are dropped so they never reach profile_data.
        """
        data = await self._make_http_request(
            "GET",
            f"{self.graph_url}/me/accounts",
            error_cls=ProfileFetchError,
            headers={"Authorization": f"Bearer {access_token}"},
            params={"fields": self.page_fields},
        )
        pages = data.get("data", [])
        return [
            {key: value for key, value in page.items() if key != "access_token"}
            for page in pages
        ]

    async def fetch_profile(self, access_token: str) -> Dict[str, Any]:
        profile = await super().fetch_profile(access_token)
        profile["pages"] = await self.get_pages(access_token)
        return profile

    async def verify_client_credentials(
        self,
        client_id: str,
        client_secret: Optional[str],
        config_data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Look the app up with an app access token ("{app_id}|{secret}")."""
        if not client_id or not client_secret:
            return {"success": False, "message": "App ID and App Secret are required"}

        adapter = self.configure(config_data)
        try:
            data = await adapter._make_http_request(
                "GET",
                f"{adapter.graph_url}/{client_id}",
                params={"fields": "id,name", "access_token": f"{client_id}|{client_secret}"},
            )
        except ProviderRequestError as e:
            return {"success": False, "message": str(e)}

        return {"success": True, "message": f"Connected to app {data.get('name') or data.get('id')}"}


class FacebookOAuth(MetaGraphOAuth):
    """Facebook Pages connection."""

    scopes = FACEBOOK_SCOPES

    def __init__(self, transport=None, timeout=None, api_version: Optional[str] = None):
        super().__init__("facebook", transport=transport, timeout=timeout, api_version=api_version)


def parse_signed_request(signed_request: Optional[str], app_secret: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Verify and decode a Meta ``signed_request`` ("<signature>.<payload>").

    Returns:
        The payload dict, or None when the value is malformed or the
        HMAC-SHA256 signature does not match the app secret.
    """
    if not signed_request or not app_secret or "." not in signed_request:
        return None

    signature_segment, _, payload_segment = signed_request.partition(".")
    expected = hmac.new(app_secret.encode(), payload_segment.encode("ascii", "ignore"), hashlib.sha256).digest()
    try:
        signature = _b64url_decode(signature_segment)
        payload = json.loads(_b64url_decode(payload_segment).decode("utf-8"))
    except (binascii.Error, ValueError, UnicodeError):
        return None

    if not hmac.compare_digest(expected, signature):
        return None
    if not isinstance(payload, dict) or str(payload.get("algorithm", "")).upper() != "HMAC-SHA256":
        return None
    return payload


def _b64url_decode(segment: str) -> bytes:
    padding = "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode((segment + padding).encode("ascii"))
