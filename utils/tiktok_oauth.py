"""
TikTok OAuth 2.0 Adapter (Login Kit v2)

TikTok follows the standard authorization code and refresh-token grants
with two quirks: the client id parameter is called ``client_key``, and
both the access token (24 hours) and the refresh token (365 days) rotate
on every refresh.

API Documentation:
- https://developers.tiktok.com/doc/login-kit-web
- https://developers.tiktok.com/doc/oauth-user-access-token-management
"""

import json
from typing import Optional, Dict, Any

from utils.oauth_base import OAuth2Base, TokenSet, ProviderRequestError, ProfileFetchError


TIKTOK_AUTH_URL = "https://www.tiktok.com/v2/auth/authorize/"
TIKTOK_TOKEN_URL = "https://open.tiktokapis.com/v2/oauth/token/"
TIKTOK_USERINFO_URL = "https://open.tiktokapis.com/v2/user/info/"

TIKTOK_SCOPES = [
    "user.info.basic",
    "user.info.profile",
    "user.info.stats",
    "video.publish",
    "video.list",
]

TIKTOK_PROFILE_FIELDS = [
    "open_id",
    "union_id",
    "avatar_url",
    "display_name",
    "username",
    "bio_description",
    "is_verified",
    "profile_deep_link",
    "follower_count",
    "following_count",
    "likes_count",
    "video_count",
]


class TikTokOAuth(OAuth2Base):
    """TikTok Login Kit adapter."""

    def __init__(self, transport=None, timeout=None):
        super().__init__(platform_name="tiktok", transport=transport, timeout=timeout)

    def get_platform_config(self) -> Dict[str, Any]:
        return {
            "auth_url": TIKTOK_AUTH_URL,
            "token_url": TIKTOK_TOKEN_URL,
            "userinfo_url": TIKTOK_USERINFO_URL,
            "scopes": TIKTOK_SCOPES,
            "scope_separator": ",",
            "client_id_param": "client_key",
            "token_auth_style": "body",
            "token_user_id_field": "open_id",
            "authorize_redirects": True,
            "userinfo_params": {"fields": ",".join(TIKTOK_PROFILE_FIELDS)},
        }

    async def fetch_profile(self, access_token: str) -> Dict[str, Any]:
        """
        Get the TikTok user profile.

        TikTok wraps payloads as {"data": {"user": {...}}, "error": {"code": "ok"}}
        and reports some failures with HTTP 200 and a non-"ok" error code.
        """
        payload = await super().fetch_profile(access_token)

        error = payload.get("error") or {}
        if error.get("code", "ok") != "ok":
            self._log_error("user info fetch", error.get("message") or error.get("code"))
            raise ProfileFetchError(
                f"tiktok API error: {error.get('message') or error.get('code')}",
                status_code=200,
                response_text=json.dumps(payload),
            )

        user = (payload.get("data") or {}).get("user")
        if not user:
            raise ProfileFetchError("tiktok returned no user", response_text=json.dumps(payload))
        return user

    def extract_platform_user_id(
        self, profile: Optional[Dict[str, Any]], token_set: Optional[TokenSet] = None
    ) -> Optional[str]:
        if profile and profile.get("open_id"):
            return str(profile["open_id"])
        if token_set is not None:
            return token_set.platform_user_id
        return None

    async def verify_client_credentials(
        self,
        client_id: str,
        client_secret: Optional[str],
        config_data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Request a client access token (client_credentials grant) with the stored key."""
        if not client_id or not client_secret:
            return {"success": False, "message": "Client key and client secret are required"}

        try:
            data = await self._make_http_request(
                "POST",
                TIKTOK_TOKEN_URL,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                data={
                    "client_key": client_id,
                    "client_secret": client_secret,
                    "grant_type": "client_credentials",
                },
            )
        except ProviderRequestError as e:
            return {"success": False, "message": str(e)}

        if not data.get("access_token"):
            return {
                "success": False,
                "message": data.get("error_description") or data.get("error") or "No access token returned",
            }
        return {"success": True, "message": "Client credentials accepted"}
