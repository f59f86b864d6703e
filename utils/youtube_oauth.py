"""
YouTube OAuth 2.0 Adapter (Google Identity)

Offline access is requested so Google returns a long-lived refresh token
on the first consent. Google does not rotate refresh tokens, so a refresh
response normally carries only a new access token (1 hour).
"""

import json
from typing import Dict, Any

from utils.oauth_base import OAuth2Base, ProfileFetchError


YOUTUBE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
YOUTUBE_TOKEN_URL = "https://oauth2.googleapis.com/token"
YOUTUBE_CHANNELS_URL = "https://www.googleapis.com/youtube/v3/channels"

YOUTUBE_SCOPES = [
    "https://www.googleapis.com/auth/youtube.readonly",
]


class YouTubeOAuth(OAuth2Base):
    """Google OAuth adapter scoped to the user's YouTube channel."""

    def __init__(self, transport=None, timeout=None):
        super().__init__(platform_name="youtube", transport=transport, timeout=timeout)

    def get_platform_config(self) -> Dict[str, Any]:
        return {
            "auth_url": YOUTUBE_AUTH_URL,
            "token_url": YOUTUBE_TOKEN_URL,
            "userinfo_url": YOUTUBE_CHANNELS_URL,
            "scopes": YOUTUBE_SCOPES,
            "scope_separator": " ",
            "token_auth_style": "body",
            "auth_extra_params": {
                "access_type": "offline",
                "include_granted_scopes": "true",
                "prompt": "consent",
            },
            "userinfo_params": {"part": "snippet,statistics", "mine": "true"},
        }

    async def fetch_profile(self, access_token: str) -> Dict[str, Any]:
        """The authenticated user's channel (first item of channels?mine=true)."""
        payload = await super().fetch_profile(access_token)
        items = payload.get("items") or []
        if not items:
            raise ProfileFetchError(
                "youtube account has no channel",
                status_code=200,
                response_text=json.dumps(payload),
            )

        channel = items[0]
        snippet = channel.get("snippet", {})
        return {
            "id": channel.get("id"),
            "title": snippet.get("title"),
            "custom_url": snippet.get("customUrl"),
            "thumbnail_url": ((snippet.get("thumbnails") or {}).get("default") or {}).get("url"),
            "statistics": channel.get("statistics", {}),
        }
