"""
X (Twitter) OAuth 2.0 Adapter

Authorization Code Flow with PKCE (always required by X).

Client authentication depends on the app type:
- Confidential clients send client_id:client_secret as HTTP Basic auth
- Public clients send only client_id in the body, no secret

A refresh token is only issued when the offline.access scope is granted.

API Documentation:
- https://developer.x.com/en/docs/authentication/oauth-2-0/authorization-code
"""

from typing import Dict, Any

from utils.oauth_base import OAuth2Base


X_AUTH_URL = "https://twitter.com/i/oauth2/authorize"
X_TOKEN_URL = "https://api.twitter.com/2/oauth2/token"
X_USERINFO_URL = "https://api.twitter.com/2/users/me"

X_SCOPES = [
    "tweet.read",
    "tweet.write",
    "users.read",
    "offline.access",
]


class XOAuth(OAuth2Base):
    """X OAuth 2.0 adapter (PKCE, Basic auth for confidential clients)."""

    def __init__(self, transport=None, timeout=None):
        super().__init__(platform_name="x", transport=transport, timeout=timeout)

    def get_platform_config(self) -> Dict[str, Any]:
        return {
            "auth_url": X_AUTH_URL,
            "token_url": X_TOKEN_URL,
            "userinfo_url": X_USERINFO_URL,
            "scopes": X_SCOPES,
            "scope_separator": " ",
            "token_auth_style": "basic",
            "supports_pkce": True,
            "requires_client_secret": False,
            "userinfo_params": {
                "user.fields": "id,username,name,profile_image_url,public_metrics,verified"
            },
        }

    async def fetch_profile(self, access_token: str) -> Dict[str, Any]:
        """X wraps the user as {"data": {...}}."""
        payload = await super().fetch_profile(access_token)
        return payload.get("data") or payload
