"""
Instagram OAuth 2.0 Adapter via Facebook Graph API

Instagram uses Facebook's OAuth infrastructure: the user logs in with
Facebook, and the Instagram Business Account is discovered through the
Facebook Pages it is linked to.

Instagram Publishing Requirements:
- Instagram Business Account (not personal account)
- Instagram Business Account linked to a Facebook Page
- Facebook App with Instagram permissions

API Documentation:
- https://developers.facebook.com/docs/instagram-api/
- https://developers.facebook.com/docs/instagram-api/getting-started
"""

from typing import Optional, Dict, Any

from utils.facebook_oauth import MetaGraphOAuth
from utils.oauth_base import TokenSet


INSTAGRAM_SCOPES = [
    "instagram_basic",
    "instagram_content_publish",
    "instagram_manage_comments",
    "pages_read_engagement",
    "pages_show_list",
]

INSTAGRAM_ACCOUNT_FIELDS = "id,username,name,profile_picture_url,followers_count,media_count"


class InstagramOAuth(MetaGraphOAuth):
    """
    Instagram OAuth 2.0 implementation via Facebook Graph API.

    Profile = Facebook user + the Instagram Business Accounts linked to the
    user's Pages. The connected account id is the first linked Instagram
    account, or the Facebook user id when no Page has one.
    """

    scopes = INSTAGRAM_SCOPES
    page_fields = f"id,name,instagram_business_account{{{INSTAGRAM_ACCOUNT_FIELDS}}}"

    def __init__(self, transport=None, timeout=None, api_version: Optional[str] = None):
        super().__init__("instagram", transport=transport, timeout=timeout, api_version=api_version)

    async def fetch_profile(self, access_token: str) -> Dict[str, Any]:
        """
        Returns:
            {
                "id": "<facebook user id>",
                "name": "...",
                "pages": [...],
                "instagram_accounts": [{"id": "...", "username": "...", "page_id": "..."}]
            }
        """
        profile = await super().fetch_profile(access_token)
        accounts = []
        for page in profile.get("pages", []):
            account = page.get("instagram_business_account")
            if account:
                accounts.append({**account, "page_id": page.get("id")})
        profile["instagram_accounts"] = accounts

        if accounts:
            self._log_success("Instagram account discovery", f"@{accounts[0].get('username')}")
        else:
            self.logger.warning("No Instagram Business Account linked to the user's Facebook Pages")
        return profile

    def extract_platform_user_id(
        self, profile: Optional[Dict[str, Any]], token_set: Optional[TokenSet] = None
    ) -> Optional[str]:
        if profile and profile.get("instagram_accounts"):
            return str(profile["instagram_accounts"][0]["id"])
        return super().extract_platform_user_id(profile, token_set)
