"""
Provider registry.

One adapter per supported platform, built once by the application and
injected into the routes and the token lifecycle manager.
"""
from typing import Any, Dict, Iterator, Optional

import httpx

from utils.oauth_base import OAuth2Base, UnsupportedPlatformError
from utils.tiktok_oauth import TikTokOAuth
from utils.instagram_oauth import InstagramOAuth
from utils.facebook_oauth import FacebookOAuth
from utils.youtube_oauth import YouTubeOAuth
from utils.threads_oauth import ThreadsOAuth
from utils.x_oauth import XOAuth


PLATFORM_NAMES = {
    "tiktok": "TikTok",
    "instagram": "Instagram",
    "facebook": "Facebook",
    "youtube": "YouTube",
    "threads": "Threads",
    "x": "X (Twitter)",
}


class ProviderRegistry:
    """Maps platform names to adapter instances."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None, timeout: Optional[float] = None):
        self._adapters: Dict[str, OAuth2Base] = {
            "tiktok": TikTokOAuth(transport=transport, timeout=timeout),
            "instagram": InstagramOAuth(transport=transport, timeout=timeout),
            "facebook": FacebookOAuth(transport=transport, timeout=timeout),
            "youtube": YouTubeOAuth(transport=transport, timeout=timeout),
            "threads": ThreadsOAuth(transport=transport, timeout=timeout),
            "x": XOAuth(transport=transport, timeout=timeout),
        }

    def get(self, platform: str, config_data: Optional[Dict[str, Any]] = None) -> OAuth2Base:
        """
        Adapter for a platform, adjusted for stored integration config.

        Raises:
            UnsupportedPlatformError: unknown platform name
        """
        adapter = self._adapters.get(platform)
        if adapter is None:
            raise UnsupportedPlatformError(f"Unsupported platform: {platform}")
        return adapter.configure(config_data)

    def __contains__(self, platform: str) -> bool:
        return platform in self._adapters

    def __iter__(self) -> Iterator[str]:
        return iter(self._adapters)
