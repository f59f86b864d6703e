"""
Token Lifecycle Manager

Answers "give me a currently valid access token for (user, platform)".
Tokens are refreshed lazily, inline with the request that needs them:

    load connection -> still valid? return it
                    -> expired? refresh, persist, return the new token
                    -> refresh failed? flag needs_reconnect, return None

Concurrent callers for the same (user, platform) share one refresh: a
per-key asyncio.Lock serializes the refresh-and-persist step and the row
is re-read after the lock is acquired.

Usage:
    manager = TokenLifecycleManager(db, providers, locks)
    token = await manager.get_valid_access_token("user-1", "tiktok")
    if token is None:
        ...  # not connected, or reconnect required
"""
import asyncio
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple, Any

from loguru import logger
from sqlalchemy.exc import InvalidRequestError
from sqlalchemy.orm import Session

from config.settings import settings
from database_social_media import SocialConnection
from utils.encryption import SecretDecryptionError
from utils.integration_config_manager import IntegrationConfigManager
from utils.oauth_base import (
    TokenSet,
    ConfigurationError,
    RefreshError,
    RefreshNotAllowedError,
)
from utils.provider_registry import ProviderRegistry
from utils.social_connection_manager import SocialConnectionManager
from utils.time_utils import utc_now

# Token status values
STATUS_VALID = "valid"
STATUS_EXPIRING = "expiring"
STATUS_EXPIRED = "expired"
STATUS_NEEDS_RECONNECT = "needs_reconnect"
STATUS_NOT_FOUND = "not_found"

EXPIRING_WINDOW = timedelta(minutes=10)


class RefreshLockRegistry:
    """One asyncio.Lock per (user_id, platform), created on first use."""

    def __init__(self):
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = defaultdict(asyncio.Lock)

    def get(self, user_id: str, platform: str) -> asyncio.Lock:
        return self._locks[(user_id, platform)]


def is_token_expired(
    expires_at: Optional[datetime], now: Optional[datetime] = None, margin_seconds: int = 0
) -> bool:
    """
    Check if a token is expired.

    A null expiry means the token does not expire.
    """
    if expires_at is None:
        return False
    now = now or utc_now()
    return now + timedelta(seconds=margin_seconds) >= expires_at


class TokenLifecycleManager:
    """
    Orchestrates token reads and refreshes for one request.

    Collaborators are injected; the registry and lock map are owned by the
    application and shared across requests.
    """

    def __init__(
        self,
        db: Session,
        providers: ProviderRegistry,
        locks: RefreshLockRegistry,
        connections: Optional[SocialConnectionManager] = None,
        credentials: Optional[IntegrationConfigManager] = None,
        refresh_margin_seconds: Optional[int] = None,
    ):
        self.db = db
        self.providers = providers
        self.locks = locks
        self.connections = connections or SocialConnectionManager(db)
        self.credentials = credentials or IntegrationConfigManager(db)
        self.refresh_margin_seconds = (
            refresh_margin_seconds
            if refresh_margin_seconds is not None
            else settings.TOKEN_REFRESH_MARGIN_SECONDS
        )

    def _needs_refresh(self, connection: SocialConnection, now: datetime) -> bool:
        return is_token_expired(connection.expires_at, now, self.refresh_margin_seconds)

    async def get_valid_access_token(self, user_id: str, platform: str) -> Optional[str]:
        """
        Get a currently valid access token.

        Returns:
            The decrypted access token, or None when the user is not
            connected or must reconnect. Never raises for provider errors.
        """
        if platform not in self.providers:
            logger.warning(f"Token requested for unsupported platform: {platform}")
            return None

        connection = self.connections.get_connection(user_id, platform)
        if connection is None:
            return None
        if connection.needs_reconnect:
            logger.info(f"{platform} connection for user {user_id} needs reconnect")
            return None
        if not self._needs_refresh(connection, utc_now()):
            return self._read_access_token(connection)

        async with self.locks.get(user_id, platform):
            # Another request may have refreshed or deleted it while we waited
            if not self._reload(connection):
                logger.info(f"{platform} connection for user {user_id} was removed during refresh wait")
                return None
            if connection.needs_reconnect or not connection.is_active:
                return None
            if not self._needs_refresh(connection, utc_now()):
                return self._read_access_token(connection)

            try:
                token_set = await self._refresh_locked(connection)
            except RefreshNotAllowedError as e:
                logger.info(f"{platform} refresh not allowed yet for user {user_id}: {e}")
                return None
            except ConfigurationError:
                logger.error(f"{platform} refresh skipped: integration not configured")
                return None
            except RefreshError as e:
                self.connections.mark_needs_reconnect(connection, str(e))
                return None

        return token_set.access_token

    def _reload(self, connection: SocialConnection) -> bool:
        """Re-read the row; False when it no longer exists."""
        try:
            self.db.refresh(connection)
        except InvalidRequestError:
            return False
        return True

    def _read_access_token(self, connection: SocialConnection) -> Optional[str]:
        try:
            return self.connections.get_access_token(connection)
        except SecretDecryptionError:
            self.connections.mark_needs_reconnect(connection, "Stored token could not be decrypted")
            return None

    async def refresh_connection(self, connection: SocialConnection) -> TokenSet:
        """
        Refresh a connection's token and persist the result.

        Raises:
            RefreshNotAllowedError: platform precondition not met
            ConfigurationError: no client credentials for the platform
            RefreshError: upstream rejected the refresh or no token to refresh
        """
        async with self.locks.get(connection.user_id, connection.platform):
            if not self._reload(connection):
                raise RefreshError("Connection no longer exists")
            try:
                return await self._refresh_locked(connection)
            except RefreshNotAllowedError:
                raise
            except RefreshError as e:
                self.connections.mark_needs_reconnect(connection, str(e))
                raise

    async def _refresh_locked(self, connection: SocialConnection) -> TokenSet:
        platform = connection.platform
        creds = self.credentials.get_credentials(platform)
        adapter = self.providers.get(platform, (creds or {}).get("config_data"))

        adapter.check_refresh_preconditions(
            connection.token_issued_at or connection.created_at, utc_now()
        )

        creds = self.credentials.require_credentials(
            platform, require_secret=adapter.requires_client_secret
        )

        try:
            if adapter.refresh_uses_access_token:
                refresh_input = self.connections.get_access_token(connection)
            else:
                refresh_input = self.connections.get_refresh_token(connection)
        except SecretDecryptionError as e:
            raise RefreshError("Stored token could not be decrypted") from e

        if not refresh_input:
            raise RefreshError("No refresh token available")

        logger.info(f"Refreshing {platform} token for user {connection.user_id}")
        token_set = await adapter.refresh_token(
            refresh_input, creds["client_id"], creds.get("client_secret")
        )
        self.connections.update_tokens(connection, token_set)
        return token_set

    def get_token_status(self, user_id: str, platform: str) -> Dict[str, Any]:
        """
        Token status for display.

        Returns:
            {"status": "valid" | "expiring" | "expired" | "needs_reconnect" | "not_found", ...}
        """
        connection = self.connections.get_connection(user_id, platform)
        if connection is None:
            return {"status": STATUS_NOT_FOUND, "connected": False}

        now = utc_now()
        if connection.needs_reconnect:
            status = STATUS_NEEDS_RECONNECT
        elif is_token_expired(connection.expires_at, now):
            status = STATUS_EXPIRED
        elif connection.expires_at is not None and connection.expires_at - now <= EXPIRING_WINDOW:
            status = STATUS_EXPIRING
        else:
            status = STATUS_VALID

        expires_in = (
            int((connection.expires_at - now).total_seconds())
            if connection.expires_at is not None
            else None
        )
        return {
            "status": status,
            "connected": True,
            "expires_in": expires_in,
            "last_error": connection.last_error if status == STATUS_NEEDS_RECONNECT else None,
            **self.connections.to_dict(connection),
        }
