"""
Social Media Connection Manager

Persistence for the (user, platform) -> token tuple. Tokens are encrypted
before they are written and decrypted on the way out; there is at most one
row per (user, platform), and writers always upsert.
"""
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import Optional, Dict, Any, List
from datetime import datetime
import logging

from database_social_media import SocialConnection
from utils.encryption import get_cipher
from utils.oauth_base import TokenSet
from utils.time_utils import utc_now, expiry_from_seconds

logger = logging.getLogger(__name__)


class SocialConnectionManager:
    """
    Manager for social media connections and OAuth tokens.

    Handles token storage, retrieval, and soft or hard disconnects.
    """

    def __init__(self, db: Session):
        """
        Initialize the connection manager.

        Args:
            db: Database session
        """
        self.db = db
        self.cipher = get_cipher()

    def get_connection(
        self, user_id: str, platform: str, active_only: bool = True
    ) -> Optional[SocialConnection]:
        """
        Get a social media connection for a user.

        Args:
            user_id: User ID
            platform: Platform name
            active_only: Ignore soft-disconnected rows

        Returns:
            SocialConnection object or None if not found
        """
        query = self.db.query(SocialConnection).filter(
            SocialConnection.user_id == user_id,
            SocialConnection.platform == platform,
        )
        if active_only:
            query = query.filter(SocialConnection.is_active == True)  # noqa: E712
        return query.first()

    def get_all_connections(self, user_id: str, active_only: bool = True) -> List[SocialConnection]:
        query = self.db.query(SocialConnection).filter(SocialConnection.user_id == user_id)
        if active_only:
            query = query.filter(SocialConnection.is_active == True)  # noqa: E712
        return query.all()

    def upsert_connection(
        self,
        user_id: str,
        platform: str,
        token_set: TokenSet,
        platform_user_id: Optional[str] = None,
        profile_data: Optional[Dict[str, Any]] = None,
    ) -> SocialConnection:
        """
        Create or replace the connection after an authorization.

        A re-authorization overwrites the tokens and reactivates the row.
        The stored refresh token and profile data are kept when the new
        authorization does not supply them.

        Args:
            user_id: User ID
            platform: Platform name
            token_set: Tokens from the code exchange
            platform_user_id: Platform's user ID
            profile_data: Profile snapshot

        Returns:
            SocialConnection object
        """
        try:
            return self._write_connection(user_id, platform, token_set, platform_user_id, profile_data)
        except IntegrityError:
            # Lost an insert race with a concurrent callback; update the winner's row
            self.db.rollback()
            logger.info(f"Concurrent insert for {platform} user {user_id}, retrying as update")
            return self._write_connection(user_id, platform, token_set, platform_user_id, profile_data)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error saving {platform} connection: {str(e)}")
            raise

    def _write_connection(
        self,
        user_id: str,
        platform: str,
        token_set: TokenSet,
        platform_user_id: Optional[str],
        profile_data: Optional[Dict[str, Any]],
    ) -> SocialConnection:
        now = utc_now()
        connection = self.get_connection(user_id, platform, active_only=False)
        created = connection is None

        if created:
            connection = SocialConnection(user_id=user_id, platform=platform, created_at=now)
            self.db.add(connection)

        connection.encrypted_access_token = self.cipher.encrypt(token_set.access_token)
        # Google omits the refresh token when the user already granted access
        if token_set.refresh_token:
            connection.encrypted_refresh_token = self.cipher.encrypt(token_set.refresh_token)
        connection.token_type = token_set.token_type or "Bearer"
        connection.scope = token_set.scope
        connection.expires_at = expiry_from_seconds(token_set.expires_in, now)
        connection.token_issued_at = now
        connection.platform_user_id = platform_user_id or connection.platform_user_id
        if profile_data is not None:
            connection.profile_data = profile_data
        connection.is_active = True
        connection.needs_reconnect = False
        connection.last_error = None
        connection.updated_at = now

        self.db.commit()
        self.db.refresh(connection)

        logger.info(f"{'Created' if created else 'Updated'} {platform} connection for user {user_id}")
        return connection

    def update_tokens(self, connection: SocialConnection, token_set: TokenSet) -> SocialConnection:
        """
        Persist a refreshed token.

        A refresh response without a refresh token keeps the stored one.
        """
        now = utc_now()
        connection.encrypted_access_token = self.cipher.encrypt(token_set.access_token)
        if token_set.refresh_token:
            connection.encrypted_refresh_token = self.cipher.encrypt(token_set.refresh_token)
        connection.expires_at = expiry_from_seconds(token_set.expires_in, now)
        if token_set.scope:
            connection.scope = token_set.scope
        connection.token_issued_at = now
        connection.last_refreshed_at = now
        connection.needs_reconnect = False
        connection.last_error = None
        connection.updated_at = now

        self.db.commit()
        self.db.refresh(connection)

        logger.info(f"Refreshed {connection.platform} token for user {connection.user_id}")
        return connection

    def _by_platform_user(self, platform: str, platform_user_id: str):
        return self.db.query(SocialConnection).filter(
            SocialConnection.platform == platform,
            SocialConnection.platform_user_id == platform_user_id,
        )

    def deauthorize_platform_user(self, platform: str, platform_user_id: str) -> int:
        """
        Deactivate every connection to a platform account and drop its tokens.

        Used when the platform reports that the user removed the app.

        Returns:
            Number of connections deactivated
        """
        now = utc_now()
        connections = self._by_platform_user(platform, platform_user_id).all()
        for connection in connections:
            connection.encrypted_access_token = None
            connection.encrypted_refresh_token = None
            connection.expires_at = None
            connection.is_active = False
            connection.updated_at = now
        self.db.commit()

        logger.info(f"Deauthorized {len(connections)} {platform} connection(s) for platform user {platform_user_id}")
        return len(connections)

    def delete_platform_user(self, platform: str, platform_user_id: str) -> int:
        """Delete every connection to a platform account. Returns the number removed."""
        removed = self._by_platform_user(platform, platform_user_id).delete(synchronize_session=False)
        self.db.commit()

        logger.info(f"Deleted {removed} {platform} connection(s) for platform user {platform_user_id}")
        return removed

    def mark_needs_reconnect(self, connection: SocialConnection, error: str) -> None:
        """Record a failed refresh; the connection stays unusable until re-authorized."""
        connection.needs_reconnect = True
        connection.last_error = error
        connection.updated_at = utc_now()
        self.db.commit()
        logger.warning(f"{connection.platform} connection for user {connection.user_id} needs reconnect: {error}")

    def get_access_token(self, connection: SocialConnection) -> Optional[str]:
        return self.cipher.reveal(connection.encrypted_access_token)

    def get_refresh_token(self, connection: SocialConnection) -> Optional[str]:
        return self.cipher.reveal(connection.encrypted_refresh_token)

    def disconnect(self, user_id: str, platform: str, permanent: bool = False) -> bool:
        """
        Disconnect a social media account.

        Args:
            user_id: User ID
            platform: Platform name
            permanent: Delete the row instead of deactivating it

        Returns:
            True if a connection was found, False otherwise
        """
        connection = self.get_connection(user_id, platform, active_only=not permanent)
        if not connection:
            return False

        if permanent:
            self.db.delete(connection)
        else:
            connection.is_active = False
            connection.updated_at = utc_now()
        self.db.commit()

        logger.info(f"{'Deleted' if permanent else 'Disconnected'} {platform} connection for user {user_id}")
        return True

    def to_dict(self, connection: SocialConnection) -> Dict[str, Any]:
        """Connection fields that are safe to return to a client (no tokens)."""
        return {
            "platform": connection.platform,
            "platform_user_id": connection.platform_user_id,
            "scope": connection.scope,
            "expires_at": _iso(connection.expires_at),
            "token_issued_at": _iso(connection.token_issued_at),
            "last_refreshed_at": _iso(connection.last_refreshed_at),
            "has_refresh_token": bool(connection.encrypted_refresh_token),
            "profile_data": connection.profile_data,
            "is_active": connection.is_active,
            "needs_reconnect": connection.needs_reconnect,
            "created_at": _iso(connection.created_at),
            "updated_at": _iso(connection.updated_at),
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
