"""
Server-stored OAuth state.

Each authorize request stores a random state token together with the user
id, provider, PKCE verifier and redirect URI. The callback consumes the
token exactly once: it is looked up with an expiry filter and deleted in
the same step, so a replayed callback finds nothing.

Absent, expired and wrong-provider tokens all raise the same
InvalidStateError.
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from config.settings import settings
from database_social_media import OAuthState
from utils.encryption import SecretDecryptionError, get_cipher
from utils.oauth_base import InvalidStateError
from utils.time_utils import utc_now

logger = logging.getLogger(__name__)


@dataclass
class OAuthStateData:
    """What a consumed state gives back to the callback."""

    user_id: str
    provider: str
    code_verifier: Optional[str] = None
    redirect_uri: Optional[str] = None
    created_at: Optional[datetime] = None


def generate_state_token() -> str:
    return secrets.token_urlsafe(32)


class OAuthStateStore:
    """Database-backed state store (oauth_states table)."""

    def __init__(self, db: Session, ttl_seconds: Optional[int] = None):
        self.db = db
        self.ttl = timedelta(
            seconds=ttl_seconds if ttl_seconds is not None else settings.OAUTH_STATE_TTL_SECONDS
        )
        self.cipher = get_cipher()

    def create(
        self,
        user_id: str,
        provider: str,
        code_verifier: Optional[str] = None,
        redirect_uri: Optional[str] = None,
    ) -> str:
        """
        Store a new pending authorization.

        Returns:
            The state token to send to the provider
        """
        token = generate_state_token()
        now = utc_now()
        row = OAuthState(
            state=token,
            user_id=user_id,
            provider=provider,
            encrypted_code_verifier=self.cipher.encrypt(code_verifier) if code_verifier else None,
            redirect_uri=redirect_uri,
            expires_at=now + self.ttl,
            created_at=now,
        )
        self.db.add(row)
        self.db.commit()
        logger.debug(f"Stored OAuth state for {provider} user {user_id}")
        return token

    def consume(self, token: Optional[str], provider: str) -> OAuthStateData:
        """
        Look up and delete a pending authorization.

        Raises:
            InvalidStateError: token is absent, expired, already used or
                belongs to another provider
        """
        if not token:
            raise InvalidStateError("Invalid state")

        row = (
            self.db.query(OAuthState)
            .filter(
                OAuthState.state == token,
                OAuthState.provider == provider,
                OAuthState.expires_at >= utc_now(),
            )
            .first()
        )
        if row is None:
            raise InvalidStateError("Invalid state")

        user_id = row.user_id
        encrypted_verifier = row.encrypted_code_verifier
        redirect_uri = row.redirect_uri
        created_at = row.created_at

        # A concurrent consumer that deleted the row first wins
        deleted = (
            self.db.query(OAuthState)
            .filter(OAuthState.id == row.id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        if deleted == 0:
            raise InvalidStateError("Invalid state")

        try:
            code_verifier = self.cipher.decrypt(encrypted_verifier) if encrypted_verifier else None
        except SecretDecryptionError as e:
            logger.warning(f"Stored PKCE verifier for {provider} could not be decrypted")
            raise InvalidStateError("Invalid state") from e

        return OAuthStateData(
            user_id=user_id,
            provider=provider,
            code_verifier=code_verifier,
            redirect_uri=redirect_uri,
            created_at=created_at,
        )

    def purge_expired(self) -> int:
        """
        Delete expired states.

        Returns:
            Number of rows removed
        """
        removed = (
            self.db.query(OAuthState)
            .filter(OAuthState.expires_at < utc_now())
            .delete(synchronize_session=False)
        )
        self.db.commit()
        if removed:
            logger.info(f"Purged {removed} expired OAuth states")
        return removed


def get_state_store(db: Session):
    """State store for the configured OAUTH_STATE_BACKEND."""
    if settings.OAUTH_STATE_BACKEND == "redis":
        from config.redis_config import get_redis_client
        from utils.redis_state import RedisOAuthStateStore

        return RedisOAuthStateStore(get_redis_client())
    return OAuthStateStore(db)
