"""
Redis-based state storage for OAuth flows

Same contract as the database store: a state token is stored with a TTL
and consumed exactly once. GETDEL makes the lookup and the delete a single
atomic command, and the provider is part of the key so a token presented
to the wrong provider is simply not found.
"""
import json
import logging
from typing import Optional

from redis import Redis

from config.redis_config import RedisConfig
from config.settings import settings
from utils.encryption import SecretDecryptionError, get_cipher
from utils.oauth_base import InvalidStateError
from utils.oauth_state_store import OAuthStateData, generate_state_token
from utils.time_utils import utc_now

logger = logging.getLogger(__name__)


class RedisOAuthStateStore:
    """Redis-backed state store."""

    def __init__(self, client: Redis, ttl_seconds: Optional[int] = None):
        self.client = client
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.OAUTH_STATE_TTL_SECONDS
        self.cipher = get_cipher()

    @staticmethod
    def _key(provider: str, token: str) -> str:
        return f"{RedisConfig.STATE_KEY_PREFIX}:{provider}:{token}"

    def create(
        self,
        user_id: str,
        provider: str,
        code_verifier: Optional[str] = None,
        redirect_uri: Optional[str] = None,
    ) -> str:
        """
        Store OAuth state in Redis with TTL.

        Returns:
            The state token to send to the provider
        """
        token = generate_state_token()
        value = json.dumps({
            "user_id": user_id,
            "provider": provider,
            "code_verifier": self.cipher.encrypt(code_verifier) if code_verifier else None,
            "redirect_uri": redirect_uri,
            "created_at": utc_now().isoformat(),
        })
        self.client.setex(self._key(provider, token), self.ttl_seconds, value)
        logger.debug(f"Stored OAuth state for {provider} user {user_id}")
        return token

    def consume(self, token: Optional[str], provider: str) -> OAuthStateData:
        """
        Retrieve and delete OAuth state from Redis.

        Raises:
            InvalidStateError: token is absent, expired, already used or
                belongs to another provider
        """
        if not token:
            raise InvalidStateError("Invalid state")

        value = self.client.getdel(self._key(provider, token))
        if not value:
            raise InvalidStateError("Invalid state")

        data = json.loads(value)
        encrypted_verifier = data.get("code_verifier")
        try:
            code_verifier = self.cipher.decrypt(encrypted_verifier) if encrypted_verifier else None
        except SecretDecryptionError as e:
            logger.warning(f"Stored PKCE verifier for {provider} could not be decrypted")
            raise InvalidStateError("Invalid state") from e

        return OAuthStateData(
            user_id=data["user_id"],
            provider=data["provider"],
            code_verifier=code_verifier,
            redirect_uri=data.get("redirect_uri"),
        )

    def purge_expired(self) -> int:
        """Redis expires keys itself."""
        return 0
