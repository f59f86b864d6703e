"""
Integration Config Manager

Resolves the OAuth client credentials for each platform and provides the
admin CRUD operations behind /admin/integrations.

Resolution order:
1. Active integration_settings row (client secret decrypted)
2. Environment variables ({PLATFORM}_CLIENT_ID / _CLIENT_SECRET / ...)

A stored secret that cannot be decrypted (e.g. after an ENCRYPTION_KEY
rotation) is logged and skipped so the environment fallback still works.

Usage:
    from utils.integration_config_manager import IntegrationConfigManager

    manager = IntegrationConfigManager(db)
    creds = manager.require_credentials("tiktok")
    creds["client_id"], creds["client_secret"]
"""

import logging
from typing import Optional, Dict, Any, List

from sqlalchemy.orm import Session

from config.settings import settings
from database_integration_settings import IntegrationSetting
from utils.encryption import get_cipher, mask_secret, SecretDecryptionError, MASK
from utils.oauth_base import ConfigurationError, UnsupportedPlatformError
from utils.provider_registry import PLATFORM_NAMES, ProviderRegistry
from utils.time_utils import utc_now

logger = logging.getLogger(__name__)


# Allowed environment values per platform
PLATFORM_ENVIRONMENTS: Dict[str, List[str]] = {
    "tiktok": ["sandbox", "production"],
    "instagram": ["development", "production"],
    "facebook": ["development", "production"],
    "youtube": ["development", "production"],
    "threads": ["development", "production"],
    "x": ["development", "production"],
}

# Public PKCE clients have no secret
SECRET_OPTIONAL_PLATFORMS = {"x"}


class IntegrationConfigManager:
    """
    Manager class for per-platform OAuth client configuration.

    Handles CRUD operations, encryption of the client secret, and fallback
    to environment variables.
    """

    def __init__(self, db: Session):
        """
        Initialize config manager.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db
        self.cipher = get_cipher()

    @staticmethod
    def _validate_platform(platform: str) -> str:
        platform = platform.lower()
        if platform not in PLATFORM_NAMES:
            raise UnsupportedPlatformError(f"Unsupported platform: {platform}")
        return platform

    def _get_row(self, platform: str) -> Optional[IntegrationSetting]:
        return (
            self.db.query(IntegrationSetting)
            .filter(IntegrationSetting.platform == platform)
            .first()
        )

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def get_credentials(self, platform: str) -> Optional[Dict[str, Any]]:
        """
        Get OAuth client credentials for a platform.

        Args:
            platform: Platform name (tiktok, instagram, facebook, youtube, threads, x)

        Returns:
            {
                "platform": "tiktok",
                "client_id": "...",
                "client_secret": "...",
                "app_id": "...",
                "environment": "production",
                "callback_url": "https://...",
                "webhook_url": None,
                "config_data": {},
                "source": "database" or "env"
            }

            None if no client id is configured anywhere
        """
        platform = self._validate_platform(platform)

        db_creds = self._get_from_database(platform)
        if db_creds:
            logger.debug(f"Using database credentials for {platform}")
            return db_creds

        env_creds = self._get_from_env(platform)
        if env_creds:
            logger.debug(f"Using environment credentials for {platform}")
            return env_creds

        logger.warning(f"No credentials found for platform: {platform}")
        return None

    def _get_from_database(self, platform: str) -> Optional[Dict[str, Any]]:
        row = self._get_row(platform)
        if not row or not row.is_active or not row.client_id:
            return None

        try:
            client_secret = self.cipher.reveal(row.encrypted_client_secret)
        except SecretDecryptionError:
            logger.warning(
                f"Stored client secret for {platform} could not be decrypted, falling back to environment"
            )
            return None

        return {
            "platform": platform,
            "client_id": row.client_id,
            "client_secret": client_secret,
            "app_id": row.app_id,
            "environment": row.environment,
            "callback_url": row.callback_url,
            "webhook_url": row.webhook_url,
            "config_data": row.config_data or {},
            "source": "database",
        }

    def _get_from_env(self, platform: str) -> Optional[Dict[str, Any]]:
        env = settings.platform_env_credentials(platform)
        if not env["client_id"]:
            return None

        return {
            "platform": platform,
            "client_id": env["client_id"],
            "client_secret": env["client_secret"],
            "app_id": env["app_id"],
            "environment": "production" if settings.is_production else PLATFORM_ENVIRONMENTS[platform][0],
            "callback_url": env["callback_url"],
            "webhook_url": None,
            "config_data": {},
            "source": "env",
        }

    def require_credentials(self, platform: str, require_secret: bool = True) -> Dict[str, Any]:
        """
        Credentials for an OAuth call.

        Raises:
            ConfigurationError: no client id, or no secret where one is needed.
                The message never says which value is missing.
        """
        creds = self.get_credentials(platform)
        if not creds:
            raise ConfigurationError("Integration not configured")
        if require_secret and not creds.get("client_secret"):
            logger.error(f"Client secret missing for {platform} ({creds['source']})")
            raise ConfigurationError("Integration not configured")
        return creds

    def resolve_callback_url(self, platform: str, creds: Dict[str, Any]) -> str:
        """Configured callback URL, else this API's own callback route."""
        return creds.get("callback_url") or f"{settings.API_BASE_URL.rstrip('/')}/auth/{platform}/callback"

    # ------------------------------------------------------------------
    # Admin CRUD
    # ------------------------------------------------------------------

    def save_settings(
        self,
        platform: str,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        app_id: Optional[str] = None,
        environment: Optional[str] = None,
        callback_url: Optional[str] = None,
        webhook_url: Optional[str] = None,
        config_data: Optional[Dict[str, Any]] = None,
        is_active: bool = True,
        updated_by: Optional[str] = None,
    ) -> IntegrationSetting:
        """
        Save or update integration settings for a platform.

        An omitted client_secret keeps the stored one.

        Raises:
            ValueError: invalid environment or missing required credentials
        """
        platform = self._validate_platform(platform)

        if environment is not None and environment not in PLATFORM_ENVIRONMENTS[platform]:
            raise ValueError(
                f"environment must be one of: {PLATFORM_ENVIRONMENTS[platform]}"
            )

        row = self._get_row(platform)

        if row is None:
            if not client_id:
                raise ValueError("client_id is required")
            if not client_secret and platform not in SECRET_OPTIONAL_PLATFORMS:
                raise ValueError("client_secret is required")

        try:
            if row is None:
                row = IntegrationSetting(
                    platform=platform,
                    environment=environment or PLATFORM_ENVIRONMENTS[platform][-1],
                )
                self.db.add(row)
                logger.info(f"Creating integration settings for {platform}")
            else:
                logger.info(f"Updating integration settings for {platform}")

            if client_id:
                row.client_id = client_id.strip()
            if client_secret:
                row.encrypted_client_secret = self.cipher.encrypt(client_secret.strip())
            if app_id is not None:
                row.app_id = app_id
            if environment is not None:
                row.environment = environment
            if callback_url is not None:
                row.callback_url = callback_url
            if webhook_url is not None:
                row.webhook_url = webhook_url
            if config_data is not None:
                row.config_data = config_data

            row.is_active = is_active
            row.updated_by = updated_by

            # Clear test status on update
            row.test_status = "untested"
            row.last_tested_at = None
            row.test_error_message = None

            self.db.commit()
            self.db.refresh(row)

            logger.info(f"Saved integration settings for {platform}")
            return row

        except Exception as e:
            self.db.rollback()
            logger.error(f"Error saving integration settings for {platform}: {str(e)}")
            raise

    def delete_settings(self, platform: str) -> bool:
        """
        Delete stored settings for a platform (environment fallback remains).

        Returns:
            True if deleted, False if not found
        """
        platform = self._validate_platform(platform)
        row = self._get_row(platform)
        if not row:
            logger.warning(f"Integration settings not found for platform: {platform}")
            return False

        self.db.delete(row)
        self.db.commit()
        logger.info(f"Deleted integration settings for {platform}")
        return True

    def get_masked_settings(self, platform: str) -> Dict[str, Any]:
        """
        Settings for display in the admin UI. Secrets are masked.
        """
        platform = self._validate_platform(platform)
        creds = self.get_credentials(platform)
        row = self._get_row(platform)

        if not creds:
            return {
                "platform": platform,
                "name": PLATFORM_NAMES[platform],
                "configured": False,
                "source": "none",
                "environments": PLATFORM_ENVIRONMENTS[platform],
            }

        result = {
            "platform": platform,
            "name": PLATFORM_NAMES[platform],
            "configured": True,
            "source": creds["source"],
            "client_id": mask_secret(creds["client_id"]),
            "client_secret": MASK if creds.get("client_secret") else "",
            "app_id": creds.get("app_id"),
            "environment": creds.get("environment"),
            "environments": PLATFORM_ENVIRONMENTS[platform],
            "callback_url": self.resolve_callback_url(platform, creds),
            "webhook_url": creds.get("webhook_url"),
            "config_data": creds.get("config_data") or {},
        }

        if row is not None:
            result.update({
                "is_active": row.is_active,
                "test_status": row.test_status,
                "last_tested_at": row.last_tested_at.isoformat() if row.last_tested_at else None,
                "test_error_message": row.test_error_message,
                "updated_at": row.updated_at.isoformat() if row.updated_at else None,
                "updated_by": row.updated_by,
            })

        return result

    def get_all_platforms_status(self) -> Dict[str, Dict[str, Any]]:
        """
        Get configuration status for all supported platforms.

        Returns:
            {
                "tiktok": {
                    "name": "TikTok",
                    "configured": true,
                    "source": "database",
                    "is_active": true,
                    "environment": "sandbox",
                    "test_status": "success",
                    "last_tested_at": "2025-10-17T21:00:00"
                },
                ...
            }
        """
        result = {}
        for platform, name in PLATFORM_NAMES.items():
            creds = self.get_credentials(platform)
            row = self._get_row(platform)
            result[platform] = {
                "name": name,
                "configured": bool(creds),
                "source": creds["source"] if creds else None,
                "is_active": row.is_active if row else bool(creds),
                "environment": creds.get("environment") if creds else None,
                "test_status": row.test_status if row else None,
                "last_tested_at": row.last_tested_at.isoformat() if row and row.last_tested_at else None,
            }
        return result

    # ------------------------------------------------------------------
    # Connection testing
    # ------------------------------------------------------------------

    async def test_connection(self, platform: str, providers: ProviderRegistry) -> Dict[str, Any]:
        """
        Check the resolved credentials against the platform.

        Returns:
            {"success": bool, "message": str, "source": "database" | "env" | None}
        """
        platform = self._validate_platform(platform)
        creds = self.get_credentials(platform)
        if not creds:
            result = {"success": False, "message": "Integration not configured", "source": None}
            self._update_test_status(platform, "failed", result["message"])
            return result

        adapter = providers.get(platform)
        outcome = await adapter.verify_client_credentials(
            creds["client_id"], creds.get("client_secret"), creds.get("config_data")
        )
        self._update_test_status(
            platform,
            "success" if outcome["success"] else "failed",
            None if outcome["success"] else outcome["message"],
        )
        return {**outcome, "source": creds["source"]}

    def _update_test_status(self, platform: str, status: str, error_message: Optional[str]):
        """Update test status in database"""
        row = self._get_row(platform)
        if row:
            row.test_status = status
            row.last_tested_at = utc_now()
            row.test_error_message = error_message
            self.db.commit()
