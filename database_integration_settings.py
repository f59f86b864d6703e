"""
Integration Settings - Database Model

Stores the OAuth client credentials for each social platform so that
admins can manage them through the API instead of editing .env files.

Key Features:
- Client secret encrypted at rest (Fernet, versioned ciphertext)
- Per-platform environment (sandbox/production or development/production)
- Free-form platform config (API version, permissions, webhook verify token)
- Connection testing and status tracking
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, JSON, Index
from database import Base
from utils.time_utils import utc_now


class IntegrationSetting(Base):
    """
    OAuth client configuration for one platform.

    Security:
    - client_secret is encrypted at rest
    - Database settings take precedence over environment variables
    - API responses only return masked credentials
    """

    __tablename__ = "integration_settings"

    id = Column(Integer, primary_key=True, index=True)

    # Platform identification
    platform = Column(
        String(50), nullable=False, unique=True, index=True
    )  # tiktok, instagram, facebook, youtube, threads, x

    # Client credentials
    app_id = Column(String(255), nullable=True)
    client_id = Column(String(255), nullable=True)  # client_key for TikTok
    encrypted_client_secret = Column(Text, nullable=True)

    # OAuth configuration
    environment = Column(String(20), default="production", nullable=False)
    callback_url = Column(Text, nullable=True)
    webhook_url = Column(Text, nullable=True)
    config_data = Column(JSON, nullable=True)  # api_version, permissions, use_pkce, ...

    # Connection testing
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    last_tested_at = Column(DateTime, nullable=True)
    test_status = Column(String(20), default="untested", nullable=False)  # success, failed, untested
    test_error_message = Column(Text, nullable=True)

    # Audit trail
    updated_by = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (Index("idx_integration_platform_active", "platform", "is_active"),)

    def __repr__(self):
        return f"<IntegrationSetting(platform='{self.platform}', environment='{self.environment}', is_active={self.is_active})>"

    def is_configured(self) -> bool:
        """True when both the client id and secret are stored."""
        return bool(self.client_id and self.encrypted_client_secret)
