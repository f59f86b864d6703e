"""
Social Media Connection Models - Database Extension

Stores one OAuth connection per (user, platform) pair and the pending
OAuth authorization states used to complete the redirect round trip.
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, JSON, Index
from database import Base
from utils.time_utils import utc_now


class SocialConnection(Base):
    """
    Social media platform connection model for OAuth tokens.

    Stores encrypted access tokens, refresh tokens, and profile snapshots
    for TikTok, Instagram, Facebook, YouTube, Threads and X.
    """

    __tablename__ = "social_connections"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), nullable=False, index=True)

    # Platform information
    platform = Column(String(50), nullable=False, index=True)
    platform_user_id = Column(String(255), nullable=True)  # Platform's user ID

    # OAuth tokens (encrypted)
    encrypted_access_token = Column(Text, nullable=True)  # Cleared when the user deauthorizes the app
    encrypted_refresh_token = Column(Text, nullable=True)  # Threads and Meta never issue one

    # Token metadata
    token_type = Column(String(50), default="Bearer", nullable=False)
    scope = Column(Text, nullable=True)  # Delimiter is platform-specific
    expires_at = Column(DateTime, nullable=True)  # Null means non-expiring
    token_issued_at = Column(DateTime, nullable=True)
    last_refreshed_at = Column(DateTime, nullable=True)

    # Last fetched profile snapshot
    profile_data = Column(JSON, nullable=True)

    # Connection status
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    needs_reconnect = Column(Boolean, default=False, nullable=False)
    last_error = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    # Composite unique constraint: one connection per user per platform
    __table_args__ = (Index("idx_user_platform", "user_id", "platform", unique=True),)

    def __repr__(self):
        return f"<SocialConnection(user_id='{self.user_id}', platform='{self.platform}', is_active={self.is_active})>"


class OAuthState(Base):
    """
    Pending OAuth authorization.

    Created when the authorize URL is built and deleted the first time the
    callback consumes it.
    """

    __tablename__ = "oauth_states"

    id = Column(Integer, primary_key=True, index=True)
    state = Column(String(128), nullable=False, unique=True, index=True)
    user_id = Column(String(255), nullable=False)
    provider = Column(String(50), nullable=False)
    encrypted_code_verifier = Column(Text, nullable=True)
    redirect_uri = Column(Text, nullable=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=utc_now, nullable=False)
