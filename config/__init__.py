"""
Configuration Package

Centralized configuration management for the SocialHub OAuth backend.

Usage:
    from config import settings

    db_url = settings.DATABASE_URL
    margin = settings.TOKEN_REFRESH_MARGIN_SECONDS
"""
from config.settings import settings, get_settings, validate_production_config

__all__ = ["settings", "get_settings", "validate_production_config"]
