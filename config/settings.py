"""
Centralized Configuration Management

Provides type-safe configuration with environment variable validation.
All configuration should flow through this module for consistency.

Usage:
    from config.settings import settings

    db_url = settings.DATABASE_URL
    timeout = settings.OAUTH_HTTP_TIMEOUT_SECONDS
"""
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator, ConfigDict
from typing import Optional, List, Dict


class Settings(BaseSettings):
    """
    Application Settings

    All settings are loaded from environment variables.
    Default values are provided for development.
    """

    # ========================================================================
    # ENVIRONMENT
    # ========================================================================
    ENVIRONMENT: str = Field(default="development", description="Environment: development, staging, production")
    DEBUG: bool = Field(default=True, description="Enable debug mode")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level: DEBUG, INFO, WARNING, ERROR")

    # ========================================================================
    # SERVER
    # ========================================================================
    HOST: str = Field(default="0.0.0.0", description="Server host")
    PORT: int = Field(default=8000, description="Server port")
    APP_URL: str = Field(
        default="http://localhost:3000",
        description="Dashboard base URL that OAuth callbacks redirect back to"
    )
    API_BASE_URL: str = Field(
        default="http://localhost:8000",
        description="Public base URL of this API, used to build default callback URLs"
    )

    # ========================================================================
    # DATABASE
    # ========================================================================
    DATABASE_URL: str = Field(
        default="sqlite:///./socialhub.db",
        description="Database connection URL"
    )
    DB_POOL_SIZE: int = Field(default=5, description="Database connection pool size")
    DB_MAX_OVERFLOW: int = Field(default=10, description="Max overflow connections")
    DB_POOL_TIMEOUT: int = Field(default=30, description="Connection timeout (seconds)")

    # ========================================================================
    # SECURITY
    # ========================================================================
    ENCRYPTION_KEY: str = Field(
        default="",
        description="Fernet key (or passphrase) used to encrypt tokens and client secrets"
    )
    STATE_SIGNING_SECRET: str = Field(
        default="",
        description="HMAC secret for signed OAuth state values"
    )
    WEBHOOK_VERIFY_TOKEN: Optional[str] = Field(
        default=None,
        description="Token Meta echoes in hub.verify_token when verifying webhook callbacks"
    )
    ADMIN_API_TOKEN: str = Field(
        default="",
        description="Bearer token required by the admin integration endpoints"
    )

    # ========================================================================
    # CORS
    # ========================================================================
    CORS_ORIGINS: List[str] = Field(
        default=[
            "http://localhost:3000",
            "http://localhost:5173",
        ],
        description="Allowed CORS origins"
    )
    CORS_ALLOW_CREDENTIALS: bool = Field(default=True, description="Allow CORS credentials")

    # ========================================================================
    # OAUTH LIFECYCLE
    # ========================================================================
    OAUTH_STATE_BACKEND: str = Field(default="database", description="OAuth state storage: database or redis")
    OAUTH_STATE_TTL_SECONDS: int = Field(default=600, description="Lifetime of a pending OAuth state")
    OAUTH_HTTP_TIMEOUT_SECONDS: float = Field(default=10.0, description="Timeout for provider HTTP calls")
    TOKEN_REFRESH_MARGIN_SECONDS: int = Field(
        default=0,
        description="Refresh tokens this many seconds before they expire (0 = exact expiry)"
    )
    THREADS_MIN_TOKEN_AGE_HOURS: int = Field(default=24, description="Minimum Threads token age before refresh")
    FACEBOOK_API_VERSION: str = Field(default="v23.0", description="Graph API version for Facebook and Instagram")

    # ========================================================================
    # PLATFORM FALLBACK CREDENTIALS
    # ========================================================================
    TIKTOK_CLIENT_KEY: Optional[str] = Field(default=None, description="TikTok client key")
    TIKTOK_CLIENT_SECRET: Optional[str] = Field(default=None, description="TikTok client secret")
    TIKTOK_APP_ID: Optional[str] = Field(default=None, description="TikTok app id")
    TIKTOK_CALLBACK_URL: Optional[str] = Field(default=None, description="TikTok redirect URI")

    INSTAGRAM_CLIENT_ID: Optional[str] = Field(default=None, description="Meta app id used for Instagram")
    INSTAGRAM_CLIENT_SECRET: Optional[str] = Field(default=None, description="Meta app secret used for Instagram")
    INSTAGRAM_APP_ID: Optional[str] = Field(default=None, description="Instagram app id")
    INSTAGRAM_CALLBACK_URL: Optional[str] = Field(default=None, description="Instagram redirect URI")

    FACEBOOK_CLIENT_ID: Optional[str] = Field(default=None, description="Meta app id")
    FACEBOOK_CLIENT_SECRET: Optional[str] = Field(default=None, description="Meta app secret")
    FACEBOOK_APP_ID: Optional[str] = Field(default=None, description="Facebook app id")
    FACEBOOK_CALLBACK_URL: Optional[str] = Field(default=None, description="Facebook redirect URI")

    YOUTUBE_CLIENT_ID: Optional[str] = Field(default=None, description="Google OAuth client id")
    YOUTUBE_CLIENT_SECRET: Optional[str] = Field(default=None, description="Google OAuth client secret")
    YOUTUBE_APP_ID: Optional[str] = Field(default=None, description="Google Cloud project id")
    YOUTUBE_CALLBACK_URL: Optional[str] = Field(default=None, description="YouTube redirect URI")

    THREADS_CLIENT_ID: Optional[str] = Field(default=None, description="Threads app id")
    THREADS_CLIENT_SECRET: Optional[str] = Field(default=None, description="Threads app secret")
    THREADS_APP_ID: Optional[str] = Field(default=None, description="Threads app id")
    THREADS_CALLBACK_URL: Optional[str] = Field(default=None, description="Threads redirect URI")

    X_CLIENT_ID: Optional[str] = Field(default=None, description="X OAuth 2.0 client id")
    X_CLIENT_SECRET: Optional[str] = Field(default=None, description="X OAuth 2.0 client secret (confidential clients)")
    X_APP_ID: Optional[str] = Field(default=None, description="X app id")
    X_CALLBACK_URL: Optional[str] = Field(default=None, description="X redirect URI")

    # ========================================================================
    # REDIS
    # ========================================================================
    REDIS_URL: str = Field(default="redis://localhost:6379/0", description="Redis connection URL")

    # ========================================================================
    # MONITORING
    # ========================================================================
    SENTRY_DSN: Optional[str] = Field(default=None, description="Sentry DSN for error tracking")
    SENTRY_TRACES_SAMPLE_RATE: float = Field(default=0.1, description="Sentry traces sample rate")

    # ========================================================================
    # VALIDATORS (Pydantic V2)
    # ========================================================================

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"ENVIRONMENT must be one of: {allowed}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level"""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of: {allowed}")
        return v.upper()

    @field_validator("OAUTH_STATE_BACKEND")
    @classmethod
    def validate_state_backend(cls, v: str) -> str:
        """Validate OAuth state backend"""
        allowed = ["database", "redis"]
        if v.lower() not in allowed:
            raise ValueError(f"OAUTH_STATE_BACKEND must be one of: {allowed}")
        return v.lower()

    @field_validator("TOKEN_REFRESH_MARGIN_SECONDS", "OAUTH_STATE_TTL_SECONDS")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("value must not be negative")
        return v

    @field_validator("PORT")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate port number"""
        if not (1 <= v <= 65535):
            raise ValueError("PORT must be between 1 and 65535")
        return v

    # ========================================================================
    # COMPUTED PROPERTIES
    # ========================================================================

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.ENVIRONMENT == "production"

    @property
    def database_is_sqlite(self) -> bool:
        """Check if using SQLite"""
        return "sqlite" in self.DATABASE_URL.lower()

    def platform_env_credentials(self, platform: str) -> Dict[str, Optional[str]]:
        """
        Environment fallback credentials for a platform.

        TikTok names its client id "client key"; every other platform
        reads {PLATFORM}_CLIENT_ID.
        """
        prefix = platform.upper()
        id_field = "TIKTOK_CLIENT_KEY" if platform == "tiktok" else f"{prefix}_CLIENT_ID"
        return {
            "client_id": getattr(self, id_field, None),
            "client_secret": getattr(self, f"{prefix}_CLIENT_SECRET", None),
            "app_id": getattr(self, f"{prefix}_APP_ID", None),
            "callback_url": getattr(self, f"{prefix}_CALLBACK_URL", None),
        }

    # ========================================================================
    # CONFIG
    # ========================================================================

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Allow extra fields from .env file
    )


# Singleton instance
settings = Settings()


# ========================================================================
# HELPER FUNCTIONS
# ========================================================================

def get_settings() -> Settings:
    """
    Get settings instance (for dependency injection)

    Usage in FastAPI:
        @app.get("/")
        def endpoint(settings: Settings = Depends(get_settings)):
            return {"env": settings.ENVIRONMENT}
    """
    return settings


def validate_production_config() -> List[str]:
    """
    Validate configuration for production deployment

    Returns:
        List of configuration warnings/errors
    """
    warnings = []

    if settings.ENVIRONMENT == "production":
        if not settings.ENCRYPTION_KEY:
            warnings.append("CRITICAL: ENCRYPTION_KEY not set in production!")

        if not settings.STATE_SIGNING_SECRET:
            warnings.append("CRITICAL: STATE_SIGNING_SECRET not set in production!")

        if not settings.ADMIN_API_TOKEN:
            warnings.append("WARNING: ADMIN_API_TOKEN not set, admin endpoints are disabled")

        if settings.DEBUG:
            warnings.append("WARNING: DEBUG is enabled in production")

        if settings.database_is_sqlite:
            warnings.append("WARNING: Using SQLite in production (consider PostgreSQL)")

        if "*" in settings.CORS_ORIGINS or "http://localhost" in str(settings.CORS_ORIGINS):
            warnings.append("WARNING: CORS allows localhost in production")

    return warnings


# Run validation on import
_production_warnings = validate_production_config()
if _production_warnings and settings.is_production:
    import warnings as py_warnings
    for warning in _production_warnings:
        py_warnings.warn(warning, UserWarning)
