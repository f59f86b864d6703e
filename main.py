"""
FastAPI Backend for SocialHub OAuth

Connects dashboard users' social accounts and keeps their tokens valid.
"""
# Load environment variables BEFORE any other imports
from dotenv import load_dotenv

load_dotenv()

# Configure structured logging BEFORE other imports that use logging
from utils.logging_config import configure_logging

configure_logging()

# ============================================================================
# SENTRY ERROR TRACKING - Initialize before FastAPI app
# ============================================================================
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from loguru import logger

from config.settings import settings

if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        integrations=[
            FastApiIntegration(
                transaction_style="url",  # Group by URL pattern, not specific URLs
                failed_request_status_codes=[range(500, 599)],
            ),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        # Tokens travel in query strings and bodies; never attach them
        send_default_pii=False,
        attach_stacktrace=True,
        max_breadcrumbs=50,
    )
    logger.info(f"Sentry error tracking initialized for environment: {settings.ENVIRONMENT}")
else:
    logger.warning("Sentry DSN not configured - error tracking disabled")

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from sqlalchemy import text
from sqlalchemy.orm import Session
import uvicorn

from api import admin_integrations, social_auth
from config.redis_config import close_redis_connection, test_redis_connection
from database import get_db, init_db
from utils.encryption import validate_encryption_key
from utils.exception_handlers import register_exception_handlers
from utils.provider_registry import ProviderRegistry
from utils.token_lifecycle import RefreshLockRegistry


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database and services on startup, cleanup on shutdown"""
    init_db()

    if not validate_encryption_key() and settings.is_production:
        raise RuntimeError("ENCRYPTION_KEY is missing or invalid")

    if settings.OAUTH_STATE_BACKEND == "redis":
        if test_redis_connection():
            logger.info("Redis OAuth state store ready")
        else:
            logger.warning("Redis not reachable - authorize and callback requests will fail")

    yield

    close_redis_connection()

    if settings.SENTRY_DSN:
        sentry_sdk.flush(timeout=2.0)
        logger.info("Sentry events flushed")

    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    app = FastAPI(
        title="SocialHub OAuth API",
        description="OAuth 2.0 connections and token lifecycle for TikTok, Instagram, Facebook, YouTube, Threads and X",
        version="1.0.0",
        lifespan=lifespan,
        redirect_slashes=False,
    )

    # Shared across requests: adapters and per-(user, platform) refresh locks
    app.state.providers = ProviderRegistry()
    app.state.refresh_locks = RefreshLockRegistry()

    if settings.is_production and "*" in settings.CORS_ORIGINS:
        raise ValueError(
            "SECURITY ERROR: Wildcard CORS origin '*' is not allowed in production. "
            "Set CORS_ORIGINS with specific domains."
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    register_exception_handlers(app)

    app.include_router(social_auth.router)
    app.include_router(admin_integrations.router)

    @app.get("/health")
    async def health(db: Session = Depends(get_db)):
        """Health check endpoint"""
        try:
            db.execute(text("SELECT 1"))
            database = "connected"
        except Exception as e:
            logger.error(f"Health check database error: {e}")
            return JSONResponse(
                status_code=503,
                content={"status": "unhealthy", "database": "disconnected"},
            )
        return {"status": "healthy", "database": database, "environment": settings.ENVIRONMENT}

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
