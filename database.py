"""
Database configuration
"""
from typing import Generator
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
import time
import logging

from config.settings import settings

# Configure logging
logger = logging.getLogger(__name__)

DATABASE_URL = settings.DATABASE_URL


def build_engine(database_url: str) -> Engine:
    """Create an engine with settings appropriate for the database type."""
    if "sqlite" in database_url:
        # SQLite-specific configuration
        return create_engine(database_url, connect_args={"check_same_thread": False})
    if "postgresql" in database_url:
        # PostgreSQL-specific configuration with connection pooling
        return create_engine(
            database_url,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            pool_pre_ping=True,  # Verify connections before using them
            pool_recycle=3600,  # Recycle connections after 1 hour
        )
    return create_engine(database_url, pool_pre_ping=True)


engine = build_engine(DATABASE_URL)


# ============================================================================
# QUERY PERFORMANCE MONITORING
# ============================================================================

if settings.DEBUG and settings.LOG_LEVEL == "DEBUG":
    @event.listens_for(Engine, "before_cursor_execute")
    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault("query_start_time", []).append(time.time())

    @event.listens_for(Engine, "after_cursor_execute")
    def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        total = time.time() - conn.info["query_start_time"].pop(-1)

        # Warn on slow queries (>100ms threshold)
        if total > 0.1:
            logger.warning(f"SLOW QUERY ({total:.3f}s): {statement[:200]}")


# Session
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class
Base = declarative_base()


def init_db(bind: Engine = None) -> None:
    """Create all tables (models register themselves on import)."""
    import database_social_media  # noqa: F401
    import database_integration_settings  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def get_db() -> Generator[Session, None, None]:
    """Get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
