"""
Structured Logging Configuration using structlog
Provides JSON-formatted logs in production and console output in development.
"""
import structlog
import logging
import sys

from loguru import logger as loguru_logger

from config.settings import settings


def configure_logging(log_level: str = None, environment: str = None):
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
                   If None, uses settings.LOG_LEVEL
        environment: If None, uses settings.ENVIRONMENT; "production" selects JSON output

    Standard logging, structlog and loguru all log at the same level to stdout.

    Usage:
        from utils.logging_config import configure_logging
        configure_logging()

        import structlog
        logger = structlog.get_logger()
        logger.info("account_connected", user_id="user-1", platform="tiktok")
    """
    log_level = (log_level or settings.LOG_LEVEL).upper()
    environment = environment or settings.ENVIRONMENT

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            # Output as JSON for production, or pretty-print for development
            structlog.processors.JSONRenderer() if environment == "production"
            else structlog.dev.ConsoleRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level),
    )

    loguru_logger.remove()
    loguru_logger.add(sys.stdout, level=log_level, serialize=environment == "production")

    logger = structlog.get_logger()
    logger.debug("logging_configured", log_level=log_level, environment=environment)
