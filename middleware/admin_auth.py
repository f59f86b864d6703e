"""
Admin Authorization

Dependency for the /admin/integrations endpoints. Callers present the
shared ADMIN_API_TOKEN as a bearer token.

Usage:
    from middleware.admin_auth import require_admin

    @router.get("/admin/some-endpoint", dependencies=[Depends(require_admin)])
    async def admin_endpoint():
        return {"message": "Admin access granted"}
"""
import logging
import secrets
from typing import Optional

from fastapi import Header, HTTPException, status

from config.settings import settings

logger = logging.getLogger(__name__)


async def require_admin(authorization: Optional[str] = Header(default=None)) -> str:
    """
    Dependency to require admin privileges.

    Returns:
        The label recorded as updated_by on admin writes

    Raises:
        HTTPException: 503 when no admin token is configured, 401 when the
            bearer token is missing or wrong
    """
    expected = settings.ADMIN_API_TOKEN
    if not expected:
        logger.error("Admin endpoint called but ADMIN_API_TOKEN is not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API is not configured",
        )

    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(token.strip(), expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Admin privileges required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return "admin"
