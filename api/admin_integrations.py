"""
Admin Integration Settings API

Manage each platform's OAuth client configuration from the admin UI
instead of editing .env files.

Endpoints:
- GET /admin/integrations - Status of all platforms
- GET /admin/integrations/{platform} - Masked settings for one platform
- PUT /admin/integrations/{platform} - Create/update settings
- DELETE /admin/integrations/{platform} - Delete stored settings
- POST /admin/integrations/{platform}/test - Test the credentials
- POST /admin/integrations/oauth-states/purge - Remove expired OAuth states

Security:
- Every endpoint requires the admin bearer token
- Client secrets are encrypted at rest and only returned masked
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, Dict, Any
import logging

from api.social_auth import get_providers
from database import get_db
from middleware.admin_auth import require_admin
from utils.integration_config_manager import IntegrationConfigManager
from utils.oauth_state_store import get_state_store
from utils.provider_registry import ProviderRegistry
from utils.time_utils import utc_now

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin/integrations",
    tags=["admin-integrations"],
    dependencies=[Depends(require_admin)],
)


# ============================================================================
# Request/Response Models
# ============================================================================


class IntegrationSettingsUpdate(BaseModel):
    """Request model for creating/updating a platform's settings"""

    client_id: Optional[str] = Field(None, description="OAuth client ID (TikTok client key)")
    client_secret: Optional[str] = Field(None, description="OAuth client secret; omit to keep the stored one")
    app_id: Optional[str] = Field(None, description="Platform app ID")
    environment: Optional[str] = Field(None, description="sandbox/development/production")
    callback_url: Optional[str] = Field(None, description="OAuth redirect URI")
    webhook_url: Optional[str] = Field(None, description="Webhook URL")
    config_data: Optional[Dict[str, Any]] = Field(None, description="Platform extras, e.g. api_version, use_pkce")
    is_active: bool = Field(True, description="Whether the stored settings are used")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "client_id": "awx1y2z3",
                "client_secret": "secret123...",
                "environment": "sandbox",
                "callback_url": "https://api.example.com/auth/tiktok/callback",
            }
        }
    )


class TestConnectionResponse(BaseModel):
    """Response model for connection testing"""

    success: bool
    message: str
    platform: str
    source: Optional[str] = None
    tested_at: str


# ============================================================================
# Admin Endpoints (Protected)
# ============================================================================


@router.get("", summary="List all platforms")
async def list_integrations(db: Session = Depends(get_db)):
    """Configuration status for every supported platform."""
    return IntegrationConfigManager(db).get_all_platforms_status()


@router.get("/{platform}", summary="Get platform settings")
async def get_integration(platform: str, db: Session = Depends(get_db)):
    """
    Masked settings for a platform.

    source is "database", "env" or "none".
    """
    return IntegrationConfigManager(db).get_masked_settings(platform)


@router.put("/{platform}", summary="Create or update platform settings")
async def update_integration(
    platform: str,
    payload: IntegrationSettingsUpdate,
    db: Session = Depends(get_db),
    admin: str = Depends(require_admin),
):
    """
    Save a platform's settings. The client secret is encrypted before it is
    stored and an omitted secret keeps the current one.

    Raises:
        HTTPException 400: invalid environment or missing required fields
    """
    manager = IntegrationConfigManager(db)
    try:
        manager.save_settings(
            platform,
            client_id=payload.client_id,
            client_secret=payload.client_secret,
            app_id=payload.app_id,
            environment=payload.environment,
            callback_url=payload.callback_url,
            webhook_url=payload.webhook_url,
            config_data=payload.config_data,
            is_active=payload.is_active,
            updated_by=admin,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    logger.info(f"Integration settings for {platform} updated by {admin}")
    return {"success": True, "settings": manager.get_masked_settings(platform)}


@router.delete("/{platform}", summary="Delete stored platform settings")
async def delete_integration(platform: str, db: Session = Depends(get_db)):
    if not IntegrationConfigManager(db).delete_settings(platform):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Integration settings not found")
    return {"success": True, "platform": platform}


@router.post("/{platform}/test", response_model=TestConnectionResponse, summary="Test platform credentials")
async def test_integration(
    platform: str,
    db: Session = Depends(get_db),
    providers: ProviderRegistry = Depends(get_providers),
):
    """
    Check the resolved credentials. Facebook and Instagram call the Graph
    app endpoint, TikTok requests a client token, the rest check the format.
    The result is recorded on the stored settings row.
    """
    result = await IntegrationConfigManager(db).test_connection(platform, providers)
    return TestConnectionResponse(
        success=result["success"],
        message=result["message"],
        platform=platform,
        source=result.get("source"),
        tested_at=utc_now().isoformat(),
    )


@router.post("/oauth-states/purge", summary="Remove expired OAuth states")
async def purge_oauth_states(db: Session = Depends(get_db)):
    removed = get_state_store(db).purge_expired()
    return {"success": True, "removed": removed}
