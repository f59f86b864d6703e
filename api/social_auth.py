"""
Social Account OAuth 2.0 Endpoints

Connects a user's TikTok, Instagram, Facebook, YouTube, Threads or X account
and keeps its tokens usable afterwards.

Usage in main.py:
```python
from api.social_auth import router as social_auth_router
app.include_router(social_auth_router)
```

OAuth Flow:
1. Dashboard calls GET /auth/{platform}?user_id=... -> authorization URL
   (a server-stored state holds the user id and PKCE verifier)
2. User authorizes on the platform
3. Platform redirects to /auth/{platform}/callback
4. State is consumed (single use, 10 minute TTL)
5. Code is exchanged for tokens (long-lived upgrade on Meta platforms)
6. Profile is fetched and the connection is upserted with encrypted tokens
7. Browser is redirected to {APP_URL}/networks/{platform}
"""

from fastapi import APIRouter, Depends, HTTPException, status, Request, Query
from fastapi.responses import PlainTextResponse, RedirectResponse
from sqlalchemy.orm import Session
from typing import Optional
from urllib.parse import parse_qsl, urlencode
import json
import logging
import secrets
import time

from config.settings import settings
from database import get_db
from utils.error_responses import CallbackError, callback_redirect, error_json
from utils.facebook_oauth import parse_signed_request
from utils.integration_config_manager import IntegrationConfigManager
from utils.oauth_base import (
    ConfigurationError,
    InvalidStateError,
    ProfileFetchError,
    RefreshError,
    RefreshNotAllowedError,
    TokenExchangeError,
)
from utils.oauth_state import generate_pkce_pair
from utils.oauth_state_store import get_state_store
from utils.provider_registry import ProviderRegistry
from utils.social_connection_manager import SocialConnectionManager
from utils.token_lifecycle import RefreshLockRegistry, TokenLifecycleManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["social-auth"])


# ============================================================================
# Dependencies
# ============================================================================

def get_providers(request: Request) -> ProviderRegistry:
    """Provider registry owned by the application."""
    return request.app.state.providers


def get_refresh_locks(request: Request) -> RefreshLockRegistry:
    return request.app.state.refresh_locks


def get_token_manager(
    db: Session = Depends(get_db),
    providers: ProviderRegistry = Depends(get_providers),
    locks: RefreshLockRegistry = Depends(get_refresh_locks),
) -> TokenLifecycleManager:
    return TokenLifecycleManager(db, providers, locks)


def _check_platform(platform: str, providers: ProviderRegistry) -> str:
    platform = platform.lower()
    if platform not in providers:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unsupported platform")
    return platform


def _require_user_id(user_id: Optional[str]) -> str:
    if not user_id or not user_id.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="user_id is required")
    return user_id.strip()


# ============================================================================
# Authorize
# ============================================================================

@router.get("/{platform}")
@router.get("/{platform}/authorize")
async def authorize(
    platform: str,
    user_id: Optional[str] = Query(None, description="Dashboard user connecting the account"),
    redirect: Optional[bool] = Query(None, description="Redirect instead of returning JSON"),
    db: Session = Depends(get_db),
    providers: ProviderRegistry = Depends(get_providers),
):
    """
    Start the OAuth 2.0 flow for a platform.

    Returns:
        {
            "authorization_url": "https://...",
            "state": "...",
            "platform": "tiktok"
        }
        or a 307 redirect to the authorization URL (TikTok by default, any
        platform with ?redirect=true)

    Raises:
        HTTPException 400: user_id missing
        HTTPException 404: unsupported platform
        HTTPException 500: integration not configured
    """
    platform = _check_platform(platform, providers)
    user_id = _require_user_id(user_id)

    config_manager = IntegrationConfigManager(db)
    try:
        creds = config_manager.require_credentials(platform, require_secret=False)
    except ConfigurationError:
        logger.error(f"Authorize requested for unconfigured platform {platform}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Integration not configured",
        )

    config_data = creds.get("config_data") or {}
    adapter = providers.get(platform, config_data)
    redirect_uri = config_manager.resolve_callback_url(platform, creds)

    code_verifier = code_challenge = None
    if adapter.supports_pkce or config_data.get("use_pkce"):
        code_verifier, code_challenge = generate_pkce_pair()

    state = get_state_store(db).create(user_id, platform, code_verifier, redirect_uri)
    authorization_url = adapter.get_authorization_url(
        creds["client_id"], redirect_uri, state, code_challenge=code_challenge
    )

    logger.info(f"Generated {platform} authorization URL for user {user_id}")

    should_redirect = adapter.authorize_redirects if redirect is None else redirect
    if should_redirect:
        return RedirectResponse(url=authorization_url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)

    return {
        "authorization_url": authorization_url,
        "state": state,
        "platform": platform,
    }


# ============================================================================
# Callback
# ============================================================================

@router.get("/{platform}/callback")
async def callback(
    platform: str,
    code: Optional[str] = Query(None, description="Authorization code"),
    state: Optional[str] = Query(None, description="State from the authorize step"),
    error: Optional[str] = Query(None, description="Error code if authorization failed"),
    error_description: Optional[str] = Query(None, description="Error description"),
    db: Session = Depends(get_db),
    providers: ProviderRegistry = Depends(get_providers),
):
    """
    Handle the platform's redirect after the user authorizes.

    Always answers with a redirect to {APP_URL}/networks/{platform}:
    ?success=true, ?success=true&warning=profile_fetch_failed, or
    ?error=<code>. Details stay in the server log.
    """
    platform = _check_platform(platform, providers)

    if error:
        logger.warning(f"{platform} OAuth error: {error} - {error_description}")
        return callback_redirect(platform, CallbackError.OAUTH_DENIED)

    if not code or not state:
        logger.warning(f"{platform} callback missing code or state")
        return callback_redirect(platform, CallbackError.MISSING_PARAMETERS)

    try:
        try:
            pending = get_state_store(db).consume(state, platform)
        except InvalidStateError:
            logger.warning(f"{platform} callback with invalid, expired or reused state")
            return callback_redirect(platform, CallbackError.INVALID_STATE)

        config_manager = IntegrationConfigManager(db)
        stored = config_manager.get_credentials(platform)
        adapter = providers.get(platform, (stored or {}).get("config_data"))
        try:
            creds = config_manager.require_credentials(
                platform, require_secret=adapter.requires_client_secret
            )
        except ConfigurationError:
            return callback_redirect(platform, CallbackError.INTEGRATION_NOT_CONFIGURED)

        redirect_uri = pending.redirect_uri or config_manager.resolve_callback_url(platform, creds)

        try:
            token_set = await adapter.exchange_code(
                code,
                redirect_uri,
                creds["client_id"],
                creds.get("client_secret"),
                code_verifier=pending.code_verifier,
            )
            token_set = await adapter.finalize_token(
                token_set, creds["client_id"], creds.get("client_secret")
            )
        except TokenExchangeError as e:
            logger.error(f"{platform} token exchange failed for user {pending.user_id}: {e}")
            return callback_redirect(platform, CallbackError.TOKEN_EXCHANGE_FAILED)

        profile = None
        warning = None
        try:
            profile = await adapter.fetch_profile(token_set.access_token)
        except ProfileFetchError as e:
            logger.warning(f"{platform} profile fetch failed for user {pending.user_id}: {e}")
            warning = CallbackError.PROFILE_FETCH_FAILED

        try:
            SocialConnectionManager(db).upsert_connection(
                pending.user_id,
                platform,
                token_set,
                platform_user_id=adapter.extract_platform_user_id(profile, token_set),
                profile_data=profile,
            )
        except Exception as e:
            logger.error(f"Failed to save {platform} connection for user {pending.user_id}: {e}")
            return callback_redirect(platform, CallbackError.SAVE_FAILED)

        logger.info(f"Connected {platform} account for user {pending.user_id}")
        return callback_redirect(platform, warning=warning)

    except Exception as e:
        logger.error(f"Unexpected error in {platform} callback: {e}", exc_info=True)
        return callback_redirect(platform, CallbackError.INTERNAL_ERROR)


# ============================================================================
# Token management
# ============================================================================

@router.post("/{platform}/refresh-token")
async def refresh_token(
    platform: str,
    user_id: Optional[str] = Query(None),
    providers: ProviderRegistry = Depends(get_providers),
    manager: TokenLifecycleManager = Depends(get_token_manager),
):
    """
    Refresh a connection's access token now.

    Returns:
        {"success": true, "expires_in": 5183999, "expires_at": "..."}
        or {"success": false, "error": "..."} with 400, 404, 500 or 502
    """
    platform = _check_platform(platform, providers)
    if not user_id or not user_id.strip():
        return error_json("user_id is required", status.HTTP_400_BAD_REQUEST)
    user_id = user_id.strip()

    connection = manager.connections.get_connection(user_id, platform)
    if connection is None:
        return error_json("No connection found", status.HTTP_404_NOT_FOUND)

    try:
        token_set = await manager.refresh_connection(connection)
    except RefreshNotAllowedError as e:
        return error_json(str(e), status.HTTP_400_BAD_REQUEST)
    except ConfigurationError:
        return error_json("Integration not configured", status.HTTP_500_INTERNAL_SERVER_ERROR)
    except RefreshError as e:
        logger.error(f"{platform} refresh failed for user {user_id}: {e}")
        return error_json("Token refresh failed", status.HTTP_502_BAD_GATEWAY)

    return {
        "success": True,
        "expires_in": token_set.expires_in,
        "expires_at": connection.expires_at.isoformat() if connection.expires_at else None,
    }


@router.post("/{platform}/disconnect")
async def disconnect(
    platform: str,
    user_id: Optional[str] = Query(None),
    permanent: bool = Query(False, description="Delete the connection instead of deactivating it"),
    db: Session = Depends(get_db),
    providers: ProviderRegistry = Depends(get_providers),
):
    """Disconnect a platform account."""
    platform = _check_platform(platform, providers)
    user_id = _require_user_id(user_id)

    if not SocialConnectionManager(db).disconnect(user_id, platform, permanent=permanent):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No connection found")

    return {"success": True, "platform": platform, "permanent": permanent}


@router.get("/{platform}/status")
async def connection_status(
    platform: str,
    user_id: Optional[str] = Query(None),
    providers: ProviderRegistry = Depends(get_providers),
    manager: TokenLifecycleManager = Depends(get_token_manager),
):
    platform = _check_platform(platform, providers)
    user_id = _require_user_id(user_id)
    return manager.get_token_status(user_id, platform)


# ============================================================================
# Meta app callbacks (deauthorize, data deletion)
# ============================================================================

META_PLATFORMS = {"facebook", "instagram", "threads"}


def _check_meta_platform(platform: str) -> str:
    platform = platform.lower()
    if platform not in META_PLATFORMS:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unsupported platform")
    return platform


async def _platform_user_id_from_request(request: Request, platform: str, db: Session) -> Optional[str]:
    """
    Platform user id from a Meta callback body.

    Meta posts a form-encoded ``signed_request`` signed with the app secret;
    a JSON body with ``user_id`` is also accepted.
    """
    body = (await request.body()).decode("utf-8", "replace")
    content_type = request.headers.get("content-type", "")

    if content_type.startswith("application/json"):
        try:
            data = json.loads(body or "{}")
        except ValueError:
            return None
        user_id = data.get("user_id") if isinstance(data, dict) else None
        return str(user_id) if user_id else None

    signed_request = dict(parse_qsl(body)).get("signed_request")
    if not signed_request:
        return None

    creds = IntegrationConfigManager(db).get_credentials(platform) or {}
    payload = parse_signed_request(signed_request, creds.get("client_secret"))
    if payload is None:
        logger.warning(f"{platform} callback with an invalid signed_request")
        return None
    user_id = payload.get("user_id")
    return str(user_id) if user_id else None


@router.get("/{platform}/deauthorize")
@router.get("/{platform}/data-deletion")
async def verify_webhook(
    platform: str,
    mode: Optional[str] = Query(None, alias="hub.mode"),
    verify_token: Optional[str] = Query(None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(None, alias="hub.challenge"),
    db: Session = Depends(get_db),
):
    """Answer Meta's subscription check by echoing hub.challenge."""
    platform = _check_meta_platform(platform)

    creds = IntegrationConfigManager(db).get_credentials(platform) or {}
    expected = (creds.get("config_data") or {}).get("webhook_verify_token") or settings.WEBHOOK_VERIFY_TOKEN

    if (
        mode == "subscribe"
        and expected
        and verify_token
        and secrets.compare_digest(verify_token.encode(), expected.encode())
    ):
        logger.info(f"{platform} webhook verified")
        return PlainTextResponse(challenge or "")

    return error_json("Forbidden", status.HTTP_403_FORBIDDEN)


@router.post("/{platform}/deauthorize")
async def deauthorize(platform: str, request: Request, db: Session = Depends(get_db)):
    """The user removed the app on the platform: deactivate and drop tokens."""
    platform = _check_meta_platform(platform)

    platform_user_id = await _platform_user_id_from_request(request, platform, db)
    if not platform_user_id:
        return error_json("user_id is required", status.HTTP_400_BAD_REQUEST)

    SocialConnectionManager(db).deauthorize_platform_user(platform, platform_user_id)
    return {"success": True, "message": "Connection deauthorized successfully"}


@router.post("/{platform}/data-deletion")
async def data_deletion(platform: str, request: Request, db: Session = Depends(get_db)):
    """
    Delete the connection data of a platform user.

    Returns:
        {"url": "<status page>", "confirmation_code": "..."}, the shape Meta requires
    """
    platform = _check_meta_platform(platform)

    platform_user_id = await _platform_user_id_from_request(request, platform, db)
    if not platform_user_id:
        return error_json("user_id is required", status.HTTP_400_BAD_REQUEST)

    SocialConnectionManager(db).delete_platform_user(platform, platform_user_id)

    confirmation_code = f"{platform.upper()}_DELETE_{platform_user_id}_{int(time.time() * 1000)}"
    status_url = f"{settings.APP_URL.rstrip('/')}/data-deletion-status?{urlencode({'user_id': platform_user_id})}"
    return {"url": status_url, "confirmation_code": confirmation_code}
