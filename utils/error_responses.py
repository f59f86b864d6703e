"""
Error Response Standardization

Callback routes report failures to the browser as a short error code in
the redirect query string; JSON routes return {"success": false, "error": ...}.
Full error detail is logged server-side only.
"""
from enum import Enum
from typing import Optional
from urllib.parse import urlencode

from fastapi.responses import JSONResponse, RedirectResponse

from config.settings import settings


class CallbackError(str, Enum):
    """Error codes placed in the ?error= parameter of callback redirects"""

    OAUTH_DENIED = "oauth_denied"
    MISSING_PARAMETERS = "missing_parameters"
    INVALID_STATE = "invalid_state"
    INTEGRATION_NOT_CONFIGURED = "integration_not_configured"
    TOKEN_EXCHANGE_FAILED = "token_exchange_failed"
    PROFILE_FETCH_FAILED = "profile_fetch_failed"
    SAVE_FAILED = "save_failed"
    INTERNAL_ERROR = "internal_error"


def platform_page_url(platform: str) -> str:
    """Dashboard page a platform's callback returns to."""
    return f"{settings.APP_URL.rstrip('/')}/networks/{platform}"


def callback_redirect(
    platform: str,
    error: Optional[CallbackError] = None,
    warning: Optional[CallbackError] = None,
) -> RedirectResponse:
    """
    Redirect back to the dashboard after a callback.

    Args:
        platform: Platform name
        error: Failure code (omitted on success)
        warning: Partial-success code, only used on success
    """
    if error is not None:
        params = {"error": error.value}
    else:
        params = {"success": "true"}
        if warning is not None:
            params["warning"] = warning.value
    return RedirectResponse(url=f"{platform_page_url(platform)}?{urlencode(params)}", status_code=302)


def error_json(message: str, status_code: int) -> JSONResponse:
    """Failure body for JSON routes."""
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})
