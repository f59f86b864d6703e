"""
OAuth Base Classes - Foundation for All Provider Adapters

This module provides the OAuth 2.0 base class shared by the TikTok,
Instagram, Facebook, YouTube, Threads and X adapters, plus the error
taxonomy raised across the token lifecycle.

Architecture:
- OAuthBase: HTTP plumbing, logging and error translation
- OAuth2Base: Authorization code flow, refresh and profile fetch

Platform modules provide configuration via get_platform_config() and
override only the steps where the platform deviates from RFC 6749.

Usage:
    from utils.oauth_base import OAuth2Base

    class YouTubeOAuth(OAuth2Base):
        def get_platform_config(self):
            return {
                "auth_url": "https://accounts.google.com/o/oauth2/v2/auth",
                "token_url": "https://oauth2.googleapis.com/token",
                ...
            }
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, Any, List, Tuple, Type
from urllib.parse import urlencode

import httpx
from loguru import logger

from config.settings import settings


# ============================================================================
# Custom Exceptions
# ============================================================================

class OAuthException(Exception):
    """Base exception for all OAuth errors"""
    pass


class ConfigurationError(OAuthException):
    """No client id/secret resolvable for a platform"""
    pass


class InvalidStateError(OAuthException):
    """State is unknown, expired, already used, or has a bad signature"""
    pass


class UnsupportedPlatformError(OAuthException):
    """Platform name is not one of the supported providers"""
    pass


class ProviderRequestError(OAuthException):
    """Upstream provider rejected a request or could not be reached"""
    def __init__(self, message: str, status_code: Optional[int] = None, response_text: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_text = response_text


class TokenExchangeError(ProviderRequestError):
    """Authorization code could not be exchanged for a token"""
    pass


class RefreshError(ProviderRequestError):
    """Token refresh failed"""
    pass


class RefreshNotAllowedError(RefreshError):
    """A platform precondition for refreshing is not met yet"""
    pass


class ProfileFetchError(ProviderRequestError):
    """Token is valid but the profile endpoint failed"""
    pass


# ============================================================================
# Token response
# ============================================================================

@dataclass
class TokenSet:
    """Normalized token endpoint response."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    scope: Optional[str] = None
    token_type: Optional[str] = None
    platform_user_id: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_response(cls, data: Dict[str, Any], user_id_field: Optional[str] = None) -> "TokenSet":
        expires_in = data.get("expires_in")
        user_id = data.get(user_id_field) if user_id_field else None
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_in=int(expires_in) if expires_in is not None else None,
            scope=data.get("scope"),
            token_type=data.get("token_type"),
            platform_user_id=str(user_id) if user_id is not None else None,
            raw=data,
        )


def _error_message(data: Any, fallback: str) -> str:
    """Pull a human readable message out of a provider error body."""
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            return error.get("message") or error.get("code") or fallback
        return (
            data.get("error_description")
            or data.get("message")
            or data.get("detail")
            or error
            or fallback
        )
    return fallback


# ============================================================================
# Base OAuth Class
# ============================================================================

class OAuthBase(ABC):
    """
    Base class for all provider adapters.

    Provides common functionality:
    - HTTP client management with a bounded timeout
    - Translation of failures into the caller's exception type
    - Logging

    Subclasses must implement:
    - get_platform_config(): Return platform-specific configuration
    """

    def __init__(
        self,
        platform_name: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize OAuth base.

        Args:
            platform_name: Name of the platform (e.g., "tiktok", "x")
            transport: Optional httpx transport (used by tests)
            timeout: Request timeout in seconds
        """
        self.platform_name = platform_name
        self.transport = transport
        self.timeout = timeout if timeout is not None else settings.OAUTH_HTTP_TIMEOUT_SECONDS
        self.logger = logger

    @abstractmethod
    def get_platform_config(self) -> Dict[str, Any]:
        """
        Get platform-specific OAuth configuration.

        Must return a dictionary with:
        - auth_url: Authorization endpoint
        - token_url: Token exchange endpoint
        - scopes: Required OAuth scopes
        - Any other platform-specific settings

        Returns:
            Dictionary with platform configuration
        """
        pass

    async def _make_http_request(
        self,
        method: str,
        url: str,
        error_cls: Type[ProviderRequestError] = ProviderRequestError,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        auth: Optional[Tuple[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        Make an HTTP request and return the decoded JSON body.

        Args:
            method: HTTP method (GET, POST, etc.)
            url: Request URL
            error_cls: Exception raised on any failure
            headers: HTTP headers
            params: Query parameters
            data: Form data (application/x-www-form-urlencoded)
            auth: HTTP Basic credentials

        Raises:
            error_cls: non-2xx status, timeout, transport failure or a body
                that is not a JSON object. The upstream body is attached.
        """
        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
                self.logger.debug(f"Making {method} request to {url}")
                response = await client.request(
                    method=method,
                    url=url,
                    headers=headers,
                    params=params,
                    data=data,
                    auth=auth,
                )
        except httpx.TimeoutException as e:
            self.logger.error(f"{self.platform_name} request timed out: {url}")
            raise error_cls(f"{self.platform_name} request timed out") from e
        except httpx.HTTPError as e:
            self.logger.error(f"{self.platform_name} request failed: {str(e)}")
            raise error_cls(f"{self.platform_name} request failed: {str(e)}") from e

        try:
            body = response.json() if response.text else {}
        except ValueError:
            body = None

        if not response.is_success:
            message = _error_message(body, response.text or response.reason_phrase)
            self.logger.error(
                f"{self.platform_name} API error: {response.status_code} - {response.text}"
            )
            raise error_cls(
                f"{self.platform_name} API error: {message}",
                status_code=response.status_code,
                response_text=response.text,
            )

        if not isinstance(body, dict):
            raise error_cls(
                f"{self.platform_name} returned an unexpected response",
                status_code=response.status_code,
                response_text=response.text,
            )

        return body

    def _log_success(self, operation: str, details: str = ""):
        """Log successful operation"""
        message = f"{self.platform_name} {operation} successful"
        if details:
            message += f": {details}"
        self.logger.info(message)

    def _log_error(self, operation: str, error: str):
        """Log failed operation"""
        self.logger.error(f"{self.platform_name} {operation} failed: {error}")


# ============================================================================
# OAuth 2.0 Base Class
# ============================================================================

class OAuth2Base(OAuthBase):
    """
    Base class for OAuth 2.0 provider adapters.

    Implements the standard OAuth 2.0 authorization code flow:
    1. Generate authorization URL (optionally with PKCE)
    2. Exchange authorization code for access token
    3. Refresh access token
    4. Fetch the connected account's profile

    Recognized platform config keys (besides the endpoints):
    - scope_separator: " " or ","
    - client_id_param: name of the client id parameter ("client_key" on TikTok)
    - token_auth_style: "body" (secret in form body) or "basic" (HTTP Basic)
    - supports_pkce: PKCE is always used on this platform
    - refresh_input: "refresh_token" or "access_token"
    - token_user_id_field: token response field holding the platform user id
    - authorize_redirects: authorize route redirects instead of returning JSON
    """

    def configure(self, config_data: Optional[Dict[str, Any]] = None) -> "OAuth2Base":
        """Adapter variant for stored integration config. Most platforms need none."""
        return self

    # ------------------------------------------------------------------
    # Platform traits
    # ------------------------------------------------------------------

    @property
    def supports_pkce(self) -> bool:
        return bool(self.get_platform_config().get("supports_pkce", False))

    @property
    def requires_client_secret(self) -> bool:
        return bool(self.get_platform_config().get("requires_client_secret", True))

    @property
    def refresh_uses_access_token(self) -> bool:
        return self.get_platform_config().get("refresh_input", "refresh_token") == "access_token"

    @property
    def authorize_redirects(self) -> bool:
        return bool(self.get_platform_config().get("authorize_redirects", False))

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def get_authorization_url(
        self,
        client_id: str,
        redirect_uri: str,
        state: str,
        scopes: Optional[List[str]] = None,
        code_challenge: Optional[str] = None,
    ) -> str:
        """
        Generate OAuth 2.0 authorization URL.

        Args:
            client_id: OAuth client ID
            redirect_uri: Callback URL after authorization
            state: CSRF protection state parameter
            scopes: List of OAuth scopes (optional, uses platform defaults)
            code_challenge: S256 PKCE challenge (optional)

        Returns:
            Authorization URL string
        """
        config = self.get_platform_config()
        scope_separator = config.get("scope_separator", " ")

        params = {
            "response_type": "code",
            config.get("client_id_param", "client_id"): client_id,
            "redirect_uri": redirect_uri,
            "state": state,
            "scope": self.format_scopes(scopes),
        }

        if code_challenge:
            params["code_challenge"] = code_challenge
            params["code_challenge_method"] = "S256"

        # Add platform-specific parameters
        params.update(config.get("auth_extra_params", {}))

        # Comma-delimited scopes are sent unescaped
        safe = "," if scope_separator == "," else ""
        auth_url = f"{config['auth_url']}?{urlencode(params, safe=safe)}"

        self._log_success("authorization URL generated", f"state: {state[:10]}...")
        return auth_url

    def _client_auth(
        self, client_id: str, client_secret: Optional[str]
    ) -> Tuple[Dict[str, str], Optional[Tuple[str, str]]]:
        """Client authentication as (form fields, HTTP Basic credentials)."""
        config = self.get_platform_config()
        id_param = config.get("client_id_param", "client_id")

        if config.get("token_auth_style", "body") == "basic" and client_secret:
            return {}, (client_id, client_secret)

        fields = {id_param: client_id}
        if client_secret:
            fields["client_secret"] = client_secret
        return fields, None

    # ------------------------------------------------------------------
    # Token exchange
    # ------------------------------------------------------------------

    def _parse_token_response(
        self, data: Dict[str, Any], error_cls: Type[ProviderRequestError]
    ) -> TokenSet:
        if not data.get("access_token"):
            message = _error_message(data, "no access_token in response")
            self.logger.error(f"{self.platform_name} token response rejected: {json.dumps(data)}")
            raise error_cls(
                f"{self.platform_name} token error: {message}",
                response_text=json.dumps(data),
            )
        return TokenSet.from_response(data, self.get_platform_config().get("token_user_id_field"))

    async def exchange_code(
        self,
        code: str,
        redirect_uri: str,
        client_id: str,
        client_secret: Optional[str] = None,
        code_verifier: Optional[str] = None,
    ) -> TokenSet:
        """
        Exchange authorization code for access token.

        Args:
            code: Authorization code from callback
            redirect_uri: Callback URL (must match authorization request)
            client_id: OAuth client ID
            client_secret: OAuth client secret (omitted by public PKCE clients)
            code_verifier: PKCE verifier matching the authorize challenge

        Returns:
            TokenSet for the new grant

        Raises:
            TokenExchangeError: upstream rejected the code or was unreachable
        """
        config = self.get_platform_config()
        fields, auth = self._client_auth(client_id, client_secret)

        token_data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            **fields,
        }
        if code_verifier:
            token_data["code_verifier"] = code_verifier

        self.logger.debug(f"Exchanging authorization code for {self.platform_name} token")

        data = await self._make_http_request(
            "POST",
            config["token_url"],
            error_cls=TokenExchangeError,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            data=token_data,
            auth=auth,
        )
        token_set = self._parse_token_response(data, TokenExchangeError)
        self._log_success("token exchange", f"token expires in {token_set.expires_in or 'N/A'}s")
        return token_set

    async def finalize_token(
        self, token_set: TokenSet, client_id: str, client_secret: Optional[str]
    ) -> TokenSet:
        """Upgrade a freshly exchanged token. Platforms with long-lived exchanges override this."""
        return token_set

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def check_refresh_preconditions(
        self, token_issued_at: Optional[datetime], now: datetime
    ) -> None:
        """Raise RefreshNotAllowedError when a refresh may not be attempted yet."""
        return None

    async def refresh_token(
        self,
        token: str,
        client_id: str,
        client_secret: Optional[str] = None,
    ) -> TokenSet:
        """
        Refresh an OAuth 2.0 access token with the refresh-token grant.

        Args:
            token: Refresh token from the previous grant
            client_id: OAuth client ID
            client_secret: OAuth client secret

        Returns:
            TokenSet with the new access token. refresh_token is None when
            the platform did not rotate it.

        Raises:
            RefreshError: upstream rejected the refresh or was unreachable
        """
        config = self.get_platform_config()
        fields, auth = self._client_auth(client_id, client_secret)

        token_data = {
            "grant_type": "refresh_token",
            "refresh_token": token,
            **fields,
        }

        self.logger.debug(f"Refreshing {self.platform_name} access token")

        data = await self._make_http_request(
            "POST",
            config["token_url"],
            error_cls=RefreshError,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            data=token_data,
            auth=auth,
        )
        token_set = self._parse_token_response(data, RefreshError)
        self._log_success("token refresh", f"new token expires in {token_set.expires_in or 'N/A'}s")
        return token_set

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    async def fetch_profile(self, access_token: str) -> Dict[str, Any]:
        """
        Get user profile information using access token.

        Args:
            access_token: OAuth access token

        Returns:
            Dictionary with user information

        Raises:
            ProfileFetchError: profile endpoint failed
        """
        config = self.get_platform_config()
        headers = {"Authorization": f"Bearer {access_token}"}
        headers.update(config.get("userinfo_extra_headers", {}))

        self.logger.debug(f"Fetching {self.platform_name} user info")

        data = await self._make_http_request(
            "GET",
            config["userinfo_url"],
            error_cls=ProfileFetchError,
            headers=headers,
            params=config.get("userinfo_params", {}),
        )
        self._log_success("user info fetch")
        return data

    def extract_platform_user_id(
        self, profile: Optional[Dict[str, Any]], token_set: Optional[TokenSet] = None
    ) -> Optional[str]:
        """Platform account id from the profile, falling back to the token response."""
        if profile and profile.get("id") is not None:
            return str(profile["id"])
        if token_set is not None:
            return token_set.platform_user_id
        return None

    # ------------------------------------------------------------------
    # Admin helpers
    # ------------------------------------------------------------------

    async def verify_client_credentials(
        self,
        client_id: str,
        client_secret: Optional[str],
        config_data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Check stored client credentials.

        The default only validates the format; platforms that expose an
        app-level endpoint override this with a live call.
        """
        if not client_id or len(client_id.strip()) < 4:
            return {"success": False, "message": "Client ID looks invalid"}
        if self.requires_client_secret and (not client_secret or len(client_secret.strip()) < 8):
            return {"success": False, "message": "Client secret looks invalid"}
        return {"success": True, "message": "Credentials format is valid"}

    # ------------------------------------------------------------------
    # Scopes
    # ------------------------------------------------------------------

    def get_scopes(self) -> List[str]:
        """
        Get list of OAuth scopes for this platform.

        Returns:
            List of scope strings
        """
        config = self.get_platform_config()
        return config.get("scopes", []).copy()

    def format_scopes(self, scopes: Optional[List[str]] = None) -> str:
        """
        Format scopes for OAuth URL.

        Args:
            scopes: List of scope strings, or None to use default scopes

        Returns:
            Formatted scope string (space or comma-separated based on platform)
        """
        config = self.get_platform_config()
        scopes = scopes or config.get("scopes", [])
        scope_separator = config.get("scope_separator", " ")
        return scope_separator.join(scopes)
