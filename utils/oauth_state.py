"""
Signed OAuth state values and PKCE helpers.

SignedStateCodec packs a small JSON payload into the OAuth ``state``
parameter and signs it with HMAC-SHA256, so a callback can recover the
user id and PKCE verifier without server-side storage:

    state = base64url(json(payload)) + "." + base64url(hmac_sha256(secret, payload_segment))

The server-stored alternative lives in utils/oauth_state_store.py and is
what the connection routes use.
"""
import base64
import binascii
import hashlib
import hmac
import json
import secrets
import time
from typing import Any, Dict, Optional, Tuple

from config.settings import settings


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64url_decode(segment: str) -> bytes:
    padding = "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode((segment + padding).encode("ascii"))


class SignedStateCodec:
    """HMAC-signed, stateless OAuth state values."""

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("State signing secret cannot be empty")
        self._secret = secret.encode()

    def _sign(self, payload_segment: str) -> str:
        digest = hmac.new(self._secret, payload_segment.encode("ascii"), hashlib.sha256).digest()
        return _b64url_encode(digest)

    def encode(self, payload: Dict[str, Any]) -> str:
        """
        Serialize and sign a payload.

        Serialization is deterministic: keys are sorted and separators are
        compact, so equal payloads always produce equal state strings.
        """
        raw = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        payload_segment = _b64url_encode(raw.encode("utf-8"))
        return f"{payload_segment}.{self._sign(payload_segment)}"

    def decode(self, state: Any, max_age_seconds: Optional[int] = None) -> Optional[Dict[str, Any]]:
        """
        Verify and decode a state string.

        Args:
            state: Value received in the callback
            max_age_seconds: Reject payloads whose ``timestamp`` (ms) is older
                than this. Freshness is not checked when omitted.

        Returns:
            The payload dict, or None for any invalid input. Never raises.
        """
        if not isinstance(state, str) or "." not in state:
            return None

        payload_segment, _, signature = state.rpartition(".")
        if not payload_segment or not signature:
            return None

        try:
            expected = self._sign(payload_segment)
        except UnicodeEncodeError:
            return None
        if not hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8")):
            return None

        try:
            payload = json.loads(_b64url_decode(payload_segment).decode("utf-8"))
        except (binascii.Error, ValueError, UnicodeError):
            return None

        if not isinstance(payload, dict):
            return None

        if max_age_seconds is not None:
            issued_ms = payload.get("timestamp")
            if not isinstance(issued_ms, (int, float)):
                return None
            if time.time() * 1000 - issued_ms > max_age_seconds * 1000:
                return None

        return payload


def build_state_payload(
    user_id: str,
    code_verifier: Optional[str] = None,
    client_id: Optional[str] = None,
    redirect_uri: Optional[str] = None,
) -> Dict[str, Any]:
    """Payload for SignedStateCodec.encode, stamped with the current time in ms."""
    payload: Dict[str, Any] = {"user_id": user_id, "timestamp": int(time.time() * 1000)}
    if code_verifier:
        payload["code_verifier"] = code_verifier
    if client_id:
        payload["client_id"] = client_id
    if redirect_uri:
        payload["redirect_uri"] = redirect_uri
    return payload


# ============================================================================
# PKCE Utilities
# ============================================================================


def build_code_challenge(code_verifier: str) -> str:
    """S256 code challenge for a verifier."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return _b64url_encode(digest)


def generate_pkce_pair() -> Tuple[str, str]:
    """
    Generate PKCE code_verifier and code_challenge pair.

    Returns:
        Tuple of (code_verifier, code_challenge)
    """
    # 64 random bytes give an 86 character verifier (RFC 7636 allows 43-128)
    code_verifier = _b64url_encode(secrets.token_bytes(64))
    return code_verifier, build_code_challenge(code_verifier)


def get_state_codec() -> SignedStateCodec:
    """Codec keyed by STATE_SIGNING_SECRET."""
    return SignedStateCodec(settings.STATE_SIGNING_SECRET)
