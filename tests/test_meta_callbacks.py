"""Tests for the Meta deauthorize and data-deletion callbacks"""
import base64
import hashlib
import hmac
import json

import pytest

from database_social_media import SocialConnection
from utils.facebook_oauth import parse_signed_request
from utils.oauth_base import TokenSet
from utils.social_connection_manager import SocialConnectionManager

THREADS_SECRET = "test_threads_client_secret"


def signed_request(payload, secret=THREADS_SECRET):
    def b64(data):
        return base64.urlsafe_b64encode(data).decode().rstrip("=")

    payload_segment = b64(json.dumps(payload).encode())
    signature = hmac.new(secret.encode(), payload_segment.encode(), hashlib.sha256).digest()
    return f"{b64(signature)}.{payload_segment}"


def seed(session_factory, user_id="U1", platform="threads", platform_user_id="th-1"):
    session = session_factory()
    try:
        SocialConnectionManager(session).upsert_connection(
            user_id, platform, TokenSet(access_token="th-access", expires_in=3600), platform_user_id=platform_user_id
        )
    finally:
        session.close()


def rows(session_factory, **filters):
    session = session_factory()
    try:
        return session.query(SocialConnection).filter_by(**filters).all()
    finally:
        session.close()


@pytest.fixture
def verify_token(monkeypatch):
    from config.settings import settings

    monkeypatch.setattr(settings, "WEBHOOK_VERIFY_TOKEN", "hub-secret")
    return "hub-secret"


# ============================================================================
# signed_request
# ============================================================================


def test_parse_signed_request():
    payload = {"algorithm": "HMAC-SHA256", "user_id": "th-1", "issued_at": 1700000000}

    assert parse_signed_request(signed_request(payload), THREADS_SECRET) == payload


@pytest.mark.parametrize("value", [None, "", "no-dot", "abc.def"])
def test_parse_signed_request_rejects_malformed(value):
    assert parse_signed_request(value, THREADS_SECRET) is None


def test_parse_signed_request_rejects_wrong_secret():
    value = signed_request({"algorithm": "HMAC-SHA256", "user_id": "th-1"}, secret="someone-else")

    assert parse_signed_request(value, THREADS_SECRET) is None


# ============================================================================
# Webhook verification
# ============================================================================


@pytest.mark.parametrize("path", ["deauthorize", "data-deletion"])
def test_webhook_verification_echoes_challenge(client, verify_token, path):
    response = client.get(
        f"/auth/threads/{path}",
        params={"hub.mode": "subscribe", "hub.verify_token": verify_token, "hub.challenge": "1158201444"},
    )

    assert response.status_code == 200
    assert response.text == "1158201444"


def test_webhook_verification_wrong_token(client, verify_token):
    response = client.get(
        "/auth/threads/deauthorize",
        params={"hub.mode": "subscribe", "hub.verify_token": "guess", "hub.challenge": "1"},
    )

    assert response.status_code == 403
    assert response.json() == {"success": False, "error": "Forbidden"}


def test_webhook_verification_without_configured_token(client):
    response = client.get(
        "/auth/threads/deauthorize",
        params={"hub.mode": "subscribe", "hub.verify_token": "", "hub.challenge": "1"},
    )

    assert response.status_code == 403


def test_meta_callbacks_only_exist_for_meta_platforms(client):
    assert client.post("/auth/tiktok/deauthorize", json={"user_id": "x"}).status_code == 404
    assert client.get("/auth/youtube/data-deletion").status_code == 404


# ============================================================================
# Deauthorize
# ============================================================================


def test_deauthorize_with_signed_request(client, session_factory):
    seed(session_factory)
    seed(session_factory, user_id="U2", platform_user_id="th-2")

    response = client.post(
        "/auth/threads/deauthorize",
        data={"signed_request": signed_request({"algorithm": "HMAC-SHA256", "user_id": "th-1"})},
    )

    assert response.status_code == 200
    assert response.json()["success"] is True
    row = rows(session_factory, platform_user_id="th-1")[0]
    assert row.is_active is False
    assert row.encrypted_access_token is None
    assert row.encrypted_refresh_token is None
    assert rows(session_factory, platform_user_id="th-2")[0].is_active is True


def test_deauthorize_with_json_body(client, session_factory):
    seed(session_factory)

    response = client.post("/auth/threads/deauthorize", json={"user_id": "th-1"})

    assert response.status_code == 200
    assert rows(session_factory, platform_user_id="th-1")[0].is_active is False


def test_deauthorize_rejects_forged_signature(client, session_factory):
    seed(session_factory)

    response = client.post(
        "/auth/threads/deauthorize",
        data={"signed_request": signed_request({"algorithm": "HMAC-SHA256", "user_id": "th-1"}, secret="forged")},
    )

    assert response.status_code == 400
    assert rows(session_factory, platform_user_id="th-1")[0].is_active is True


def test_deauthorize_requires_user_id(client):
    response = client.post("/auth/threads/deauthorize", json={})

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "user_id is required"}


def test_deauthorized_connection_is_not_usable(client, session_factory):
    seed(session_factory)
    client.post("/auth/threads/deauthorize", json={"user_id": "th-1"})

    assert client.get("/auth/threads/status", params={"user_id": "U1"}).json()["status"] == "not_found"


# ============================================================================
# Data deletion
# ============================================================================


def test_data_deletion_removes_rows_and_returns_confirmation(client, session_factory):
    seed(session_factory)
    seed(session_factory, platform="instagram", platform_user_id="th-1")

    response = client.post(
        "/auth/threads/data-deletion",
        data={"signed_request": signed_request({"algorithm": "HMAC-SHA256", "user_id": "th-1"})},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["url"] == "http://dashboard.test/data-deletion-status?user_id=th-1"
    assert data["confirmation_code"].startswith("THREADS_DELETE_th-1_")
    assert rows(session_factory, platform="threads") == []
    assert len(rows(session_factory, platform="instagram")) == 1


def test_data_deletion_requires_user_id(client):
    assert client.post("/auth/threads/data-deletion", data={}).status_code == 400
