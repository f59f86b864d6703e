"""Tests for per-platform client credential resolution and admin CRUD"""
import pytest

from config.settings import settings
from conftest import form_body
from database_integration_settings import IntegrationSetting
from utils.encryption import CIPHERTEXT_PREFIX, MASK
from utils.integration_config_manager import IntegrationConfigManager
from utils.oauth_base import ConfigurationError, UnsupportedPlatformError


@pytest.fixture
def manager(db_session):
    return IntegrationConfigManager(db_session)


def test_env_fallback(manager):
    creds = manager.get_credentials("youtube")

    assert creds["source"] == "env"
    assert creds["client_id"] == "test_youtube_client_id"
    assert creds["client_secret"] == "test_youtube_client_secret"
    assert creds["config_data"] == {}


def test_tiktok_env_uses_client_key(manager):
    assert manager.get_credentials("tiktok")["client_id"] == "test_tiktok_client_key"


def test_database_overrides_env(manager, db_session):
    manager.save_settings("youtube", client_id="db-client-id", client_secret="db-client-secret")

    creds = manager.get_credentials("youtube")
    row = db_session.query(IntegrationSetting).filter_by(platform="youtube").one()

    assert creds["source"] == "database"
    assert creds["client_id"] == "db-client-id"
    assert creds["client_secret"] == "db-client-secret"
    assert row.encrypted_client_secret.startswith(CIPHERTEXT_PREFIX)


def test_inactive_row_falls_back_to_env(manager):
    manager.save_settings("youtube", client_id="db-client-id", client_secret="db-secret", is_active=False)

    assert manager.get_credentials("youtube")["source"] == "env"


def test_undecryptable_secret_falls_back_to_env(manager, db_session):
    manager.save_settings("youtube", client_id="db-client-id", client_secret="db-secret")
    row = db_session.query(IntegrationSetting).filter_by(platform="youtube").one()
    row.encrypted_client_secret = f"{CIPHERTEXT_PREFIX}written-with-an-old-key"
    db_session.commit()

    creds = manager.get_credentials("youtube")

    assert creds["source"] == "env"
    assert creds["client_id"] == "test_youtube_client_id"


def test_unconfigured_platform(manager, monkeypatch):
    monkeypatch.setattr(settings, "YOUTUBE_CLIENT_ID", None)

    assert manager.get_credentials("youtube") is None
    with pytest.raises(ConfigurationError, match="Integration not configured"):
        manager.require_credentials("youtube")
    assert manager.get_masked_settings("youtube")["source"] == "none"


def test_missing_secret_is_a_generic_configuration_error(manager, monkeypatch):
    monkeypatch.setattr(settings, "YOUTUBE_CLIENT_SECRET", None)

    with pytest.raises(ConfigurationError) as exc_info:
        manager.require_credentials("youtube")
    assert "secret" not in str(exc_info.value).lower()
    assert manager.require_credentials("youtube", require_secret=False)["client_id"]


def test_unknown_platform(manager):
    with pytest.raises(UnsupportedPlatformError):
        manager.get_credentials("myspace")


def test_callback_url_defaults_to_own_route(manager):
    creds = manager.get_credentials("tiktok")
    assert manager.resolve_callback_url("tiktok", creds) == "http://api.test/auth/tiktok/callback"

    creds["callback_url"] = "https://custom.example/cb"
    assert manager.resolve_callback_url("tiktok", creds) == "https://custom.example/cb"


def test_save_requires_credentials_on_create(manager):
    with pytest.raises(ValueError, match="client_id"):
        manager.save_settings("tiktok", client_secret="secret")
    with pytest.raises(ValueError, match="client_secret"):
        manager.save_settings("tiktok", client_id="ck")

    # Public PKCE clients have no secret
    assert manager.save_settings("x", client_id="x-public-client").encrypted_client_secret is None


def test_save_validates_environment(manager):
    with pytest.raises(ValueError, match="environment"):
        manager.save_settings("youtube", client_id="cid", client_secret="secret", environment="sandbox")

    row = manager.save_settings("tiktok", client_id="ck", client_secret="secret", environment="sandbox")
    assert row.environment == "sandbox"


def test_omitted_secret_keeps_stored_one(manager):
    manager.save_settings("facebook", client_id="app-1", client_secret="first-secret")
    manager.save_settings("facebook", callback_url="https://api.example/auth/facebook/callback")

    creds = manager.get_credentials("facebook")
    assert creds["client_secret"] == "first-secret"
    assert creds["callback_url"] == "https://api.example/auth/facebook/callback"


def test_save_resets_test_status(manager, db_session):
    row = manager.save_settings("facebook", client_id="app-1", client_secret="secret")
    row.test_status = "success"
    db_session.commit()

    row = manager.save_settings("facebook", app_id="123")
    assert row.test_status == "untested"
    assert row.last_tested_at is None


def test_masked_settings_never_return_secret(manager):
    manager.save_settings("instagram", client_id="1234567890", client_secret="very-secret-value", updated_by="admin")

    masked = manager.get_masked_settings("instagram")

    assert masked["source"] == "database"
    assert masked["client_id"] == "123456" + MASK
    assert masked["client_secret"] == MASK
    assert "very-secret-value" not in str(masked)
    assert masked["updated_by"] == "admin"


def test_delete_settings(manager):
    manager.save_settings("threads", client_id="th-app", client_secret="th-secret")

    assert manager.delete_settings("threads") is True
    assert manager.delete_settings("threads") is False
    assert manager.get_credentials("threads")["source"] == "env"


def test_all_platforms_status(manager):
    manager.save_settings("tiktok", client_id="ck", client_secret="cs", environment="sandbox")

    status = manager.get_all_platforms_status()

    assert set(status) == {"tiktok", "instagram", "facebook", "youtube", "threads", "x"}
    assert status["tiktok"]["source"] == "database"
    assert status["tiktok"]["environment"] == "sandbox"
    assert status["youtube"]["source"] == "env"


@pytest.mark.asyncio
async def test_connection_test_records_result(manager, db_session, providers, upstream):
    manager.save_settings("tiktok", client_id="ck", client_secret="cs")
    upstream.add("POST", "https://open.tiktokapis.com/v2/oauth/token/", {
        "access_token": "clt.1", "expires_in": 7200, "token_type": "Bearer",
    })

    result = await manager.test_connection("tiktok", providers)

    assert result == {"success": True, "message": "Client credentials accepted", "source": "database"}
    assert form_body(upstream.requests[0])["client_key"] == "ck"
    row = db_session.query(IntegrationSetting).filter_by(platform="tiktok").one()
    assert row.test_status == "success"
    assert row.last_tested_at is not None


@pytest.mark.asyncio
async def test_connection_test_records_failure(manager, db_session, providers, upstream):
    manager.save_settings("facebook", client_id="app-1", client_secret="bad-secret")
    upstream.add("GET", "https://graph.facebook.com/v23.0/app-1", status_code=400, json_body={
        "error": {"message": "Error validating client secret.", "code": 1},
    })

    result = await manager.test_connection("facebook", providers)

    assert result["success"] is False
    row = db_session.query(IntegrationSetting).filter_by(platform="facebook").one()
    assert row.test_status == "failed"
    assert "client secret" in row.test_error_message
