"""Tests for connection persistence"""
from datetime import timedelta

import pytest

from database_social_media import SocialConnection
from utils.encryption import CIPHERTEXT_PREFIX
from utils.oauth_base import TokenSet
from utils.social_connection_manager import SocialConnectionManager
from utils.time_utils import utc_now


@pytest.fixture
def manager(db_session):
    return SocialConnectionManager(db_session)


def token_set(access="act.1", refresh="rft.1", expires_in=86400):
    return TokenSet(access_token=access, refresh_token=refresh, expires_in=expires_in, scope="user.info.basic")


def test_upsert_creates_encrypted_connection(manager, db_session):
    connection = manager.upsert_connection(
        "user-1", "tiktok", token_set(), platform_user_id="open-1", profile_data={"display_name": "Jordan"}
    )

    assert connection.encrypted_access_token.startswith(CIPHERTEXT_PREFIX)
    assert "act.1" not in connection.encrypted_access_token
    assert manager.get_access_token(connection) == "act.1"
    assert manager.get_refresh_token(connection) == "rft.1"
    assert connection.platform_user_id == "open-1"
    assert connection.token_issued_at is not None
    assert timedelta(hours=23, minutes=59) < connection.expires_at - utc_now() <= timedelta(hours=24)


def test_upsert_twice_keeps_one_row_with_latest_profile(manager, db_session):
    manager.upsert_connection("user-1", "tiktok", token_set("act.1"), profile_data={"display_name": "Jordan"})
    manager.upsert_connection("user-1", "tiktok", token_set("act.2"), profile_data={"display_name": "Jordan R."})

    rows = db_session.query(SocialConnection).filter_by(user_id="user-1", platform="tiktok").all()
    assert len(rows) == 1
    assert manager.get_access_token(rows[0]) == "act.2"
    assert rows[0].profile_data == {"display_name": "Jordan R."}


def test_reauthorization_without_refresh_token_keeps_stored_one(manager):
    manager.upsert_connection("user-1", "youtube", token_set("ya29.old", "1//refresh", 3600))
    manager.disconnect("user-1", "youtube")

    connection = manager.upsert_connection("user-1", "youtube", token_set("ya29.new", None, 3599))

    assert manager.get_access_token(connection) == "ya29.new"
    assert manager.get_refresh_token(connection) == "1//refresh"


def test_upsert_reactivates_and_clears_reconnect(manager):
    connection = manager.upsert_connection("user-1", "youtube", token_set())
    manager.mark_needs_reconnect(connection, "invalid_grant")
    manager.disconnect("user-1", "youtube")

    connection = manager.upsert_connection("user-1", "youtube", token_set("ya29.new"))

    assert connection.is_active is True
    assert connection.needs_reconnect is False
    assert connection.last_error is None


def test_upsert_keeps_profile_when_none_fetched(manager):
    manager.upsert_connection("user-1", "x", token_set(), profile_data={"username": "jordan"})
    connection = manager.upsert_connection("user-1", "x", token_set("x-2"), profile_data=None)

    assert connection.profile_data == {"username": "jordan"}


def test_null_expiry_is_stored_as_null(manager):
    connection = manager.upsert_connection("user-1", "facebook", token_set(refresh=None, expires_in=None))

    assert connection.expires_at is None
    assert connection.encrypted_refresh_token is None


def test_update_tokens_keeps_refresh_token_when_not_rotated(manager):
    connection = manager.upsert_connection("user-1", "youtube", token_set("ya29.old", "1//refresh", 3600))

    manager.update_tokens(connection, TokenSet(access_token="ya29.new", expires_in=3599))

    assert manager.get_access_token(connection) == "ya29.new"
    assert manager.get_refresh_token(connection) == "1//refresh"
    assert connection.last_refreshed_at is not None


def test_update_tokens_stores_rotated_refresh_token(manager):
    connection = manager.upsert_connection("user-1", "tiktok", token_set("act.1", "rft.1"))

    manager.update_tokens(connection, token_set("act.2", "rft.2"))

    assert manager.get_refresh_token(connection) == "rft.2"


def test_legacy_plaintext_tokens_are_readable(manager, db_session):
    connection = manager.upsert_connection("user-1", "tiktok", token_set())
    connection.encrypted_access_token = "legacy-plaintext"
    db_session.commit()

    assert manager.get_access_token(connection) == "legacy-plaintext"


def test_soft_disconnect(manager, db_session):
    manager.upsert_connection("user-1", "tiktok", token_set())

    assert manager.disconnect("user-1", "tiktok") is True
    assert manager.get_connection("user-1", "tiktok") is None
    assert manager.get_connection("user-1", "tiktok", active_only=False) is not None
    assert manager.disconnect("user-1", "tiktok") is False


def test_permanent_disconnect(manager, db_session):
    manager.upsert_connection("user-1", "tiktok", token_set())

    assert manager.disconnect("user-1", "tiktok", permanent=True) is True
    assert db_session.query(SocialConnection).count() == 0


def test_to_dict_has_no_tokens(manager):
    connection = manager.upsert_connection("user-1", "tiktok", token_set())

    data = manager.to_dict(connection)

    assert data["has_refresh_token"] is True
    assert "act.1" not in str(data)
    assert "encrypted_access_token" not in data


def test_connections_are_per_user(manager):
    manager.upsert_connection("user-1", "tiktok", token_set())
    manager.upsert_connection("user-2", "tiktok", token_set())
    manager.upsert_connection("user-1", "x", token_set())

    assert {c.platform for c in manager.get_all_connections("user-1")} == {"tiktok", "x"}
