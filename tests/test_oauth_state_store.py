"""Tests for the database-backed OAuth state store"""
from datetime import timedelta

import pytest

from database_social_media import OAuthState
from utils.encryption import CIPHERTEXT_PREFIX
from utils.oauth_base import InvalidStateError
from utils.oauth_state_store import OAuthStateStore, get_state_store
from utils.time_utils import utc_now


@pytest.fixture
def store(db_session):
    return OAuthStateStore(db_session, ttl_seconds=600)


def test_create_and_consume(store):
    token = store.create("user-1", "x", code_verifier="verifier-123", redirect_uri="http://api.test/auth/x/callback")

    data = store.consume(token, "x")

    assert data.user_id == "user-1"
    assert data.provider == "x"
    assert data.code_verifier == "verifier-123"
    assert data.redirect_uri == "http://api.test/auth/x/callback"


def test_verifier_is_encrypted_at_rest(store, db_session):
    token = store.create("user-1", "x", code_verifier="verifier-123")

    row = db_session.query(OAuthState).filter(OAuthState.state == token).one()
    assert row.encrypted_code_verifier.startswith(CIPHERTEXT_PREFIX)
    assert "verifier-123" not in row.encrypted_code_verifier


def test_state_is_single_use(store, db_session):
    token = store.create("user-1", "tiktok")
    store.consume(token, "tiktok")

    with pytest.raises(InvalidStateError):
        store.consume(token, "tiktok")
    assert db_session.query(OAuthState).count() == 0


def test_wrong_provider_rejected_and_state_kept(store):
    token = store.create("user-1", "tiktok")

    with pytest.raises(InvalidStateError):
        store.consume(token, "youtube")

    assert store.consume(token, "tiktok").user_id == "user-1"


def test_expired_state_rejected(store, db_session):
    token = store.create("user-1", "tiktok")
    row = db_session.query(OAuthState).filter(OAuthState.state == token).one()
    row.expires_at = utc_now() - timedelta(seconds=1)
    db_session.commit()

    with pytest.raises(InvalidStateError):
        store.consume(token, "tiktok")


@pytest.mark.parametrize("token", [None, "", "never-issued"])
def test_unknown_tokens_rejected(store, token):
    with pytest.raises(InvalidStateError):
        store.consume(token, "tiktok")


def test_tokens_are_unique(store):
    assert store.create("user-1", "x") != store.create("user-1", "x")


def test_purge_expired(store, db_session):
    fresh = store.create("user-1", "tiktok")
    stale = store.create("user-2", "tiktok")
    row = db_session.query(OAuthState).filter(OAuthState.state == stale).one()
    row.expires_at = utc_now() - timedelta(minutes=1)
    db_session.commit()

    assert store.purge_expired() == 1
    assert [r.state for r in db_session.query(OAuthState).all()] == [fresh]


def test_default_backend_is_database(db_session):
    assert isinstance(get_state_store(db_session), OAuthStateStore)


def test_undecryptable_verifier_is_invalid_state_and_burned(store, db_session):
    token = store.create("user-1", "x", code_verifier="verifier-123")
    row = db_session.query(OAuthState).filter(OAuthState.state == token).one()
    row.encrypted_code_verifier = CIPHERTEXT_PREFIX + "written-with-another-key"
    db_session.commit()

    with pytest.raises(InvalidStateError):
        store.consume(token, "x")
    assert db_session.query(OAuthState).count() == 0
