"""Tests for signed state values and PKCE helpers"""
import base64
import hashlib
import json
import time

import pytest

from utils.oauth_state import (
    SignedStateCodec,
    build_code_challenge,
    build_state_payload,
    generate_pkce_pair,
)


@pytest.fixture
def codec():
    return SignedStateCodec("test-state-signing-secret")


def test_round_trip(codec):
    payload = build_state_payload("user-1", code_verifier="verifier", redirect_uri="http://api.test/cb")

    decoded = codec.decode(codec.encode(payload))

    assert decoded == payload
    assert decoded["user_id"] == "user-1"


def test_encoding_is_deterministic(codec):
    payload = {"b": 2, "a": 1}
    assert codec.encode(payload) == codec.encode({"a": 1, "b": 2})


def test_state_has_two_unpadded_base64url_segments(codec):
    state = codec.encode({"user_id": "user-1"})
    payload_segment, signature = state.split(".")

    assert "=" not in state
    assert json.loads(base64.urlsafe_b64decode(payload_segment + "=" * (-len(payload_segment) % 4))) == {
        "user_id": "user-1"
    }
    assert len(signature) == 43


def test_tampered_payload_rejected(codec):
    state = codec.encode({"user_id": "user-1"})
    _, signature = state.split(".")
    forged_payload = base64.urlsafe_b64encode(b'{"user_id":"attacker"}').decode().rstrip("=")

    assert codec.decode(f"{forged_payload}.{signature}") is None


def test_other_secret_rejected(codec):
    state = SignedStateCodec("another-secret").encode({"user_id": "user-1"})
    assert codec.decode(state) is None


@pytest.mark.parametrize(
    "state",
    [None, 42, "", "no-dot", ".", "abc.", ".abc", "!!!.???", "abc.déf"],
)
def test_malformed_states_return_none(codec, state):
    assert codec.decode(state) is None


def test_signed_non_object_payload_rejected(codec):
    assert codec.decode(codec.encode([1, 2, 3])) is None


def test_freshness_only_checked_when_requested(codec):
    old = {"user_id": "user-1", "timestamp": int(time.time() * 1000) - 3_600_000}
    state = codec.encode(old)

    assert codec.decode(state) == old
    assert codec.decode(state, max_age_seconds=600) is None
    assert codec.decode(state, max_age_seconds=7200) == old


def test_freshness_requires_timestamp(codec):
    assert codec.decode(codec.encode({"user_id": "user-1"}), max_age_seconds=600) is None


def test_empty_secret_rejected():
    with pytest.raises(ValueError):
        SignedStateCodec("")


def test_pkce_pair():
    verifier, challenge = generate_pkce_pair()

    assert 43 <= len(verifier) <= 128
    expected = base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest()).decode().rstrip("=")
    assert challenge == expected
    assert generate_pkce_pair()[0] != verifier


def test_code_challenge_matches_rfc_7636_example():
    assert (
        build_code_challenge("dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk")
        == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"
    )


def test_configured_codec_round_trips():
    from utils.oauth_state import get_state_codec

    codec = get_state_codec()
    state = codec.encode(build_state_payload("user-1"))
    assert codec.decode(state, max_age_seconds=600)["user_id"] == "user-1"
