from __future__ import annotations

import time

import jwt
import pytest

from app.domain.exceptions import InvalidStateError
from app.infrastructure.security.oauth_state import JwtOAuthStateCodec


def test_state_round_trips_provider_redirect_and_device():
    codec = JwtOAuthStateCodec(secret="state-secret")

    state = codec.issue(provider="google", redirect_uri="http://localhost:3000/cb", device_id="device-A1")
    carried = codec.verify(state=state)

    assert (carried.provider, carried.redirect_uri, carried.device_id) == (
        "google",
        "http://localhost:3000/cb",
        "device-A1",
    )


def test_states_are_unique():
    codec = JwtOAuthStateCodec(secret="state-secret")

    first = codec.issue(provider="google", redirect_uri="r", device_id=None)
    second = codec.issue(provider="google", redirect_uri="r", device_id=None)

    assert first != second
    assert codec.verify(state=first).device_id is None


def test_state_signed_with_other_secret_is_rejected():
    forged = JwtOAuthStateCodec(secret="other").issue(provider="google", redirect_uri="r", device_id="device-A1")

    with pytest.raises(InvalidStateError):
        JwtOAuthStateCodec(secret="state-secret").verify(state=forged)


def test_expired_state_is_rejected():
    now = int(time.time())
    expired = jwt.encode(
        {"aud": "oauth-state", "nonce": "n", "iat": now - 1200, "exp": now - 600},
        "state-secret",
        algorithm="HS256",
    )

    with pytest.raises(InvalidStateError):
        JwtOAuthStateCodec(secret="state-secret").verify(state=expired)


@pytest.mark.parametrize("state", [None, "", "garbage"])
def test_missing_or_malformed_state_is_rejected(state):
    with pytest.raises(InvalidStateError):
        JwtOAuthStateCodec(secret="state-secret").verify(state=state)


def test_unsigned_mode_issues_opaque_state_and_carries_nothing():
    codec = JwtOAuthStateCodec(secret=None)

    state = codec.issue(provider="google", redirect_uri="r", device_id="device-A1")
    carried = codec.verify(state=state)

    assert "." not in state
    assert carried.device_id is None
    assert codec.verify(state=None).redirect_uri is None
