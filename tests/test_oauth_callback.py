from __future__ import annotations

from urllib.parse import parse_qs, urlparse

from app.api.oauth_callback import CallbackState, OAuthCallbackFlow
from app.application.dto.auth import DeviceInfo
from app.application.services.device_session_manager import DeviceSessionManager
from app.application.use_cases.complete_social_login import CompleteSocialLoginUseCase
from app.domain.exceptions import InvalidCodeError
from app.infrastructure.security.oauth_state import JwtOAuthStateCodec
from tests.fakes import (
    FakeAccountsStore,
    FakeClock,
    FakeHasher,
    FakeIdentityProvider,
    FakeVerifier,
    decode_callback_payload,
)


FRONTEND = "http://localhost:3000"
CLIENT = DeviceInfo(ip_address="203.0.113.7", user_agent="Mozilla/5.0 (X11; Linux x86_64)")


def _flow(*, secret: str | None = "state-secret"):
    store = FakeAccountsStore()
    idp = FakeIdentityProvider()
    verifier = FakeVerifier()
    verifier.add("id-c", subject_id="sub-google", email="grace@example.com", name="Grace")
    codec = JwtOAuthStateCodec(secret=secret)
    use_case = CompleteSocialLoginUseCase(
        identity_provider=idp,
        token_verifier=verifier,
        user_port=store,
        session_manager=DeviceSessionManager(session_store=store, refresh_token_hasher=FakeHasher(), clock=FakeClock()),
        default_redirect_uri=f"{FRONTEND}/auth/callback",
    )
    flow = OAuthCallbackFlow(state_codec=codec, complete_social_login=use_case, frontend_url=f"{FRONTEND}/")
    return flow, codec, idp, store


def _query(url: str) -> dict[str, list[str]]:
    return parse_qs(urlparse(url).query)


def test_success_redirects_with_fragment_payload():
    flow, codec, idp, store = _flow()
    state = codec.issue(provider="google", redirect_uri="https://app.example/cb", device_id="device-browser-1")

    outcome = flow.handle(code="abc", state=state, error=None, error_description=None, client=CLIENT)

    assert outcome.state is CallbackState.SUCCEEDED
    prefix, _, data = outcome.redirect_url.partition("#data=")
    assert prefix == f"{FRONTEND}/auth/callback"
    payload = decode_callback_payload(data)
    assert payload["accessToken"] == "access-c"
    assert payload["user"]["email"] == "grace@example.com"
    assert payload["user"]["plan"] == "FREE"
    assert payload["session"] == {"deviceId": "device-browser-1"}
    assert "refreshToken" not in payload
    assert idp.calls[0][1]["redirect_uri"] == "https://app.example/cb"

    session = next(iter(store.sessions.values()))
    assert session.device_name == "Web Browser"
    assert session.ip_address == "203.0.113.7"


def test_provider_error_redirects_with_message():
    flow, _codec, idp, _store = _flow()

    outcome = flow.handle(code=None, state=None, error="access_denied", error_description=None, client=CLIENT)

    assert outcome.state is CallbackState.FAILED
    assert _query(outcome.redirect_url) == {
        "error": ["access_denied"],
        "message": ["Social sign-in was cancelled or failed"],
    }
    assert idp.calls == []


def test_missing_code_redirects():
    flow, codec, _idp, _store = _flow()
    state = codec.issue(provider="google", redirect_uri="r", device_id=None)

    outcome = flow.handle(code=None, state=state, error=None, error_description=None, client=CLIENT)

    assert outcome.error == "MissingCode"
    assert _query(outcome.redirect_url)["message"] == ["Authorization code is missing"]


def test_tampered_state_never_exchanges_code():
    flow, _codec, idp, _store = _flow()
    forged = JwtOAuthStateCodec(secret="attacker").issue(provider="google", redirect_uri="https://evil/cb", device_id=None)

    outcome = flow.handle(code="abc", state=forged, error=None, error_description=None, client=CLIENT)

    assert outcome.error == "InvalidState"
    assert idp.calls == []


def test_exchange_failure_redirects_with_generic_error():
    flow, codec, idp, store = _flow()
    idp.errors["exchange_authorization_code"] = InvalidCodeError()
    state = codec.issue(provider="google", redirect_uri="r", device_id=None)

    outcome = flow.handle(code="abc", state=state, error=None, error_description=None, client=CLIENT)

    assert outcome.state is CallbackState.FAILED
    assert _query(outcome.redirect_url) == {
        "error": ["AuthError"],
        "message": ["Authentication failed. Please try again."],
    }
    assert store.sessions == {}


def test_unsigned_state_mode_uses_default_redirect():
    flow, _codec, idp, store = _flow(secret=None)

    outcome = flow.handle(code="abc", state="opaque", error=None, error_description=None, client=CLIENT)

    assert outcome.state is CallbackState.SUCCEEDED
    assert idp.calls[0][1]["redirect_uri"] == f"{FRONTEND}/auth/callback"
    assert next(iter(store.sessions.values())).device_id.startswith("dev_")
