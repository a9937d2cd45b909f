from __future__ import annotations

from urllib.parse import parse_qs, urlparse

from fastapi.testclient import TestClient
import pytest
from sqlalchemy.exc import IntegrityError

from app.api.deps import (
    get_accounts_repository,
    get_app_settings,
    get_device_session_manager,
    get_identity_provider,
    get_resume_stats,
    get_sign_up_use_case,
    get_state_codec,
    get_token_verifier,
    get_user_port,
)
from app.application.dto.auth import TokenSet
from app.application.services.device_session_manager import DeviceSessionManager
from app.domain.exceptions import InvalidCredentialsError, UpstreamError
from app.infrastructure.security.oauth_state import JwtOAuthStateCodec
from app.main import create_app
from app.shared.config import Settings
from tests.fakes import (
    FakeAccountsStore,
    FakeClock,
    FakeHasher,
    FakeIdentityProvider,
    FakeResumeStats,
    FakeVerifier,
    decode_callback_payload,
    make_settings,
)


FRONTEND = "http://localhost:3000"


class Api:
    def __init__(self, *, settings: Settings | None = None):
        self.settings = settings or make_settings()
        self.store = FakeAccountsStore()
        self.clock = FakeClock()
        self.idp = FakeIdentityProvider()
        self.verifier = FakeVerifier()
        self.verifier.add("id-1", subject_id="sub-1", email="ada@example.com", name="Ada")
        self.verifier.add("id-c", subject_id="sub-1", email="ada@example.com", name="Ada")
        self.verifier.add("access-1", subject_id="sub-1", email=None, token_use="access")
        self.verifier.add("access-c", subject_id="sub-1", email=None, token_use="access")
        self.resume_stats = FakeResumeStats()
        self.codec = JwtOAuthStateCodec(secret=self.settings.oauth_state_secret)
        self.manager = DeviceSessionManager(
            session_store=self.store,
            refresh_token_hasher=FakeHasher(),
            device_cap=self.settings.device_cap,
            clock=self.clock,
        )

        self.app = create_app()
        overrides = self.app.dependency_overrides
        overrides[get_app_settings] = lambda: self.settings
        overrides[get_accounts_repository] = lambda: self.store
        overrides[get_user_port] = lambda: self.store
        overrides[get_resume_stats] = lambda: self.resume_stats
        overrides[get_identity_provider] = lambda: self.idp
        overrides[get_token_verifier] = lambda: self.verifier
        overrides[get_state_codec] = lambda: self.codec
        overrides[get_device_session_manager] = lambda: self.manager

    def client(self, **kwargs) -> TestClient:
        return TestClient(self.app, **kwargs)

    def sign_in(self, client: TestClient, *, device_id: str = "device-A1") -> dict:
        response = client.post(
            "/auth/signin",
            json={"email": "ada@example.com", "password": "Secret123!"},
            headers={"X-Device-Id": device_id, "X-Device-Name": "Work laptop", "X-Device-Type": "web"},
        )
        assert response.status_code == 200, response.text
        return response.json()


@pytest.fixture()
def api() -> Api:
    return Api()


def _bearer(token: str = "access-1", **extra) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}", **extra}


def test_health():
    response = TestClient(create_app()).get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_sign_up_returns_camel_case_body(api: Api):
    response = api.client().post(
        "/auth/signup",
        json={"email": "ada@example.com", "password": "Secret123!", "name": "Ada"},
    )

    assert response.status_code == 201
    assert response.json() == {
        "message": "User registered successfully. Please check your email for verification code.",
        "userSub": "sub-new",
        "isConfirmed": False,
    }


def test_sign_up_validation_error_envelope(api: Api):
    response = api.client().post("/auth/signup", json={"email": "ada@example.com"})

    assert response.status_code == 400
    assert response.json() == {"error": "ValidationError", "message": "Email and password are required"}


def test_malformed_body_is_a_validation_error(api: Api):
    response = api.client().post("/auth/signup", json={"email": "x" * 300, "password": "Secret123!"})

    assert response.status_code == 400
    assert response.json()["error"] == "ValidationError"


def test_sign_in_response_shape(api: Api):
    body = api.sign_in(api.client())

    assert body["message"] == "Signed in successfully"
    assert body["user"]["email"] == "ada@example.com"
    assert body["user"]["plan"] == "FREE"
    assert body["tokens"] == {
        "accessToken": "access-1",
        "idToken": "id-1",
        "expiresIn": 3600,
        "refreshToken": "refresh-1",
    }
    assert body["session"] == {"deviceId": "device-A1", "deviceName": "Work laptop"}
    assert "removedDevices" not in body


def test_sign_in_lists_removed_devices(api: Api):
    client = api.client()
    for index, device_id in enumerate(("device-A1", "device-B1", "device-C1", "device-D1")):
        api.idp.login_tokens = TokenSet(
            access_token="access-1", id_token="id-1", refresh_token=f"refresh-{index}", expires_in=3600
        )
        api.clock.advance(minutes=1)
        body = api.sign_in(client, device_id=device_id)

    assert [device["deviceName"] for device in body["removedDevices"]] == ["Work laptop"]
    assert "lastActive" in body["removedDevices"][0]


def test_sign_in_bad_credentials(api: Api):
    api.idp.errors["password_login"] = InvalidCredentialsError()

    response = api.client().post("/auth/signin", json={"email": "ada@example.com", "password": "nope"})

    assert response.status_code == 401
    assert response.json() == {"error": "InvalidCredentials", "message": "Incorrect email or password."}


def test_refresh_flow(api: Api):
    client = api.client()
    api.sign_in(client)

    response = client.post("/auth/refresh", json={"refreshToken": "refresh-1"})

    assert response.status_code == 200
    assert response.json() == {
        "message": "Tokens refreshed successfully",
        "tokens": {"accessToken": "access-2", "idToken": "id-2", "expiresIn": 3600},
    }


def test_refresh_with_unknown_token(api: Api):
    response = api.client().post("/auth/refresh", json={"refreshToken": "nope"})

    assert response.status_code == 401
    assert response.json()["error"] == "InvalidSession"


def test_refresh_during_provider_outage_is_unauthorized(api: Api):
    client = api.client()
    api.sign_in(client)
    api.idp.errors["refresh"] = UpstreamError()

    response = client.post("/auth/refresh", json={"refreshToken": "refresh-1"})

    assert response.status_code == 401
    assert response.json() == {"error": "RefreshError", "message": "Failed to refresh tokens. Please sign in again."}
    assert len(api.store.active_sessions(api.store.get_user_by_external_subject(external_subject_id="sub-1").id)) == 1


def test_protected_routes_require_bearer(api: Api):
    client = api.client()

    for method, path in (("GET", "/auth/sessions"), ("GET", "/auth/me"), ("POST", "/auth/signout")):
        response = client.request(method, path)
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized", "message": "Invalid or expired token"}

    response = client.get("/auth/sessions", headers=_bearer("forged"))
    assert response.status_code == 401


def test_list_sessions_marks_current_device(api: Api):
    client = api.client()
    api.sign_in(client, device_id="device-A1")
    api.idp.login_tokens = TokenSet(access_token="access-1", id_token="id-1", refresh_token="refresh-b", expires_in=3600)
    api.clock.advance(minutes=1)
    api.sign_in(client, device_id="device-B1")

    response = client.get("/auth/sessions", headers=_bearer(**{"X-Device-Id": "device-A1"}))

    assert response.status_code == 200
    sessions = response.json()["sessions"]
    assert [(item["deviceId"], item["isCurrent"]) for item in sessions] == [
        ("device-B1", False),
        ("device-A1", True),
    ]
    assert set(sessions[0]) == {"id", "deviceId", "deviceName", "deviceType", "lastActive", "createdAt", "isCurrent"}


def test_sign_out_without_body_revokes_current_device(api: Api):
    client = api.client()
    api.sign_in(client, device_id="device-A1")

    response = client.post("/auth/signout", headers=_bearer(**{"X-Device-Id": "device-A1"}))

    assert response.status_code == 200
    assert response.json() == {"message": "Signed out successfully"}
    assert api.store.active_sessions(next(iter(api.store.users))) == []


def test_sign_out_all_devices(api: Api):
    client = api.client()
    api.sign_in(client, device_id="device-A1")
    api.idp.login_tokens = TokenSet(access_token="access-1", id_token="id-1", refresh_token="refresh-b", expires_in=3600)
    api.sign_in(client, device_id="device-B1")

    response = client.post("/auth/signout", json={"allDevices": True}, headers=_bearer())

    assert response.json() == {"message": "Signed out from all 2 devices"}


def test_sign_out_unknown_device_is_404(api: Api):
    client = api.client()
    api.sign_in(client)

    response = client.post("/auth/signout", json={"deviceId": "device-Z9"}, headers=_bearer())

    assert response.status_code == 404
    assert response.json()["error"] == "SessionNotFound"


def test_social_login_url(api: Api):
    client = api.client()

    bad = client.get("/auth/social/myspace")
    good = client.get("/auth/social/google", headers={"X-Device-Id": "device-A1"})

    assert bad.status_code == 400
    assert bad.json() == {"error": "InvalidProvider", "message": "Provider must be 'google' or 'facebook'"}
    assert good.status_code == 200
    assert api.codec.verify(state=good.json()["state"]).device_id == "device-A1"


def test_browser_callback_redirects_to_frontend(api: Api):
    client = api.client()
    state = api.codec.issue(provider="google", redirect_uri=f"{FRONTEND}/auth/callback", device_id="device-A1")

    response = client.get("/auth/callback", params={"code": "abc", "state": state}, follow_redirects=False)

    assert response.status_code == 302
    location = response.headers["location"]
    assert location.startswith(f"{FRONTEND}/auth/callback#data=")
    payload = decode_callback_payload(location.split("#data=", 1)[1])
    assert payload["session"]["deviceId"] == "device-A1"


def test_browser_callback_error_redirects(api: Api):
    response = api.client().get(
        "/auth/callback",
        params={"error": "access_denied", "error_description": "User cancelled"},
        follow_redirects=False,
    )

    assert response.status_code == 302
    query = parse_qs(urlparse(response.headers["location"]).query)
    assert query == {"error": ["access_denied"], "message": ["User cancelled"]}


def test_api_callback_returns_sign_in_shape(api: Api):
    response = api.client().post("/auth/callback", json={"code": "abc"}, headers={"X-Device-Id": "device-M1"})

    assert response.status_code == 200
    body = response.json()
    assert body["tokens"]["refreshToken"] == "refresh-c"
    assert body["session"]["deviceId"] == "device-M1"


def test_api_callback_failure_hides_upstream_detail(api: Api):
    api.idp.errors["exchange_authorization_code"] = UpstreamError("raw provider text")

    response = api.client().post("/auth/callback", json={"code": "abc"})

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "SocialAuthError"
    assert body["message"] == "Social authentication failed."
    assert body["errorId"]


def test_api_callback_storage_failure_is_a_social_auth_error(api: Api):
    def _conflict(*, session):
        raise IntegrityError("INSERT INTO public.device_sessions", {}, Exception("device_id already exists"))

    api.store.insert_session = _conflict

    response = api.client().post("/auth/callback", json={"code": "abc"})

    assert response.status_code == 500
    assert response.json()["error"] == "SocialAuthError"


def test_api_callback_requires_code(api: Api):
    response = api.client().post("/auth/callback", json={})

    assert response.status_code == 400
    assert response.json()["message"] == "Authorization code is required"


def test_me_returns_stats(api: Api):
    client = api.client()
    user_id = api.sign_in(client)["user"]["id"]
    api.resume_stats.counts[user_id] = 2

    response = client.get("/auth/me", headers=_bearer())

    assert response.status_code == 200
    user = response.json()["user"]
    assert user["id"] == user_id
    assert user["stats"] == {"resumeCount": 2, "activeDevices": 1}
    assert "createdAt" in user


def test_me_for_unknown_local_user_is_404(api: Api):
    response = api.client().get("/auth/me", headers=_bearer())

    assert response.status_code == 404
    assert response.json()["error"] == "UserNotFound"


def test_provisioning_webhook_checks_secret(api: Api):
    client = api.client()
    payload = {"cognitoId": "sub-7", "email": "new@example.com", "name": "New"}

    denied = client.post("/auth/cognito-webhook", json=payload, headers={"X-Webhook-Secret": "wrong"})
    accepted = client.post("/auth/cognito-webhook", json=payload, headers={"X-Webhook-Secret": "hook-secret"})

    assert denied.status_code == 401
    assert accepted.status_code == 200
    assert accepted.json()["message"] == "User provisioned"
    assert api.store.get_user_by_external_subject(external_subject_id="sub-7").id == accepted.json()["userId"]


def test_provisioning_webhook_disabled_without_secret():
    api = Api(settings=make_settings(provisioning_webhook_secret=""))

    response = api.client().post("/auth/cognito-webhook", json={"cognitoId": "sub-7", "email": "a@example.com"})

    assert response.status_code == 404


def test_unexpected_error_is_a_generic_500(api: Api):
    class Exploding:
        def execute(self, command):
            raise RuntimeError("database password is hunter2")

    api.app.dependency_overrides[get_sign_up_use_case] = lambda: Exploding()

    response = api.client(raise_server_exceptions=False).post(
        "/auth/signup",
        json={"email": "ada@example.com", "password": "Secret123!"},
    )

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "InternalError"
    assert body["message"] == "Unexpected error."
    assert "hunter2" not in response.text


def test_unknown_route_uses_error_envelope(api: Api):
    response = api.client().get("/auth/nope")

    assert response.status_code == 404
    assert response.json() == {"error": "NotFound", "message": "Not Found"}
