from __future__ import annotations

import json
import threading
import time

import httpx
import pytest

from app.client.auth_api_client import AuthApiClient, AuthApiError, ClientTokens, DeviceIdentity


class FakeBackend:
    def __init__(self, *, refresh_delay_seconds: float = 0.0):
        self.requests: list[httpx.Request] = []
        self.refresh_delay_seconds = refresh_delay_seconds
        self.valid_access_tokens = {"access-1"}
        self.refresh_count = 0
        self.refresh_status = 200
        self.assigned_device_id: str | None = None
        self._lock = threading.Lock()

    def handler(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)
        path = request.url.path

        if path == "/auth/signin":
            device_id = self.assigned_device_id or request.headers["X-Device-Id"]
            return httpx.Response(
                200,
                json={
                    "message": "Signed in successfully",
                    "user": {"id": "user-1", "email": "ada@example.com", "name": "Ada", "plan": "FREE"},
                    "tokens": {"accessToken": "access-1", "idToken": "id-1", "expiresIn": 3600, "refreshToken": "refresh-1"},
                    "session": {"deviceId": device_id, "deviceName": "Laptop"},
                },
            )

        if path == "/auth/refresh":
            if self.refresh_delay_seconds:
                time.sleep(self.refresh_delay_seconds)
            if self.refresh_status != 200:
                return httpx.Response(self.refresh_status, json={"error": "InvalidSession", "message": "Session expired"})
            with self._lock:
                self.refresh_count += 1
                token = f"access-r{self.refresh_count}"
                self.valid_access_tokens = {token}
            return httpx.Response(200, json={"tokens": {"accessToken": token, "idToken": "id-r", "expiresIn": 3600}})

        if path == "/auth/me":
            authorization = request.headers.get("Authorization", "")
            if authorization.removeprefix("Bearer ") not in self.valid_access_tokens:
                return httpx.Response(401, json={"error": "Unauthorized", "message": "Invalid or expired token"})
            return httpx.Response(200, json={"user": {"id": "user-1"}})

        return httpx.Response(404, json={"error": "NotFound", "message": "Not Found"})

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]


class ManualClock:
    def __init__(self, value: float = 1_000.0):
        self.value = value

    def __call__(self) -> float:
        return self.value


def _client(backend: FakeBackend, *, clock: ManualClock | None = None, device_path=None) -> AuthApiClient:
    return AuthApiClient(
        base_url="http://api.test",
        device=DeviceIdentity(device_id="dev_local-1", device_name="Laptop", device_type="web"),
        http_client=httpx.Client(base_url="http://api.test", transport=httpx.MockTransport(backend.handler)),
        clock=clock or ManualClock(),
        device_path=device_path,
    )


def test_sign_in_stores_tokens_and_sends_device_headers():
    backend = FakeBackend()
    client = _client(backend)

    client.sign_in(email="ada@example.com", password="Secret123!")

    assert client.tokens.access_token == "access-1"
    assert client.tokens.refresh_token == "refresh-1"
    assert client.tokens.expires_at == 4_600.0
    headers = backend.requests[0].headers
    assert headers["X-Device-Id"] == "dev_local-1"
    assert headers["X-Device-Type"] == "web"


def test_server_assigned_device_id_is_adopted_and_persisted(tmp_path):
    backend = FakeBackend()
    backend.assigned_device_id = "dev_server-9"
    path = tmp_path / "device.json"
    client = _client(backend, device_path=path)

    client.sign_in(email="ada@example.com", password="Secret123!")

    assert client.device.device_id == "dev_server-9"
    assert json.loads(path.read_text())["deviceId"] == "dev_server-9"


def test_unauthorized_request_refreshes_once_and_retries():
    backend = FakeBackend()
    client = _client(backend)
    client.sign_in(email="ada@example.com", password="Secret123!")
    backend.valid_access_tokens = set()

    response = client.request("GET", "/auth/me")

    assert response.status_code == 200
    assert backend.paths() == ["/auth/signin", "/auth/me", "/auth/refresh", "/auth/me"]
    assert backend.requests[-1].headers["Authorization"] == "Bearer access-r1"
    # the refresh token survives when the server does not rotate it
    assert client.tokens.refresh_token == "refresh-1"


def test_near_expiry_token_is_refreshed_before_sending():
    backend = FakeBackend()
    clock = ManualClock()
    client = _client(backend, clock=clock)
    client.sign_in(email="ada@example.com", password="Secret123!")

    clock.value += 3_590
    client.me()

    assert backend.paths() == ["/auth/signin", "/auth/refresh", "/auth/me"]


def test_concurrent_refreshes_share_one_exchange():
    backend = FakeBackend(refresh_delay_seconds=0.2)
    client = _client(backend)
    client.sign_in(email="ada@example.com", password="Secret123!")
    barrier = threading.Barrier(4)
    results: list[str] = []
    errors: list[BaseException] = []

    def _worker() -> None:
        try:
            barrier.wait()
            results.append(client.refresh(observed_access_token="access-1"))
        except BaseException as exc:  # collected for the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=_worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert results == ["access-r1"] * 4
    assert backend.paths().count("/auth/refresh") == 1


def test_rejected_refresh_clears_tokens():
    backend = FakeBackend()
    client = _client(backend)
    client.sign_in(email="ada@example.com", password="Secret123!")
    backend.refresh_status = 401

    with pytest.raises(AuthApiError) as exc_info:
        client.refresh()

    assert exc_info.value.status_code == 401
    assert exc_info.value.error == "InvalidSession"
    assert client.tokens is None


def test_refresh_without_tokens_requires_sign_in():
    client = _client(FakeBackend())

    with pytest.raises(AuthApiError) as exc_info:
        client.refresh()

    assert exc_info.value.error == "NotAuthenticated"


def test_stale_observer_gets_current_token_without_exchange():
    backend = FakeBackend()
    client = _client(backend)
    client.set_tokens(ClientTokens(access_token="access-new", id_token=None, refresh_token="r", expires_at=9_999.0))

    assert client.refresh(observed_access_token="access-old") == "access-new"
    assert backend.requests == []


def test_device_identity_is_created_once(tmp_path):
    path = tmp_path / "nested" / "device.json"

    created = DeviceIdentity.load_or_create(path, device_name="Ada's laptop", device_type="web")
    loaded = DeviceIdentity.load_or_create(path, device_name="ignored")

    assert created.device_id.startswith("dev_")
    assert loaded == created
    assert created.headers() == {
        "X-Device-Id": created.device_id,
        "X-Device-Name": "Ada's laptop",
        "X-Device-Type": "web",
    }
