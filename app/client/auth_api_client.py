from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass, replace
import json
import logging
from pathlib import Path
import platform
from threading import Lock
import time
from typing import Any, Callable, TypeVar

import httpx

from app.domain.services.device_policy import DEFAULT_DEVICE_NAME, generate_device_id


logger = logging.getLogger(__name__)

TFlightResult = TypeVar("TFlightResult")

DEFAULT_REFRESH_MARGIN_SECONDS = 60.0


class AuthApiError(RuntimeError):
    def __init__(self, *, status_code: int, error: str, message: str):
        self.status_code = status_code
        self.error = error
        self.message = message
        super().__init__(f"{status_code} {error}: {message}")


@dataclass(frozen=True)
class DeviceIdentity:
    device_id: str
    device_name: str
    device_type: str = "unknown"

    @classmethod
    def load_or_create(
        cls,
        path: str | Path,
        *,
        device_name: str | None = None,
        device_type: str = "unknown",
    ) -> DeviceIdentity:
        """Read the persisted identity, or create and persist a new one."""
        path = Path(path)
        if path.exists():
            data = json.loads(path.read_text(encoding="utf-8"))
            return cls(
                device_id=data["deviceId"],
                device_name=data.get("deviceName") or DEFAULT_DEVICE_NAME,
                device_type=data.get("deviceType") or device_type,
            )

        identity = cls(
            device_id=generate_device_id(),
            device_name=device_name or platform.node() or DEFAULT_DEVICE_NAME,
            device_type=device_type,
        )
        identity.save(path)
        return identity

    def save(self, path: str | Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "deviceId": self.device_id,
            "deviceName": self.device_name,
            "deviceType": self.device_type,
        }
        path.write_text(json.dumps(payload), encoding="utf-8")

    def headers(self) -> dict[str, str]:
        return {
            "X-Device-Id": self.device_id,
            "X-Device-Name": self.device_name,
            "X-Device-Type": self.device_type,
        }


@dataclass(frozen=True)
class ClientTokens:
    access_token: str
    id_token: str | None
    refresh_token: str
    expires_at: float


class SingleFlight:
    """At most one call in flight; callers arriving meanwhile share its outcome."""

    def __init__(self):
        self._lock = Lock()
        self._future: Future | None = None

    def run(self, fn: Callable[[], TFlightResult]) -> TFlightResult:
        with self._lock:
            future = self._future
            leader = future is None
            if leader:
                future = Future()
                self._future = future

        if not leader:
            return future.result()

        try:
            result = fn()
        except BaseException as exc:
            future.set_exception(exc)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            with self._lock:
                self._future = None


class AuthApiClient:
    def __init__(
        self,
        *,
        base_url: str,
        device: DeviceIdentity,
        http_client: httpx.Client | None = None,
        refresh_margin_seconds: float = DEFAULT_REFRESH_MARGIN_SECONDS,
        clock: Callable[[], float] = time.time,
        device_path: str | Path | None = None,
    ):
        self._http_client = http_client or httpx.Client(base_url=base_url, timeout=10.0)
        self._device = device
        self._device_path = device_path
        self._refresh_margin_seconds = refresh_margin_seconds
        self._clock = clock
        self._tokens: ClientTokens | None = None
        self._tokens_lock = Lock()
        self._refresh_flight = SingleFlight()

    @property
    def device(self) -> DeviceIdentity:
        return self._device

    @property
    def tokens(self) -> ClientTokens | None:
        with self._tokens_lock:
            return self._tokens

    def set_tokens(self, tokens: ClientTokens | None) -> None:
        with self._tokens_lock:
            self._tokens = tokens

    def close(self) -> None:
        self._http_client.close()

    def sign_up(self, *, email: str, password: str, name: str | None = None) -> dict[str, Any]:
        response = self._send("POST", "/auth/signup", json={"email": email, "password": password, "name": name})
        return self._json_or_raise(response)

    def verify(self, *, email: str, code: str) -> dict[str, Any]:
        response = self._send("POST", "/auth/verify", json={"email": email, "code": code})
        return self._json_or_raise(response)

    def sign_in(self, *, email: str, password: str) -> dict[str, Any]:
        response = self._send("POST", "/auth/signin", json={"email": email, "password": password})
        body = self._json_or_raise(response)
        self._store_tokens(body["tokens"], previous=None)
        self._adopt_device_id(body.get("session") or {})
        return body

    def complete_social_login(self, *, code: str, state: str | None = None, redirect_uri: str | None = None) -> dict[str, Any]:
        response = self._send(
            "POST",
            "/auth/callback",
            json={"code": code, "state": state, "redirectUri": redirect_uri},
        )
        body = self._json_or_raise(response)
        self._store_tokens(body["tokens"], previous=None)
        self._adopt_device_id(body.get("session") or {})
        return body

    def sign_out(self, *, all_devices: bool = False, device_id: str | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {"allDevices": all_devices}
        if device_id:
            payload["deviceId"] = device_id
        body = self._json_or_raise(self.request("POST", "/auth/signout", json=payload))
        if all_devices or not device_id or device_id == self._device.device_id:
            self.set_tokens(None)
        return body

    def list_sessions(self) -> list[dict[str, Any]]:
        return self._json_or_raise(self.request("GET", "/auth/sessions"))["sessions"]

    def me(self) -> dict[str, Any]:
        return self._json_or_raise(self.request("GET", "/auth/me"))["user"]

    def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Authorized request; refreshes once on a near-expiry token or a 401."""
        access_token = self._access_token_for_request()
        response = self._send(method, path, access_token=access_token, **kwargs)
        if response.status_code != 401 or access_token is None:
            return response

        logger.info("auth_api_client: unauthorized_retry path=%s", path)
        access_token = self.refresh(observed_access_token=access_token)
        return self._send(method, path, access_token=access_token, **kwargs)

    def refresh(self, *, observed_access_token: str | None = None) -> str:
        """Exchange the refresh token, sharing one in-flight exchange per client.

        A caller whose ``observed_access_token`` was already replaced gets the
        current token without another exchange.
        """

        def _exchange() -> str:
            current = self.tokens
            if current is None:
                raise AuthApiError(status_code=401, error="NotAuthenticated", message="Sign in first.")
            if observed_access_token is not None and current.access_token != observed_access_token:
                return current.access_token

            response = self._send("POST", "/auth/refresh", json={"refreshToken": current.refresh_token})
            if response.status_code == 401:
                self.set_tokens(None)
            body = self._json_or_raise(response)
            return self._store_tokens(body["tokens"], previous=current).access_token

        return self._refresh_flight.run(_exchange)

    def _access_token_for_request(self) -> str | None:
        current = self.tokens
        if current is None:
            return None
        if current.expires_at - self._clock() > self._refresh_margin_seconds:
            return current.access_token
        return self.refresh(observed_access_token=current.access_token)

    def _store_tokens(self, payload: dict[str, Any], *, previous: ClientTokens | None) -> ClientTokens:
        refresh_token = payload.get("refreshToken") or (previous.refresh_token if previous else None)
        if not refresh_token:
            raise AuthApiError(status_code=500, error="InvalidResponse", message="Response carried no refresh token.")
        tokens = ClientTokens(
            access_token=payload["accessToken"],
            id_token=payload.get("idToken"),
            refresh_token=refresh_token,
            expires_at=self._clock() + float(payload.get("expiresIn") or 0),
        )
        self.set_tokens(tokens)
        return tokens

    def _adopt_device_id(self, session: dict[str, Any]) -> None:
        assigned = session.get("deviceId")
        if not assigned or assigned == self._device.device_id:
            return
        logger.info("auth_api_client: device_id_reassigned previous=%s current=%s", self._device.device_id, assigned)
        self._device = replace(self._device, device_id=assigned)
        if self._device_path is not None:
            self._device.save(self._device_path)

    def _send(self, method: str, path: str, *, access_token: str | None = None, **kwargs: Any) -> httpx.Response:
        headers = dict(kwargs.pop("headers", None) or {})
        headers.update(self._device.headers())
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return self._http_client.request(method, path, headers=headers, **kwargs)

    def _json_or_raise(self, response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.status_code >= 400:
            raise AuthApiError(
                status_code=response.status_code,
                error=str(body.get("error") or "HttpError"),
                message=str(body.get("message") or response.reason_phrase),
            )
        return body
