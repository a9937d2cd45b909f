from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

import jwt

from app.application.dto.auth import OAuthState
from app.application.ports.oauth_state_port import OAuthStatePort
from app.domain.exceptions import InvalidStateError


_STATE_AUDIENCE = "oauth-state"


class JwtOAuthStateCodec(OAuthStatePort):
    """Signed, short-lived OAuth ``state`` values.

    With no secret configured the state is an opaque random value and carries
    nothing back to the callback.
    """

    def __init__(self, *, secret: str | None, ttl_seconds: int = 600):
        self._secret = secret or None
        self._ttl_seconds = ttl_seconds

    def issue(self, *, provider: str, redirect_uri: str, device_id: str | None) -> str:
        if self._secret is None:
            return secrets.token_urlsafe(24)

        now = datetime.now(timezone.utc)
        payload = {
            "aud": _STATE_AUDIENCE,
            "provider": provider,
            "redirect_uri": redirect_uri,
            "nonce": secrets.token_urlsafe(16),
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=self._ttl_seconds)).timestamp()),
        }
        if device_id:
            payload["did"] = device_id
        return jwt.encode(payload, self._secret, algorithm="HS256")

    def verify(self, *, state: str | None) -> OAuthState:
        if self._secret is None:
            return OAuthState(provider=None, redirect_uri=None, device_id=None)
        if not state:
            raise InvalidStateError("Missing OAuth state.")

        try:
            payload = jwt.decode(
                state,
                self._secret,
                algorithms=["HS256"],
                audience=_STATE_AUDIENCE,
                options={"require": ["exp", "nonce"]},
            )
        except jwt.PyJWTError as exc:
            raise InvalidStateError() from exc

        return OAuthState(
            provider=payload.get("provider"),
            redirect_uri=payload.get("redirect_uri"),
            device_id=payload.get("did"),
        )
