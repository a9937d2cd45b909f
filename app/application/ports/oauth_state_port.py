from __future__ import annotations

from typing import Protocol

from app.application.dto.auth import OAuthState


class OAuthStatePort(Protocol):
    def issue(self, *, provider: str, redirect_uri: str, device_id: str | None) -> str:
        ...

    def verify(self, *, state: str | None) -> OAuthState:
        ...
