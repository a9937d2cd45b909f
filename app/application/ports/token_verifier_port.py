from __future__ import annotations

from typing import Protocol

from app.application.dto.auth import VerifiedToken


class TokenVerifierPort(Protocol):
    def verify(self, *, token: str) -> VerifiedToken:
        ...
