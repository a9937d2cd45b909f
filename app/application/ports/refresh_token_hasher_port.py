from __future__ import annotations

from typing import Protocol


class RefreshTokenHasherPort(Protocol):
    def hash_refresh_token(self, *, refresh_token: str) -> str:
        ...
