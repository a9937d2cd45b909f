from __future__ import annotations

import hashlib

from app.application.ports.refresh_token_hasher_port import RefreshTokenHasherPort


class Sha256RefreshTokenHasher(RefreshTokenHasherPort):
    def hash_refresh_token(self, *, refresh_token: str) -> str:
        return hashlib.sha256(refresh_token.encode("utf-8")).hexdigest()
