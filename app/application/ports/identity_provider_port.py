from __future__ import annotations

from typing import Protocol

from app.application.dto.auth import (
    ExternalIdentity,
    RefreshedTokens,
    SignUpResult,
    TokenSet,
)


class IdentityProviderPort(Protocol):
    def sign_up(self, *, email: str, password: str, name: str) -> SignUpResult:
        ...

    def confirm_sign_up(self, *, email: str, code: str) -> None:
        ...

    def password_login(self, *, email: str, password: str) -> TokenSet:
        ...

    def refresh(self, *, refresh_token: str, username: str | None = None) -> RefreshedTokens:
        ...

    def revoke_all(self, *, access_token: str) -> None:
        ...

    def get_user(self, *, access_token: str) -> ExternalIdentity:
        ...

    def build_authorization_url(self, *, provider: str, redirect_uri: str, state: str) -> str:
        ...

    def exchange_authorization_code(self, *, code: str, redirect_uri: str) -> TokenSet:
        ...
