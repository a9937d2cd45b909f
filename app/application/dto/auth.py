from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from app.domain.entities.device_session import DeviceSession
from app.domain.entities.user import User


@dataclass(frozen=True)
class TokenSet:
    access_token: str
    id_token: str
    refresh_token: str
    expires_in: int


@dataclass(frozen=True)
class RefreshedTokens:
    access_token: str
    id_token: str
    expires_in: int
    # only set when the provider rotates refresh tokens
    refresh_token: str | None = None


@dataclass(frozen=True)
class SignUpResult:
    external_subject_id: str
    is_confirmed: bool


@dataclass(frozen=True)
class ExternalIdentity:
    subject_id: str
    email: str
    name: str | None


@dataclass(frozen=True)
class VerifiedToken:
    subject_id: str
    email: str | None
    token_use: str | None
    claims: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Authenticated:
    subject_id: str
    email: str | None
    claims: dict[str, Any]
    access_token: str


@dataclass(frozen=True)
class Rejected:
    reason: str


AuthResult = Authenticated | Rejected


@dataclass(frozen=True)
class DeviceInfo:
    device_id: str | None = None
    device_name: str | None = None
    device_type: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class SignUpInput:
    email: str | None
    password: str | None
    name: str | None


@dataclass(frozen=True)
class SignUpOutput:
    user_sub: str
    is_confirmed: bool


@dataclass(frozen=True)
class ConfirmSignUpInput:
    email: str | None
    code: str | None


@dataclass(frozen=True)
class SignInInput:
    email: str | None
    password: str | None
    device: DeviceInfo


@dataclass(frozen=True)
class CompleteSocialLoginInput:
    code: str | None
    redirect_uri: str | None
    device: DeviceInfo


@dataclass(frozen=True)
class SignInOutput:
    user: User
    tokens: TokenSet
    session: DeviceSession
    removed_sessions: list[DeviceSession]


@dataclass(frozen=True)
class RefreshSessionInput:
    refresh_token: str | None


@dataclass(frozen=True)
class RefreshSessionOutput:
    tokens: RefreshedTokens
    session: DeviceSession


@dataclass(frozen=True)
class SignOutInput:
    user: User
    access_token: str
    all_devices: bool
    device_id: str | None
    current_device_id: str | None


@dataclass(frozen=True)
class SignOutOutput:
    message: str
    revoked_count: int
    device_name: str | None = None


@dataclass(frozen=True)
class SocialLoginUrlInput:
    provider: str
    redirect_uri: str | None
    device_id: str | None


@dataclass(frozen=True)
class SocialLoginUrlOutput:
    url: str
    state: str


@dataclass(frozen=True)
class OAuthState:
    provider: str | None
    redirect_uri: str | None
    device_id: str | None


@dataclass(frozen=True)
class ProvisionUserInput:
    external_subject_id: str | None
    email: str | None
    name: str | None
