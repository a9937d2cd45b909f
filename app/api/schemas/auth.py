from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SignUpRequest(CamelModel):
    email: str | None = Field(default=None, max_length=255)
    password: str | None = Field(default=None, max_length=256)
    name: str | None = Field(default=None, max_length=120)


class SignUpResponse(CamelModel):
    message: str
    user_sub: str
    is_confirmed: bool


class VerifyRequest(CamelModel):
    email: str | None = Field(default=None, max_length=255)
    code: str | None = Field(default=None, max_length=32)


class MessageResponse(CamelModel):
    message: str


class SignInRequest(CamelModel):
    email: str | None = Field(default=None, max_length=255)
    password: str | None = Field(default=None, max_length=256)


class UserSummary(CamelModel):
    id: str
    email: str
    name: str
    plan: str


class TokensResponse(CamelModel):
    access_token: str
    id_token: str
    expires_in: int
    refresh_token: str | None = None


class SessionSummary(CamelModel):
    device_id: str
    device_name: str


class RemovedDevice(CamelModel):
    device_name: str
    last_active: datetime


class SignInResponse(CamelModel):
    message: str = "Signed in successfully"
    user: UserSummary
    tokens: TokensResponse
    session: SessionSummary
    removed_devices: list[RemovedDevice] | None = None


class RefreshRequest(CamelModel):
    refresh_token: str | None = None


class RefreshResponse(CamelModel):
    message: str = "Tokens refreshed successfully"
    tokens: TokensResponse


class SignOutRequest(CamelModel):
    all_devices: bool = False
    device_id: str | None = Field(default=None, max_length=128)


class SessionItem(CamelModel):
    id: str
    device_id: str
    device_name: str
    device_type: str
    last_active: datetime
    created_at: datetime
    is_current: bool


class SessionsResponse(CamelModel):
    sessions: list[SessionItem]


class SocialLoginUrlResponse(CamelModel):
    url: str
    state: str


class SocialCallbackRequest(CamelModel):
    code: str | None = None
    state: str | None = None
    redirect_uri: str | None = None


class MeStats(CamelModel):
    resume_count: int
    active_devices: int


class MeUser(UserSummary):
    created_at: datetime
    stats: MeStats


class MeResponse(CamelModel):
    user: MeUser


class ProvisionUserRequest(CamelModel):
    cognito_id: str | None = None
    email: str | None = None
    name: str | None = None


class ProvisionUserResponse(CamelModel):
    message: str
    user_id: str


class HealthResponse(CamelModel):
    status: str = "ok"
