from __future__ import annotations

import hmac

from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import RedirectResponse

from app.api.deps import (
    get_app_settings,
    get_complete_social_login_use_case,
    get_confirm_sign_up_use_case,
    get_current_principal,
    get_current_user,
    get_device_info,
    get_get_me_use_case,
    get_list_sessions_use_case,
    get_oauth_callback_flow,
    get_provision_user_use_case,
    get_refresh_session_use_case,
    get_sign_in_use_case,
    get_sign_out_use_case,
    get_sign_up_use_case,
    get_social_login_url_use_case,
)
from app.api.oauth_callback import OAuthCallbackFlow
from app.api.schemas.auth import (
    MeResponse,
    MeStats,
    MeUser,
    MessageResponse,
    ProvisionUserRequest,
    ProvisionUserResponse,
    RefreshRequest,
    RefreshResponse,
    RemovedDevice,
    SessionItem,
    SessionsResponse,
    SessionSummary,
    SignInRequest,
    SignInResponse,
    SignOutRequest,
    SignUpRequest,
    SignUpResponse,
    SocialCallbackRequest,
    SocialLoginUrlResponse,
    TokensResponse,
    UserSummary,
    VerifyRequest,
)
from app.application.dto.auth import (
    Authenticated,
    CompleteSocialLoginInput,
    ConfirmSignUpInput,
    DeviceInfo,
    ProvisionUserInput,
    RefreshSessionInput,
    SignInInput,
    SignInOutput,
    SignOutInput,
    SignUpInput,
    SocialLoginUrlInput,
)
from app.application.use_cases.complete_social_login import CompleteSocialLoginUseCase
from app.application.use_cases.confirm_sign_up import ConfirmSignUpUseCase
from app.application.use_cases.get_me import GetMeUseCase
from app.application.use_cases.list_sessions import ListSessionsUseCase
from app.application.use_cases.provision_user import ProvisionUserUseCase
from app.application.use_cases.refresh_session import RefreshSessionUseCase
from app.application.use_cases.sign_in import SignInUseCase
from app.application.use_cases.sign_out import SignOutUseCase
from app.application.use_cases.sign_up import SignUpUseCase
from app.application.use_cases.social_login_url import SocialLoginUrlUseCase
from app.domain.entities.user import User
from app.domain.exceptions import AuthenticationError, NotFoundError
from app.shared.config import Settings


router = APIRouter(prefix="/auth")


def _user_summary(user: User) -> UserSummary:
    return UserSummary(id=user.id, email=user.email, name=user.name, plan=user.plan.value)


def _sign_in_response(output: SignInOutput) -> SignInResponse:
    removed = [
        RemovedDevice(device_name=session.device_name, last_active=session.last_active)
        for session in output.removed_sessions
    ]
    return SignInResponse(
        user=_user_summary(output.user),
        tokens=TokensResponse(
            access_token=output.tokens.access_token,
            id_token=output.tokens.id_token,
            expires_in=output.tokens.expires_in,
            refresh_token=output.tokens.refresh_token,
        ),
        session=SessionSummary(
            device_id=output.session.device_id,
            device_name=output.session.device_name,
        ),
        removed_devices=removed or None,
    )


@router.post("/signup", response_model=SignUpResponse, status_code=201)
def sign_up(
    req: SignUpRequest,
    use_case: SignUpUseCase = Depends(get_sign_up_use_case),
):
    output = use_case.execute(SignUpInput(email=req.email, password=req.password, name=req.name))
    return SignUpResponse(
        message="User registered successfully. Please check your email for verification code.",
        user_sub=output.user_sub,
        is_confirmed=output.is_confirmed,
    )


@router.post("/verify", response_model=MessageResponse)
def verify(
    req: VerifyRequest,
    use_case: ConfirmSignUpUseCase = Depends(get_confirm_sign_up_use_case),
):
    use_case.execute(ConfirmSignUpInput(email=req.email, code=req.code))
    return MessageResponse(message="Email verified successfully. You can now sign in.")


@router.post("/signin", response_model=SignInResponse, response_model_exclude_none=True)
def sign_in(
    req: SignInRequest,
    device: DeviceInfo = Depends(get_device_info),
    use_case: SignInUseCase = Depends(get_sign_in_use_case),
):
    output = use_case.execute(SignInInput(email=req.email, password=req.password, device=device))
    return _sign_in_response(output)


@router.post("/refresh", response_model=RefreshResponse, response_model_exclude_none=True)
def refresh(
    req: RefreshRequest,
    use_case: RefreshSessionUseCase = Depends(get_refresh_session_use_case),
):
    output = use_case.execute(RefreshSessionInput(refresh_token=req.refresh_token))
    return RefreshResponse(
        tokens=TokensResponse(
            access_token=output.tokens.access_token,
            id_token=output.tokens.id_token,
            expires_in=output.tokens.expires_in,
            refresh_token=output.tokens.refresh_token,
        )
    )


@router.post("/signout", response_model=MessageResponse)
def sign_out(
    req: SignOutRequest | None = None,
    x_device_id: str | None = Header(default=None),
    principal: Authenticated = Depends(get_current_principal),
    user: User = Depends(get_current_user),
    use_case: SignOutUseCase = Depends(get_sign_out_use_case),
):
    body = req or SignOutRequest()
    output = use_case.execute(
        SignOutInput(
            user=user,
            access_token=principal.access_token,
            all_devices=body.all_devices,
            device_id=body.device_id,
            current_device_id=x_device_id,
        )
    )
    return MessageResponse(message=output.message)


@router.get("/sessions", response_model=SessionsResponse)
def list_sessions(
    x_device_id: str | None = Header(default=None),
    user: User = Depends(get_current_user),
    use_case: ListSessionsUseCase = Depends(get_list_sessions_use_case),
):
    items = use_case.execute(user_id=user.id, current_device_id=x_device_id)
    return SessionsResponse(
        sessions=[
            SessionItem(
                id=item.session.id,
                device_id=item.session.device_id,
                device_name=item.session.device_name,
                device_type=item.session.device_type,
                last_active=item.session.last_active,
                created_at=item.session.created_at,
                is_current=item.is_current,
            )
            for item in items
        ]
    )


@router.get("/social/{provider}", response_model=SocialLoginUrlResponse)
def social_login_url(
    provider: str,
    redirect_uri: str | None = Query(default=None),
    x_device_id: str | None = Header(default=None),
    use_case: SocialLoginUrlUseCase = Depends(get_social_login_url_use_case),
):
    output = use_case.execute(
        SocialLoginUrlInput(provider=provider, redirect_uri=redirect_uri, device_id=x_device_id)
    )
    return SocialLoginUrlResponse(url=output.url, state=output.state)


@router.get("/callback")
def social_callback_redirect(
    code: str | None = Query(default=None),
    state: str | None = Query(default=None),
    error: str | None = Query(default=None),
    error_description: str | None = Query(default=None),
    client: DeviceInfo = Depends(get_device_info),
    flow: OAuthCallbackFlow = Depends(get_oauth_callback_flow),
):
    outcome = flow.handle(
        code=code,
        state=state,
        error=error,
        error_description=error_description,
        client=client,
    )
    return RedirectResponse(outcome.redirect_url, status_code=302)


@router.post("/callback", response_model=SignInResponse, response_model_exclude_none=True)
def social_callback(
    req: SocialCallbackRequest,
    device: DeviceInfo = Depends(get_device_info),
    use_case: CompleteSocialLoginUseCase = Depends(get_complete_social_login_use_case),
):
    output = use_case.execute(
        CompleteSocialLoginInput(code=req.code, redirect_uri=req.redirect_uri, device=device)
    )
    return _sign_in_response(output)


@router.get("/me", response_model=MeResponse)
def get_me(
    user: User = Depends(get_current_user),
    use_case: GetMeUseCase = Depends(get_get_me_use_case),
):
    output = use_case.execute(user=user)
    return MeResponse(
        user=MeUser(
            id=output.user.id,
            email=output.user.email,
            name=output.user.name,
            plan=output.user.plan.value,
            created_at=output.user.created_at,
            stats=MeStats(
                resume_count=output.resume_count,
                active_devices=output.active_devices,
            ),
        )
    )


@router.post("/cognito-webhook", response_model=ProvisionUserResponse)
def provision_user(
    req: ProvisionUserRequest,
    x_webhook_secret: str | None = Header(default=None),
    settings: Settings = Depends(get_app_settings),
    use_case: ProvisionUserUseCase = Depends(get_provision_user_use_case),
):
    expected = settings.provisioning_webhook_secret
    if not expected:
        raise NotFoundError("Not found")
    if not x_webhook_secret or not hmac.compare_digest(x_webhook_secret, expected):
        raise AuthenticationError("Invalid webhook secret")

    user = use_case.execute(
        ProvisionUserInput(external_subject_id=req.cognito_id, email=req.email, name=req.name)
    )
    return ProvisionUserResponse(message="User provisioned", user_id=user.id)
