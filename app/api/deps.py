from __future__ import annotations

from datetime import timedelta

from fastapi import Depends, Header, HTTPException, Request

from app.api.container import AppContainer
from app.api.oauth_callback import OAuthCallbackFlow
from app.application.dto.auth import Authenticated, DeviceInfo, Rejected
from app.application.ports.identity_provider_port import IdentityProviderPort
from app.application.ports.oauth_state_port import OAuthStatePort
from app.application.ports.token_verifier_port import TokenVerifierPort
from app.application.ports.user_port import ResumeStatsPort, UserPort
from app.application.services.device_session_manager import DeviceSessionManager
from app.application.use_cases.auth_common import authenticate_bearer
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
from app.domain.exceptions import InvalidTokenError, UserNotFoundError
from app.infrastructure.db.repositories.accounts_repository import (
    SqlAccountsRepository,
    SqlResumeStatsRepository,
)
from app.shared.config import Settings


def get_container(request: Request) -> AppContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(status_code=500, detail="Application container is not initialized.")
    return container


def get_app_settings(container: AppContainer = Depends(get_container)) -> Settings:
    return container.settings


def _get_db_engine(container: AppContainer):
    if container.engine is None:
        raise HTTPException(status_code=500, detail="POSTGRES_DSN is required.")
    return container.engine


def get_accounts_repository(container: AppContainer = Depends(get_container)) -> SqlAccountsRepository:
    return SqlAccountsRepository(_get_db_engine(container))


def get_user_port(repository: SqlAccountsRepository = Depends(get_accounts_repository)) -> UserPort:
    return repository


def get_resume_stats(container: AppContainer = Depends(get_container)) -> ResumeStatsPort:
    return SqlResumeStatsRepository(_get_db_engine(container))


def get_identity_provider(container: AppContainer = Depends(get_container)) -> IdentityProviderPort:
    return container.identity_provider


def get_token_verifier(container: AppContainer = Depends(get_container)) -> TokenVerifierPort:
    return container.token_verifier


def get_state_codec(container: AppContainer = Depends(get_container)) -> OAuthStatePort:
    return container.state_codec


def get_device_session_manager(
    container: AppContainer = Depends(get_container),
    repository: SqlAccountsRepository = Depends(get_accounts_repository),
) -> DeviceSessionManager:
    settings = container.settings
    return DeviceSessionManager(
        session_store=repository,
        refresh_token_hasher=container.refresh_token_hasher,
        device_cap=settings.device_cap,
        session_validity=timedelta(days=settings.refresh_token_validity_days),
    )


def get_device_info(
    request: Request,
    x_device_id: str | None = Header(default=None),
    x_device_name: str | None = Header(default=None),
    x_device_type: str | None = Header(default=None),
    user_agent: str | None = Header(default=None),
    x_forwarded_for: str | None = Header(default=None),
) -> DeviceInfo:
    ip_address = None
    if x_forwarded_for:
        ip_address = x_forwarded_for.split(",", 1)[0].strip() or None
    elif request.client is not None:
        ip_address = request.client.host
    return DeviceInfo(
        device_id=x_device_id,
        device_name=x_device_name,
        device_type=x_device_type,
        ip_address=ip_address,
        user_agent=user_agent,
    )


def get_current_principal(
    authorization: str | None = Header(default=None),
    token_verifier: TokenVerifierPort = Depends(get_token_verifier),
) -> Authenticated:
    result = authenticate_bearer(authorization=authorization, token_verifier=token_verifier)
    if isinstance(result, Rejected):
        raise InvalidTokenError("Invalid or expired token")
    return result


def get_current_user(
    principal: Authenticated = Depends(get_current_principal),
    user_port: UserPort = Depends(get_user_port),
) -> User:
    user = user_port.get_user_by_external_subject(external_subject_id=principal.subject_id)
    if user is None:
        raise UserNotFoundError()
    return user


def get_sign_up_use_case(
    identity_provider: IdentityProviderPort = Depends(get_identity_provider),
) -> SignUpUseCase:
    return SignUpUseCase(identity_provider=identity_provider)


def get_confirm_sign_up_use_case(
    identity_provider: IdentityProviderPort = Depends(get_identity_provider),
) -> ConfirmSignUpUseCase:
    return ConfirmSignUpUseCase(identity_provider=identity_provider)


def get_sign_in_use_case(
    identity_provider: IdentityProviderPort = Depends(get_identity_provider),
    token_verifier: TokenVerifierPort = Depends(get_token_verifier),
    user_port: UserPort = Depends(get_user_port),
    session_manager: DeviceSessionManager = Depends(get_device_session_manager),
) -> SignInUseCase:
    return SignInUseCase(
        identity_provider=identity_provider,
        token_verifier=token_verifier,
        user_port=user_port,
        session_manager=session_manager,
    )


def get_complete_social_login_use_case(
    settings: Settings = Depends(get_app_settings),
    identity_provider: IdentityProviderPort = Depends(get_identity_provider),
    token_verifier: TokenVerifierPort = Depends(get_token_verifier),
    user_port: UserPort = Depends(get_user_port),
    session_manager: DeviceSessionManager = Depends(get_device_session_manager),
) -> CompleteSocialLoginUseCase:
    return CompleteSocialLoginUseCase(
        identity_provider=identity_provider,
        token_verifier=token_verifier,
        user_port=user_port,
        session_manager=session_manager,
        default_redirect_uri=settings.oauth_redirect_uri,
    )


def get_oauth_callback_flow(
    settings: Settings = Depends(get_app_settings),
    state_codec: OAuthStatePort = Depends(get_state_codec),
    use_case: CompleteSocialLoginUseCase = Depends(get_complete_social_login_use_case),
) -> OAuthCallbackFlow:
    return OAuthCallbackFlow(
        state_codec=state_codec,
        complete_social_login=use_case,
        frontend_url=settings.frontend_url,
    )


def get_refresh_session_use_case(
    identity_provider: IdentityProviderPort = Depends(get_identity_provider),
    user_port: UserPort = Depends(get_user_port),
    session_manager: DeviceSessionManager = Depends(get_device_session_manager),
) -> RefreshSessionUseCase:
    return RefreshSessionUseCase(
        identity_provider=identity_provider,
        user_port=user_port,
        session_manager=session_manager,
    )


def get_sign_out_use_case(
    identity_provider: IdentityProviderPort = Depends(get_identity_provider),
    session_manager: DeviceSessionManager = Depends(get_device_session_manager),
) -> SignOutUseCase:
    return SignOutUseCase(identity_provider=identity_provider, session_manager=session_manager)


def get_list_sessions_use_case(
    session_manager: DeviceSessionManager = Depends(get_device_session_manager),
) -> ListSessionsUseCase:
    return ListSessionsUseCase(session_manager=session_manager)


def get_social_login_url_use_case(
    settings: Settings = Depends(get_app_settings),
    identity_provider: IdentityProviderPort = Depends(get_identity_provider),
    state_codec: OAuthStatePort = Depends(get_state_codec),
) -> SocialLoginUrlUseCase:
    return SocialLoginUrlUseCase(
        identity_provider=identity_provider,
        state_codec=state_codec,
        allowed_providers=settings.social_providers,
        default_redirect_uri=settings.oauth_redirect_uri,
    )


def get_get_me_use_case(
    resume_stats: ResumeStatsPort = Depends(get_resume_stats),
    session_manager: DeviceSessionManager = Depends(get_device_session_manager),
) -> GetMeUseCase:
    return GetMeUseCase(resume_stats=resume_stats, session_manager=session_manager)


def get_provision_user_use_case(
    user_port: UserPort = Depends(get_user_port),
) -> ProvisionUserUseCase:
    return ProvisionUserUseCase(user_port=user_port)
