from __future__ import annotations

import logging

from app.application.dto.auth import CompleteSocialLoginInput, SignInOutput
from app.application.ports.identity_provider_port import IdentityProviderPort
from app.application.ports.token_verifier_port import TokenVerifierPort
from app.application.ports.user_port import UserPort
from app.application.services.device_session_manager import DeviceSessionManager
from app.domain.exceptions import DomainError, SocialLoginError, ValidationError

from .auth_common import establish_session, resolve_external_identity, upsert_local_user


logger = logging.getLogger(__name__)


class CompleteSocialLoginUseCase:
    """Authorization-code exchange, identity resolution, user upsert, session.

    Steps run strictly in order. A failure after the exchange leaves earlier
    side effects in place and surfaces as ``SocialLoginError``.
    """

    def __init__(
        self,
        *,
        identity_provider: IdentityProviderPort,
        token_verifier: TokenVerifierPort,
        user_port: UserPort,
        session_manager: DeviceSessionManager,
        default_redirect_uri: str,
    ):
        self._identity_provider = identity_provider
        self._token_verifier = token_verifier
        self._user_port = user_port
        self._session_manager = session_manager
        self._default_redirect_uri = default_redirect_uri

    def execute(self, command: CompleteSocialLoginInput) -> SignInOutput:
        if not command.code or not command.code.strip():
            raise ValidationError("Authorization code is required")
        redirect_uri = command.redirect_uri or self._default_redirect_uri

        try:
            tokens = self._identity_provider.exchange_authorization_code(
                code=command.code.strip(),
                redirect_uri=redirect_uri,
            )
            identity = resolve_external_identity(
                tokens=tokens,
                token_verifier=self._token_verifier,
                identity_provider=self._identity_provider,
            )
            user = upsert_local_user(
                user_port=self._user_port,
                external_subject_id=identity.subject_id,
                email=identity.email,
                name=identity.name,
            )
            output = establish_session(
                user=user,
                tokens=tokens,
                device=command.device,
                session_manager=self._session_manager,
            )
        except SocialLoginError:
            raise
        except DomainError as exc:
            logger.warning("complete_social_login: failed code=%s error=%s", exc.code, exc.message)
            raise SocialLoginError() from exc
        except Exception as exc:
            logger.exception("complete_social_login: failed_unexpected error=%s", type(exc).__name__)
            raise SocialLoginError() from exc

        logger.info(
            "complete_social_login: succeeded user_id=%s device_id=%s removed=%s",
            user.id,
            output.session.device_id,
            len(output.removed_sessions),
        )
        return output
