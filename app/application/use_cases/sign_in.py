from __future__ import annotations

import logging

from app.application.dto.auth import SignInInput, SignInOutput
from app.application.ports.identity_provider_port import IdentityProviderPort
from app.application.ports.token_verifier_port import TokenVerifierPort
from app.application.ports.user_port import UserPort
from app.application.services.device_session_manager import DeviceSessionManager
from app.domain.exceptions import ValidationError

from .auth_common import establish_session, normalize_email, resolve_external_identity, upsert_local_user


logger = logging.getLogger(__name__)


class SignInUseCase:
    def __init__(
        self,
        *,
        identity_provider: IdentityProviderPort,
        token_verifier: TokenVerifierPort,
        user_port: UserPort,
        session_manager: DeviceSessionManager,
    ):
        self._identity_provider = identity_provider
        self._token_verifier = token_verifier
        self._user_port = user_port
        self._session_manager = session_manager

    def execute(self, command: SignInInput) -> SignInOutput:
        if not command.email or not command.password:
            raise ValidationError("Email and password are required")

        tokens = self._identity_provider.password_login(
            email=normalize_email(command.email),
            password=command.password,
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
        logger.info(
            "sign_in: succeeded user_id=%s device_id=%s removed=%s",
            user.id,
            output.session.device_id,
            len(output.removed_sessions),
        )
        return output
