from __future__ import annotations

import logging

from app.application.dto.auth import RefreshSessionInput, RefreshSessionOutput
from app.application.ports.identity_provider_port import IdentityProviderPort
from app.application.ports.user_port import UserPort
from app.application.services.device_session_manager import DeviceSessionManager
from app.domain.exceptions import RefreshRejectedError, UpstreamError, ValidationError


logger = logging.getLogger(__name__)


class RefreshSessionUseCase:
    def __init__(
        self,
        *,
        identity_provider: IdentityProviderPort,
        user_port: UserPort,
        session_manager: DeviceSessionManager,
    ):
        self._identity_provider = identity_provider
        self._user_port = user_port
        self._session_manager = session_manager

    def execute(self, command: RefreshSessionInput) -> RefreshSessionOutput:
        if not command.refresh_token:
            raise ValidationError("Refresh token is required")

        validation = self._session_manager.validate_and_touch(refresh_token=command.refresh_token)
        session = validation.session
        user = self._user_port.get_user_by_id(user_id=validation.user_id)

        try:
            tokens = self._identity_provider.refresh(
                refresh_token=command.refresh_token,
                username=user.external_subject_id if user is not None else None,
            )
        except RefreshRejectedError:
            # upstream considers the credential dead; this device must sign in again
            self._session_manager.revoke(session_id=session.id)
            logger.info("refresh_session: upstream_rejected session_id=%s", session.id)
            raise
        except UpstreamError as exc:
            # outage only; the session stays active
            logger.warning("refresh_session: upstream_unavailable session_id=%s error=%s", session.id, exc.message)
            raise RefreshRejectedError() from exc

        rotated = self._session_manager.rotate_credential(
            session_id=session.id,
            refresh_token=tokens.refresh_token or command.refresh_token,
        )
        logger.info(
            "refresh_session: refreshed session_id=%s rotated=%s",
            session.id,
            tokens.refresh_token is not None,
        )
        return RefreshSessionOutput(tokens=tokens, session=rotated)
