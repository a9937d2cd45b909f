from __future__ import annotations

import logging

from app.application.dto.auth import SignOutInput, SignOutOutput
from app.application.ports.identity_provider_port import IdentityProviderPort
from app.application.services.device_session_manager import DeviceSessionManager
from app.domain.exceptions import DomainError, SessionNotFoundError


logger = logging.getLogger(__name__)


class SignOutUseCase:
    def __init__(
        self,
        *,
        identity_provider: IdentityProviderPort,
        session_manager: DeviceSessionManager,
    ):
        self._identity_provider = identity_provider
        self._session_manager = session_manager

    def execute(self, command: SignOutInput) -> SignOutOutput:
        user_id = command.user.id

        if command.all_devices:
            count = self._session_manager.revoke_all(user_id=user_id)
            try:
                self._identity_provider.revoke_all(access_token=command.access_token)
            except DomainError as exc:
                # local revocation already happened and stands
                logger.warning(
                    "sign_out: upstream_global_sign_out_failed user_id=%s code=%s",
                    user_id,
                    exc.code,
                )
            return SignOutOutput(message=f"Signed out from all {count} devices", revoked_count=count)

        if command.device_id:
            session = self._session_manager.find_active_device_session(
                user_id=user_id,
                device_id=command.device_id,
            )
            if session is None:
                raise SessionNotFoundError()
            self._session_manager.revoke(session_id=session.id)
            return SignOutOutput(
                message="Signed out from device",
                revoked_count=1,
                device_name=session.device_name,
            )

        revoked = 0
        if command.current_device_id:
            session = self._session_manager.find_active_device_session(
                user_id=user_id,
                device_id=command.current_device_id,
            )
            if session is not None:
                self._session_manager.revoke(session_id=session.id)
                revoked = 1
        return SignOutOutput(message="Signed out successfully", revoked_count=revoked)
