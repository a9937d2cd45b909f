from __future__ import annotations

from app.application.dto.auth import ConfirmSignUpInput
from app.application.ports.identity_provider_port import IdentityProviderPort
from app.domain.exceptions import ValidationError

from .auth_common import normalize_email


class ConfirmSignUpUseCase:
    def __init__(self, *, identity_provider: IdentityProviderPort):
        self._identity_provider = identity_provider

    def execute(self, command: ConfirmSignUpInput) -> None:
        if not command.email or not command.code or not command.code.strip():
            raise ValidationError("Email and verification code are required")
        self._identity_provider.confirm_sign_up(
            email=normalize_email(command.email),
            code=command.code.strip(),
        )
