from __future__ import annotations

from app.application.dto.auth import SignUpInput, SignUpOutput
from app.application.ports.identity_provider_port import IdentityProviderPort
from app.domain.exceptions import ValidationError

from .auth_common import default_display_name, validate_email


MIN_PASSWORD_LENGTH = 8


class SignUpUseCase:
    def __init__(self, *, identity_provider: IdentityProviderPort):
        self._identity_provider = identity_provider

    def execute(self, command: SignUpInput) -> SignUpOutput:
        if not command.email or not command.password:
            raise ValidationError("Email and password are required")
        email = validate_email(command.email)
        if len(command.password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

        result = self._identity_provider.sign_up(
            email=email,
            password=command.password,
            name=default_display_name(email=email, name=command.name),
        )
        return SignUpOutput(user_sub=result.external_subject_id, is_confirmed=result.is_confirmed)
