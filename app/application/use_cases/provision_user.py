from __future__ import annotations

from app.application.dto.auth import ProvisionUserInput
from app.application.ports.user_port import UserPort
from app.domain.entities.user import User
from app.domain.exceptions import ValidationError

from .auth_common import upsert_local_user, validate_email


class ProvisionUserUseCase:
    """Creates the local user when the IdP confirms a first-party sign-up."""

    def __init__(self, *, user_port: UserPort):
        self._user_port = user_port

    def execute(self, command: ProvisionUserInput) -> User:
        if not command.external_subject_id or not command.email:
            raise ValidationError("cognitoId and email are required")
        return upsert_local_user(
            user_port=self._user_port,
            external_subject_id=command.external_subject_id,
            email=validate_email(command.email),
            name=command.name,
        )
