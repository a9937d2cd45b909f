from __future__ import annotations

from app.application.dto.auth import SocialLoginUrlInput, SocialLoginUrlOutput
from app.application.ports.identity_provider_port import IdentityProviderPort
from app.application.ports.oauth_state_port import OAuthStatePort
from app.domain.exceptions import InvalidProviderError
from app.domain.services.device_policy import is_acceptable_device_id


class SocialLoginUrlUseCase:
    def __init__(
        self,
        *,
        identity_provider: IdentityProviderPort,
        state_codec: OAuthStatePort,
        allowed_providers: tuple[str, ...],
        default_redirect_uri: str,
    ):
        self._identity_provider = identity_provider
        self._state_codec = state_codec
        self._allowed_providers = allowed_providers
        self._default_redirect_uri = default_redirect_uri

    def execute(self, command: SocialLoginUrlInput) -> SocialLoginUrlOutput:
        provider = (command.provider or "").strip().lower()
        if provider not in self._allowed_providers:
            allowed = " or ".join(f"'{name}'" for name in self._allowed_providers)
            raise InvalidProviderError(f"Provider must be {allowed}")

        redirect_uri = command.redirect_uri or self._default_redirect_uri
        device_id = command.device_id if is_acceptable_device_id(command.device_id) else None
        state = self._state_codec.issue(provider=provider, redirect_uri=redirect_uri, device_id=device_id)
        url = self._identity_provider.build_authorization_url(
            provider=provider,
            redirect_uri=redirect_uri,
            state=state,
        )
        return SocialLoginUrlOutput(url=url, state=state)
