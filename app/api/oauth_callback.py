from __future__ import annotations

import base64
from dataclasses import dataclass
from enum import Enum
import json
import logging
from urllib.parse import urlencode

from app.application.dto.auth import CompleteSocialLoginInput, DeviceInfo, SignInOutput
from app.application.ports.oauth_state_port import OAuthStatePort
from app.application.use_cases.complete_social_login import CompleteSocialLoginUseCase
from app.domain.exceptions import InvalidStateError
from app.domain.services.device_policy import WEB_BROWSER_DEVICE_NAME


logger = logging.getLogger(__name__)

CALLBACK_PATH = "/auth/callback"


class CallbackState(str, Enum):
    AWAITING_CODE = "awaiting_code"
    EXCHANGING_CODE = "exchanging_code"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class CallbackOutcome:
    state: CallbackState
    redirect_url: str
    error: str | None = None


class OAuthCallbackFlow:
    """Browser leg of the social login.

    Every path ends in a redirect to the frontend: the success payload travels
    in the URL fragment, failures travel as ``error``/``message`` query params.
    """

    def __init__(
        self,
        *,
        state_codec: OAuthStatePort,
        complete_social_login: CompleteSocialLoginUseCase,
        frontend_url: str,
    ):
        self._state_codec = state_codec
        self._complete_social_login = complete_social_login
        self._callback_url = f"{frontend_url.rstrip('/')}{CALLBACK_PATH}"

    def handle(
        self,
        *,
        code: str | None,
        state: str | None,
        error: str | None,
        error_description: str | None,
        client: DeviceInfo,
    ) -> CallbackOutcome:
        # awaiting code
        if error:
            logger.info("oauth_callback: provider_error error=%s", error)
            return self._fail(error, error_description or "Social sign-in was cancelled or failed")
        if not code:
            return self._fail("MissingCode", "Authorization code is missing")

        try:
            carried = self._state_codec.verify(state=state)
        except InvalidStateError as exc:
            logger.info("oauth_callback: invalid_state")
            return self._fail(exc.code, exc.message)

        # exchanging code
        device = DeviceInfo(
            device_id=carried.device_id,
            device_name=WEB_BROWSER_DEVICE_NAME,
            device_type="web",
            ip_address=client.ip_address,
            user_agent=client.user_agent,
        )
        try:
            output = self._complete_social_login.execute(
                CompleteSocialLoginInput(
                    code=code,
                    redirect_uri=carried.redirect_uri,
                    device=device,
                )
            )
        except Exception:
            logger.exception("oauth_callback: exchange_failed")
            return self._fail("AuthError", "Authentication failed. Please try again.")

        return CallbackOutcome(
            state=CallbackState.SUCCEEDED,
            redirect_url=f"{self._callback_url}#data={encode_callback_payload(output)}",
        )

    def _fail(self, error: str, message: str) -> CallbackOutcome:
        query = urlencode({"error": error, "message": message})
        return CallbackOutcome(
            state=CallbackState.FAILED,
            redirect_url=f"{self._callback_url}?{query}",
            error=error,
        )


def encode_callback_payload(output: SignInOutput) -> str:
    payload = {
        "accessToken": output.tokens.access_token,
        "user": {
            "id": output.user.id,
            "email": output.user.email,
            "name": output.user.name,
            "plan": output.user.plan.value,
        },
        "session": {"deviceId": output.session.device_id},
    }
    raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")
