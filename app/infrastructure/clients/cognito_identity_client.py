from __future__ import annotations

import base64
from dataclasses import dataclass
import hashlib
import hmac
import logging
from urllib.parse import urlencode

import httpx

from app.application.dto.auth import ExternalIdentity, RefreshedTokens, SignUpResult, TokenSet
from app.application.ports.identity_provider_port import IdentityProviderPort
from app.domain.exceptions import (
    DomainError,
    ExpiredCodeError,
    InvalidCodeError,
    InvalidCredentialsError,
    InvalidTokenError,
    RefreshRejectedError,
    SocialLoginError,
    UpstreamError,
    UserAlreadyExistsError,
    UserNotConfirmedError,
    ValidationError,
    WeakPasswordError,
)


logger = logging.getLogger(__name__)


_TARGET_PREFIX = "AWSCognitoIdentityProviderService"
_JSON_CONTENT_TYPE = "application/x-amz-json-1.1"
_OAUTH_SCOPE = "email openid profile"

IDENTITY_PROVIDER_NAMES = {
    "google": "Google",
    "facebook": "Facebook",
    "apple": "SignInWithApple",
    "amazon": "LoginWithAmazon",
}

# provider error type -> (error class, user-facing message or None for the class default)
_SIGN_UP_ERRORS = {
    "UsernameExistsException": (UserAlreadyExistsError, None),
    "InvalidPasswordException": (WeakPasswordError, None),
    "InvalidParameterException": (ValidationError, "Invalid email or password format."),
}
_CONFIRM_ERRORS = {
    "CodeMismatchException": (InvalidCodeError, None),
    "ExpiredCodeException": (ExpiredCodeError, None),
    "UserNotFoundException": (InvalidCodeError, None),
    "NotAuthorizedException": (InvalidCodeError, "User is already confirmed or cannot be confirmed."),
}
_PASSWORD_LOGIN_ERRORS = {
    "NotAuthorizedException": (InvalidCredentialsError, None),
    "UserNotFoundException": (InvalidCredentialsError, None),
    "UserNotConfirmedException": (UserNotConfirmedError, None),
    "PasswordResetRequiredException": (InvalidCredentialsError, "Password reset required."),
}
_REFRESH_ERRORS = {
    "NotAuthorizedException": (RefreshRejectedError, None),
    "UserNotFoundException": (RefreshRejectedError, None),
}
_TOKEN_ERRORS = {
    "NotAuthorizedException": (InvalidTokenError, None),
    "UserNotFoundException": (InvalidTokenError, None),
}


@dataclass(frozen=True)
class CognitoClientSettings:
    region: str
    client_id: str
    client_secret: str
    domain: str
    endpoint: str | None = None


class CognitoIdentityClient(IdentityProviderPort):
    def __init__(self, settings: CognitoClientSettings, *, http_client: httpx.Client):
        self._settings = settings
        self._http_client = http_client
        self._endpoint = settings.endpoint or f"https://cognito-idp.{settings.region}.amazonaws.com/"

    def sign_up(self, *, email: str, password: str, name: str) -> SignUpResult:
        payload = {
            "ClientId": self._settings.client_id,
            "Username": email,
            "Password": password,
            "UserAttributes": [
                {"Name": "email", "Value": email},
                {"Name": "name", "Value": name},
            ],
        }
        secret_hash = self._secret_hash(email)
        if secret_hash:
            payload["SecretHash"] = secret_hash

        body = self._call("SignUp", payload, errors=_SIGN_UP_ERRORS)
        subject = body.get("UserSub")
        if not subject:
            raise UpstreamError("Identity provider returned no user id.")
        logger.info("cognito_identity_client: sign_up user_sub=%s confirmed=%s", subject, body.get("UserConfirmed"))
        return SignUpResult(
            external_subject_id=str(subject),
            is_confirmed=bool(body.get("UserConfirmed", False)),
        )

    def confirm_sign_up(self, *, email: str, code: str) -> None:
        payload = {
            "ClientId": self._settings.client_id,
            "Username": email,
            "ConfirmationCode": code,
        }
        secret_hash = self._secret_hash(email)
        if secret_hash:
            payload["SecretHash"] = secret_hash
        self._call("ConfirmSignUp", payload, errors=_CONFIRM_ERRORS)

    def password_login(self, *, email: str, password: str) -> TokenSet:
        auth_parameters = {"USERNAME": email, "PASSWORD": password}
        secret_hash = self._secret_hash(email)
        if secret_hash:
            auth_parameters["SECRET_HASH"] = secret_hash

        body = self._call(
            "InitiateAuth",
            {
                "AuthFlow": "USER_PASSWORD_AUTH",
                "ClientId": self._settings.client_id,
                "AuthParameters": auth_parameters,
            },
            errors=_PASSWORD_LOGIN_ERRORS,
        )
        result = self._authentication_result(body)
        refresh_token = result.get("RefreshToken")
        if not refresh_token:
            raise UpstreamError("Identity provider returned no refresh token.")
        return TokenSet(
            access_token=result["AccessToken"],
            id_token=result.get("IdToken") or "",
            refresh_token=refresh_token,
            expires_in=int(result.get("ExpiresIn") or 3600),
        )

    def refresh(self, *, refresh_token: str, username: str | None = None) -> RefreshedTokens:
        auth_parameters = {"REFRESH_TOKEN": refresh_token}
        if username:
            secret_hash = self._secret_hash(username)
            if secret_hash:
                auth_parameters["SECRET_HASH"] = secret_hash

        body = self._call(
            "InitiateAuth",
            {
                "AuthFlow": "REFRESH_TOKEN_AUTH",
                "ClientId": self._settings.client_id,
                "AuthParameters": auth_parameters,
            },
            errors=_REFRESH_ERRORS,
        )
        result = self._authentication_result(body)
        return RefreshedTokens(
            access_token=result["AccessToken"],
            id_token=result.get("IdToken") or "",
            expires_in=int(result.get("ExpiresIn") or 3600),
            refresh_token=result.get("RefreshToken") or None,
        )

    def revoke_all(self, *, access_token: str) -> None:
        self._call("GlobalSignOut", {"AccessToken": access_token}, errors=_TOKEN_ERRORS)

    def get_user(self, *, access_token: str) -> ExternalIdentity:
        body = self._call("GetUser", {"AccessToken": access_token}, errors=_TOKEN_ERRORS)
        attributes = {
            item.get("Name"): item.get("Value")
            for item in body.get("UserAttributes") or []
            if isinstance(item, dict)
        }
        subject = attributes.get("sub") or body.get("Username")
        email = attributes.get("email")
        if not subject or not email:
            raise UpstreamError("Identity provider user is missing required attributes.")
        return ExternalIdentity(
            subject_id=str(subject),
            email=str(email),
            name=attributes.get("name"),
        )

    def build_authorization_url(self, *, provider: str, redirect_uri: str, state: str) -> str:
        params = {
            "identity_provider": IDENTITY_PROVIDER_NAMES.get(provider.lower(), provider),
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "client_id": self._settings.client_id,
            "scope": _OAUTH_SCOPE,
            "state": state,
        }
        return f"{self._domain_base()}/oauth2/authorize?{urlencode(params)}"

    def exchange_authorization_code(self, *, code: str, redirect_uri: str) -> TokenSet:
        form = {
            "grant_type": "authorization_code",
            "client_id": self._settings.client_id,
            "code": code,
            "redirect_uri": redirect_uri,
        }
        auth = None
        if self._settings.client_secret:
            auth = httpx.BasicAuth(self._settings.client_id, self._settings.client_secret)

        try:
            response = self._http_client.post(
                f"{self._domain_base()}/oauth2/token",
                data=form,
                auth=auth,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            logger.warning("cognito_identity_client: token_endpoint_unreachable error=%s", exc)
            raise UpstreamError() from exc

        if response.status_code >= 400:
            error = _json_or_empty(response).get("error") or f"http_{response.status_code}"
            logger.warning(
                "cognito_identity_client: code_exchange_failed status=%s error=%s",
                response.status_code,
                error,
            )
            raise SocialLoginError(f"Token exchange failed: {error}")

        body = _json_or_empty(response)
        if not body.get("access_token") or not body.get("refresh_token"):
            raise SocialLoginError("Token exchange returned an incomplete token set.")
        return TokenSet(
            access_token=body["access_token"],
            id_token=body.get("id_token") or "",
            refresh_token=body["refresh_token"],
            expires_in=int(body.get("expires_in") or 3600),
        )

    def _call(self, action: str, payload: dict, *, errors: dict) -> dict:
        try:
            response = self._http_client.post(
                self._endpoint,
                json=payload,
                headers={
                    "Content-Type": _JSON_CONTENT_TYPE,
                    "X-Amz-Target": f"{_TARGET_PREFIX}.{action}",
                },
            )
        except httpx.HTTPError as exc:
            logger.warning("cognito_identity_client: request_failed action=%s error=%s", action, exc)
            raise UpstreamError() from exc

        body = _json_or_empty(response)
        if response.status_code < 400:
            return body

        error_type = _error_type(body)
        logger.info(
            "cognito_identity_client: provider_error action=%s status=%s type=%s",
            action,
            response.status_code,
            error_type,
        )
        raise _translate_error(error_type, errors=errors)

    def _authentication_result(self, body: dict) -> dict:
        result = body.get("AuthenticationResult")
        if not result or not result.get("AccessToken"):
            challenge = body.get("ChallengeName")
            logger.warning("cognito_identity_client: unsupported_challenge challenge=%s", challenge)
            raise UpstreamError("Additional authentication challenge is not supported.")
        return result

    def _secret_hash(self, username: str) -> str | None:
        if not self._settings.client_secret:
            return None
        digest = hmac.new(
            self._settings.client_secret.encode("utf-8"),
            msg=f"{username}{self._settings.client_id}".encode("utf-8"),
            digestmod=hashlib.sha256,
        ).digest()
        return base64.b64encode(digest).decode("ascii")

    def _domain_base(self) -> str:
        domain = self._settings.domain.rstrip("/")
        if domain.startswith("http://") or domain.startswith("https://"):
            return domain
        return f"https://{domain}"


def _json_or_empty(response: httpx.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _error_type(body: dict) -> str:
    raw = str(body.get("__type") or body.get("code") or "")
    return raw.rsplit("#", 1)[-1]


def _translate_error(error_type: str, *, errors: dict) -> DomainError:
    mapped = errors.get(error_type)
    if mapped is None:
        # raw provider text stays in the logs
        return UpstreamError()
    error_class, message = mapped
    return error_class(message)
