from __future__ import annotations

import logging
import time
from threading import Lock
from typing import Any, Callable

import httpx
import jwt

from app.application.dto.auth import VerifiedToken
from app.application.ports.token_verifier_port import TokenVerifierPort
from app.domain.exceptions import InvalidTokenError


logger = logging.getLogger(__name__)

ALLOWED_ALGORITHMS = ("RS256",)
_TOKEN_USES = ("id", "access")


class SigningKeyCache:
    """Issuer signing keys keyed by ``kid``.

    An unknown ``kid`` triggers a refetch of the key set, but never more often
    than once per ``min_refresh_interval_seconds``. The interval also applies
    to failed fetches.
    """

    def __init__(
        self,
        *,
        http_client: httpx.Client,
        jwks_uri: str,
        min_refresh_interval_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._http_client = http_client
        self._jwks_uri = jwks_uri
        self._min_refresh_interval_seconds = min_refresh_interval_seconds
        self._clock = clock
        self._keys: dict[str, jwt.PyJWK] = {}
        self._last_fetch_at: float | None = None
        self._lock = Lock()

    def get_key(self, kid: str) -> jwt.PyJWK | None:
        with self._lock:
            key = self._keys.get(kid)
            if key is not None:
                return key
            if not self._refresh_allowed():
                logger.info("jwks_cache: refresh_throttled kid=%s", kid)
                return None
            self._refresh()
            return self._keys.get(kid)

    def _refresh_allowed(self) -> bool:
        if self._last_fetch_at is None:
            return True
        return self._clock() - self._last_fetch_at >= self._min_refresh_interval_seconds

    def _refresh(self) -> None:
        self._last_fetch_at = self._clock()
        try:
            response = self._http_client.get(self._jwks_uri)
            response.raise_for_status()
            key_set = jwt.PyJWKSet.from_dict(response.json())
        except (httpx.HTTPError, ValueError, jwt.PyJWTError) as exc:
            logger.warning("jwks_cache: fetch_failed uri=%s error=%s", self._jwks_uri, exc)
            return

        keys: dict[str, jwt.PyJWK] = {}
        for key in key_set.keys:
            if key.key_id:
                keys[key.key_id] = key
        self._keys = keys
        logger.info("jwks_cache: refreshed keys=%s", len(keys))


class JwksTokenVerifier(TokenVerifierPort):
    def __init__(
        self,
        *,
        key_cache: SigningKeyCache,
        issuer: str,
        client_id: str | None,
        leeway_seconds: int = 0,
    ):
        self._key_cache = key_cache
        self._issuer = issuer
        self._client_id = client_id or None
        self._leeway_seconds = leeway_seconds

    def verify(self, *, token: str) -> VerifiedToken:
        if not token:
            raise InvalidTokenError("Missing token.")

        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError as exc:
            raise InvalidTokenError("Malformed token.") from exc

        algorithm = header.get("alg")
        if algorithm not in ALLOWED_ALGORITHMS:
            raise InvalidTokenError(f"Unsupported signing algorithm: {algorithm}.")

        kid = header.get("kid")
        if not kid or not isinstance(kid, str):
            raise InvalidTokenError("Token has no key id.")

        signing_key = self._key_cache.get_key(kid)
        if signing_key is None:
            raise InvalidTokenError("Unknown signing key.")

        try:
            claims = jwt.decode(
                token,
                key=signing_key.key,
                algorithms=list(ALLOWED_ALGORITHMS),
                issuer=self._issuer,
                leeway=self._leeway_seconds,
                options={"require": ["exp", "iss"], "verify_aud": False},
            )
        except jwt.ExpiredSignatureError as exc:
            raise InvalidTokenError("Token has expired.") from exc
        except jwt.InvalidIssuerError as exc:
            raise InvalidTokenError("Token issuer mismatch.") from exc
        except jwt.PyJWTError as exc:
            raise InvalidTokenError("Invalid token signature or claims.") from exc

        token_use = claims.get("token_use")
        if token_use is not None and token_use not in _TOKEN_USES:
            raise InvalidTokenError("Unexpected token use.")
        self._check_client(claims, token_use=token_use)

        subject_id = _subject_from_claims(claims)
        if not subject_id:
            raise InvalidTokenError("Token has no subject.")

        email = claims.get("email")
        return VerifiedToken(
            subject_id=subject_id,
            email=email if isinstance(email, str) else None,
            token_use=token_use,
            claims=dict(claims),
        )

    def _check_client(self, claims: dict[str, Any], *, token_use: str | None) -> None:
        if self._client_id is None:
            return
        # access tokens carry client_id, id tokens carry aud
        if token_use == "access":
            audience = claims.get("client_id")
        else:
            audience = claims.get("aud")
        if isinstance(audience, list):
            matched = self._client_id in audience
        else:
            matched = audience == self._client_id
        if not matched:
            raise InvalidTokenError("Token was issued for another client.")


def _subject_from_claims(claims: dict[str, Any]) -> str | None:
    for claim in ("sub", "cognito:username", "username"):
        value = claims.get(claim)
        if isinstance(value, str) and value:
            return value
    return None
