from __future__ import annotations

from dataclasses import dataclass
import logging

import httpx
from sqlalchemy.engine import Engine

from app.infrastructure.clients.cognito_identity_client import CognitoClientSettings, CognitoIdentityClient
from app.infrastructure.db.engine import create_db_engine
from app.infrastructure.security.oauth_state import JwtOAuthStateCodec
from app.infrastructure.security.refresh_token_hasher import Sha256RefreshTokenHasher
from app.infrastructure.security.token_verifier import JwksTokenVerifier, SigningKeyCache
from app.shared.config import Settings


logger = logging.getLogger(__name__)


@dataclass
class AppContainer:
    """Process-level resources, opened at startup and closed at shutdown."""

    settings: Settings
    engine: Engine | None
    http_client: httpx.Client
    token_verifier: JwksTokenVerifier
    identity_provider: CognitoIdentityClient
    state_codec: JwtOAuthStateCodec
    refresh_token_hasher: Sha256RefreshTokenHasher

    def close(self) -> None:
        self.http_client.close()
        if self.engine is not None:
            self.engine.dispose()
        logger.info("container: closed")


def build_container(settings: Settings, *, http_client: httpx.Client | None = None) -> AppContainer:
    client = http_client or httpx.Client(timeout=settings.idp_timeout_seconds)
    engine = create_db_engine(settings.postgres_dsn) if settings.postgres_dsn else None
    if engine is None:
        logger.warning("container: postgres_dsn_missing storage routes will fail")
    if not settings.oauth_state_secret:
        logger.warning("container: oauth_state_secret_missing callback state is not verified")

    key_cache = SigningKeyCache(
        http_client=client,
        jwks_uri=settings.cognito_jwks_uri,
        min_refresh_interval_seconds=settings.jwks_min_refresh_interval_seconds,
    )
    return AppContainer(
        settings=settings,
        engine=engine,
        http_client=client,
        token_verifier=JwksTokenVerifier(
            key_cache=key_cache,
            issuer=settings.cognito_issuer,
            client_id=settings.cognito_client_id,
        ),
        identity_provider=CognitoIdentityClient(
            CognitoClientSettings(
                region=settings.cognito_region,
                client_id=settings.cognito_client_id,
                client_secret=settings.cognito_client_secret,
                domain=settings.cognito_domain,
            ),
            http_client=client,
        ),
        state_codec=JwtOAuthStateCodec(
            secret=settings.oauth_state_secret,
            ttl_seconds=settings.oauth_state_ttl_seconds,
        ),
        refresh_token_hasher=Sha256RefreshTokenHasher(),
    )
