from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


load_dotenv()


def _env(name: str, default: str | None = None) -> str | None:
    return os.getenv(name, default)


def _csv(name: str, default: str) -> tuple[str, ...]:
    value = _env(name, default) or ""
    return tuple(item.strip().lower() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    postgres_dsn: str
    cognito_region: str
    cognito_user_pool_id: str
    cognito_client_id: str
    cognito_client_secret: str
    cognito_domain: str
    cognito_issuer: str
    cognito_jwks_uri: str
    jwks_min_refresh_interval_seconds: float
    idp_timeout_seconds: float
    device_cap: int
    refresh_token_validity_days: int
    oauth_redirect_uri: str
    frontend_url: str
    oauth_state_secret: str
    oauth_state_ttl_seconds: int
    social_providers: tuple[str, ...]
    provisioning_webhook_secret: str
    log_level: str


def get_settings() -> Settings:
    region = _env("COGNITO_REGION", "us-east-1")
    pool_id = _env("COGNITO_USER_POOL_ID", "")
    issuer = _env("COGNITO_ISSUER") or f"https://cognito-idp.{region}.amazonaws.com/{pool_id}"
    jwks_uri = _env("COGNITO_JWKS_URI") or f"{issuer}/.well-known/jwks.json"
    return Settings(
        postgres_dsn=_env("POSTGRES_DSN", ""),
        cognito_region=region,
        cognito_user_pool_id=pool_id,
        cognito_client_id=_env("COGNITO_CLIENT_ID", ""),
        cognito_client_secret=_env("COGNITO_CLIENT_SECRET", ""),
        cognito_domain=(_env("COGNITO_DOMAIN", "") or "").rstrip("/"),
        cognito_issuer=issuer,
        cognito_jwks_uri=jwks_uri,
        jwks_min_refresh_interval_seconds=float(_env("JWKS_MIN_REFRESH_INTERVAL_SECONDS", "30")),
        idp_timeout_seconds=float(_env("IDP_TIMEOUT_SECONDS", "10")),
        device_cap=int(_env("DEVICE_CAP", "3")),
        refresh_token_validity_days=int(_env("REFRESH_TOKEN_VALIDITY_DAYS", "30")),
        oauth_redirect_uri=_env("OAUTH_REDIRECT_URI", "http://localhost:3000/auth/callback"),
        frontend_url=(_env("FRONTEND_URL", "http://localhost:3000") or "").rstrip("/"),
        oauth_state_secret=_env("OAUTH_STATE_SECRET", ""),
        oauth_state_ttl_seconds=int(_env("OAUTH_STATE_TTL_SECONDS", "600")),
        social_providers=_csv("SOCIAL_PROVIDERS", "google,facebook"),
        provisioning_webhook_secret=_env("PROVISIONING_WEBHOOK_SECRET", ""),
        log_level=(_env("LOG_LEVEL", "INFO") or "INFO").upper(),
    )
