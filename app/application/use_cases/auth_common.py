from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Callable
from uuid import uuid4

from app.application.dto.auth import (
    Authenticated,
    AuthResult,
    DeviceInfo,
    ExternalIdentity,
    Rejected,
    SignInOutput,
    TokenSet,
)
from app.application.ports.identity_provider_port import IdentityProviderPort
from app.application.ports.token_verifier_port import TokenVerifierPort
from app.application.ports.user_port import UserPort
from app.application.services.device_session_manager import DeviceSessionManager
from app.domain.entities.user import PlanTier, User
from app.domain.exceptions import DomainError, DuplicateUserError, InternalError, ValidationError


logger = logging.getLogger(__name__)

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def validate_email(email: str | None) -> str:
    if not email or not email.strip():
        raise ValidationError("Email is required")
    normalized = normalize_email(email)
    if not _EMAIL_PATTERN.match(normalized):
        raise ValidationError("Invalid email format")
    return normalized


def default_display_name(*, email: str, name: str | None) -> str:
    if name and name.strip():
        return name.strip()
    return email.split("@", 1)[0]


def upsert_local_user(
    *,
    user_port: UserPort,
    external_subject_id: str,
    email: str,
    name: str | None,
    clock: Callable[[], datetime] = utcnow,
) -> User:
    """Return the local user for an IdP subject, creating it on first sight.

    Two first logins for the same new subject may race; the loser of the
    unique constraint on ``external_subject_id`` reads the winner's row.
    """
    existing = user_port.get_user_by_external_subject(external_subject_id=external_subject_id)
    if existing is not None:
        return existing

    try:
        user = user_port.create_user(
            user_id=str(uuid4()),
            external_subject_id=external_subject_id,
            email=normalize_email(email),
            name=default_display_name(email=email, name=name),
            plan=PlanTier.FREE,
            created_at=clock(),
        )
    except DuplicateUserError:
        winner = user_port.get_user_by_external_subject(external_subject_id=external_subject_id)
        if winner is None:
            raise InternalError("User disappeared after a concurrent insert.")
        logger.info("auth: user_upsert_race_lost external_subject_id=%s user_id=%s", external_subject_id, winner.id)
        return winner

    logger.info("auth: user_created user_id=%s external_subject_id=%s", user.id, external_subject_id)
    return user


def resolve_external_identity(
    *,
    tokens: TokenSet,
    token_verifier: TokenVerifierPort,
    identity_provider: IdentityProviderPort,
) -> ExternalIdentity:
    # a verified id token already carries the profile; no extra round trip
    if tokens.id_token:
        verified = token_verifier.verify(token=tokens.id_token)
        if verified.email:
            name = verified.claims.get("name")
            return ExternalIdentity(
                subject_id=verified.subject_id,
                email=verified.email,
                name=name if isinstance(name, str) else None,
            )
    return identity_provider.get_user(access_token=tokens.access_token)


def parse_bearer(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def authenticate_bearer(*, authorization: str | None, token_verifier: TokenVerifierPort) -> AuthResult:
    token = parse_bearer(authorization)
    if token is None:
        return Rejected(reason="Missing bearer token.")
    try:
        verified = token_verifier.verify(token=token)
    except DomainError as exc:
        return Rejected(reason=exc.message)
    return Authenticated(
        subject_id=verified.subject_id,
        email=verified.email,
        claims=verified.claims,
        access_token=token,
    )


def establish_session(
    *,
    user: User,
    tokens: TokenSet,
    device: DeviceInfo,
    session_manager: DeviceSessionManager,
) -> SignInOutput:
    created = session_manager.create_or_refresh_session(
        user_id=user.id,
        refresh_token=tokens.refresh_token,
        device_info=device,
    )
    return SignInOutput(
        user=user,
        tokens=tokens,
        session=created.session,
        removed_sessions=created.evicted_sessions,
    )
