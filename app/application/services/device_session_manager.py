from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable
from uuid import uuid4

from app.application.dto.auth import DeviceInfo
from app.application.dto.session import CreateSessionOutput, SessionValidation
from app.application.ports.refresh_token_hasher_port import RefreshTokenHasherPort
from app.application.ports.session_store_port import SessionStorePort
from app.domain.entities.device_session import DeviceSession, DeviceSessionPatch
from app.domain.exceptions import SessionRejectedError, ValidationError
from app.domain.services.device_policy import (
    classify_device,
    generate_device_id,
    is_acceptable_device_id,
    label_device,
    select_sessions_to_evict,
)


logger = logging.getLogger(__name__)

DEFAULT_DEVICE_CAP = 3
DEFAULT_SESSION_VALIDITY = timedelta(days=30)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeviceSessionManager:
    """Device session lifecycle on top of the session store.

    Every public operation runs inside a single store transaction. Creation of a
    session for a new device takes the per-user session lock before reading the
    active set, so two concurrent new-device logins for the same user are
    serialized and cannot both skip eviction.
    """

    def __init__(
        self,
        *,
        session_store: SessionStorePort,
        refresh_token_hasher: RefreshTokenHasherPort,
        device_cap: int = DEFAULT_DEVICE_CAP,
        session_validity: timedelta = DEFAULT_SESSION_VALIDITY,
        clock: Callable[[], datetime] = utcnow,
    ):
        if device_cap < 1:
            raise ValueError("device_cap must be at least 1.")
        self._store = session_store
        self._hasher = refresh_token_hasher
        self._device_cap = device_cap
        self._session_validity = session_validity
        self._clock = clock

    @property
    def device_cap(self) -> int:
        return self._device_cap

    def create_or_refresh_session(
        self,
        *,
        user_id: str,
        refresh_token: str,
        device_info: DeviceInfo,
    ) -> CreateSessionOutput:
        if not refresh_token:
            raise ValidationError("Refresh token is required to open a session.")
        refresh_hash = self._hasher.hash_refresh_token(refresh_token=refresh_token)

        def _tx(store: SessionStorePort) -> CreateSessionOutput:
            store.lock_user_sessions(user_id=user_id)
            now = self._clock()
            expires_at = now + self._session_validity

            device_id = device_info.device_id if is_acceptable_device_id(device_info.device_id) else None
            existing = store.get_session_by_device_id(device_id=device_id) if device_id else None
            if existing is not None and existing.user_id != user_id:
                logger.warning(
                    "device_session_manager: device_id_owned_by_other_user device_id=%s user_id=%s",
                    device_id,
                    user_id,
                )
                existing = None
                device_id = None

            self._release_credential(store, refresh_hash=refresh_hash, keep_session_id=existing.id if existing else None)

            if existing is not None:
                patch = DeviceSessionPatch(
                    refresh_token_hash=refresh_hash,
                    last_active=now,
                    expires_at=expires_at,
                    is_active=True,
                    device_name=label_device(device_name=device_info.device_name)
                    if device_info.device_name
                    else None,
                    device_type=classify_device(
                        device_type=device_info.device_type,
                        user_agent=device_info.user_agent,
                    )
                    if device_info.device_type
                    else None,
                    ip_address=device_info.ip_address,
                    user_agent=device_info.user_agent,
                )
                session = store.update_session(session_id=existing.id, patch=patch)
                evicted: list[DeviceSession] = []
                if not existing.is_active:
                    # reactivation counts against the cap like a new device
                    evicted = self._evict_overflow(store, user_id=user_id, exclude_session_id=session.id)
                logger.info(
                    "device_session_manager: session_refreshed user_id=%s session_id=%s device_id=%s",
                    user_id,
                    session.id,
                    session.device_id,
                )
                return CreateSessionOutput(session=session, evicted_sessions=evicted)

            evicted = self._evict_overflow(store, user_id=user_id, exclude_session_id=None)
            session = store.insert_session(
                session=DeviceSession(
                    id=str(uuid4()),
                    user_id=user_id,
                    device_id=device_id or generate_device_id(),
                    device_name=label_device(device_name=device_info.device_name),
                    device_type=classify_device(
                        device_type=device_info.device_type,
                        user_agent=device_info.user_agent,
                    ),
                    refresh_token_hash=refresh_hash,
                    last_active=now,
                    expires_at=expires_at,
                    is_active=True,
                    created_at=now,
                    ip_address=device_info.ip_address,
                    user_agent=device_info.user_agent,
                )
            )
            logger.info(
                "device_session_manager: session_created user_id=%s session_id=%s device_id=%s evicted=%s",
                user_id,
                session.id,
                session.device_id,
                len(evicted),
            )
            return CreateSessionOutput(session=session, evicted_sessions=evicted)

        return self._store.execute_in_transaction(_tx)

    def validate_and_touch(self, *, refresh_token: str) -> SessionValidation:
        refresh_hash = self._hasher.hash_refresh_token(refresh_token=refresh_token)

        def _tx(store: SessionStorePort) -> tuple[DeviceSession | None, str | None]:
            now = self._clock()
            session = store.get_session_by_refresh_token_hash(refresh_token_hash=refresh_hash)
            if session is None:
                return None, "not_found"
            if session.expires_at < now:
                if session.is_active:
                    store.mark_session_inactive(session_id=session.id)
                    logger.info(
                        "device_session_manager: session_expired session_id=%s user_id=%s",
                        session.id,
                        session.user_id,
                    )
                return session, "expired"
            if not session.is_active:
                return session, "inactive"
            touched = store.update_session(
                session_id=session.id,
                patch=DeviceSessionPatch(last_active=now),
            )
            return touched, None

        # the lazy expiry mark must be committed before the rejection propagates
        session, rejection = self._store.execute_in_transaction(_tx)
        if rejection is not None or session is None:
            raise SessionRejectedError(rejection or "not_found")
        return SessionValidation(session=session, user_id=session.user_id)

    def rotate_credential(self, *, session_id: str, refresh_token: str) -> DeviceSession:
        refresh_hash = self._hasher.hash_refresh_token(refresh_token=refresh_token)

        def _tx(store: SessionStorePort) -> DeviceSession:
            now = self._clock()
            self._release_credential(store, refresh_hash=refresh_hash, keep_session_id=session_id)
            return store.update_session(
                session_id=session_id,
                patch=DeviceSessionPatch(
                    refresh_token_hash=refresh_hash,
                    last_active=now,
                    expires_at=now + self._session_validity,
                ),
            )

        return self._store.execute_in_transaction(_tx)

    def revoke(self, *, session_id: str) -> None:
        changed = self._store.execute_in_transaction(
            lambda store: store.mark_session_inactive(session_id=session_id)
        )
        logger.info("device_session_manager: revoke session_id=%s changed=%s", session_id, changed)

    def revoke_by_device_id(self, *, device_id: str) -> None:
        def _tx(store: SessionStorePort) -> bool:
            session = store.get_session_by_device_id(device_id=device_id)
            if session is None or not session.is_active:
                return False
            return store.mark_session_inactive(session_id=session.id)

        changed = self._store.execute_in_transaction(_tx)
        logger.info("device_session_manager: revoke_device device_id=%s changed=%s", device_id, changed)

    def revoke_all(self, *, user_id: str) -> int:
        def _tx(store: SessionStorePort) -> int:
            store.lock_user_sessions(user_id=user_id)
            active = store.list_active_sessions_by_user(user_id=user_id)
            if not active:
                return 0
            return store.mark_sessions_inactive(session_ids=[session.id for session in active])

        count = self._store.execute_in_transaction(_tx)
        logger.info("device_session_manager: revoke_all user_id=%s count=%s", user_id, count)
        return count

    def list_sessions(self, *, user_id: str) -> list[DeviceSession]:
        sessions = self._store.list_active_sessions_by_user(user_id=user_id)
        return sorted(sessions, key=lambda session: session.last_active, reverse=True)

    def find_active_device_session(self, *, user_id: str, device_id: str) -> DeviceSession | None:
        session = self._store.get_session_by_device_id(device_id=device_id)
        if session is None or session.user_id != user_id or not session.is_active:
            return None
        return session

    def expire_stale_sessions(self) -> int:
        def _tx(store: SessionStorePort) -> int:
            expired_ids = store.list_expired_active_session_ids(now=self._clock())
            if not expired_ids:
                return 0
            return store.mark_sessions_inactive(session_ids=expired_ids)

        count = self._store.execute_in_transaction(_tx)
        logger.info("device_session_manager: expired_sweep count=%s", count)
        return count

    def _evict_overflow(
        self,
        store: SessionStorePort,
        *,
        user_id: str,
        exclude_session_id: str | None,
    ) -> list[DeviceSession]:
        others = [
            session
            for session in store.list_active_sessions_by_user(user_id=user_id)
            if session.id != exclude_session_id
        ]
        to_evict = select_sessions_to_evict(active_sessions=others, keep=self._device_cap - 1)
        if not to_evict:
            return []
        store.mark_sessions_inactive(session_ids=[session.id for session in to_evict])
        logger.info(
            "device_session_manager: evicted user_id=%s session_ids=%s",
            user_id,
            ",".join(session.id for session in to_evict),
        )
        return [replace(session, is_active=False) for session in to_evict]

    def _release_credential(
        self,
        store: SessionStorePort,
        *,
        refresh_hash: str,
        keep_session_id: str | None,
    ) -> None:
        holder = store.get_session_by_refresh_token_hash(refresh_token_hash=refresh_hash)
        if holder is None or holder.id == keep_session_id or not holder.is_active:
            return
        store.mark_session_inactive(session_id=holder.id)
        logger.warning(
            "device_session_manager: credential_reassigned previous_session_id=%s",
            holder.id,
        )
