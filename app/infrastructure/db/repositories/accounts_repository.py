from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator, TypeVar

from sqlalchemy import bindparam, text
from sqlalchemy.engine import Connection, Engine

from app.application.ports.session_store_port import SessionStorePort
from app.application.ports.user_port import UserPort
from app.domain.entities.device_session import DeviceSession, DeviceSessionPatch
from app.domain.entities.user import PlanTier, User
from app.domain.exceptions import DuplicateUserError, NotFoundError
from app.infrastructure.db.mappers.accounts_mapper import map_row_to_device_session, map_row_to_user


TResult = TypeVar("TResult")

_USER_COLUMNS = "id, external_subject_id, email, name, plan, created_at, updated_at"
_SESSION_COLUMNS = (
    "id, user_id, device_id, device_name, device_type, refresh_token_hash, "
    "last_active, expires_at, is_active, created_at, ip_address, user_agent"
)
_PATCHABLE_COLUMNS = (
    "refresh_token_hash",
    "last_active",
    "expires_at",
    "is_active",
    "device_name",
    "device_type",
    "ip_address",
    "user_agent",
)


class SqlAccountsRepository(UserPort, SessionStorePort):
    def __init__(self, engine: Engine, *, connection: Connection | None = None):
        self._engine = engine
        self._connection = connection

    def execute_in_transaction(self, fn: Callable[[SqlAccountsRepository], TResult]) -> TResult:
        if self._connection is not None:
            return fn(self)
        with self._engine.begin() as conn:
            return fn(SqlAccountsRepository(self._engine, connection=conn))

    @contextmanager
    def _reading(self) -> Iterator[Connection]:
        if self._connection is not None:
            yield self._connection
            return
        with self._engine.connect() as conn:
            yield conn

    @contextmanager
    def _writing(self) -> Iterator[Connection]:
        if self._connection is not None:
            yield self._connection
            return
        with self._engine.begin() as conn:
            yield conn

    def get_user_by_id(self, *, user_id: str) -> User | None:
        sql = f"""
            SELECT {_USER_COLUMNS}
            FROM public.users
            WHERE id = :user_id
            LIMIT 1
        """
        with self._reading() as conn:
            row = conn.execute(text(sql), {"user_id": user_id}).mappings().first()
        if row is None:
            return None
        return map_row_to_user(row)

    def get_user_by_external_subject(self, *, external_subject_id: str) -> User | None:
        sql = f"""
            SELECT {_USER_COLUMNS}
            FROM public.users
            WHERE external_subject_id = :external_subject_id
            LIMIT 1
        """
        with self._reading() as conn:
            row = conn.execute(text(sql), {"external_subject_id": external_subject_id}).mappings().first()
        if row is None:
            return None
        return map_row_to_user(row)

    def create_user(
        self,
        *,
        user_id: str,
        external_subject_id: str,
        email: str,
        name: str,
        plan: PlanTier,
        created_at: datetime,
    ) -> User:
        sql = f"""
            INSERT INTO public.users (
                id, external_subject_id, email, name, plan, created_at, updated_at
            ) VALUES (
                :id, :external_subject_id, :email, :name, :plan, :created_at, :created_at
            )
            ON CONFLICT (external_subject_id) DO NOTHING
            RETURNING {_USER_COLUMNS}
        """
        params = {
            "id": user_id,
            "external_subject_id": external_subject_id,
            "email": email,
            "name": name,
            "plan": plan.value,
            "created_at": created_at,
        }
        with self._writing() as conn:
            row = conn.execute(text(sql), params).mappings().first()
        if row is None:
            raise DuplicateUserError("User already exists for external subject.")
        return map_row_to_user(row)

    def lock_user_sessions(self, *, user_id: str) -> None:
        with self._writing() as conn:
            if conn.dialect.name != "postgresql":
                return
            conn.execute(
                text("SELECT pg_advisory_xact_lock(hashtextextended(:lock_key, 0))"),
                {"lock_key": f"device_sessions:{user_id}"},
            )

    def get_session(self, *, session_id: str) -> DeviceSession | None:
        sql = f"""
            SELECT {_SESSION_COLUMNS}
            FROM public.device_sessions
            WHERE id = :session_id
            LIMIT 1
        """
        with self._reading() as conn:
            row = conn.execute(text(sql), {"session_id": session_id}).mappings().first()
        if row is None:
            return None
        return map_row_to_device_session(row)

    def get_session_by_device_id(self, *, device_id: str) -> DeviceSession | None:
        sql = f"""
            SELECT {_SESSION_COLUMNS}
            FROM public.device_sessions
            WHERE device_id = :device_id
            LIMIT 1
        """
        with self._reading() as conn:
            row = conn.execute(text(sql), {"device_id": device_id}).mappings().first()
        if row is None:
            return None
        return map_row_to_device_session(row)

    def get_session_by_refresh_token_hash(self, *, refresh_token_hash: str) -> DeviceSession | None:
        sql = f"""
            SELECT {_SESSION_COLUMNS}
            FROM public.device_sessions
            WHERE refresh_token_hash = :refresh_token_hash
            ORDER BY is_active DESC, last_active DESC
            LIMIT 1
        """
        with self._reading() as conn:
            row = conn.execute(
                text(sql),
                {
                    "refresh_token_hash": refresh_token_hash,
                },
            ).mappings().first()
        if row is None:
            return None
        return map_row_to_device_session(row)

    def list_active_sessions_by_user(self, *, user_id: str) -> list[DeviceSession]:
        sql = f"""
            SELECT {_SESSION_COLUMNS}
            FROM public.device_sessions
            WHERE user_id = :user_id
              AND is_active = true
            ORDER BY last_active DESC
        """
        with self._reading() as conn:
            rows = conn.execute(text(sql), {"user_id": user_id}).mappings().all()
        return [map_row_to_device_session(row) for row in rows]

    def insert_session(self, *, session: DeviceSession) -> DeviceSession:
        sql = f"""
            INSERT INTO public.device_sessions (
                id, user_id, device_id, device_name, device_type, refresh_token_hash,
                last_active, expires_at, is_active, created_at, ip_address, user_agent
            ) VALUES (
                :id, :user_id, :device_id, :device_name, :device_type, :refresh_token_hash,
                :last_active, :expires_at, :is_active, :created_at, :ip_address, :user_agent
            )
            RETURNING {_SESSION_COLUMNS}
        """
        params = {
            "id": session.id,
            "user_id": session.user_id,
            "device_id": session.device_id,
            "device_name": session.device_name,
            "device_type": session.device_type,
            "refresh_token_hash": session.refresh_token_hash,
            "last_active": session.last_active,
            "expires_at": session.expires_at,
            "is_active": session.is_active,
            "created_at": session.created_at,
            "ip_address": session.ip_address,
            "user_agent": session.user_agent,
        }
        with self._writing() as conn:
            row = conn.execute(text(sql), params).mappings().one()
        return map_row_to_device_session(row)

    def update_session(self, *, session_id: str, patch: DeviceSessionPatch) -> DeviceSession:
        params: dict = {"session_id": session_id}
        assignments: list[str] = []
        for column in _PATCHABLE_COLUMNS:
            value = getattr(patch, column)
            if value is None:
                continue
            assignments.append(f"{column} = :{column}")
            params[column] = value

        if not assignments:
            session = self.get_session(session_id=session_id)
            if session is None:
                raise NotFoundError("Device session not found.")
            return session

        sql = f"""
            UPDATE public.device_sessions
            SET {", ".join(assignments)}
            WHERE id = :session_id
            RETURNING {_SESSION_COLUMNS}
        """
        with self._writing() as conn:
            row = conn.execute(text(sql), params).mappings().first()
        if row is None:
            raise NotFoundError("Device session not found.")
        return map_row_to_device_session(row)

    def mark_session_inactive(self, *, session_id: str) -> bool:
        sql = """
            UPDATE public.device_sessions
            SET is_active = false
            WHERE id = :session_id
              AND is_active = true
        """
        with self._writing() as conn:
            result = conn.execute(text(sql), {"session_id": session_id})
        return result.rowcount > 0

    def mark_sessions_inactive(self, *, session_ids: list[str]) -> int:
        if not session_ids:
            return 0
        statement = text(
            """
            UPDATE public.device_sessions
            SET is_active = false
            WHERE id IN :session_ids
              AND is_active = true
            """
        ).bindparams(bindparam("session_ids", expanding=True))
        with self._writing() as conn:
            result = conn.execute(statement, {"session_ids": list(session_ids)})
        return result.rowcount

    def list_expired_active_session_ids(self, *, now: datetime) -> list[str]:
        sql = """
            SELECT id
            FROM public.device_sessions
            WHERE is_active = true
              AND expires_at < :now
            ORDER BY expires_at
        """
        with self._reading() as conn:
            rows = conn.execute(text(sql), {"now": now}).scalars().all()
        return [str(row) for row in rows]


class SqlResumeStatsRepository:
    """Reads counters from the resume table owned by the resume service."""

    def __init__(self, engine: Engine):
        self._engine = engine

    def count_resumes(self, *, user_id: str) -> int:
        sql = """
            SELECT count(*)
            FROM public.resumes
            WHERE user_id = :user_id
        """
        with self._engine.connect() as conn:
            return int(conn.execute(text(sql), {"user_id": user_id}).scalar_one())
