from __future__ import annotations

from datetime import datetime
from typing import Callable, Protocol, TypeVar

from app.domain.entities.device_session import DeviceSession, DeviceSessionPatch


TSessionResult = TypeVar("TSessionResult")


class SessionStorePort(Protocol):
    def execute_in_transaction(
        self,
        fn: Callable[[SessionStorePort], TSessionResult],
    ) -> TSessionResult:
        ...

    def lock_user_sessions(self, *, user_id: str) -> None:
        ...

    def get_session(self, *, session_id: str) -> DeviceSession | None:
        ...

    def get_session_by_device_id(self, *, device_id: str) -> DeviceSession | None:
        ...

    def get_session_by_refresh_token_hash(self, *, refresh_token_hash: str) -> DeviceSession | None:
        ...

    def list_active_sessions_by_user(self, *, user_id: str) -> list[DeviceSession]:
        ...

    def insert_session(self, *, session: DeviceSession) -> DeviceSession:
        ...

    def update_session(self, *, session_id: str, patch: DeviceSessionPatch) -> DeviceSession:
        ...

    def mark_session_inactive(self, *, session_id: str) -> bool:
        ...

    def mark_sessions_inactive(self, *, session_ids: list[str]) -> int:
        ...

    def list_expired_active_session_ids(self, *, now: datetime) -> list[str]:
        ...
