from __future__ import annotations

from dataclasses import dataclass

from app.domain.entities.device_session import DeviceSession


@dataclass(frozen=True)
class CreateSessionOutput:
    session: DeviceSession
    evicted_sessions: list[DeviceSession]


@dataclass(frozen=True)
class SessionValidation:
    session: DeviceSession
    user_id: str


@dataclass(frozen=True)
class SessionListItem:
    session: DeviceSession
    is_current: bool
