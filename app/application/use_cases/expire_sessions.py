from __future__ import annotations

from app.application.services.device_session_manager import DeviceSessionManager


class ExpireSessionsUseCase:
    def __init__(self, *, session_manager: DeviceSessionManager):
        self._session_manager = session_manager

    def execute(self) -> int:
        return self._session_manager.expire_stale_sessions()
