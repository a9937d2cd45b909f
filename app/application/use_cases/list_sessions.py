from __future__ import annotations

from app.application.dto.session import SessionListItem
from app.application.services.device_session_manager import DeviceSessionManager


class ListSessionsUseCase:
    def __init__(self, *, session_manager: DeviceSessionManager):
        self._session_manager = session_manager

    def execute(self, *, user_id: str, current_device_id: str | None) -> list[SessionListItem]:
        return [
            SessionListItem(
                session=session,
                is_current=current_device_id is not None and session.device_id == current_device_id,
            )
            for session in self._session_manager.list_sessions(user_id=user_id)
        ]
