from __future__ import annotations

from app.application.dto.me import MeOutput
from app.application.ports.user_port import ResumeStatsPort
from app.application.services.device_session_manager import DeviceSessionManager
from app.domain.entities.user import User


class GetMeUseCase:
    def __init__(self, *, resume_stats: ResumeStatsPort, session_manager: DeviceSessionManager):
        self._resume_stats = resume_stats
        self._session_manager = session_manager

    def execute(self, *, user: User) -> MeOutput:
        return MeOutput(
            user=user,
            resume_count=self._resume_stats.count_resumes(user_id=user.id),
            active_devices=len(self._session_manager.list_sessions(user_id=user.id)),
        )
