from __future__ import annotations

from datetime import datetime
from typing import Protocol

from app.domain.entities.user import PlanTier, User


class UserPort(Protocol):
    def get_user_by_id(self, *, user_id: str) -> User | None:
        ...

    def get_user_by_external_subject(self, *, external_subject_id: str) -> User | None:
        ...

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
        """Raises ``DuplicateUserError`` when the external subject id is already taken."""
        ...


class ResumeStatsPort(Protocol):
    def count_resumes(self, *, user_id: str) -> int:
        ...
