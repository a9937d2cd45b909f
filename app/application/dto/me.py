from __future__ import annotations

from dataclasses import dataclass

from app.domain.entities.user import User


@dataclass(frozen=True)
class MeOutput:
    user: User
    resume_count: int
    active_devices: int
