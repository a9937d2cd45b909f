from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class PlanTier(str, Enum):
    FREE = "FREE"
    PRO = "PRO"


@dataclass(frozen=True)
class User:
    id: str
    external_subject_id: str
    email: str
    name: str
    plan: PlanTier
    created_at: datetime
    updated_at: datetime
