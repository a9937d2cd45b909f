from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal


DeviceType = Literal["web", "mobile", "tablet", "unknown"]

DEVICE_TYPES: tuple[str, ...] = ("web", "mobile", "tablet", "unknown")


@dataclass(frozen=True)
class DeviceSession:
    id: str
    user_id: str
    device_id: str
    device_name: str
    device_type: DeviceType
    refresh_token_hash: str
    last_active: datetime
    expires_at: datetime
    is_active: bool
    created_at: datetime
    ip_address: str | None
    user_agent: str | None


@dataclass(frozen=True)
class DeviceSessionPatch:
    """Partial update; ``None`` leaves the column untouched."""

    refresh_token_hash: str | None = None
    last_active: datetime | None = None
    expires_at: datetime | None = None
    is_active: bool | None = None
    device_name: str | None = None
    device_type: DeviceType | None = None
    ip_address: str | None = None
    user_agent: str | None = None
