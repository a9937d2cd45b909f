from __future__ import annotations

import re
from uuid import uuid4

from app.domain.entities.device_session import DEVICE_TYPES, DeviceSession, DeviceType


DEFAULT_DEVICE_NAME = "Unknown Device"
WEB_BROWSER_DEVICE_NAME = "Web Browser"

_DEVICE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.:-]{8,128}$")
_TABLET_MARKERS = ("ipad", "tablet", "kindle", "silk")
_MOBILE_MARKERS = ("mobile", "iphone", "android", "okhttp", "cfnetwork")


def generate_device_id() -> str:
    return f"dev_{uuid4()}"


def is_acceptable_device_id(device_id: str | None) -> bool:
    if not device_id:
        return False
    return bool(_DEVICE_ID_PATTERN.match(device_id))


def classify_device(*, device_type: str | None, user_agent: str | None) -> DeviceType:
    if device_type:
        normalized = device_type.strip().lower()
        if normalized in DEVICE_TYPES:
            return normalized  # type: ignore[return-value]
        if normalized in ("desktop", "browser"):
            return "web"
        if normalized in ("phone", "ios", "android"):
            return "mobile"
        return "unknown"

    if not user_agent:
        return "web"

    ua = user_agent.lower()
    # android tablets omit "mobile" from the UA
    if any(marker in ua for marker in _TABLET_MARKERS) or ("android" in ua and "mobile" not in ua):
        return "tablet"
    if any(marker in ua for marker in _MOBILE_MARKERS):
        return "mobile"
    return "web"


def label_device(*, device_name: str | None, max_length: int = 120) -> str:
    if device_name is None:
        return DEFAULT_DEVICE_NAME
    label = " ".join(device_name.split())
    if not label:
        return DEFAULT_DEVICE_NAME
    return label[:max_length]


def select_sessions_to_evict(
    *,
    active_sessions: list[DeviceSession],
    keep: int,
) -> list[DeviceSession]:
    """Least-recently-active sessions that must go so that at most ``keep`` remain."""
    overflow = len(active_sessions) - max(keep, 0)
    if overflow <= 0:
        return []
    ordered = sorted(
        active_sessions,
        key=lambda session: (session.last_active, session.created_at, session.id),
    )
    return ordered[:overflow]
