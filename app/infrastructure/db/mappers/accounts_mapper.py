from __future__ import annotations

from typing import Any, Mapping

from app.domain.entities.device_session import DeviceSession
from app.domain.entities.user import PlanTier, User


def _as_str(value: Any) -> str:
    return str(value)


def map_row_to_user(row: Mapping[str, Any]) -> User:
    return User(
        id=_as_str(row["id"]),
        external_subject_id=row["external_subject_id"],
        email=row["email"],
        name=row["name"],
        plan=PlanTier(row["plan"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def map_row_to_device_session(row: Mapping[str, Any]) -> DeviceSession:
    return DeviceSession(
        id=_as_str(row["id"]),
        user_id=_as_str(row["user_id"]),
        device_id=row["device_id"],
        device_name=row["device_name"],
        device_type=row["device_type"],
        refresh_token_hash=row["refresh_token_hash"],
        last_active=row["last_active"],
        expires_at=row["expires_at"],
        is_active=bool(row["is_active"]),
        created_at=row["created_at"],
        ip_address=row.get("ip_address"),
        user_agent=row.get("user_agent"),
    )
