from __future__ import annotations

from datetime import timedelta

import pytest

from app.domain.entities.device_session import DeviceSession
from app.domain.services.device_policy import (
    classify_device,
    generate_device_id,
    is_acceptable_device_id,
    label_device,
    select_sessions_to_evict,
)
from tests.fakes import T0


def _session(session_id: str, *, minutes: int) -> DeviceSession:
    return DeviceSession(
        id=session_id,
        user_id="user-1",
        device_id=f"device-{session_id}",
        device_name="Laptop",
        device_type="web",
        refresh_token_hash=f"h-{session_id}",
        last_active=T0 + timedelta(minutes=minutes),
        expires_at=T0 + timedelta(days=30),
        is_active=True,
        created_at=T0,
        ip_address=None,
        user_agent=None,
    )


def test_generated_device_ids_are_acceptable_and_unique():
    first, second = generate_device_id(), generate_device_id()

    assert first != second
    assert is_acceptable_device_id(first)


@pytest.mark.parametrize("device_id", [None, "", "short", "has space 123", "x" * 129, "dev/../etc/passwd"])
def test_unacceptable_device_ids(device_id):
    assert is_acceptable_device_id(device_id) is False


@pytest.mark.parametrize(
    ("device_type", "user_agent", "expected"),
    [
        ("mobile", None, "mobile"),
        ("Desktop", None, "web"),
        ("ios", None, "mobile"),
        ("toaster", None, "unknown"),
        (None, None, "web"),
        (None, "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Mobile/15E148", "mobile"),
        (None, "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X)", "tablet"),
        (None, "Mozilla/5.0 (Linux; Android 14; SM-X710) AppleWebKit/537.36", "tablet"),
        (None, "Mozilla/5.0 (Linux; Android 14; Pixel 8) Mobile Safari/537.36", "mobile"),
        (None, "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0", "web"),
    ],
)
def test_classify_device(device_type, user_agent, expected):
    assert classify_device(device_type=device_type, user_agent=user_agent) == expected


def test_label_device_collapses_whitespace_and_falls_back():
    assert label_device(device_name="  Ada's   MacBook ") == "Ada's MacBook"
    assert label_device(device_name="   ") == "Unknown Device"
    assert label_device(device_name=None) == "Unknown Device"
    assert len(label_device(device_name="x" * 500)) == 120


def test_eviction_picks_least_recently_active():
    sessions = [_session("b", minutes=2), _session("a", minutes=1), _session("c", minutes=3)]

    assert [s.id for s in select_sessions_to_evict(active_sessions=sessions, keep=2)] == ["a"]
    assert [s.id for s in select_sessions_to_evict(active_sessions=sessions, keep=1)] == ["a", "b"]
    assert select_sessions_to_evict(active_sessions=sessions, keep=3) == []
