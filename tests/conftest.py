"""
Shared fixtures for the sessiontap test suite.

Everything persists under tmp_path; nothing reads the user's data directory
or a .env file.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from sessiontap.config import CaptureSettings
from sessiontap.paths import DataLayout
from sessiontap.schemas.escalation import DomainAssignmentRequest, DomainNamingRequest
from sessiontap.schemas.exchange import Exchange

BASE_TIME = datetime(2024, 5, 1, 9, 30, 0, tzinfo=UTC)


class FixedClock:
    """Clock stand-in returning BASE_TIME plus a manually advanced offset."""

    def __init__(self, now: datetime = BASE_TIME) -> None:
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


class _ManualTimer:
    def __init__(self, callback: Callable[[], None]) -> None:
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose timers only fire when the test says so."""

    def __init__(self) -> None:
        self.timers: list[_ManualTimer] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> _ManualTimer:
        timer = _ManualTimer(callback)
        self.timers.append(timer)
        return timer

    @property
    def armed(self) -> int:
        return sum(1 for timer in self.timers if not timer.cancelled)

    def fire(self) -> None:
        timers, self.timers = self.timers, []
        for timer in timers:
            if not timer.cancelled:
                timer.callback()


class RecordingListener:
    """EscalationListener that keeps every request it receives."""

    def __init__(self) -> None:
        self.naming: list[DomainNamingRequest] = []
        self.assignments: list[DomainAssignmentRequest] = []

    def domain_needs_naming(self, request: DomainNamingRequest) -> None:
        self.naming.append(request)

    def domains_need_assignment(self, request: DomainAssignmentRequest) -> None:
        self.assignments.append(request)


@pytest.fixture
def settings(tmp_path: Path) -> CaptureSettings:
    return CaptureSettings(
        _env_file=None,
        DATA_DIR=tmp_path / 'data',
        DELIVERY_RETRY_INTERVAL=0.01,
        DELIVERY_GRACE_WINDOW=5.0,
    )


@pytest.fixture
def layout(settings: CaptureSettings) -> DataLayout:
    return DataLayout(settings.DATA_DIR)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def make_exchange() -> Callable[..., Exchange]:
    """Factory for Exchanges with sensible defaults.

    Each call is stamped one second after the previous one so ordering by
    timestamp matches creation order.
    """
    counter = iter(range(1_000_000))

    def factory(url: str = 'https://mail.example.com/api/inbox', **fields: Any) -> Exchange:
        fields.setdefault('kind', 'request-response')
        fields.setdefault('method', 'GET')
        fields.setdefault('status', 200)
        fields.setdefault('status_text', 'OK')
        fields.setdefault('timestamp', BASE_TIME + timedelta(seconds=next(counter)))
        return Exchange(url=url, **fields)

    return factory
