"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

import pytest

from pulseboard.catalog.models import MonitoredService, PingConfig
from pulseboard.catalog.store import StatusStore
from pulseboard.health.status import ProbeResult, ProbeStatus, Status
from pulseboard.notifications import NotificationManager


class ScriptedProbe:
    """Async probe stand-in that returns queued statuses (last one repeats)."""

    def __init__(self, statuses: Iterable[ProbeStatus] = (ProbeStatus.ONLINE,)) -> None:
        self.queue = list(statuses)
        self.calls: list[str] = []

    async def __call__(self, url: str) -> ProbeResult:
        self.calls.append(url)
        status = self.queue.pop(0) if len(self.queue) > 1 else self.queue[0]
        return ProbeResult(status=status, status_code=200 if status == ProbeStatus.ONLINE else None)


def make_service(
    service_id: str = "api",
    status: Status = Status.OPERATIONAL,
    enabled: bool = True,
    url: str = "https://api.example.com/health",
    muted: bool = False,
    **kwargs,
) -> MonitoredService:
    return MonitoredService(
        id=service_id,
        name=kwargs.pop("name", service_id.upper()),
        status=status,
        ping=PingConfig(enabled=enabled, url=url, interval_minutes=kwargs.pop("interval", 5), alerts_muted=muted),
        **kwargs,
    )


@pytest.fixture
def store(tmp_path: Path) -> StatusStore:
    """StatusStore backed by a temp SQLite file."""
    s = StatusStore(db_path=tmp_path / "test_status.db")
    yield s
    s.close()


@pytest.fixture
def notifier() -> NotificationManager:
    """Notifier with no webhook channels, only the in-memory feed."""
    return NotificationManager(slack_webhook="", telegram_token="", telegram_chat_id="")


@pytest.fixture
def probe() -> ScriptedProbe:
    return ScriptedProbe()
