"""Status ranking + probe result types shared by the scheduler and aggregator.

``Status`` is ordered most → least severe. Every "worst of" comparison in the
codebase goes through ``rank()`` so the order is defined in exactly one place.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


# ── Service status ───────────────────────────────────────────────────────────


class Status(str, Enum):
    MAJOR_OUTAGE = "major_outage"
    PARTIAL_OUTAGE = "partial_outage"
    DEGRADED = "degraded"
    MAINTENANCE = "maintenance"
    OPERATIONAL = "operational"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | Status | None) -> Status:
        """Coerce a stored value to a Status, falling back to UNKNOWN."""
        if isinstance(value, Status):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


_SEVERITY_ORDER: tuple[Status, ...] = (
    Status.MAJOR_OUTAGE,
    Status.PARTIAL_OUTAGE,
    Status.DEGRADED,
    Status.MAINTENANCE,
    Status.OPERATIONAL,
    Status.UNKNOWN,
)

_RANK = {status: index for index, status in enumerate(_SEVERITY_ORDER)}

STATUS_MESSAGES: dict[Status, str] = {
    Status.OPERATIONAL: "All systems operational.",
    Status.DEGRADED: "Some services are experiencing degraded performance.",
    Status.PARTIAL_OUTAGE: "Some services are experiencing a partial outage.",
    Status.MAJOR_OUTAGE: "Major service outage impacting multiple systems.",
    Status.MAINTENANCE: "Services are currently undergoing scheduled maintenance.",
    Status.UNKNOWN: "System status is currently unknown.",
}


def rank(status: Status) -> int:
    """Severity rank, lower is worse."""
    return _RANK.get(status, _RANK[Status.UNKNOWN])


def worst(a: Status, b: Status) -> Status:
    """Return the more severe of two statuses (ties keep ``a``)."""
    return b if rank(b) < rank(a) else a


def worst_of(statuses: Iterable[Status], default: Status = Status.UNKNOWN) -> Status:
    """Reduce a collection to its most severe status; ``default`` if empty."""
    result: Status | None = None
    for status in statuses:
        result = status if result is None else worst(result, status)
    return default if result is None else result


# ── Probe results ────────────────────────────────────────────────────────────


class ProbeStatus(str, Enum):
    ONLINE = "online"
    SLOW = "slow"
    OFFLINE = "offline"
    TIMEOUT = "timeout"
    ERROR = "error"
    UNKNOWN = "unknown"


FAILURE_STATUSES = frozenset({ProbeStatus.OFFLINE, ProbeStatus.TIMEOUT, ProbeStatus.ERROR})
SUCCESS_STATUSES = frozenset({ProbeStatus.ONLINE, ProbeStatus.SLOW})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProbeResult(BaseModel):
    """Outcome of a single probe. Replaced wholesale on every check."""

    model_config = ConfigDict(frozen=True)

    status: ProbeStatus
    status_code: int | None = None
    response_time_ms: float | None = None
    error: str | None = None
    checked_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_failure(self) -> bool:
        return self.status in FAILURE_STATUSES

    @property
    def is_success(self) -> bool:
        return self.status in SUCCESS_STATUSES
