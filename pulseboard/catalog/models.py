"""Typed models for monitored services, groups and incidents."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from pulseboard.health.status import ProbeResult, Status

logger = logging.getLogger(__name__)

PING_INTERVALS = (2, 5, 10, 15)  # minutes
DEFAULT_PING_INTERVAL = 5


def coerce_interval(value: object) -> int:
    """Clamp a configured ping interval to one of the supported values."""
    try:
        minutes = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return DEFAULT_PING_INTERVAL
    if minutes not in PING_INTERVALS:
        logger.warning("Unsupported ping interval %r, using %d minutes", value, DEFAULT_PING_INTERVAL)
        return DEFAULT_PING_INTERVAL
    return minutes


# ── Services ─────────────────────────────────────────────────────────────────


@dataclass
class Component:
    """Sub-component of a service with its own status."""

    id: str
    name: str
    status: Status = Status.OPERATIONAL
    description: str = ""


@dataclass
class PingConfig:
    enabled: bool = False
    url: str = ""
    interval_minutes: int = DEFAULT_PING_INTERVAL
    alerts_muted: bool = False


@dataclass
class MonitoredService:
    """A service shown on the status page and optionally probed."""

    id: str
    name: str
    status: Status = Status.OPERATIONAL
    description: str = ""
    is_monitored_publicly: bool = True
    display_order: int = 0
    group_id: str | None = None
    components: list[Component] = field(default_factory=list)
    ping: PingConfig = field(default_factory=PingConfig)
    last_probe_result: ProbeResult | None = None

    @property
    def is_probe_eligible(self) -> bool:
        """Enabled with a URL; the only services the scheduler touches."""
        return self.ping.enabled and bool(self.ping.url)


@dataclass
class ServiceGroup:
    id: str
    name: str
    display_order: int = 0


# ── Incidents ────────────────────────────────────────────────────────────────


class IncidentType(str, Enum):
    INCIDENT = "incident"
    MAINTENANCE = "maintenance"
    INFORMATION = "information"


class IncidentImpact(str, Enum):
    NONE = "none"
    MINOR = "minor"
    SIGNIFICANT = "significant"
    CRITICAL = "critical"


class LifecycleStatus(str, Enum):
    DETECTED = "detected"
    INVESTIGATING = "investigating"
    ACKNOWLEDGED = "acknowledged"
    IDENTIFIED = "identified"
    MONITORING = "monitoring"
    UPDATE = "update"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    COMPLETED = "completed"
    DISMISSED = "dismissed"


CLOSED_LIFECYCLE_STATUSES = frozenset({
    LifecycleStatus.RESOLVED,
    LifecycleStatus.COMPLETED,
    LifecycleStatus.DISMISSED,
})


@dataclass
class Incident:
    id: str
    title: str = ""
    type: IncidentType = IncidentType.INCIDENT
    impact: IncidentImpact = IncidentImpact.NONE
    lifecycle_status: LifecycleStatus = LifecycleStatus.DETECTED
    affected_service_ids: frozenset[str] = frozenset()
    is_publicly_visible: bool = True
    message: str = ""

    @property
    def is_active(self) -> bool:
        return self.lifecycle_status not in CLOSED_LIFECYCLE_STATUSES
