"""Status aggregation — derives display status for services, groups and the platform.

Everything here is a pure function of its inputs: no I/O, no clock, no
mutation. Results depend only on the severity ranks in ``status.py``, so
reordering the inputs never changes the answer.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from pulseboard.catalog.models import (
    Incident,
    IncidentImpact,
    IncidentType,
    MonitoredService,
    ServiceGroup,
)
from pulseboard.health.status import STATUS_MESSAGES, Status, worst, worst_of

NO_SERVICES_MESSAGE = "No services are currently monitored."

_IMPACT_STATUS = {
    IncidentImpact.CRITICAL: Status.MAJOR_OUTAGE,
    IncidentImpact.SIGNIFICANT: Status.PARTIAL_OUTAGE,
    IncidentImpact.MINOR: Status.DEGRADED,
}


@dataclass(frozen=True)
class OverallStatus:
    level: Status
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"level": self.level.value, "message": self.message}


def incident_implied_status(incident: Incident) -> Status | None:
    """Status an incident forces on the services it affects, if any."""
    if incident.type == IncidentType.MAINTENANCE:
        return Status.MAINTENANCE
    if incident.type == IncidentType.INCIDENT:
        return _IMPACT_STATUS.get(incident.impact)
    return None


def base_status(service: MonitoredService) -> Status:
    """Service status folded with its components' statuses."""
    if not service.components:
        return service.status
    return worst(service.status, worst_of(c.status for c in service.components))


def service_display_status(
    service: MonitoredService, incidents: Iterable[Incident] = (),
) -> Status:
    result = base_status(service)
    for incident in incidents:
        if not (incident.is_active and incident.is_publicly_visible):
            continue
        if service.id not in incident.affected_service_ids:
            continue
        implied = incident_implied_status(incident)
        if implied is not None:
            result = worst(result, implied)
    return result


def group_display_status(
    group: ServiceGroup,
    members: Iterable[MonitoredService],
    incidents: Sequence[Incident] = (),
) -> Status:
    """Worst display status of the group's members; UNKNOWN when empty."""
    return worst_of(
        (service_display_status(s, incidents) for s in members),
        default=Status.UNKNOWN,
    )


def overall_status(
    services: Iterable[MonitoredService], incidents: Sequence[Incident] = (),
) -> OverallStatus:
    public = [s for s in services if s.is_monitored_publicly]
    if not public:
        return OverallStatus(Status.OPERATIONAL, NO_SERVICES_MESSAGE)
    level = worst_of(service_display_status(s, incidents) for s in public)
    return OverallStatus(level, STATUS_MESSAGES[level])


# ── Status document ──────────────────────────────────────────────────────────


def service_to_dict(service: MonitoredService, incidents: Sequence[Incident] = ()) -> dict[str, Any]:
    probe = service.last_probe_result
    return {
        "id": service.id,
        "name": service.name,
        "description": service.description,
        "status": service_display_status(service, incidents).value,
        "raw_status": service.status.value,
        "display_order": service.display_order,
        "group_id": service.group_id,
        "components": [
            {"id": c.id, "name": c.name, "status": c.status.value, "description": c.description}
            for c in service.components
        ],
        "ping_enabled": service.ping.enabled,
        "last_probe_result": probe.model_dump(mode="json") if probe else None,
    }


def incident_to_dict(incident: Incident) -> dict[str, Any]:
    return {
        "id": incident.id,
        "title": incident.title,
        "type": incident.type.value,
        "impact": incident.impact.value,
        "lifecycle_status": incident.lifecycle_status.value,
        "affected_service_ids": sorted(incident.affected_service_ids),
        "message": incident.message,
    }


def build_status_document(
    services: Sequence[MonitoredService],
    groups: Sequence[ServiceGroup],
    incidents: Sequence[Incident],
) -> dict[str, Any]:
    """Assemble the public JSON status document (without a timestamp).

    Only publicly monitored services and active, public incidents are included.
    Services pointing at a group that no longer exists are listed as ungrouped.
    """
    public = sorted(
        (s for s in services if s.is_monitored_publicly), key=lambda s: s.display_order,
    )
    visible = [i for i in incidents if i.is_active and i.is_publicly_visible]
    group_ids = {g.id for g in groups}

    group_docs = []
    for group in sorted(groups, key=lambda g: g.display_order):
        members = [s for s in public if s.group_id == group.id]
        group_docs.append({
            "id": group.id,
            "name": group.name,
            "display_order": group.display_order,
            "status": group_display_status(group, members, visible).value,
            "services": [service_to_dict(s, visible) for s in members],
        })

    ungrouped = [s for s in public if s.group_id not in group_ids]

    return {
        "overall_status": overall_status(public, visible).to_dict(),
        "service_groups": group_docs,
        "ungrouped_services": [service_to_dict(s, visible) for s in ungrouped],
        "active_incidents": [
            incident_to_dict(i) for i in visible if i.type == IncidentType.INCIDENT
        ],
        "scheduled_maintenance": [
            incident_to_dict(i) for i in visible if i.type == IncidentType.MAINTENANCE
        ],
    }
