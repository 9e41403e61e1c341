"""Catalog loader — parses catalog.yaml into typed services, groups and incidents.

The YAML file is a seed for the store: services and groups that already exist
are replaced by their catalog definition, but a service's current status and
last probe result are kept so a restart does not undo an escalation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from pulseboard.catalog.models import (
    Component,
    Incident,
    IncidentImpact,
    IncidentType,
    LifecycleStatus,
    MonitoredService,
    PingConfig,
    ServiceGroup,
    coerce_interval,
)
from pulseboard.catalog.store import StatusStore
from pulseboard.health.status import Status

logger = logging.getLogger(__name__)


@dataclass
class Catalog:
    services: list[MonitoredService] = field(default_factory=list)
    groups: list[ServiceGroup] = field(default_factory=list)
    incidents: list[Incident] = field(default_factory=list)


def load_catalog(path: Path | str) -> Catalog:
    """Parse a catalog file. Malformed entries are skipped with a warning."""
    path = Path(path)
    catalog = Catalog()
    if not path.exists():
        logger.warning("Catalog file not found: %s", path)
        return catalog

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        logger.error("Failed to parse %s: %s", path, e)
        return catalog

    for entry in raw.get("groups") or []:
        try:
            catalog.groups.append(_parse_group(entry))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping malformed group entry: %s", e)

    for entry in raw.get("services") or []:
        try:
            catalog.services.append(_parse_service(entry))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping malformed service entry: %s", e)

    for entry in raw.get("incidents") or []:
        try:
            catalog.incidents.append(_parse_incident(entry))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping malformed incident entry: %s", e)

    logger.info(
        "Loaded catalog: %d services, %d groups, %d incidents",
        len(catalog.services), len(catalog.groups), len(catalog.incidents),
    )
    return catalog


def seed_store(store: StatusStore, catalog: Catalog) -> None:
    """Upsert every catalog entry into the store."""
    for group in catalog.groups:
        store.upsert_group(group)

    for service in catalog.services:
        existing = store.get_service(service.id)
        if existing is not None:
            service.status = existing.status
            service.last_probe_result = existing.last_probe_result
        store.upsert_service(service)

    for incident in catalog.incidents:
        store.upsert_incident(incident)


# ── Parsers ──────────────────────────────────────────────────────────────────


def _parse_group(raw: dict[str, Any]) -> ServiceGroup:
    return ServiceGroup(
        id=str(raw["id"]),
        name=raw.get("name", raw["id"]),
        display_order=int(raw.get("display_order", 0)),
    )


def _parse_service(raw: dict[str, Any]) -> MonitoredService:
    components = [
        Component(
            id=str(c["id"]),
            name=c.get("name", c["id"]),
            status=Status.parse(c.get("status", Status.OPERATIONAL.value)),
            description=c.get("description", ""),
        )
        for c in raw.get("components") or []
    ]

    raw_ping = raw.get("ping") or {}
    ping = PingConfig(
        enabled=bool(raw_ping.get("enabled", False)),
        url=raw_ping.get("url", "") or "",
        interval_minutes=coerce_interval(raw_ping.get("interval_minutes", 5)),
        alerts_muted=bool(raw_ping.get("alerts_muted", False)),
    )
    if ping.enabled and not ping.url:
        logger.warning("Service %s has probing enabled but no URL; it will not be probed", raw["id"])

    return MonitoredService(
        id=str(raw["id"]),
        name=raw.get("name", raw["id"]),
        status=Status.parse(raw.get("status", Status.OPERATIONAL.value)),
        description=raw.get("description", ""),
        is_monitored_publicly=bool(raw.get("public", True)),
        display_order=int(raw.get("display_order", 0)),
        group_id=raw.get("group"),
        components=components,
        ping=ping,
    )


def _parse_incident(raw: dict[str, Any]) -> Incident:
    return Incident(
        id=str(raw["id"]),
        title=raw.get("title", ""),
        type=IncidentType(raw.get("type", IncidentType.INCIDENT.value)),
        impact=IncidentImpact(raw.get("impact", IncidentImpact.NONE.value)),
        lifecycle_status=LifecycleStatus(raw.get("lifecycle_status", LifecycleStatus.DETECTED.value)),
        affected_service_ids=frozenset(str(s) for s in raw.get("affected_services") or []),
        is_publicly_visible=bool(raw.get("public", True)),
        message=raw.get("message", ""),
    )
