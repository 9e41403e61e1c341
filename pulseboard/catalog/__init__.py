from pulseboard.catalog.models import (
    Component,
    Incident,
    IncidentImpact,
    IncidentType,
    LifecycleStatus,
    MonitoredService,
    PingConfig,
    ServiceGroup,
)
from pulseboard.catalog.registry import Catalog, load_catalog, seed_store
from pulseboard.catalog.store import ServiceNotFoundError, StatusStore

__all__ = [
    "Catalog",
    "Component",
    "Incident",
    "IncidentImpact",
    "IncidentType",
    "LifecycleStatus",
    "MonitoredService",
    "PingConfig",
    "ServiceGroup",
    "ServiceNotFoundError",
    "StatusStore",
    "load_catalog",
    "seed_store",
]
