"""Tests for the catalog loader + store seeding."""

from __future__ import annotations

from pathlib import Path

from pulseboard.catalog.models import IncidentImpact, IncidentType, LifecycleStatus, coerce_interval
from pulseboard.catalog.registry import Catalog, load_catalog, seed_store
from pulseboard.catalog.store import StatusStore
from pulseboard.health.status import ProbeResult, ProbeStatus, Status


SAMPLE_CATALOG = """
groups:
  - id: core
    name: Core Platform
    display_order: 1

services:
  - id: api
    name: Public API
    group: core
    description: REST API
    display_order: 1
    components:
      - id: db
        name: Database
        status: degraded
    ping:
      enabled: true
      url: https://api.example.com/health
      interval_minutes: 10

  - id: billing
    name: Billing
    public: false
    status: maintenance
    ping:
      enabled: true
      interval_minutes: 7

  - name: missing-id

incidents:
  - id: inc-1
    title: Elevated error rates
    type: incident
    impact: significant
    lifecycle_status: investigating
    affected_services: [api]
  - id: inc-2
    type: not-a-type
"""


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "catalog.yaml"
    path.write_text(text)
    return path


class TestLoadCatalog:
    def test_parses_entries(self, tmp_path: Path) -> None:
        catalog = load_catalog(_write(tmp_path, SAMPLE_CATALOG))

        assert [g.id for g in catalog.groups] == ["core"]
        assert [s.id for s in catalog.services] == ["api", "billing"]

        api = catalog.services[0]
        assert api.name == "Public API"
        assert api.group_id == "core"
        assert api.components[0].status == Status.DEGRADED
        assert api.ping.enabled is True
        assert api.ping.interval_minutes == 10
        assert api.is_probe_eligible

    def test_defaults_and_coercion(self, tmp_path: Path) -> None:
        billing = load_catalog(_write(tmp_path, SAMPLE_CATALOG)).services[1]
        assert billing.is_monitored_publicly is False
        assert billing.status == Status.MAINTENANCE
        assert billing.ping.interval_minutes == 5
        assert billing.ping.url == ""
        assert not billing.is_probe_eligible

    def test_incidents(self, tmp_path: Path) -> None:
        incidents = load_catalog(_write(tmp_path, SAMPLE_CATALOG)).incidents
        assert len(incidents) == 1
        inc = incidents[0]
        assert inc.type == IncidentType.INCIDENT
        assert inc.impact == IncidentImpact.SIGNIFICANT
        assert inc.lifecycle_status == LifecycleStatus.INVESTIGATING
        assert inc.affected_service_ids == frozenset({"api"})

    def test_missing_file(self, tmp_path: Path) -> None:
        catalog = load_catalog(tmp_path / "nope.yaml")
        assert catalog == Catalog()

    def test_empty_file(self, tmp_path: Path) -> None:
        assert load_catalog(_write(tmp_path, "")) == Catalog()

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        assert load_catalog(_write(tmp_path, "services: [unclosed")) == Catalog()

    def test_non_mapping_entries_skipped(self, tmp_path: Path) -> None:
        catalog = load_catalog(_write(tmp_path, "services:\n  - just-a-string\n  - [1, 2]\n"))
        assert catalog.services == []


class TestCoerceInterval:
    def test_supported(self) -> None:
        assert [coerce_interval(m) for m in (2, 5, 10, 15)] == [2, 5, 10, 15]

    def test_unsupported_falls_back(self) -> None:
        assert coerce_interval(3) == 5
        assert coerce_interval("ten") == 5
        assert coerce_interval(None) == 5
        assert coerce_interval("15") == 15


class TestSeedStore:
    def test_seed(self, tmp_path: Path, store: StatusStore) -> None:
        seed_store(store, load_catalog(_write(tmp_path, SAMPLE_CATALOG)))
        assert {s.id for s in store.list_services()} == {"api", "billing"}
        assert [g.id for g in store.list_groups()] == ["core"]
        assert [i.id for i in store.list_incidents()] == ["inc-1"]

    def test_reseed_keeps_runtime_status(self, tmp_path: Path, store: StatusStore) -> None:
        path = _write(tmp_path, SAMPLE_CATALOG)
        seed_store(store, load_catalog(path))

        result = ProbeResult(status=ProbeStatus.OFFLINE, error="HTTP 503")
        store.update_service_status("api", Status.MAJOR_OUTAGE, result)

        seed_store(store, load_catalog(path))
        api = store.get_service("api")
        assert api.status == Status.MAJOR_OUTAGE
        assert api.last_probe_result == result
        assert api.name == "Public API"
