"""SQLite-backed storage for services, groups, incidents and probe history.

The scheduler only ever writes ``status`` + ``last_probe_result`` for the
service its own task owns; everything else is written by the catalog seeder
or the (external) admin layer.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

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
from pulseboard.config import settings
from pulseboard.health.status import SUCCESS_STATUSES, ProbeResult, ProbeStatus, Status

logger = logging.getLogger(__name__)


class ServiceNotFoundError(KeyError):
    """Raised when writing to a service id that is not in the store."""


class StatusStore:
    """SQLite-backed storage for the status page catalog + probe results."""

    def __init__(self, db_path: Path | str | None = None) -> None:
        self._db_path = Path(db_path or settings.db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
        return self._conn

    def _init_db(self) -> None:
        conn = self._get_conn()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS services (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'operational',
                description TEXT NOT NULL DEFAULT '',
                is_monitored_publicly INTEGER NOT NULL DEFAULT 1,
                display_order INTEGER NOT NULL DEFAULT 0,
                group_id TEXT,
                components TEXT NOT NULL DEFAULT '[]',
                ping_enabled INTEGER NOT NULL DEFAULT 0,
                ping_url TEXT NOT NULL DEFAULT '',
                ping_interval_minutes INTEGER NOT NULL DEFAULT 5,
                ping_alerts_muted INTEGER NOT NULL DEFAULT 0,
                last_probe_result TEXT,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS service_groups (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                display_order INTEGER NOT NULL DEFAULT 0
            );

            CREATE TABLE IF NOT EXISTS incidents (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL DEFAULT '',
                type TEXT NOT NULL,
                impact TEXT NOT NULL DEFAULT 'none',
                lifecycle_status TEXT NOT NULL,
                affected_service_ids TEXT NOT NULL DEFAULT '[]',
                is_publicly_visible INTEGER NOT NULL DEFAULT 1,
                message TEXT NOT NULL DEFAULT ''
            );

            CREATE TABLE IF NOT EXISTS probe_results (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                service_id TEXT NOT NULL,
                status TEXT NOT NULL,
                status_code INTEGER,
                response_time_ms REAL,
                error TEXT,
                checked_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_probe_results_service
                ON probe_results (service_id, checked_at DESC);
        """)
        conn.commit()

    # ── Services ─────────────────────────────────────────────────────────────

    def upsert_service(self, service: MonitoredService) -> None:
        """Insert or replace a service definition."""
        conn = self._get_conn()
        conn.execute(
            "INSERT OR REPLACE INTO services "
            "(id, name, status, description, is_monitored_publicly, display_order, group_id, "
            "components, ping_enabled, ping_url, ping_interval_minutes, ping_alerts_muted, "
            "last_probe_result, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                service.id, service.name, service.status.value, service.description,
                int(service.is_monitored_publicly), service.display_order, service.group_id,
                json.dumps([
                    {"id": c.id, "name": c.name, "status": c.status.value, "description": c.description}
                    for c in service.components
                ]),
                int(service.ping.enabled), service.ping.url,
                coerce_interval(service.ping.interval_minutes), int(service.ping.alerts_muted),
                service.last_probe_result.model_dump_json() if service.last_probe_result else None,
                _now(),
            ),
        )
        conn.commit()

    def delete_service(self, service_id: str) -> bool:
        conn = self._get_conn()
        cursor = conn.execute("DELETE FROM services WHERE id = ?", (service_id,))
        conn.commit()
        return cursor.rowcount > 0

    def get_service(self, service_id: str) -> MonitoredService | None:
        row = self._get_conn().execute(
            "SELECT * FROM services WHERE id = ?", (service_id,),
        ).fetchone()
        return _row_to_service(row) if row else None

    def list_services(self) -> list[MonitoredService]:
        rows = self._get_conn().execute(
            "SELECT * FROM services ORDER BY display_order, id",
        ).fetchall()
        return [_row_to_service(r) for r in rows]

    def list_public_services(self) -> list[MonitoredService]:
        rows = self._get_conn().execute(
            "SELECT * FROM services WHERE is_monitored_publicly = 1 ORDER BY display_order, id",
        ).fetchall()
        return [_row_to_service(r) for r in rows]

    def update_service_status(
        self, service_id: str, status: Status, probe_result: ProbeResult,
    ) -> None:
        """Write back status + last probe result and append to probe history."""
        conn = self._get_conn()
        cursor = conn.execute(
            "UPDATE services SET status = ?, last_probe_result = ?, updated_at = ? WHERE id = ?",
            (status.value, probe_result.model_dump_json(), _now(), service_id),
        )
        if cursor.rowcount == 0:
            conn.rollback()
            raise ServiceNotFoundError(service_id)
        conn.execute(
            "INSERT INTO probe_results "
            "(service_id, status, status_code, response_time_ms, error, checked_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                service_id, probe_result.status.value, probe_result.status_code,
                probe_result.response_time_ms, probe_result.error,
                probe_result.checked_at.isoformat(),
            ),
        )
        conn.commit()

    def set_ping_config(self, service_id: str, ping: PingConfig) -> None:
        """Change a service's probe configuration (enable/disable, URL, interval)."""
        conn = self._get_conn()
        cursor = conn.execute(
            "UPDATE services SET ping_enabled = ?, ping_url = ?, ping_interval_minutes = ?, "
            "ping_alerts_muted = ?, updated_at = ? WHERE id = ?",
            (
                int(ping.enabled), ping.url, coerce_interval(ping.interval_minutes),
                int(ping.alerts_muted), _now(), service_id,
            ),
        )
        conn.commit()
        if cursor.rowcount == 0:
            raise ServiceNotFoundError(service_id)

    # ── Groups ───────────────────────────────────────────────────────────────

    def upsert_group(self, group: ServiceGroup) -> None:
        conn = self._get_conn()
        conn.execute(
            "INSERT OR REPLACE INTO service_groups (id, name, display_order) VALUES (?, ?, ?)",
            (group.id, group.name, group.display_order),
        )
        conn.commit()

    def list_groups(self) -> list[ServiceGroup]:
        rows = self._get_conn().execute(
            "SELECT * FROM service_groups ORDER BY display_order, id",
        ).fetchall()
        return [ServiceGroup(id=r["id"], name=r["name"], display_order=r["display_order"]) for r in rows]

    def get_group(self, group_id: str) -> ServiceGroup | None:
        r = self._get_conn().execute(
            "SELECT * FROM service_groups WHERE id = ?", (group_id,),
        ).fetchone()
        return ServiceGroup(id=r["id"], name=r["name"], display_order=r["display_order"]) if r else None

    # ── Incidents ────────────────────────────────────────────────────────────

    def upsert_incident(self, incident: Incident) -> None:
        conn = self._get_conn()
        conn.execute(
            "INSERT OR REPLACE INTO incidents "
            "(id, title, type, impact, lifecycle_status, affected_service_ids, "
            "is_publicly_visible, message) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                incident.id, incident.title, incident.type.value, incident.impact.value,
                incident.lifecycle_status.value, json.dumps(sorted(incident.affected_service_ids)),
                int(incident.is_publicly_visible), incident.message,
            ),
        )
        conn.commit()

    def list_incidents(self) -> list[Incident]:
        rows = self._get_conn().execute("SELECT * FROM incidents ORDER BY id").fetchall()
        return [_row_to_incident(r) for r in rows]

    def list_active_visible_incidents(self) -> list[Incident]:
        return [i for i in self.list_incidents() if i.is_active and i.is_publicly_visible]

    # ── Probe history ────────────────────────────────────────────────────────

    def get_probe_history(self, service_id: str, limit: int = 100) -> list[dict[str, Any]]:
        """Most recent probe results for a service, newest first."""
        rows = self._get_conn().execute(
            "SELECT * FROM probe_results WHERE service_id = ? "
            "ORDER BY checked_at DESC LIMIT ?",
            (service_id, limit),
        ).fetchall()
        return [dict(r) for r in rows]

    def get_uptime(self, service_id: str, hours: int = 24) -> float:
        """Percentage of conclusive probes in the window that succeeded.

        ``unknown`` results are ignored; no data counts as 100%.
        """
        cutoff = (datetime.now(timezone.utc) - timedelta(hours=hours)).isoformat()
        rows = self._get_conn().execute(
            "SELECT status FROM probe_results "
            "WHERE service_id = ? AND checked_at >= ? AND status != ?",
            (service_id, cutoff, ProbeStatus.UNKNOWN.value),
        ).fetchall()
        if not rows:
            return 100.0
        up = sum(1 for r in rows if ProbeStatus(r["status"]) in SUCCESS_STATUSES)
        return round(up / len(rows) * 100, 2)

    def cleanup_old(self, days: int | None = None) -> int:
        """Remove probe results older than N days."""
        days = days if days is not None else settings.probe_history_days
        cutoff = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()
        conn = self._get_conn()
        cursor = conn.execute("DELETE FROM probe_results WHERE checked_at < ?", (cutoff,))
        conn.commit()
        return cursor.rowcount

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None


# ── Row mappers ──────────────────────────────────────────────────────────────


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_service(row: sqlite3.Row) -> MonitoredService:
    components = []
    try:
        for c in json.loads(row["components"] or "[]"):
            components.append(Component(
                id=c.get("id", ""),
                name=c.get("name", ""),
                status=Status.parse(c.get("status")),
                description=c.get("description", ""),
            ))
    except (json.JSONDecodeError, AttributeError) as e:
        logger.warning("Failed to parse components for service %s: %s", row["id"], e)

    last_probe = None
    if row["last_probe_result"]:
        try:
            last_probe = ProbeResult.model_validate_json(row["last_probe_result"])
        except ValidationError as e:
            logger.warning("Failed to parse last probe result for service %s: %s", row["id"], e)

    return MonitoredService(
        id=row["id"],
        name=row["name"],
        status=Status.parse(row["status"]),
        description=row["description"],
        is_monitored_publicly=bool(row["is_monitored_publicly"]),
        display_order=row["display_order"],
        group_id=row["group_id"],
        components=components,
        ping=PingConfig(
            enabled=bool(row["ping_enabled"]),
            url=row["ping_url"],
            interval_minutes=row["ping_interval_minutes"],
            alerts_muted=bool(row["ping_alerts_muted"]),
        ),
        last_probe_result=last_probe,
    )


def _row_to_incident(row: sqlite3.Row) -> Incident:
    return Incident(
        id=row["id"],
        title=row["title"],
        type=IncidentType(row["type"]),
        impact=IncidentImpact(row["impact"]),
        lifecycle_status=LifecycleStatus(row["lifecycle_status"]),
        affected_service_ids=frozenset(json.loads(row["affected_service_ids"] or "[]")),
        is_publicly_visible=bool(row["is_publicly_visible"]),
        message=row["message"],
    )
