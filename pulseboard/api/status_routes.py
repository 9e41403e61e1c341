"""API routes for the public status document + scheduler diagnostics.

Endpoints:
  GET  /api/status                      — full status document (groups, services, incidents)
  GET  /api/status/overall              — overall level + message
  GET  /api/status/services/{id}        — display status for one service
  GET  /api/status/groups/{id}          — display status for one group
  GET  /api/services/{id}/history       — probe history + uptime
  GET  /api/scheduler                   — per-service scheduler state
  POST /api/scheduler/refresh           — run a reconciliation pass now
  GET  /api/notifications               — recent service down / restored notifications
  POST /api/probe                       — one-shot probe of a URL (not persisted)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from pulseboard.health.aggregator import (
    build_status_document,
    group_display_status,
    overall_status,
    service_to_dict,
)
from pulseboard.health.probe import probe_url

logger = logging.getLogger(__name__)

status_router = APIRouter()


class ProbeRequest(BaseModel):
    url: str
    timeout_ms: int | None = None


# ── Status ───────────────────────────────────────────────────────────────────


@status_router.get("/status")
def status_document(request: Request) -> dict[str, Any]:
    """Public status document consumed by the status page + JSON API users."""
    store = request.app.state.status_store
    doc = build_status_document(
        store.list_public_services(),
        store.list_groups(),
        store.list_active_visible_incidents(),
    )
    doc["generated_at"] = datetime.now(timezone.utc).isoformat()
    return doc


@status_router.get("/status/overall")
def overall(request: Request) -> dict[str, str]:
    store = request.app.state.status_store
    result = overall_status(store.list_public_services(), store.list_active_visible_incidents())
    return result.to_dict()


@status_router.get("/status/services/{service_id}")
def service_status(service_id: str, request: Request) -> dict[str, Any]:
    store = request.app.state.status_store
    service = store.get_service(service_id)
    if service is None:
        raise HTTPException(status_code=404, detail=f"Service not found: {service_id}")

    data = service_to_dict(service, store.list_active_visible_incidents())
    data["uptime_24h"] = store.get_uptime(service_id, hours=24)
    return data


@status_router.get("/status/groups/{group_id}")
def group_status(group_id: str, request: Request) -> dict[str, Any]:
    store = request.app.state.status_store
    group = store.get_group(group_id)
    if group is None:
        raise HTTPException(status_code=404, detail=f"Group not found: {group_id}")

    incidents = store.list_active_visible_incidents()
    members = [s for s in store.list_public_services() if s.group_id == group_id]
    return {
        "id": group.id,
        "name": group.name,
        "status": group_display_status(group, members, incidents).value,
        "services": [service_to_dict(s, incidents) for s in members],
    }


@status_router.get("/services/{service_id}/history")
def service_history(service_id: str, request: Request, limit: int = 100) -> dict[str, Any]:
    store = request.app.state.status_store
    if store.get_service(service_id) is None:
        raise HTTPException(status_code=404, detail=f"Service not found: {service_id}")
    return {
        "service_id": service_id,
        "uptime_24h": store.get_uptime(service_id, hours=24),
        "uptime_7d": store.get_uptime(service_id, hours=24 * 7),
        "history": store.get_probe_history(service_id, limit),
    }


# ── Scheduler ────────────────────────────────────────────────────────────────


@status_router.get("/scheduler")
def scheduler_state(request: Request) -> dict[str, Any]:
    scheduler = request.app.state.health_scheduler
    return {
        "running": scheduler.running,
        "instance_index": scheduler.instance_index,
        "instance_count": scheduler.instance_count,
        "failure_threshold": scheduler.failure_threshold,
        "entries": [e.to_dict() for e in scheduler.entries()],
    }


@status_router.post("/scheduler/refresh")
async def refresh_scheduler(request: Request) -> dict[str, Any]:
    """Pick up added / disabled / deleted services without waiting for the next pass."""
    scheduler = request.app.state.health_scheduler
    return scheduler.refresh()


# ── Notifications + ad-hoc probe ─────────────────────────────────────────────


@status_router.get("/notifications")
def notifications(request: Request, limit: int = 50) -> dict[str, Any]:
    notifier = request.app.state.notifier
    return {
        "channels": notifier.status(),
        "notifications": [n.to_dict() for n in notifier.recent(limit)],
    }


@status_router.post("/probe")
async def probe(body: ProbeRequest) -> dict[str, Any]:
    result = await probe_url(body.url, timeout_ms=body.timeout_ms)
    return result.model_dump(mode="json")
