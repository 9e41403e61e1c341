"""Health check scheduler — one recurring probe task per monitored service.

Each eligible service (probing enabled + URL set) gets its own asyncio task
that probes at the service's interval, counts consecutive failures and
escalates the service to ``major_outage`` once the failure threshold is
crossed. The first successful probe after an escalation restores the status
that was in place when the failure streak began.

A reconciliation pass re-lists the services periodically to start tasks for
new services and cancel tasks for deleted or disabled ones.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import sqlite3
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pulseboard.catalog.models import DEFAULT_PING_INTERVAL, MonitoredService
from pulseboard.catalog.store import ServiceNotFoundError, StatusStore
from pulseboard.config import settings
from pulseboard.health.probe import probe_url
from pulseboard.health.status import ProbeResult, Status
from pulseboard.notifications import NotificationManager, NotifyKind

logger = logging.getLogger(__name__)

ProbeFn = Callable[[str], Awaitable[ProbeResult]]

# Operator-set statuses, never snapshotted as the pre-streak status
_NO_SNAPSHOT = frozenset({Status.MAINTENANCE, Status.MAJOR_OUTAGE, Status.PARTIAL_OUTAGE})
_NO_ESCALATION = frozenset({Status.MAINTENANCE, Status.MAJOR_OUTAGE})


@dataclass
class SchedulerEntry:
    """Per-service scheduler state. Only the service's own task mutates it."""

    service_id: str
    task: asyncio.Task[None] | None = None
    consecutive_failures: int = 0
    status_before_failure_streak: Status | None = None
    interval_minutes: int = DEFAULT_PING_INTERVAL  # last interval seen

    @property
    def is_running(self) -> bool:
        return self.task is not None and not self.task.done()

    def to_dict(self) -> dict[str, Any]:
        before = self.status_before_failure_streak
        return {
            "service_id": self.service_id,
            "running": self.is_running,
            "consecutive_failures": self.consecutive_failures,
            "status_before_failure_streak": before.value if before else None,
            "interval_minutes": self.interval_minutes,
        }


class HealthScheduler:
    """Schedules probes for every eligible service and applies escalation rules."""

    def __init__(
        self,
        store: StatusStore,
        notifier: NotificationManager,
        probe: ProbeFn | None = None,
        *,
        failure_threshold: int | None = None,
        reconcile_interval: float | None = None,
        instance_index: int | None = None,
        instance_count: int | None = None,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.probe = probe or probe_url
        self.failure_threshold = failure_threshold or settings.failure_threshold
        self.reconcile_interval = reconcile_interval or settings.reconcile_interval_seconds
        self.instance_index = settings.instance_index if instance_index is None else instance_index
        self.instance_count = max(1, instance_count or settings.instance_count)
        if not 0 <= self.instance_index < self.instance_count:
            raise ValueError(
                f"instance_index {self.instance_index} out of range for instance_count {self.instance_count}"
            )
        self._entries: dict[str, SchedulerEntry] = {}
        self._reconcile_task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def entries(self) -> list[SchedulerEntry]:
        return list(self._entries.values())

    def get_entry(self, service_id: str) -> SchedulerEntry | None:
        return self._entries.get(service_id)

    # ── Lifecycle ────────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Start a task per eligible service plus the reconciliation loop."""
        if self._running:
            return
        self._running = True
        self.reconcile()
        self._reconcile_task = asyncio.create_task(
            self._reconcile_loop(), name="health-reconcile",
        )
        logger.info(
            "Health scheduler started: %d services (instance %d/%d)",
            len(self._entries), self.instance_index, self.instance_count,
        )

    async def stop(self) -> None:
        """Cancel every probe task and the reconciliation loop."""
        self._running = False
        tasks = [e.task for e in self._entries.values() if e.task is not None]
        if self._reconcile_task is not None:
            tasks.append(self._reconcile_task)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._entries.clear()
        self._reconcile_task = None
        logger.info("Health scheduler stopped")

    # ── Reconciliation ───────────────────────────────────────────────────────

    def owns(self, service_id: str) -> bool:
        """Whether this instance's shard is responsible for the service."""
        if self.instance_count == 1:
            return True
        digest = hashlib.sha1(service_id.encode("utf-8")).digest()
        return int.from_bytes(digest[:8], "big") % self.instance_count == self.instance_index

    def _is_eligible(self, service: MonitoredService | None) -> bool:
        return service is not None and service.is_probe_eligible and self.owns(service.id)

    def reconcile(self) -> dict[str, list[str]]:
        """Sync running tasks with the store. Returns started/stopped service ids."""
        try:
            services = self.store.list_services()
        except sqlite3.Error:
            logger.exception("Reconciliation failed to list services")
            return {"started": [], "stopped": []}

        by_id = {s.id: s for s in services}

        stopped = []
        for service_id in list(self._entries):
            if not self._is_eligible(by_id.get(service_id)):
                self._drop(service_id)
                stopped.append(service_id)

        started = []
        if self._running:
            for service in services:
                if not self._is_eligible(service):
                    continue
                existing = self._entries.get(service.id)
                if existing is not None and existing.is_running:
                    continue
                self._launch(service)
                started.append(service.id)

        if started or stopped:
            logger.info("Reconciled probes: %d started, %d stopped", len(started), len(stopped))
        return {"started": started, "stopped": stopped}

    def refresh(self) -> dict[str, list[str]]:
        """Run one reconciliation pass now instead of waiting for the loop."""
        return self.reconcile()

    def _launch(self, service: MonitoredService) -> SchedulerEntry:
        entry = SchedulerEntry(
            service_id=service.id, interval_minutes=service.ping.interval_minutes,
        )
        self._entries[service.id] = entry
        entry.task = asyncio.create_task(
            self._run_service(entry), name=f"probe-{service.id}",
        )
        return entry

    def _drop(self, service_id: str) -> None:
        entry = self._entries.pop(service_id, None)
        if entry is not None and entry.task is not None:
            entry.task.cancel()
            logger.info("Probe task cancelled for %s", service_id)

    async def _reconcile_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.reconcile_interval)
                self.reconcile()
                removed = self.store.cleanup_old()
                if removed:
                    logger.debug("Pruned %d old probe results", removed)
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Reconciliation pass failed")

    # ── Per-service loop ─────────────────────────────────────────────────────

    async def _run_service(self, entry: SchedulerEntry) -> None:
        """Probe immediately, then once per interval until disabled or cancelled."""
        try:
            while self._running:
                try:
                    interval = await self._tick(entry)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception("Probe cycle error: %s", entry.service_id)
                    interval = entry.interval_minutes
                if interval is None:
                    break
                await asyncio.sleep(interval * 60)
        except asyncio.CancelledError:
            logger.debug("Probe loop cancelled: %s", entry.service_id)
        finally:
            if self._entries.get(entry.service_id) is entry:
                del self._entries[entry.service_id]

    async def tick(self, service_id: str) -> int | None:
        """Run one probe cycle for a service that has no live task.

        Returns the interval (minutes) until the next cycle, or None when the
        service is no longer eligible.
        """
        entry = self._entries.get(service_id)
        if entry is not None and entry.is_running:
            raise RuntimeError(f"Probe task already running for {service_id}")
        if entry is None:
            entry = SchedulerEntry(service_id=service_id)
            self._entries[service_id] = entry
        interval = await self._tick(entry)
        if interval is None and self._entries.get(service_id) is entry and not entry.is_running:
            del self._entries[service_id]
        return interval

    async def _tick(self, entry: SchedulerEntry) -> int | None:
        service = self.store.get_service(entry.service_id)
        if not self._is_eligible(service):
            logger.info("Stopping probes for %s (disabled or removed)", entry.service_id)
            return None

        # Shielded: a cancelled task lets the in-flight probe finish, then drops it
        result = await asyncio.shield(self.probe(service.ping.url))

        current = self.store.get_service(entry.service_id)
        if not self._is_eligible(current) or self._entries.get(entry.service_id) is not entry:
            logger.info("Discarding probe result for %s (disabled mid-probe)", entry.service_id)
            return None

        entry.interval_minutes = current.ping.interval_minutes
        await self._apply_result(entry, current, result)
        logger.debug(
            "Probe %s: %s (%s ms), failures=%d",
            current.id, result.status.value, result.response_time_ms, entry.consecutive_failures,
        )
        return current.ping.interval_minutes

    async def _apply_result(
        self, entry: SchedulerEntry, service: MonitoredService, result: ProbeResult,
    ) -> None:
        """Update failure counters, escalate / restore, persist and notify."""
        status = service.status
        new_status = status
        failures = entry.consecutive_failures
        before = entry.status_before_failure_streak
        notification: tuple[NotifyKind, str, str] | None = None

        if result.is_failure:
            failures += 1
            if failures == 1 and status not in _NO_SNAPSHOT:
                before = status
            if failures >= self.failure_threshold and status not in _NO_ESCALATION:
                new_status = Status.MAJOR_OUTAGE
                notification = (
                    NotifyKind.ERROR,
                    "Service Down",
                    f"{service.name} is unreachable after multiple attempts.",
                )
        elif result.is_success:
            if failures >= self.failure_threshold and status == Status.MAJOR_OUTAGE:
                new_status = before or Status.OPERATIONAL
                notification = (
                    NotifyKind.SUCCESS,
                    "Service Restored",
                    f"{service.name} is now back online.",
                )
            failures = 0
            before = None

        try:
            self.store.update_service_status(service.id, new_status, result)
        except (sqlite3.Error, ServiceNotFoundError):
            logger.exception("Failed to persist probe result for %s", service.id)
            return

        entry.consecutive_failures = failures
        entry.status_before_failure_streak = before

        if new_status != status:
            logger.warning("Service %s: %s → %s", service.id, status.value, new_status.value)
        if notification and not service.ping.alerts_muted:
            await self.notifier.notify(*notification)
