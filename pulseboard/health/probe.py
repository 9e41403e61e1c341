"""Probe client — one HTTP health check against a service URL.

Transport failures are not raised: every outcome is folded into a
``ProbeResult`` so the scheduler can count it.
"""

from __future__ import annotations

import asyncio
import logging
import time

import httpx

from pulseboard.config import settings
from pulseboard.health.status import ProbeResult, ProbeStatus

logger = logging.getLogger(__name__)


def classify_response(status_code: int, response_time_ms: float, slow_threshold_ms: float) -> ProbeStatus:
    """Classify a completed HTTP exchange.

    Status code 0 is an opaque-but-reachable response and counts as up.
    """
    if status_code == 0 or 200 <= status_code < 300:
        if response_time_ms > slow_threshold_ms:
            return ProbeStatus.SLOW
        return ProbeStatus.ONLINE
    return ProbeStatus.OFFLINE


async def _get(url: str, timeout: float, client: httpx.AsyncClient | None) -> httpx.Response:
    if client is None:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as owned:
            return await owned.get(url)
    return await client.get(url, timeout=timeout, follow_redirects=True)


async def probe_url(
    url: str,
    *,
    timeout_ms: int | None = None,
    slow_threshold_ms: int | None = None,
    client: httpx.AsyncClient | None = None,
) -> ProbeResult:
    """GET ``url`` and classify the result (never raises for network errors)."""
    timeout_ms = timeout_ms or settings.probe_timeout_ms
    slow_threshold_ms = slow_threshold_ms or settings.slow_threshold_ms

    t0 = time.perf_counter()
    try:
        # httpx timeouts are per phase; wait_for bounds the whole exchange
        resp = await asyncio.wait_for(_get(url, timeout_ms / 1000, client), timeout_ms / 1000)
        latency = round((time.perf_counter() - t0) * 1000, 1)
        status = classify_response(resp.status_code, latency, slow_threshold_ms)
        return ProbeResult(
            status=status,
            status_code=resp.status_code,
            response_time_ms=latency,
            error=None if status != ProbeStatus.OFFLINE else f"HTTP {resp.status_code}",
        )
    except (httpx.TimeoutException, asyncio.TimeoutError):
        return ProbeResult(
            status=ProbeStatus.TIMEOUT,
            response_time_ms=float(timeout_ms),
            error=f"Timed out after {timeout_ms}ms",
        )
    except httpx.ConnectError as e:
        latency = round((time.perf_counter() - t0) * 1000, 1)
        return ProbeResult(
            status=ProbeStatus.OFFLINE,
            response_time_ms=latency,
            error=f"Connection error: {e}",
        )
    except Exception as e:
        latency = round((time.perf_counter() - t0) * 1000, 1)
        logger.debug("Probe of %s failed: %s", url, e)
        return ProbeResult(
            status=ProbeStatus.ERROR,
            response_time_ms=latency,
            error=f"{type(e).__name__}: {e}",
        )
