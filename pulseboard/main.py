"""Entry point for the Pulseboard status engine."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from pulseboard.catalog.registry import load_catalog, seed_store
from pulseboard.catalog.store import StatusStore
from pulseboard.config import settings
from pulseboard.health.aggregator import group_display_status, overall_status, service_display_status
from pulseboard.health.probe import probe_url
from pulseboard.health.status import ProbeStatus, Status

console = Console()
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)

_STATUS_STYLE = {
    Status.MAJOR_OUTAGE: "bold red",
    Status.PARTIAL_OUTAGE: "red",
    Status.DEGRADED: "yellow",
    Status.MAINTENANCE: "blue",
    Status.OPERATIONAL: "green",
    Status.UNKNOWN: "dim",
}


def run_server() -> None:
    """Start the FastAPI server (scheduler runs inside the app lifespan)."""
    console.print(Panel("Starting Pulseboard API Server", style="bold green"))
    uvicorn.run(
        "pulseboard.api.server:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )


def run_seed(path: str) -> None:
    """Load a catalog file into the store."""
    catalog = load_catalog(path)
    store = StatusStore()
    try:
        seed_store(store, catalog)
    finally:
        store.close()
    console.print(
        f"[green]Seeded[/green] {len(catalog.services)} services, "
        f"{len(catalog.groups)} groups, {len(catalog.incidents)} incidents"
    )


def run_status() -> None:
    """Print the current display status of every public service."""
    store = StatusStore()
    try:
        services = store.list_public_services()
        groups = {g.id: g for g in store.list_groups()}
        incidents = store.list_active_visible_incidents()
    finally:
        store.close()

    result = overall_status(services, incidents)
    console.print(Panel(result.message, title="Overall", style=_STATUS_STYLE[result.level]))

    table = Table(title="Services")
    table.add_column("Group")
    table.add_column("Service")
    table.add_column("Status")
    table.add_column("Last probe", style="dim")

    for service in services:
        group = groups.get(service.group_id or "")
        display = service_display_status(service, incidents)
        probe = service.last_probe_result
        table.add_row(
            group.name if group else "—",
            service.name,
            f"[{_STATUS_STYLE[display]}]{display.value}[/]",
            f"{probe.status.value} @ {probe.checked_at:%Y-%m-%d %H:%M}" if probe else "",
        )
    console.print(table)

    for group in groups.values():
        members = [s for s in services if s.group_id == group.id]
        level = group_display_status(group, members, incidents)
        console.print(f"[bold]{group.name}[/bold]: [{_STATUS_STYLE[level]}]{level.value}[/]")


def run_probe(url: str) -> None:
    """Probe a URL once and print the classified result."""
    result = asyncio.run(probe_url(url))
    style = "green" if result.status in (ProbeStatus.ONLINE, ProbeStatus.SLOW) else "red"
    console.print(f"[{style}]{result.status.value}[/] {url}")
    if result.status_code is not None:
        console.print(f"  status code: {result.status_code}")
    if result.response_time_ms is not None:
        console.print(f"  response time: {result.response_time_ms:.0f}ms")
    if result.error:
        console.print(f"  [dim]{result.error}[/dim]")


def main() -> None:
    parser = argparse.ArgumentParser(description="Pulseboard status engine")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Start the API server + health scheduler")

    seed_parser = sub.add_parser("seed", help="Load a catalog YAML file into the store")
    seed_parser.add_argument("catalog", help="Path to catalog.yaml")

    sub.add_parser("status", help="Print the current display status")

    probe_parser = sub.add_parser("probe", help="Probe a URL once")
    probe_parser.add_argument("url", help="The URL to probe")

    args = parser.parse_args()

    if args.command == "serve":
        run_server()
    elif args.command == "seed":
        run_seed(args.catalog)
    elif args.command == "status":
        run_status()
    elif args.command == "probe":
        run_probe(args.url)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
