"""FastAPI server for the status engine."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pulseboard.api.status_routes import status_router
from pulseboard.catalog.registry import load_catalog, seed_store
from pulseboard.catalog.store import StatusStore
from pulseboard.config import settings
from pulseboard.health.scheduler import HealthScheduler
from pulseboard.notifications import get_notifier

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the store, seed the catalog and run the scheduler for the app's lifetime."""
    store = StatusStore()
    app.state.status_store = store

    catalog_path = Path(settings.catalog_path)
    if catalog_path.exists():
        try:
            seed_store(store, load_catalog(catalog_path))
        except Exception:
            logger.exception("Failed to seed catalog from %s", catalog_path)

    notifier = get_notifier()
    app.state.notifier = notifier

    scheduler = HealthScheduler(store, notifier)
    app.state.health_scheduler = scheduler

    try:
        await scheduler.start()
    except Exception:
        logger.exception("Health scheduler failed to start")

    yield

    # Shutdown
    await scheduler.stop()
    store.close()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Pulseboard - Status Engine",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(status_router, prefix="/api")

    return app


app = create_app()
