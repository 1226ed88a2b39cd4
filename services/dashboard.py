"""Wiring of store, engine, refresh controller and importer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache
from typing import Optional

from datastore.readings_store import ReadingStore, build_default_store
from services.aggregator import Aggregator
from services.engine import DashboardEngine
from services.importer import ReadingImporter
from services.refresh import RefreshConfig, RefreshController
from settings import get_settings


@dataclass
class Dashboard:
    store: ReadingStore
    engine: DashboardEngine
    controller: RefreshController
    importer: ReadingImporter

    def start(self) -> None:
        self.controller.start()

    async def shutdown(self) -> None:
        await self.controller.close()


def build_dashboard(
    store: ReadingStore,
    config: RefreshConfig,
    live_horizon: timedelta = timedelta(hours=24),
    fetch_limit: Optional[int] = 1000,
) -> Dashboard:
    aggregator = Aggregator(staleness_window=config.staleness_window)
    engine = DashboardEngine(
        source=store,
        aggregator=aggregator,
        live_horizon=live_horizon,
        fetch_limit=fetch_limit,
    )
    return Dashboard(
        store=store,
        engine=engine,
        controller=RefreshController(engine, config),
        importer=ReadingImporter(store),
    )


@lru_cache
def build_default_dashboard() -> Dashboard:
    """Factory that wires the dashboard from environment settings."""
    settings = get_settings()
    return build_dashboard(
        store=build_default_store(),
        config=RefreshConfig.from_settings(settings),
        live_horizon=timedelta(milliseconds=settings.live_horizon_ms),
        fetch_limit=settings.fetch_limit,
    )
