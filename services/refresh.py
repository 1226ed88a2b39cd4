"""Periodic refresh loop driving the dashboard engine."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Set

from services.engine import DashboardEngine
from settings import Settings

logger = logging.getLogger(__name__)


class RefreshState(str, Enum):
    idle = "idle"
    fetching = "fetching"
    merging = "merging"
    disabled = "disabled"
    closed = "closed"


_BUSY = (RefreshState.fetching, RefreshState.merging)


@dataclass(frozen=True)
class RefreshConfig:
    poll_interval_ms: int = 10_000
    auto_refresh: bool = True
    staleness_window_ms: int = 600_000

    @property
    def poll_interval(self) -> float:
        return self.poll_interval_ms / 1000.0

    @property
    def staleness_window(self) -> Optional[timedelta]:
        if self.staleness_window_ms <= 0:
            return None
        return timedelta(milliseconds=self.staleness_window_ms)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RefreshConfig":
        return cls(
            poll_interval_ms=settings.poll_interval_ms,
            auto_refresh=settings.auto_refresh,
            staleness_window_ms=settings.staleness_window_ms,
        )


class RefreshController:
    """Drives fetch -> merge cycles with at most one fetch in flight.

    Timer ticks and manual refreshes arriving while a cycle is running are
    dropped. A failed fetch leaves the current view in place and flags it
    stale. Results older than the last applied snapshot are discarded.
    After ``close`` nothing changes any more.
    """

    def __init__(self, engine: DashboardEngine, config: RefreshConfig) -> None:
        self.engine = engine
        self.config = config
        self._auto_refresh = config.auto_refresh
        self._state = RefreshState.idle if config.auto_refresh else RefreshState.disabled
        self._timer: Optional[asyncio.Task[None]] = None
        self._inflight: Optional[asyncio.Task] = None
        self._ticks: Set[asyncio.Task[bool]] = set()
        self._last_applied: Optional[datetime] = None
        self.cycles = 0
        self.dropped_ticks = 0
        self.failures = 0

    @property
    def state(self) -> RefreshState:
        return self._state

    @property
    def stale(self) -> bool:
        return self.engine.stale

    @property
    def last_applied(self) -> Optional[datetime]:
        return self._last_applied

    @property
    def auto_refresh(self) -> bool:
        return self._auto_refresh

    def start(self) -> None:
        """Start the timer; the first tick fires immediately."""
        if self._state is RefreshState.closed:
            raise RuntimeError("Refresh controller has been closed.")
        if self._timer is not None and not self._timer.done():
            return
        self._timer = asyncio.create_task(self._run())

    def set_auto_refresh(self, enabled: bool) -> None:
        self._auto_refresh = enabled
        if self._state in (RefreshState.idle, RefreshState.disabled):
            self._state = self._resting_state()
        logger.info("Auto refresh toggled", extra={"state": self._state.value})

    async def tick(self) -> bool:
        """Timer entry point; a no-op while auto refresh is off."""
        if self._state is RefreshState.disabled:
            return False
        return await self._cycle()

    async def refresh(self) -> bool:
        """Manual refresh; runs even with auto refresh off."""
        return await self._cycle()

    async def close(self) -> None:
        """Stop the timer and cancel any in-flight fetch."""
        if self._state is RefreshState.closed:
            return
        self._state = RefreshState.closed
        tasks = [task for task in (self._timer, self._inflight, *self._ticks) if task is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._timer = None
        self._inflight = None
        logger.info("Refresh controller closed", extra={"state": self._state.value})

    async def _run(self) -> None:
        while True:
            task = asyncio.create_task(self.tick())
            self._ticks.add(task)
            task.add_done_callback(self._ticks.discard)
            await asyncio.sleep(self.config.poll_interval)

    def _resting_state(self) -> RefreshState:
        return RefreshState.idle if self._auto_refresh else RefreshState.disabled

    async def _cycle(self) -> bool:
        if self._state is RefreshState.closed:
            return False
        if self._state in _BUSY:
            self.dropped_ticks += 1
            logger.debug("Dropping tick; fetch already in flight", extra={"state": self._state.value})
            return False

        start_time = time.perf_counter()
        self._state = RefreshState.fetching
        self._inflight = asyncio.create_task(self.engine.fetch_snapshot())
        try:
            snapshot = await self._inflight
        except Exception as exc:  # noqa: BLE001 - any source failure
            if self._state is RefreshState.closed:
                return False
            self.failures += 1
            self.engine.mark_stale()
            self._state = self._resting_state()
            logger.warning("Refresh fetch failed; keeping current view", extra={"reason": str(exc)})
            return False
        finally:
            self._inflight = None

        if self._state is RefreshState.closed:
            return False
        if self._last_applied is not None and snapshot.as_of <= self._last_applied:
            self._state = self._resting_state()
            logger.info(
                "Discarding out-of-order snapshot",
                extra={"as_of": snapshot.as_of.isoformat()},
            )
            return False

        self._state = RefreshState.merging
        self.engine.recompute(snapshot)
        self._last_applied = snapshot.as_of
        self.cycles += 1
        self._state = self._resting_state()
        logger.debug(
            "Refresh cycle applied",
            extra={"duration_ms": int((time.perf_counter() - start_time) * 1000)},
        )
        return True
