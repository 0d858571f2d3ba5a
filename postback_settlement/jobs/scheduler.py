"""Background ticker driving the timer-triggered settlement path."""
from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

from postback_settlement.config import SCHEDULER_SETTINGS
from postback_settlement.services.triggers import TimerTrigger
from postback_settlement.utils import get_logger
from postback_settlement.utils.time import utc_now

logger = get_logger(__name__)


class SettlementScheduler:
    def __init__(self, trigger: TimerTrigger, *, tick_seconds: float | None = None):
        self.trigger = trigger
        self.tick_seconds = float(tick_seconds if tick_seconds is not None else SCHEDULER_SETTINGS["tick_seconds"])
        self._task: asyncio.Task | None = None
        # Each tick runs as its own task; the latest one is kept for inspection
        self.current_tick: asyncio.Task | None = None
        self._stop_event = asyncio.Event()
        self.ticks = 0
        self.last_tick_at: Optional[str] = None
        self.last_result: Optional[Dict[str, Any]] = None

    def start(self) -> None:
        """Start the loop on the running event loop (call from async context)."""
        if self._task and not self._task.done():  # pragma: no cover
            return
        self._stop_event.clear()
        self._task = asyncio.get_running_loop().create_task(self._loop(), name="settlement-scheduler")
        logger.info("Settlement scheduler started", tick_seconds=self.tick_seconds)

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task is not None:
            try:
                await asyncio.wait_for(self._task, timeout=self.tick_seconds + 5)
            except asyncio.TimeoutError:
                self._task.cancel()
                if self.current_tick is not None:
                    self.current_tick.cancel()
                logger.warning("Settlement scheduler did not stop in time; cancelled")
        logger.info("Settlement scheduler stopped")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> Dict[str, Any]:
        self.ticks += 1
        self.last_tick_at = utc_now().isoformat()
        result = await self.trigger.check_and_run()
        self.last_result = result
        if not result.get("skipped"):
            logger.info("Timer-triggered settlement finished", success=result.get("success"), result_message=result.get("message"))
        return result

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.current_tick = asyncio.get_running_loop().create_task(self.tick(), name="settlement-tick")
                await self.current_tick
            except Exception as e:  # pragma: no cover - check_and_run already contains errors
                logger.error("Scheduler loop error", error=str(e), exc_info=True)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.tick_seconds)
            except asyncio.TimeoutError:
                continue

    def snapshot(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "tick_seconds": self.tick_seconds,
            "ticks": self.ticks,
            "tick_in_progress": self.current_tick is not None and not self.current_tick.done(),
            "last_tick_at": self.last_tick_at,
            "last_result": self.last_result,
            "last_run_date": (
                self.trigger.gate.marker.last_run_date.isoformat()
                if self.trigger.gate.marker.last_run_date else None
            ),
        }


__all__ = ["SettlementScheduler"]
