"""
In-process tick scheduler.

Fires the portfolio tick on a fixed interval inside the API process. A tick
still running when the next firing comes due causes that firing to be
skipped, not queued. Manual triggers go through the same guard, so manual
and scheduled ticks never overlap. When ticks are scheduled by Celery the
manual path also takes the Redis tick lock held by the worker.
"""
import asyncio
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from redis.exceptions import LockError

from cryptofolio.core.config import settings
from cryptofolio.core.exceptions import TickInProgressError
from cryptofolio.core.metrics import metrics
from cryptofolio.core.redis import get_tick_lock

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"


class TickScheduler:
    """
    Drives a tick coroutine every ``interval`` seconds.

    ``state`` is only changed by the tick start and end transitions. The
    first scheduled tick runs ``startup_delay`` seconds after ``start()``.
    """

    def __init__(
        self,
        tick: Callable[[], Awaitable[Any]],
        interval: float,
        startup_delay: float = 0.0,
        lock_factory: Optional[Callable[[], Awaitable[Any]]] = None,
    ):
        self.tick = tick
        self.interval = interval
        self.startup_delay = startup_delay
        self.lock_factory = lock_factory
        self.state = SchedulerState.IDLE

        self.ticks_completed = 0
        self.ticks_skipped = 0
        self.ticks_failed = 0
        self.last_error: Optional[str] = None
        self.last_tick_at: Optional[float] = None

        self._loop_task: Optional[asyncio.Task] = None
        self._tick_task: Optional[asyncio.Task] = None

    @property
    def is_started(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def start(self) -> None:
        if self.is_started:
            return
        self._loop_task = asyncio.create_task(self._run_loop())
        logger.info(
            "Tick scheduler started (interval=%ss, first tick in %ss)",
            self.interval, self.startup_delay,
        )

    async def stop(self) -> None:
        """Stop firing; an in-flight tick is allowed to finish."""
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        if self._tick_task is not None and not self._tick_task.done():
            await asyncio.gather(self._tick_task, return_exceptions=True)
        logger.info("Tick scheduler stopped")

    async def _run_loop(self) -> None:
        await asyncio.sleep(self.startup_delay)
        while True:
            self.fire()
            await asyncio.sleep(self.interval)

    def fire(self, trigger: str = "scheduled") -> bool:
        """
        Start a tick unless one is running.

        The tick runs as its own task so later firings can observe the guard.
        Returns False when the firing was skipped.
        """
        if self.state is SchedulerState.RUNNING:
            self.ticks_skipped += 1
            logger.warning("Skipping %s tick: previous tick still running", trigger)
            metrics.tick_skipped(trigger, "tick in progress")
            return False

        self.state = SchedulerState.RUNNING
        self._tick_task = asyncio.create_task(self._run_scheduled(trigger))
        return True

    async def trigger_now(self) -> Any:
        """
        Run one tick immediately and return its result.

        Raises:
            TickInProgressError: another tick is running here or, under Celery,
                in a worker
        """
        if self.state is SchedulerState.RUNNING:
            self._reject_manual()

        if self.lock_factory is None:
            self.state = SchedulerState.RUNNING
            return await self._execute("manual")

        lock = await self.lock_factory()
        if not await lock.acquire(blocking=False):
            self._reject_manual()
        try:
            self.state = SchedulerState.RUNNING
            return await self._execute("manual")
        finally:
            try:
                await lock.release()
            except LockError:
                logger.warning("Tick lock expired before the manual tick finished")

    def _reject_manual(self) -> None:
        self.ticks_skipped += 1
        metrics.tick_skipped("manual", "tick in progress")
        raise TickInProgressError("A portfolio update is already in progress")

    async def _run_scheduled(self, trigger: str) -> None:
        try:
            await self._execute(trigger)
        except Exception:
            logger.exception("Scheduled tick failed")

    async def _execute(self, trigger: str) -> Any:
        started = time.monotonic()
        try:
            result = await self.tick()
        except Exception as e:
            self.ticks_failed += 1
            self.last_error = str(e)
            metrics.tick_failed(trigger, str(e))
            raise
        finally:
            self.state = SchedulerState.IDLE
            self.last_tick_at = time.time()

        self.ticks_completed += 1
        self.last_error = None
        metrics.tick_completed(
            trigger,
            ending_nav=float(getattr(result, "ending_nav", 0.0) or 0.0),
            growth_percent=float(getattr(result, "growth_percent", 0.0) or 0.0),
            duration_ms=(time.monotonic() - started) * 1000,
        )
        return result

    def status(self) -> dict:
        return {
            "state": self.state.value,
            "started": self.is_started,
            "interval_seconds": self.interval,
            "ticks_completed": self.ticks_completed,
            "ticks_skipped": self.ticks_skipped,
            "ticks_failed": self.ticks_failed,
            "last_error": self.last_error,
        }


_scheduler: Optional[TickScheduler] = None


def get_scheduler() -> TickScheduler:
    """Process-wide scheduler driving PortfolioService.run_tick."""
    global _scheduler
    if _scheduler is None:
        from cryptofolio.services.portfolio_service import PortfolioService

        service = PortfolioService()
        _scheduler = TickScheduler(
            service.run_tick,
            interval=settings.TICK_INTERVAL_SECONDS,
            startup_delay=settings.SCHEDULER_STARTUP_DELAY_SEC,
            lock_factory=get_tick_lock if settings.SCHEDULER_BACKEND == "celery" else None,
        )
    return _scheduler
