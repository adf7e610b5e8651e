"""
Periodic ticker for the session monitor.

This module provides the sampling timer abstraction used by the session
monitor. IntervalTicker runs the callback with APScheduler at a fixed
period, skips overlapping executions, and cancels cleanly from any thread
(including from inside the callback itself).
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional, Protocol

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
import pytz

# Configure module logger
logger = logging.getLogger(__name__)


class Ticker(Protocol):
    """Fires a callback on a fixed period until cancelled."""

    def start(self, callback: Callable[[], None], interval_seconds: float) -> None:
        ...

    def cancel(self) -> None:
        ...


class IntervalTicker:
    """
    APScheduler-backed ticker.

    Args:
        timezone: Scheduler timezone name (pytz)
        job_id: Identifier of the scheduled job
        fire_immediately: Run the first tick right after start()
    """

    def __init__(
        self,
        timezone: str = "UTC",
        job_id: str = "session_monitor",
        fire_immediately: bool = False,
    ):
        self.timezone = timezone
        self.job_id = job_id
        self.fire_immediately = fire_immediately
        self.scheduler: Optional[BackgroundScheduler] = None
        self._callback: Optional[Callable[[], None]] = None
        self._execution_lock = threading.Lock()
        self._cancelled = threading.Event()

    @property
    def is_running(self) -> bool:
        return self.scheduler is not None and not self._cancelled.is_set()

    def start(self, callback: Callable[[], None], interval_seconds: float) -> None:
        """
        Start firing callback every interval_seconds.

        Raises:
            RuntimeError: If the ticker was already started
            ValueError: If interval_seconds is not positive
        """
        if self.scheduler is not None:
            raise RuntimeError("Ticker already started")

        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")

        self._callback = callback

        tz = pytz.timezone(self.timezone)
        self.scheduler = BackgroundScheduler(timezone=tz)
        self.scheduler.add_listener(self._on_job_executed, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

        job_kwargs = {}
        if self.fire_immediately:
            job_kwargs["next_run_time"] = datetime.now(tz)

        self.scheduler.add_job(
            func=self._safe_tick,
            trigger=IntervalTrigger(seconds=interval_seconds, timezone=tz),
            id=self.job_id,
            name="Session Monitor",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            **job_kwargs,
        )
        self.scheduler.start()

        logger.info(f"Ticker started with {interval_seconds:g}s interval")

    def cancel(self) -> None:
        """
        Stop the ticker. Safe to call repeatedly and from the tick callback.
        """
        if self._cancelled.is_set():
            return
        self._cancelled.set()

        if self.scheduler is None:
            return

        # shutdown(wait=True) from a worker thread would join itself
        self.scheduler.shutdown(wait=False)
        logger.info("Ticker cancelled")

    def next_run_time(self) -> Optional[datetime]:
        if not self.is_running:
            return None
        job = self.scheduler.get_job(self.job_id)
        return job.next_run_time if job else None

    def _safe_tick(self) -> None:
        if self._cancelled.is_set():
            return

        if not self._execution_lock.acquire(blocking=False):
            logger.warning("Tick skipped: previous tick still in progress")
            return

        start_time = datetime.now(pytz.utc)
        try:
            self._callback()
        except Exception as e:
            logger.error(f"Tick failed: {e}", exc_info=True)
        finally:
            self._execution_lock.release()

        duration: timedelta = datetime.now(pytz.utc) - start_time
        logger.debug(f"Tick finished in {duration.total_seconds():.2f}s")

    def _on_job_executed(self, event) -> None:
        if event.exception:
            logger.error(f"Job {event.job_id} raised an exception: {event.exception}")
        else:
            logger.debug(f"Job {event.job_id} executed successfully")
