"""
Session monitor for bounded-duration trading sessions.

A session moves Idle -> Running -> Terminated. While running, a ticker
samples the portfolio status on a fixed period and checks the three
terminal causes in priority order: Success, then CatastrophicLoss, then
Timeout. The terminal transition happens under a lock, so exactly one cause
wins even if stop() races a tick, the final report is built once, and the
ticker is cancelled.
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from reconbot.config import SessionConfig
from reconbot.scheduler import Ticker

# Configure module logger
logger = logging.getLogger(__name__)

RANK_BANDS = (
    (9000.0, "TOP 10 (LEGENDARY)"),
    (5000.0, "TOP 50 (EXCEPTIONAL)"),
    (2000.0, "TOP 100 (EXCELLENT)"),
    (1000.0, "TOP 250 (VERY GOOD)"),
    (500.0, "TOP 500 (GOOD)"),
    (200.0, "TOP 1000 (ABOVE AVERAGE)"),
    (50.0, "MID FIELD"),
    (0.0, "PARTICIPANT"),
)
UNRANKED = "NEEDS IMPROVEMENT"


class SessionState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    TERMINATED = "terminated"


class TerminationCause(str, Enum):
    SUCCESS = "success"
    CATASTROPHIC_LOSS = "catastrophic_loss"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class SessionStatus:
    """
    Portfolio snapshot sampled by the monitor.

    Attributes:
        current_capital: Capital including realized and marked-to-market PnL
        initial_capital: Capital the session started with
        total_roi_pct: Cumulative ROI in percent
        trades_executed: Trades recorded so far
        win_rate: Fraction of resolved trades that won (0.0 to 1.0)
        open_positions: Trades not yet resolved
    """
    current_capital: float
    initial_capital: float
    total_roi_pct: float
    trades_executed: int = 0
    win_rate: float = 0.0
    open_positions: int = 0

    @classmethod
    def from_capital(cls, current_capital: float, initial_capital: float, **kwargs) -> "SessionStatus":
        roi = 0.0
        if initial_capital > 0:
            roi = (current_capital - initial_capital) / initial_capital * 100.0
        return cls(current_capital, initial_capital, roi, **kwargs)

    def to_dict(self) -> dict:
        return {
            "current_capital": self.current_capital,
            "initial_capital": self.initial_capital,
            "total_roi_pct": self.total_roi_pct,
            "trades_executed": self.trades_executed,
            "win_rate": self.win_rate,
            "open_positions": self.open_positions,
        }


@dataclass(frozen=True)
class SessionReport:
    """
    Final report produced when a session terminates.

    Attributes:
        cause: Terminal cause that fired
        interrupted: True when an operator stop ended the session early
        final_status: Last sampled status
        started_at: Wall-clock start (UTC)
        ended_at: Wall-clock end (UTC)
        elapsed_seconds: Session length on the monitor clock
        samples: Number of status samples taken
        peak_roi_pct: Highest sampled ROI
        lowest_roi_pct: Lowest sampled ROI
        target_roi_pct: Success threshold
        loss_floor_pct: Catastrophic-loss threshold
    """
    cause: TerminationCause
    interrupted: bool
    final_status: SessionStatus
    started_at: datetime
    ended_at: datetime
    elapsed_seconds: float
    samples: int
    peak_roi_pct: float
    lowest_roi_pct: float
    target_roi_pct: float
    loss_floor_pct: float

    @property
    def rank(self) -> str:
        return rank_for_roi(self.final_status.total_roi_pct)

    @property
    def target_reached(self) -> bool:
        return self.cause == TerminationCause.SUCCESS

    def to_dict(self) -> dict:
        return {
            "cause": self.cause.value,
            "interrupted": self.interrupted,
            "rank": self.rank,
            "final_status": self.final_status.to_dict(),
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat(),
            "elapsed_seconds": self.elapsed_seconds,
            "samples": self.samples,
            "peak_roi_pct": self.peak_roi_pct,
            "lowest_roi_pct": self.lowest_roi_pct,
            "target_roi_pct": self.target_roi_pct,
            "loss_floor_pct": self.loss_floor_pct,
        }


def rank_for_roi(roi_pct: float) -> str:
    """Map a final ROI (percent) to a leaderboard band label."""
    for floor, label in RANK_BANDS:
        if roi_pct > floor:
            return label
    return UNRANKED


def evaluate_termination(
    status: SessionStatus,
    elapsed_seconds: float,
    config: SessionConfig,
) -> Optional[TerminationCause]:
    """
    Return the terminal cause that applies, checked in priority order.

    Success > CatastrophicLoss > Timeout.
    """
    if status.total_roi_pct >= config.target_roi_pct:
        return TerminationCause.SUCCESS
    if status.total_roi_pct <= config.loss_floor_pct:
        return TerminationCause.CATASTROPHIC_LOSS
    if elapsed_seconds >= config.duration_seconds:
        return TerminationCause.TIMEOUT
    return None


class SessionMonitor:
    """
    Drives one bounded session.

    Args:
        config: Session thresholds and timing
        status_provider: Returns the current SessionStatus when sampled
        ticker: Periodic timer that calls tick()
        clock: Monotonic clock in seconds
        on_terminate: Called once with the final report
    """

    def __init__(
        self,
        config: SessionConfig,
        status_provider: Callable[[], SessionStatus],
        ticker: Ticker,
        clock: Callable[[], float] = time.monotonic,
        on_terminate: Optional[Callable[[SessionReport], None]] = None,
    ):
        self.config = config
        self.status_provider = status_provider
        self.ticker = ticker
        self.clock = clock
        self.on_terminate = on_terminate

        self.state = SessionState.IDLE
        self.cause: Optional[TerminationCause] = None
        self.report: Optional[SessionReport] = None
        self.last_status: Optional[SessionStatus] = None
        self.samples = 0

        self._lock = threading.Lock()
        self._finished = threading.Event()
        self._started_clock = 0.0
        self._started_at: Optional[datetime] = None
        self._peak_roi = 0.0
        self._lowest_roi = 0.0

    @property
    def elapsed_seconds(self) -> float:
        if self.state == SessionState.IDLE:
            return 0.0
        return self.clock() - self._started_clock

    def start(self) -> None:
        """
        Enter Running and start sampling.

        Raises:
            RuntimeError: If the session was already started
        """
        with self._lock:
            if self.state != SessionState.IDLE:
                raise RuntimeError(f"Session cannot start from state {self.state.value}")
            self.state = SessionState.RUNNING
            self._started_clock = self.clock()
            self._started_at = datetime.now(timezone.utc)

        logger.info(
            f"Session started: target ROI {self.config.target_roi_pct:.0f}%, "
            f"loss floor {self.config.loss_floor_pct:.0f}%, "
            f"duration {self.config.duration_seconds / 3600:.2f}h"
        )
        self.ticker.start(self.tick, self.config.sample_interval_seconds)

    def tick(self) -> Optional[TerminationCause]:
        """
        Sample status once and terminate if a cause applies.

        Returns:
            The terminal cause when this tick ended the session, else None
        """
        if self.state != SessionState.RUNNING:
            return None

        status = self._sample()
        cause = evaluate_termination(status, self.elapsed_seconds, self.config)

        logger.debug(
            f"Session sample {self.samples}: ROI {status.total_roi_pct:.2f}%, "
            f"capital {status.current_capital:.2f}"
        )

        if cause is None:
            return None

        if self._terminate(cause, status, interrupted=False):
            return cause
        return None

    def stop(self) -> Optional[SessionReport]:
        """
        Operator cancel.

        Runs one final evaluation. When no cause applies the session closes
        as TIMEOUT with interrupted=True. Returns the final report (None if
        the session never started).
        """
        if self.state == SessionState.IDLE:
            logger.warning("Session stop requested before start")
            return None

        if self.state == SessionState.RUNNING:
            status = self._sample()
            cause = evaluate_termination(status, self.elapsed_seconds, self.config)
            interrupted = cause is None
            self._terminate(cause or TerminationCause.TIMEOUT, status, interrupted=interrupted)

        return self.report

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the session terminates. Returns False on timeout."""
        return self._finished.wait(timeout)

    def _sample(self) -> SessionStatus:
        status = self.status_provider()
        with self._lock:
            if self.samples == 0:
                self._peak_roi = self._lowest_roi = status.total_roi_pct
            else:
                self._peak_roi = max(self._peak_roi, status.total_roi_pct)
                self._lowest_roi = min(self._lowest_roi, status.total_roi_pct)
            self.samples += 1
            self.last_status = status
        return status

    def _terminate(self, cause: TerminationCause, status: SessionStatus, interrupted: bool) -> bool:
        with self._lock:
            if self.state == SessionState.TERMINATED:
                return False
            self.state = SessionState.TERMINATED
            self.cause = cause
            self.report = SessionReport(
                cause=cause,
                interrupted=interrupted,
                final_status=status,
                started_at=self._started_at,
                ended_at=datetime.now(timezone.utc),
                elapsed_seconds=self.clock() - self._started_clock,
                samples=self.samples,
                peak_roi_pct=self._peak_roi,
                lowest_roi_pct=self._lowest_roi,
                target_roi_pct=self.config.target_roi_pct,
                loss_floor_pct=self.config.loss_floor_pct,
            )

        self.ticker.cancel()

        suffix = " (interrupted)" if interrupted else ""
        logger.info(
            f"Session terminated: {cause.value}{suffix}, "
            f"ROI {status.total_roi_pct:.2f}%, rank {self.report.rank}"
        )

        try:
            if self.on_terminate:
                self.on_terminate(self.report)
        finally:
            self._finished.set()

        return True
