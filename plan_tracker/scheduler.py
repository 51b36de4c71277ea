"""
Background sampling.

A ``SamplingScheduler`` owns one timer thread that calls a sampler every
``interval_seconds`` with a random jitter. A tick is skipped while the
previous one is still running and during the backoff window after a failed
tick. Samplers walk the configured symbols and write the history caches.
"""

import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from enum import Enum
from typing import Any, Callable, Optional

from .errors import PipelineTimeoutError
from .history.derivatives import DerivativesHistory
from .history.volatility import VolatilityHistory
from .logging.config import get_logger, get_scheduler_logger

logger = get_logger(__name__)


class TickOutcome(str, Enum):
    RAN = "RAN"
    ERROR = "ERROR"
    SKIPPED_OVERLAP = "SKIPPED_OVERLAP"
    SKIPPED_BACKOFF = "SKIPPED_BACKOFF"


class SymbolSampler:
    """Samples every symbol in order; the first failure aborts the pass."""

    job = "sampler"

    def __init__(self, history: Any, symbols: tuple[str, ...]):
        self.history = history
        self.symbols = tuple(symbols)

    def __call__(self) -> list[dict[str, Any]]:
        return [self.history.sample(symbol) for symbol in self.symbols]


class DerivativesSampler(SymbolSampler):
    job = "derivatives"

    def __init__(self, history: DerivativesHistory, symbols: tuple[str, ...]):
        super().__init__(history, symbols)


class VolatilitySampler(SymbolSampler):
    job = "volatility"

    def __init__(self, history: VolatilityHistory, symbols: tuple[str, ...]):
        super().__init__(history, symbols)


class SamplingScheduler:
    """
    Periodic runner for one sampler.

    Args:
        name: Job name used in logs and the thread name
        sampler: Zero-argument callable doing one sampling pass
        interval_seconds: Time between ticks
        jitter_seconds: Upper bound of the random delay before each pass
        backoff_seconds: Ticks within this window after an error are skipped
        startup_delay_seconds: Fixed delay before the first tick
        enabled: A disabled scheduler never starts its thread
        clock: Monotonic seconds, injectable for tests
        sleep: Jitter sleep; defaults to waiting on the stop event
        rng: Returns a float in [0, 1)
    """

    def __init__(
        self,
        name: str,
        sampler: Callable[[], Any],
        interval_seconds: float,
        jitter_seconds: float = 10.0,
        backoff_seconds: float = 30.0,
        startup_delay_seconds: float = 1.0,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], Any]] = None,
        rng: Callable[[], float] = random.random,
    ):
        self.name = name
        self.sampler = sampler
        self.interval_seconds = interval_seconds
        self.jitter_seconds = max(0.0, jitter_seconds)
        self.backoff_seconds = backoff_seconds
        self.startup_delay_seconds = startup_delay_seconds
        self.enabled = enabled
        self._clock = clock
        self._rng = rng
        self._stop = threading.Event()
        self._sleep = sleep or self._stop.wait
        self._running = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self.logger = get_scheduler_logger(__name__, name)

        self.ticks = 0
        self.errors = 0
        self.skipped_overlap = 0
        self.skipped_backoff = 0
        self.last_error_at: Optional[float] = None
        self.last_error: Optional[str] = None
        self.last_result: Any = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def tick(self) -> TickOutcome:
        """Run one guarded sampling pass."""
        if not self._running.acquire(blocking=False):
            self.skipped_overlap += 1
            self.logger.info("Skip tick, previous run still running")
            return TickOutcome.SKIPPED_OVERLAP

        try:
            if (self.last_error_at is not None
                    and self._clock() - self.last_error_at < self.backoff_seconds):
                self.skipped_backoff += 1
                self.logger.info("Skip tick, backoff active", last_error=self.last_error)
                return TickOutcome.SKIPPED_BACKOFF

            self.ticks += 1
            tick_id = self.ticks
            jitter = self._rng() * self.jitter_seconds
            if jitter > 0:
                self._sleep(jitter)

            started = self._clock()
            self.logger.info("Tick start", tick=tick_id)
            try:
                self.last_result = self.sampler()
            except Exception as e:
                self.errors += 1
                self.last_error_at = self._clock()
                self.last_error = str(e)
                self.logger.error("Tick failed", tick=tick_id, error=str(e),
                                  error_type=type(e).__name__)
                return TickOutcome.ERROR

            self.logger.info("Tick done", tick=tick_id,
                             duration_ms=int((self._clock() - started) * 1000))
            return TickOutcome.RAN
        finally:
            self._running.release()

    def _loop(self) -> None:
        delay = self.startup_delay_seconds + self._rng() * self.jitter_seconds
        if self._stop.wait(delay):
            return
        self.tick()
        while not self._stop.wait(self.interval_seconds):
            self.tick()

    def start(self) -> bool:
        """Start the timer thread; False when disabled or already running."""
        if not self.enabled:
            self.logger.info("Scheduler disabled")
            return False
        if self.is_running:
            self.logger.info("Scheduler already running")
            return False

        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=f"sampler-{self.name}", daemon=True)
        self._thread.start()
        self.logger.info("Scheduler started", interval_seconds=self.interval_seconds,
                         jitter_seconds=self.jitter_seconds)
        return True

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
            self.logger.info("Scheduler stopped")

    def stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "enabled": self.enabled,
            "running": self.is_running,
            "ticks": self.ticks,
            "errors": self.errors,
            "skipped_overlap": self.skipped_overlap,
            "skipped_backoff": self.skipped_backoff,
            "last_error": self.last_error,
        }


def run_pipeline(samplers: list[SymbolSampler], timeout_seconds: float) -> dict[str, Any]:
    """
    Run every sampler once, concurrently, within ``timeout_seconds``.

    Returns:
        Per-job ``{"ok": True, "result": ...}`` or ``{"ok": False, "error": ...}``

    Raises:
        PipelineTimeoutError: If any sampler is still running at the deadline
    """
    executor = ThreadPoolExecutor(max_workers=max(1, len(samplers)),
                                  thread_name_prefix="sample-once")
    try:
        futures = {executor.submit(sampler): sampler.job for sampler in samplers}
        done, pending = wait(futures, timeout=timeout_seconds)

        results: dict[str, Any] = {}
        for future in done:
            job = futures[future]
            error = future.exception()
            if error is not None:
                logger.warning("Sampler failed", job=job, error=str(error),
                               error_type=type(error).__name__)
                results[job] = {"ok": False, "error": str(error)}
            else:
                results[job] = {"ok": True, "result": future.result()}

        if pending:
            jobs = sorted(futures[f] for f in pending)
            raise PipelineTimeoutError(f"Sampling exceeded {timeout_seconds}s: {', '.join(jobs)}",
                                       timeout_seconds=timeout_seconds)
        return results
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def sample_once(samplers: list[SymbolSampler], timeout_seconds: float) -> dict[str, Any]:
    """One full sampling pass; a timeout is reported as a warning, not raised."""
    try:
        return run_pipeline(samplers, timeout_seconds)
    except PipelineTimeoutError as e:
        logger.warning("Sampling pass timed out", timeout_seconds=e.timeout_seconds,
                       error=str(e), fallback=e.fallback_strategy)
        return {"ok": False, "timeout": True, "error": str(e)}
