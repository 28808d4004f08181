"""
weatherfresh/core/scheduler.py
═══════════════════════════════════════════════════════════════════════════════
Background refresh of every city resident in the cache.

  1. ONE loop per scheduler (start() twice is a no-op) and ONE pass at a
     time (asyncio.Lock — a manual run_pass() during a loop pass is skipped)
  2. First pass runs immediately, then fixed rate every `interval_s`
     (a pass that overruns starts the next one straight away, never overlaps)
  3. Failed fetch for one city → reported, skipped, the stale entry stays;
     the rest of the pass and all future passes still run
  4. Fetch happens with no cache lock held — only cache.put() is locked
  5. stop() is one-way: waits `grace_s` for the current pass, then cancels.
     No pass starts after stop() has been requested.
  6. start() is safe from any thread: the task is created on the owning loop
     (passed in, or the running one). With no loop at all, start is deferred
     and the scheduler stays CREATED until start() is called again.

Lifecycle:  CREATED ──start()──▶ RUNNING ──stop()──▶ STOPPED
═══════════════════════════════════════════════════════════════════════════════
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Protocol

from weatherfresh.core.cache import BoundedFreshCache
from weatherfresh.core.errors import ConfigError, FetchResult

log = logging.getLogger("scheduler")

ErrorReporter = Callable[[str, Any], None]


class Fetcher(Protocol):
    async def fetch(self, key: str) -> FetchResult: ...


class SchedulerState(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class RefreshReport:
    refreshed: list[str] = field(default_factory=list)
    failed:    list[str] = field(default_factory=list)
    skipped:   bool      = False


def log_refresh_failure(key: str, cause: Any) -> None:
    """Default ErrorReporter."""
    logging.getLogger("refresh").warning(f"Refresh failed for '{key}': {cause}")


def running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class RefreshScheduler:
    def __init__(
        self,
        cache: BoundedFreshCache,
        fetcher: Fetcher,
        interval_s: float,
        reporter: Optional[ErrorReporter] = None,
        grace_s: float = 5.0,
    ) -> None:
        if interval_s is None or interval_s <= 0:
            raise ConfigError(f"interval_s must be positive, got {interval_s!r}")
        if grace_s is None or grace_s < 0:
            raise ConfigError(f"grace_s must not be negative, got {grace_s!r}")
        self.cache      = cache
        self.fetcher    = fetcher
        self.interval_s = interval_s
        self.grace_s    = grace_s
        self._reporter  = reporter or log_refresh_failure

        self._state  = SchedulerState.CREATED
        self._task: Optional[asyncio.Task] = None
        self._stop_requested = asyncio.Event()
        self._pass_lock      = asyncio.Lock()
        self.passes = 0

    @property
    def state(self) -> SchedulerState:
        return self._state

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def start(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """
        Start the refresh loop on `loop`, or on the running loop when omitted.
        Callable from any thread; never raises.
        """
        if self._state is SchedulerState.RUNNING:
            log.warning("Scheduler already running — ignoring duplicate start")
            return
        if self._state is SchedulerState.STOPPED:
            log.warning("Scheduler was stopped — restart is not supported")
            return

        running = running_loop()
        target = loop or running
        if target is None or target.is_closed():
            log.warning("No event loop available — scheduler start deferred")
            return

        self._state = SchedulerState.RUNNING
        if target is running:
            self._spawn()
        else:
            target.call_soon_threadsafe(self._spawn)
        log.info(f"Scheduler started (every {self.interval_s}s)")

    def _spawn(self) -> None:
        # Runs on the owning loop; stop() may have won the race from another thread.
        if self._state is not SchedulerState.RUNNING or self._task is not None:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="weather-refresh")

    async def stop(self) -> None:
        if self._state is SchedulerState.STOPPED:
            return
        was_running = self._state is SchedulerState.RUNNING
        self._state = SchedulerState.STOPPED
        self._stop_requested.set()
        task, self._task = self._task, None
        if not was_running or task is None or task.done():
            log.info("Scheduler stopped")
            return

        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=self.grace_s)
        except asyncio.TimeoutError:
            log.warning(f"Refresh pass still running after {self.grace_s}s — cancelling")
            task.cancel()
            # wait() does not raise the task's own CancelledError, but a
            # cancellation of the caller still propagates.
            await asyncio.wait({task})
        log.info("Scheduler stopped")

    # ── Loop ──────────────────────────────────────────────────────────────────

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_at = loop.time()
        while not self._stop_requested.is_set():
            try:
                await self.run_pass()
            except Exception as ex:
                log.error(f"Refresh pass error (continuing): {ex!r}")

            next_at += self.interval_s
            delay = next_at - loop.time()
            if delay <= 0:
                # Overran the period: run again now and re-anchor the schedule.
                next_at = loop.time()
                continue
            try:
                await asyncio.wait_for(self._stop_requested.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

    async def run_pass(self) -> RefreshReport:
        """One refresh over every key resident right now. Skipped if a pass is already running."""
        if self._pass_lock.locked():
            log.warning("Previous refresh pass still running — skipping")
            return RefreshReport(skipped=True)

        async with self._pass_lock:
            report = RefreshReport()
            keys = self.cache.keys()
            t0 = time.monotonic()
            for key in keys:
                if self._stop_requested.is_set():
                    log.info("Stop requested — abandoning rest of refresh pass")
                    break
                try:
                    result = await self.fetcher.fetch(key)
                except Exception as ex:
                    self._report(key, ex)
                    report.failed.append(key)
                    continue
                if not result.ok:
                    self._report(key, result.error)
                    report.failed.append(key)
                    continue
                self.cache.put(key, result.data)
                report.refreshed.append(key)

            self.passes += 1
            elapsed = time.monotonic() - t0
            log.info(
                f"Refresh pass complete in {elapsed:.1f}s: "
                f"{len(report.refreshed)} refreshed, {len(report.failed)} failed"
            )
            return report

    def _report(self, key: str, cause: Any) -> None:
        try:
            self._reporter(key, cause)
        except Exception as ex:
            log.error(f"Error reporter failed for '{key}': {ex!r}")
