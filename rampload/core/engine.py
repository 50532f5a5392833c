from __future__ import annotations

import asyncio
import signal
import time
from dataclasses import dataclass
from typing import Any, Callable

from rampload.core.aggregator import ResultAggregator
from rampload.core.models import EngineState, RampProfile, RunReport
from rampload.core.pool import VirtualUserPool
from rampload.core.scheduler import Scheduler
from rampload.core.workload import Transport, Workload, WorkloadRunner
from rampload.errors import error_to_payload
from rampload.exceptions import InvalidRunStateError, PoolSpawnError
from rampload.logger import Logger, session_logger


@dataclass(frozen=True)
class EngineConfig:
    profile: RampProfile
    workload: Workload
    max_users: int | None = None


class Engine:
    """Owns one run: ticks the scheduler, resizes the pool, builds the report.

    Idle -> Running -> Draining -> Finished, with Cancelled reachable from
    Running or Draining.
    """

    def __init__(
        self,
        config: EngineConfig,
        *,
        transport: Transport | None = None,
        logger: Logger | None = None,
        clock: Callable[[], float] = time.monotonic,
        tick_interval: float = 1.0,
        handle_signals: bool = False,
        sample_size: int = 5000,
    ) -> None:
        if tick_interval <= 0:
            raise ValueError("tick_interval must be > 0")

        self._config = config
        self._logger = logger or session_logger
        self._clock = clock
        self._tick_interval = tick_interval
        self._handle_signals = handle_signals

        self._scheduler = Scheduler(config.profile)
        self._aggregator = ResultAggregator(sample_size=sample_size, logger=self._logger)
        self._runner = WorkloadRunner(config.workload, transport=transport, logger=self._logger)
        self._pool = VirtualUserPool(
            self._runner,
            self._aggregator,
            max_users=config.max_users,
            logger=self._logger,
        )

        self._state = EngineState.IDLE
        self._cancel_event = asyncio.Event()
        self._cancel_reason: str | None = None
        self._error: dict[str, Any] | None = None
        self._started: float | None = None
        self._report: RunReport | None = None
        self._task: asyncio.Task[RunReport] | None = None
        self._stop_signal: asyncio.Future | None = None

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def pool(self) -> VirtualUserPool:
        return self._pool

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    @property
    def aggregator(self) -> ResultAggregator:
        return self._aggregator

    @property
    def runner(self) -> WorkloadRunner:
        return self._runner

    @property
    def report(self) -> RunReport | None:
        return self._report

    def elapsed(self) -> float:
        if self._started is None:
            return 0.0
        return max(0.0, self._clock() - self._started)

    def start(self) -> asyncio.Task[RunReport]:
        """Schedule the run on the current event loop and return its task."""
        if self._task is None:
            self._task = asyncio.create_task(self.run(), name="rampload-engine")
        return self._task

    def cancel(self, reason: str | None = None) -> None:
        """Request cancellation; a no-op once the run is over."""
        if self._state.is_terminal or self._cancel_event.is_set():
            return
        self._cancel_reason = reason or "cancel_requested"
        self._logger.warning(
            "run.cancel_requested",
            event="run.cancel_requested",
            state=self._state.value,
            reason=self._cancel_reason,
        )
        self._cancel_event.set()
        if self._state is EngineState.RUNNING and self._stop_signal is None:
            # Stop users now rather than at the next tick.
            self._stop_signal = self._pool.stop_all()

    async def run(self) -> RunReport:
        if self._state is not EngineState.IDLE:
            raise InvalidRunStateError(
                "engine has already been started",
                {"state": self._state.value},
            )

        self._set_state(EngineState.RUNNING)
        self._started = self._clock()
        total = self._scheduler.total_duration()

        self._logger.info(
            "run.start",
            event="run.start",
            stages=len(self._config.profile.stages),
            total_duration_seconds=total,
            url=self._config.workload.request.url,
            max_users=self._config.max_users,
            tick_interval=self._tick_interval,
        )

        def _handle_signal(signum: int, _frame) -> None:  # pragma: no cover
            self._logger.warning("run.signal", event="run.signal", signum=signum)
            self.cancel(reason=f"signal_{signum}")

        handlers = _SignalHandlers(_handle_signal) if self._handle_signals else _NoSignalHandlers()
        try:
            with handlers:
                await self._tick_loop(total)
                await self._drain()
        finally:
            await self._runner.aclose()

        return self._finalize()

    async def _tick_loop(self, total: float) -> None:
        while not self._cancel_event.is_set():
            elapsed = self.elapsed()
            if elapsed >= total:
                return

            target = self._scheduler.concurrency_at(elapsed)
            try:
                await self._pool.resize(target)
            except PoolSpawnError as exc:
                self._error = error_to_payload(exc)
                self._logger.error(
                    "run.pool_spawn_failed",
                    event="run.pool_spawn_failed",
                    elapsed_seconds=round(elapsed, 3),
                    target=target,
                    error=str(exc),
                    recovery=self._error["recovery"],
                )
                self._cancel_reason = "pool_spawn_failed"
                self._cancel_event.set()
                return

            self._logger.debug(
                "run.tick",
                event="run.tick",
                elapsed_seconds=round(elapsed, 3),
                stage=self._scheduler.stage_index_at(elapsed),
                target=target,
                active=self._pool.active_count,
                retiring=self._pool.retiring_count,
            )

            wait = min(self._tick_interval, max(0.0, total - elapsed))
            await _wait_event(self._cancel_event, wait)

    async def _drain(self) -> None:
        if self._cancel_event.is_set():
            self._set_state(EngineState.CANCELLED)
            if self._stop_signal is None:
                self._stop_signal = self._pool.stop_all()
            done = self._stop_signal
        else:
            self._set_state(EngineState.DRAINING)
            await self._pool.resize(0)
            done = self._stop_signal = self._pool.stop_all()
            cancel_wait = asyncio.ensure_future(self._cancel_event.wait())
            try:
                await asyncio.wait({done, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                cancel_wait.cancel()
            if not done.done():
                self._set_state(EngineState.CANCELLED)

        try:
            await done
        except Exception as exc:
            self._error = self._error or error_to_payload(exc)
            self._logger.error(
                "run.user_failed",
                event="run.user_failed",
                error_type=type(exc).__name__,
                error=str(exc),
            )

        if self._state is EngineState.DRAINING:
            self._set_state(EngineState.FINISHED)

    def _finalize(self) -> RunReport:
        stats = self._aggregator.snapshot()
        report = RunReport(
            stats=stats,
            total_elapsed_seconds=self.elapsed(),
            terminal_state=self._state,
            error=self._error,
            percentiles=self._aggregator.percentiles(),
        )
        self._report = report

        self._logger.info(
            "run.end",
            event="run.end",
            terminal_state=report.terminal_state.value,
            cancel_reason=self._cancel_reason if report.terminal_state is EngineState.CANCELLED else None,
            iterations=stats.count,
            failures=stats.failure_count,
            error_rate_pct=stats.error_rate_pct,
            total_elapsed_seconds=round(report.total_elapsed_seconds, 3),
            iterations_per_sec=round(report.iterations_per_sec, 2),
        )
        return report

    def _set_state(self, state: EngineState) -> None:
        previous = self._state
        self._state = state
        self._logger.info(
            "run.state",
            event="run.state",
            previous=previous.value,
            state=state.value,
            elapsed_seconds=round(self.elapsed(), 3),
        )


async def _wait_event(event: asyncio.Event, timeout: float) -> None:
    if timeout <= 0:
        return
    try:
        await asyncio.wait_for(event.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        pass


class _SignalHandlers:
    def __init__(self, handler) -> None:
        self._handler = handler
        self._previous: dict[int, object] = {}

    def __enter__(self):
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                self._previous[signum] = signal.signal(signum, self._handler)
            except (ValueError, OSError):
                # Not on the main thread, or the platform forbids it.
                pass
        return self

    def __exit__(self, exc_type, exc, tb):
        for signum, previous in self._previous.items():
            try:
                signal.signal(signum, previous)  # type: ignore[arg-type]
            except (ValueError, OSError):
                pass
        return False


class _NoSignalHandlers:
    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False
