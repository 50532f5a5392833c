"""Tests for the Engine lifecycle: ramp playback, draining, cancellation."""

from __future__ import annotations

import asyncio
import time

import pytest

from conftest import FakeTransport
from rampload.core.engine import Engine, EngineConfig
from rampload.core.models import EngineState, RampProfile
from rampload.core.workload import RequestSpec, StatusCheck, Workload
from rampload.exceptions import InvalidRunStateError


def _config(
    *stages: tuple[float, int],
    pacing: float = 0.01,
    timeout: float = 1.0,
    max_users: int | None = None,
) -> EngineConfig:
    return EngineConfig(
        profile=RampProfile.of(*stages),
        workload=Workload(
            request=RequestSpec(url="http://target.test/v0/randos"),
            checks=(StatusCheck(200),),
            pacing_seconds=pacing,
            iteration_timeout_seconds=timeout,
        ),
        max_users=max_users,
    )


def _states(logger) -> list[str]:
    return [fields["state"] for fields in logger.events("run.state")]


async def _settle(ticks: int = 3, tick: float = 0.01) -> None:
    await asyncio.sleep(ticks * tick)


class TestRampPlayback:
    @pytest.mark.asyncio
    async def test_base_ramp_follows_schedule(self, manual_clock, capturing_logger) -> None:
        """30s -> 20, 1m -> 10, 15s -> 0 replayed on a hand-driven clock."""
        transport = FakeTransport()
        engine = Engine(
            _config((30, 20), (60, 10), (15, 0)),
            transport=transport,
            logger=capturing_logger,
            clock=manual_clock,
            tick_interval=0.01,
        )
        task = engine.start()

        await _settle()
        assert engine.state is EngineState.RUNNING
        assert engine.pool.active_count == 0

        manual_clock.now = 15
        await _settle()
        assert engine.pool.active_count == 10

        manual_clock.now = 30
        await _settle()
        assert engine.pool.active_count == 20

        manual_clock.now = 60
        await _settle()
        assert engine.pool.active_count == 15

        manual_clock.now = 90
        await _settle()
        assert engine.pool.active_count == 10

        manual_clock.now = 105
        report = await asyncio.wait_for(task, timeout=2.0)

        assert report.terminal_state is EngineState.FINISHED
        assert _states(capturing_logger) == ["running", "draining", "finished"]
        assert report.stats.count > 0
        assert report.stats.failure_count == 0
        assert report.stats.count == transport.calls
        assert report.total_elapsed_seconds == 105
        assert engine.pool.active_count == 0
        assert transport.closed is True

    @pytest.mark.asyncio
    async def test_active_count_matches_target_every_tick(self, capturing_logger) -> None:
        engine = Engine(
            _config((0.15, 6), (0.15, 3), (0.1, 0)),
            transport=FakeTransport(delay_seconds=0.005),
            logger=capturing_logger,
            tick_interval=0.01,
        )
        report = await engine.run()

        ticks = capturing_logger.events("run.tick")
        assert ticks
        for tick in ticks:
            assert tick["active"] == tick["target"]
            if tick["target"] > 0:
                assert tick["active"] > 0
        assert max(tick["target"] for tick in ticks) <= 6
        assert report.terminal_state is EngineState.FINISHED

    @pytest.mark.asyncio
    async def test_empty_profile_finishes_immediately(self, capturing_logger) -> None:
        transport = FakeTransport()
        engine = Engine(_config(), transport=transport, logger=capturing_logger, tick_interval=0.01)

        report = await asyncio.wait_for(engine.run(), timeout=1.0)

        assert report.terminal_state is EngineState.FINISHED
        assert report.stats.count == 0
        assert transport.calls == 0
        assert _states(capturing_logger) == ["running", "draining", "finished"]


class TestFailures:
    @pytest.mark.asyncio
    async def test_always_failing_check_still_finishes(self, capturing_logger) -> None:
        engine = Engine(
            _config((0.1, 3), (0.1, 0)),
            transport=FakeTransport(500),
            logger=capturing_logger,
            tick_interval=0.01,
        )

        report = await engine.run()

        assert report.terminal_state is EngineState.FINISHED
        assert report.error is None
        assert report.stats.count > 0
        assert report.stats.success_count == 0
        assert report.stats.failure_count == report.stats.count
        assert report.stats.error_kinds == {"unexpected_status": report.stats.count}

    @pytest.mark.asyncio
    async def test_spawn_failure_cancels_with_error(self, capturing_logger) -> None:
        engine = Engine(
            _config((0.2, 5), max_users=2),
            transport=FakeTransport(),
            logger=capturing_logger,
            tick_interval=0.01,
        )

        report = await asyncio.wait_for(engine.run(), timeout=2.0)

        assert report.terminal_state is EngineState.CANCELLED
        assert report.error is not None
        assert report.error["error_code"] == "MAX_USERS_EXCEEDED"
        assert report.error["recovery"]
        assert _states(capturing_logger) == ["running", "cancelled"]
        assert capturing_logger.events("run.pool_spawn_failed")


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_mid_run_keeps_every_outcome(self, capturing_logger) -> None:
        transport = FakeTransport(delay_seconds=0.05)
        timeout = 0.5
        engine = Engine(
            _config((0.05, 4), (30, 4), timeout=timeout),
            transport=transport,
            logger=capturing_logger,
            tick_interval=0.01,
        )
        task = engine.start()
        await asyncio.sleep(0.3)
        assert engine.state is EngineState.RUNNING

        cancelled_at = time.monotonic()
        engine.cancel("test")
        report = await asyncio.wait_for(task, timeout=timeout + 0.5)

        assert time.monotonic() - cancelled_at <= timeout + 0.1
        assert report.terminal_state is EngineState.CANCELLED
        assert report.error is None
        # Every request issued produced exactly one recorded outcome.
        assert report.stats.count == transport.calls
        assert report.stats.count > 0
        assert report.stats.failure_count == 0
        assert engine.pool.active_count == 0

    @pytest.mark.asyncio
    async def test_cancel_while_draining(self, capturing_logger) -> None:
        """Cancel after the ramp ended but before in-flight iterations completed."""
        transport = FakeTransport(delay_seconds=0.5)
        engine = Engine(
            _config((0.1, 2), timeout=2.0),
            transport=transport,
            logger=capturing_logger,
            tick_interval=0.01,
        )
        task = engine.start()

        async def _until_draining() -> None:
            while engine.state is not EngineState.DRAINING:
                await asyncio.sleep(0.005)

        await asyncio.wait_for(_until_draining(), timeout=1.0)
        assert transport.in_flight > 0
        engine.cancel("test")
        report = await asyncio.wait_for(task, timeout=2.0)

        assert report.terminal_state is EngineState.CANCELLED
        assert report.error is None
        assert _states(capturing_logger) == ["running", "draining", "cancelled"]
        # In-flight iterations still finish and are recorded once each.
        assert report.stats.count == transport.calls
        assert report.stats.count > 0
        assert engine.pool.users() == []

    @pytest.mark.asyncio
    async def test_cancel_before_start(self, capturing_logger) -> None:
        engine = Engine(
            _config((10, 2)),
            transport=FakeTransport(),
            logger=capturing_logger,
            tick_interval=0.01,
        )
        engine.cancel()

        report = await asyncio.wait_for(engine.run(), timeout=1.0)

        assert report.terminal_state is EngineState.CANCELLED
        assert report.stats.count == 0

    @pytest.mark.asyncio
    async def test_cancel_after_finish_is_a_no_op(self, capturing_logger) -> None:
        engine = Engine(_config((0.05, 1)), transport=FakeTransport(), logger=capturing_logger, tick_interval=0.01)
        report = await engine.run()

        engine.cancel()

        assert engine.state is EngineState.FINISHED
        assert engine.report is report
        assert not capturing_logger.events("run.cancel_requested")


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_run_twice_rejected(self, capturing_logger) -> None:
        engine = Engine(_config(), transport=FakeTransport(), logger=capturing_logger, tick_interval=0.01)
        await engine.run()

        with pytest.raises(InvalidRunStateError):
            await engine.run()

    @pytest.mark.asyncio
    async def test_start_returns_same_task(self, capturing_logger) -> None:
        engine = Engine(_config(), transport=FakeTransport(), logger=capturing_logger, tick_interval=0.01)
        task = engine.start()

        assert engine.start() is task
        await task

    def test_unstarted_engine_opens_no_http_client(self) -> None:
        engine = Engine(_config((1, 1)))

        assert engine.runner.transport is None

    def test_invalid_tick_interval(self) -> None:
        with pytest.raises(ValueError):
            Engine(_config(), transport=FakeTransport(), tick_interval=0)

    @pytest.mark.asyncio
    async def test_report_carries_percentiles(self, capturing_logger) -> None:
        engine = Engine(
            _config((0.1, 2), (0.05, 0)),
            transport=FakeTransport(delay_seconds=0.005),
            logger=capturing_logger,
            tick_interval=0.01,
        )

        report = await engine.run()

        assert report.percentiles["p50"] is not None
        assert report.iterations_per_sec > 0
        end = capturing_logger.events("run.end")[0]
        assert end["terminal_state"] == "finished"
        assert end["iterations"] == report.stats.count
