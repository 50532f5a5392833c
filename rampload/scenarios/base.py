"""Base scenario: the staged ramp the randos API is load-tested with.

Stages ramp 0 -> 20 users over 30s, down to 10 over the next minute and
to 0 over the final 15s. Each iteration issues one GET, checks for a 200
and sleeps for a second.

Usage from CLI::

    python -m rampload.run --url http://localhost:8080/v0/randos

Usage as library::

    from rampload.scenarios.base import build_base_config, run_base_scenario

    report = await run_base_scenario(url="http://localhost:8080/v0/randos")
"""

from __future__ import annotations

from rampload.core.engine import Engine, EngineConfig
from rampload.core.models import RampProfile, RunReport
from rampload.core.workload import RequestSpec, StatusCheck, Transport, Workload

BASE_STAGES: tuple[tuple[float, int], ...] = (
    (30.0, 20),
    (60.0, 10),
    (15.0, 0),
)

DEFAULT_PATH = "/v0/randos"


def build_base_config(
    *,
    url: str,
    stages: tuple[tuple[float, int], ...] = BASE_STAGES,
    time_scale: float = 1.0,
    expected_status: int = 200,
    pacing_seconds: float = 1.0,
    iteration_timeout_seconds: float = 30.0,
    max_users: int | None = None,
) -> EngineConfig:
    """Build an ``EngineConfig`` for the base ramp.

    ``time_scale`` multiplies every stage duration and the pacing delay,
    which lets tests replay the same shape in a fraction of the time.
    """
    if time_scale <= 0:
        raise ValueError("time_scale must be > 0")

    profile = RampProfile.of(*[(duration * time_scale, target) for duration, target in stages])
    workload = Workload(
        request=RequestSpec(url=url),
        checks=(StatusCheck(expected_status),),
        pacing_seconds=pacing_seconds * time_scale,
        iteration_timeout_seconds=iteration_timeout_seconds,
    )
    return EngineConfig(profile=profile, workload=workload, max_users=max_users)


async def run_base_scenario(
    *,
    url: str,
    time_scale: float = 1.0,
    tick_interval: float = 1.0,
    max_users: int | None = None,
    transport: Transport | None = None,
) -> RunReport:
    """Run the base scenario and return the report.

    This is the programmatic entry point used by integration tests and CI.
    """
    config = build_base_config(url=url, time_scale=time_scale, max_users=max_users)
    engine = Engine(config, transport=transport, tick_interval=tick_interval)
    return await engine.run()
