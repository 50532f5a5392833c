from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Mode(str, Enum):
    """Run target mode.

    live: hit the configured target URL
    fixture: start a local TargetServer and hit it (CI-safe)
    """

    LIVE = "live"
    FIXTURE = "fixture"


class UserState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class EngineState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    FINISHED = "finished"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (EngineState.FINISHED, EngineState.CANCELLED)


class ErrorKind(str, Enum):
    """Per-iteration failure classification."""

    CHECK_FAILURE = "check_failure"
    TIMEOUT = "timeout"
    CONNECTION_ERROR = "connection_error"
    UNEXPECTED_STATUS = "unexpected_status"


@dataclass(frozen=True)
class RampStage:
    duration_seconds: float
    target: int

    def __post_init__(self) -> None:
        if not math.isfinite(self.duration_seconds) or self.duration_seconds <= 0:
            raise ValueError("stage duration must be a finite number > 0")
        if self.target < 0:
            raise ValueError("stage target must be >= 0")


@dataclass(frozen=True)
class RampProfile:
    """Ordered stages; insertion order is playback order."""

    stages: tuple[RampStage, ...] = ()

    @property
    def total_duration_seconds(self) -> float:
        return sum(stage.duration_seconds for stage in self.stages)

    @classmethod
    def of(cls, *stages: tuple[float, int]) -> "RampProfile":
        return cls(tuple(RampStage(duration_seconds=d, target=t) for d, t in stages))


@dataclass(frozen=True)
class IterationOutcome:
    user_id: int
    start_time: float
    duration_seconds: float
    success: bool
    error_kind: ErrorKind | None = None
    status_code: int | None = None
    error_detail: str | None = None
    checks: tuple[tuple[str, bool], ...] = ()


@dataclass(frozen=True)
class CheckTally:
    passes: int = 0
    fails: int = 0


@dataclass(frozen=True)
class AggregateStats:
    count: int = 0
    success_count: int = 0
    failure_count: int = 0
    min_duration: float | None = None
    max_duration: float | None = None
    sum_duration: float = 0.0
    error_kinds: dict[str, int] = field(default_factory=dict)
    checks: dict[str, CheckTally] = field(default_factory=dict)

    @property
    def mean_duration(self) -> float | None:
        return (self.sum_duration / self.count) if self.count else None

    @property
    def error_rate_pct(self) -> float:
        return round(self.failure_count / self.count * 100, 2) if self.count else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "error_rate_pct": self.error_rate_pct,
            "min_duration_seconds": self.min_duration,
            "max_duration_seconds": self.max_duration,
            "mean_duration_seconds": self.mean_duration,
            "sum_duration_seconds": self.sum_duration,
            "error_kinds": dict(self.error_kinds),
            "checks": {
                name: {"passes": tally.passes, "fails": tally.fails}
                for name, tally in self.checks.items()
            },
        }


@dataclass
class RunReport:
    stats: AggregateStats
    total_elapsed_seconds: float
    terminal_state: EngineState
    error: dict[str, Any] | None = None
    percentiles: dict[str, float | None] = field(default_factory=dict)

    @property
    def iterations_per_sec(self) -> float:
        elapsed = self.total_elapsed_seconds
        return (self.stats.count / elapsed) if elapsed > 0 else 0.0
