from __future__ import annotations

import math
import random
import threading
from dataclasses import dataclass, field

from rampload.core.models import AggregateStats, CheckTally, IterationOutcome
from rampload.logger import Logger, session_logger


def _percentile(sorted_values: list[float], p: float) -> float | None:
    """Compute percentile using linear interpolation.

    Expects sorted_values sorted ascending.
    """

    if not sorted_values:
        return None

    if p <= 0:
        return float(sorted_values[0])
    if p >= 1:
        return float(sorted_values[-1])

    k = (len(sorted_values) - 1) * p
    f = int(math.floor(k))
    c = int(math.ceil(k))
    if f == c:
        return float(sorted_values[f])
    d0 = sorted_values[f] * (c - k)
    d1 = sorted_values[c] * (k - f)
    return float(d0 + d1)


class _ReservoirSampler:
    """Fixed-size reservoir sampler for iteration durations.

    This avoids unbounded memory growth during long runs.
    """

    def __init__(self, max_size: int, *, seed: int | None = None) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be > 0")
        self._max_size = max_size
        self._rng = random.Random(seed)
        self._seen = 0
        self._values: list[float] = []

    def add(self, value: float) -> None:
        self._seen += 1
        if len(self._values) < self._max_size:
            self._values.append(value)
            return

        # Replace elements with decreasing probability.
        idx = self._rng.randrange(self._seen)
        if idx < self._max_size:
            self._values[idx] = value

    def values(self) -> list[float]:
        return list(self._values)


@dataclass
class _Totals:
    count: int = 0
    success_count: int = 0
    failure_count: int = 0
    sum_duration_ns: int = 0
    min_duration: float | None = None
    max_duration: float | None = None
    error_kinds: dict[str, int] = field(default_factory=dict)
    check_passes: dict[str, int] = field(default_factory=dict)
    check_fails: dict[str, int] = field(default_factory=dict)


class ResultAggregator:
    """Streaming summary of iteration outcomes.

    ``record`` is the only mutation entry point and runs under a lock.
    Totals only use counts, sums, min and max, so they do not depend on
    the order outcomes arrive in.
    """

    PERCENTILES = (0.50, 0.90, 0.95, 0.99)

    def __init__(
        self,
        *,
        sample_size: int = 5000,
        seed: int | None = None,
        logger: Logger | None = None,
    ) -> None:
        self._logger = logger or session_logger
        self._lock = threading.Lock()
        self._totals = _Totals()
        self._sample = _ReservoirSampler(sample_size, seed=seed)

    def record(self, outcome: IterationOutcome) -> None:
        """Record a single iteration outcome."""

        duration = max(0.0, outcome.duration_seconds)

        with self._lock:
            t = self._totals
            t.count += 1
            if outcome.success:
                t.success_count += 1
            else:
                t.failure_count += 1
                if outcome.error_kind is not None:
                    kind = outcome.error_kind.value
                    t.error_kinds[kind] = t.error_kinds.get(kind, 0) + 1
            # Integer nanoseconds keep the sum independent of arrival order.
            t.sum_duration_ns += round(duration * 1_000_000_000)
            if t.min_duration is None or duration < t.min_duration:
                t.min_duration = duration
            if t.max_duration is None or duration > t.max_duration:
                t.max_duration = duration
            for name, passed in outcome.checks:
                bucket = t.check_passes if passed else t.check_fails
                bucket[name] = bucket.get(name, 0) + 1
            self._sample.add(duration)

        if not outcome.success:
            self._logger.debug(
                "aggregator.failure_recorded",
                event="aggregator.failure_recorded",
                user_id=outcome.user_id,
                error_kind=outcome.error_kind.value if outcome.error_kind else None,
                error_detail=outcome.error_detail,
            )

    def snapshot(self) -> AggregateStats:
        with self._lock:
            t = self._totals
            names = set(t.check_passes) | set(t.check_fails)
            checks = {
                name: CheckTally(passes=t.check_passes.get(name, 0), fails=t.check_fails.get(name, 0))
                for name in sorted(names)
            }
            return AggregateStats(
                count=t.count,
                success_count=t.success_count,
                failure_count=t.failure_count,
                min_duration=t.min_duration,
                max_duration=t.max_duration,
                sum_duration=t.sum_duration_ns / 1_000_000_000,
                error_kinds=dict(sorted(t.error_kinds.items())),
                checks=checks,
            )

    def percentiles(self) -> dict[str, float | None]:
        """Approximate duration percentiles (seconds) from the reservoir sample."""
        with self._lock:
            values = self._sample.values()
        values.sort()
        return {f"p{int(p * 100)}": _percentile(values, p) for p in self.PERCENTILES}
