from __future__ import annotations

import math

from rampload.core.models import RampProfile
from rampload.exceptions import ValidationError


class Scheduler:
    """Maps elapsed run time to a target virtual-user count.

    Concurrency is linearly interpolated inside each stage, from the
    previous stage's target (0 before the first stage) to the stage's own
    target. Holds no mutable state, so concurrent callers are safe.
    """

    def __init__(self, profile: RampProfile) -> None:
        self._profile = profile
        self._boundaries: list[tuple[float, float, int, int]] = []

        start = 0.0
        previous_target = 0
        for stage in profile.stages:
            end = start + stage.duration_seconds
            self._boundaries.append((start, end, previous_target, stage.target))
            start = end
            previous_target = stage.target

        self._total = start

    @property
    def profile(self) -> RampProfile:
        return self._profile

    def total_duration(self) -> float:
        return self._total

    def concurrency_at(self, elapsed: float) -> int:
        if elapsed < 0:
            raise ValidationError("NEGATIVE_ELAPSED", "elapsed must be >= 0", {"elapsed": elapsed})

        if not self._boundaries:
            return 0

        if elapsed >= self._total:
            return self._boundaries[-1][3]

        for start, end, from_target, to_target in self._boundaries:
            if elapsed < end:
                progress = (elapsed - start) / (end - start)
                return _round_half_up(from_target + (to_target - from_target) * progress)

        # Float drift past the last boundary.
        return self._boundaries[-1][3]  # pragma: no cover

    def stage_index_at(self, elapsed: float) -> int | None:
        """Index of the stage playing at ``elapsed``, or None once the ramp is over."""
        for index, (_start, end, _from, _to) in enumerate(self._boundaries):
            if elapsed < end:
                return index
        return None


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))
