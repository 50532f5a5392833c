"""Pre-built load scenarios."""

from __future__ import annotations

__all__ = ["build_base_config", "run_base_scenario"]

from rampload.scenarios.base import build_base_config, run_base_scenario
