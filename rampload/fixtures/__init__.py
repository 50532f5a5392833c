"""Local HTTP target for CI-safe load runs."""

from __future__ import annotations

__all__ = ["TargetServer"]

from rampload.fixtures.target_server import TargetServer
