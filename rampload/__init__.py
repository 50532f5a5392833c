"""Virtual-user load generation engine.

This package drives a ramping number of virtual users against an HTTP
target, records per-iteration outcomes and produces a run report.
"""

from __future__ import annotations

__all__ = []
