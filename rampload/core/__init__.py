"""Scheduler, virtual user pool, workload runner, aggregator and engine."""

from __future__ import annotations

__all__ = []
