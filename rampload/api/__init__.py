"""Report builders for finished runs."""

from __future__ import annotations

__all__ = ["build_run_report"]

from rampload.api.report import build_run_report
