from __future__ import annotations

from typing import Any

from rampload.core.engine import EngineConfig
from rampload.core.models import RunReport


def build_run_report(config: EngineConfig, report: RunReport) -> dict[str, Any]:
    workload = config.workload
    config_payload = {
        "stages": [
            {"duration_seconds": stage.duration_seconds, "target": stage.target}
            for stage in config.profile.stages
        ],
        "total_duration_seconds": config.profile.total_duration_seconds,
        "max_users": config.max_users,
        "workload": {
            "method": workload.request.method,
            "url": workload.request.url,
            "checks": [check.name for check in workload.checks],
            "pacing_seconds": workload.pacing_seconds,
            "iteration_timeout_seconds": workload.iteration_timeout_seconds,
        },
    }
    return {
        "config": config_payload,
        "result": {
            "terminal_state": report.terminal_state.value,
            "total_elapsed_seconds": report.total_elapsed_seconds,
            "iterations": report.stats.count,
            "iterations_per_sec": report.iterations_per_sec,
            "error": report.error,
        },
        "stats": report.stats.to_dict(),
        "percentiles": dict(report.percentiles),
    }
