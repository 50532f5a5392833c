from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable

from rampload.core.engine import EngineConfig
from rampload.core.models import RampProfile, RampStage
from rampload.core.timeparse import parse_duration_to_seconds
from rampload.core.workload import RequestSpec, StatusCheck, Workload
from rampload.exceptions import ConfigurationError


def parse_stage(raw: str) -> RampStage:
    """Parse a ``DURATION:TARGET`` stage argument, e.g. ``30s:20``."""
    duration_raw, sep, target_raw = raw.strip().partition(":")
    if not sep:
        raise ConfigurationError("INVALID_STAGE", f"stage {raw!r} must look like DURATION:TARGET", {"stage": raw})
    return _build_stage(duration_raw, target_raw, where=raw)


def parse_stages(raw_stages: Iterable[str]) -> RampProfile:
    return RampProfile(tuple(parse_stage(raw) for raw in raw_stages))


def load_config_file(path: str) -> EngineConfig:
    """Load a run definition.

    Expected shape:
      {
        "stages": [
          {"duration": "30s", "target": 20},
          {"duration": "1m", "target": 10},
          {"duration": "15s", "target": 0}
        ],
        "workload": {
          "url": "http://localhost:8080/v0/randos",
          "method": "GET",
          "headers": {},
          "expected_status": 200,
          "pacing": "1s",
          "iteration_timeout": "30s"
        },
        "max_users": 100
      }

    Durations accept the same strings as ``--stage`` (500ms, 30s, 1m30s).
    ``workload`` fields other than ``url`` are optional.
    """

    config_path = Path(path)
    try:
        text = config_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigurationError("CONFIG_NOT_FOUND", f"config file not found: {path}", {"path": path}) from exc

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(
            "CONFIG_PARSE_ERROR",
            f"config file is not valid JSON: {exc.msg}",
            {"path": path, "line": exc.lineno},
        ) from exc

    return config_from_dict(data)


def config_from_dict(data: Any) -> EngineConfig:
    if not isinstance(data, dict):
        raise ConfigurationError("INVALID_CONFIG", "config must be a JSON object")

    raw_stages = data.get("stages", [])
    if not isinstance(raw_stages, list):
        raise ConfigurationError("INVALID_STAGE", "'stages' must be a list")

    stages: list[RampStage] = []
    for index, raw in enumerate(raw_stages):
        if not isinstance(raw, dict):
            raise ConfigurationError("INVALID_STAGE", f"stage {index} must be an object", {"index": index})
        stages.append(_build_stage(raw.get("duration"), raw.get("target"), where=f"stages[{index}]"))

    workload = workload_from_dict(data.get("workload"))

    max_users = data.get("max_users")
    if max_users is not None and (not isinstance(max_users, int) or isinstance(max_users, bool) or max_users < 0):
        raise ConfigurationError("INVALID_MAX_USERS", "max_users must be a non-negative integer", {"max_users": max_users})

    return EngineConfig(profile=RampProfile(tuple(stages)), workload=workload, max_users=max_users)


def workload_from_dict(raw: Any) -> Workload:
    if not isinstance(raw, dict):
        raise ConfigurationError("INVALID_WORKLOAD", "'workload' must be an object")

    url = raw.get("url")
    if not isinstance(url, str):
        raise ConfigurationError("EMPTY_URL", "workload.url must be a string")

    headers = raw.get("headers") or {}
    if not isinstance(headers, dict) or not all(isinstance(k, str) and isinstance(v, str) for k, v in headers.items()):
        raise ConfigurationError("INVALID_HEADERS", "workload.headers must map strings to strings")

    expected = raw.get("expected_status", 200)
    if not isinstance(expected, int) or isinstance(expected, bool):
        raise ConfigurationError("INVALID_CHECK", "workload.expected_status must be an integer")

    return Workload(
        request=RequestSpec(url=url, method=str(raw.get("method", "GET")).upper(), headers=headers),
        checks=(StatusCheck(expected),),
        pacing_seconds=_duration_field(raw, "pacing", "1s", code="INVALID_PACING"),
        iteration_timeout_seconds=_duration_field(raw, "iteration_timeout", "30s", code="INVALID_TIMEOUT"),
    )


def _duration_field(raw: dict, key: str, default: str, *, code: str) -> float:
    value = raw.get(key, default)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if not isinstance(value, str):
        raise ConfigurationError(code, f"workload.{key} must be a duration string", {key: value})
    try:
        return parse_duration_to_seconds(value)
    except ValueError as exc:
        raise ConfigurationError(code, f"workload.{key}: {exc}", {key: value}) from exc


def _build_stage(duration_raw: Any, target_raw: Any, *, where: str) -> RampStage:
    try:
        if isinstance(duration_raw, (int, float)) and not isinstance(duration_raw, bool):
            duration = float(duration_raw)
        else:
            duration = parse_duration_to_seconds(str(duration_raw))
        if isinstance(target_raw, bool):
            raise ValueError("stage target must be an integer")
        target = int(target_raw)
        if isinstance(target_raw, float) and target != target_raw:
            raise ValueError("stage target must be an integer")
        return RampStage(duration_seconds=duration, target=target)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(
            "INVALID_STAGE",
            f"{where}: {exc}",
            {"stage": where, "duration": duration_raw, "target": target_raw},
        ) from exc
