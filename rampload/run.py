from __future__ import annotations

import argparse
import asyncio
import json
import os
from pathlib import Path

from rampload.api.report import build_run_report
from rampload.core.engine import Engine, EngineConfig
from rampload.core.models import EngineState, Mode, RampProfile
from rampload.core.profile import load_config_file, parse_stages
from rampload.core.timeparse import format_seconds, parse_duration_to_seconds
from rampload.core.workload import RequestSpec, StatusCheck, Workload
from rampload.errors import error_to_payload
from rampload.exceptions import ConfigurationError
from rampload.fixtures.target_server import TargetServer
from rampload.logger import parse_level
from rampload.logger import session_logger as logger
from rampload.scenarios.base import BASE_STAGES, DEFAULT_PATH


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="rampload virtual-user load generator")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a JSON run file (stages + workload). CLI flags override its workload fields.",
    )
    parser.add_argument(
        "--stage",
        action="append",
        default=None,
        metavar="DURATION:TARGET",
        help="Ramp stage, repeatable (e.g. --stage 30s:20 --stage 1m:10 --stage 15s:0)",
    )
    parser.add_argument(
        "--mode",
        type=str,
        choices=[m.value for m in Mode],
        default=Mode.LIVE.value,
        help="live hits --url; fixture starts a local target server",
    )
    parser.add_argument(
        "--url",
        type=str,
        default=os.environ.get("RAMPLOAD_TARGET_URL"),
        help="Target URL for each iteration's GET (env: RAMPLOAD_TARGET_URL)",
    )
    parser.add_argument(
        "--expected-status",
        type=int,
        default=None,
        help="Status code the check expects (default 200)",
    )
    parser.add_argument(
        "--pacing",
        type=str,
        default=None,
        help="Sleep after every iteration (e.g. 1s, 500ms; default 1s)",
    )
    parser.add_argument(
        "--iteration-timeout",
        type=str,
        default=None,
        help="Hard timeout for a single iteration (default 30s)",
    )
    parser.add_argument(
        "--max-users",
        type=int,
        default=None,
        help="Upper bound on concurrent virtual users; exceeding it cancels the run",
    )
    parser.add_argument(
        "--tick",
        type=str,
        default="1s",
        help="How often the engine re-evaluates the ramp (default 1s)",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Write summary report JSON to this path",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["trace", "debug", "info", "warn", "error"],
        default=os.environ.get("RAMPLOAD_LOG_LEVEL", "info"),
        help="Log level (env: RAMPLOAD_LOG_LEVEL)",
    )
    return parser


def _resolve_config(args, *, fixture_url: str | None) -> EngineConfig:
    """Merge --config, --stage and workload flags into an EngineConfig."""
    base: EngineConfig | None = load_config_file(args.config) if args.config else None

    if args.stage:
        profile = parse_stages(args.stage)
    elif base is not None:
        profile = base.profile
    else:
        profile = RampProfile.of(*BASE_STAGES)

    url = fixture_url or args.url or (base.workload.request.url if base else None)
    if not url:
        raise ConfigurationError("EMPTY_URL", "no target url configured")

    base_workload = base.workload if base else None
    checks = base_workload.checks if base_workload else (StatusCheck(200),)
    if args.expected_status is not None:
        checks = (StatusCheck(args.expected_status),)

    pacing = _flag_seconds(args.pacing, "INVALID_PACING")
    timeout = _flag_seconds(args.iteration_timeout, "INVALID_TIMEOUT")

    workload = Workload(
        request=RequestSpec(
            url=url,
            method=base_workload.request.method if base_workload else "GET",
            headers=base_workload.request.headers if base_workload else {},
        ),
        checks=checks,
        pacing_seconds=pacing if pacing is not None else (base_workload.pacing_seconds if base_workload else 1.0),
        iteration_timeout_seconds=(
            timeout if timeout is not None else (base_workload.iteration_timeout_seconds if base_workload else 30.0)
        ),
    )

    max_users = args.max_users if args.max_users is not None else (base.max_users if base else None)
    return EngineConfig(profile=profile, workload=workload, max_users=max_users)


def _flag_seconds(raw: str | None, code: str) -> float | None:
    if raw is None:
        return None
    try:
        return parse_duration_to_seconds(raw)
    except ValueError as exc:
        raise ConfigurationError(code, str(exc), {"provided": raw}) from exc


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logger.set_level(parse_level(args.log_level))

    try:
        tick_interval = parse_duration_to_seconds(args.tick)
    except ValueError as exc:
        logger.error(
            "run.invalid_tick",
            event="run.invalid_tick",
            provided=args.tick,
            error=str(exc),
        )
        return 2
    if tick_interval <= 0:
        logger.error(
            "run.invalid_tick",
            event="run.invalid_tick",
            provided=args.tick,
            recovery="Provide --tick > 0",
        )
        return 2

    target_server: TargetServer | None = None
    if args.mode == Mode.FIXTURE.value:
        target_server = TargetServer(logger=logger)
        target_server.start()

    try:
        try:
            config = _resolve_config(
                args,
                fixture_url=target_server.get_url(DEFAULT_PATH) if target_server else None,
            )
        except ConfigurationError as exc:
            payload = error_to_payload(exc)
            logger.error(
                "run.invalid_config",
                event="run.invalid_config",
                error_code=payload["error_code"],
                error=payload["message"],
                recovery=payload["recovery"],
            )
            return 2

        logger.info(
            "run.profile",
            event="run.profile",
            stages=" ".join(
                f"{format_seconds(stage.duration_seconds)}:{stage.target}" for stage in config.profile.stages
            ),
            url=config.workload.request.url,
        )

        async def _run():
            engine = Engine(config, logger=logger, tick_interval=tick_interval, handle_signals=True)
            return await engine.run()

        report = asyncio.run(_run())
    finally:
        if target_server is not None:
            target_server.stop()

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        payload = build_run_report(config, report)
        output_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")

        logger.info(
            "run.report_written",
            event="run.report_written",
            path=str(output_path),
        )

    if report.terminal_state is EngineState.CANCELLED and report.error is not None:
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
