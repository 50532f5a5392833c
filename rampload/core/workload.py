from __future__ import annotations

import asyncio
import math
import time
from dataclasses import dataclass, field
from typing import Mapping, Protocol, Sequence

import httpx

from rampload.core.models import ErrorKind, IterationOutcome
from rampload.exceptions import ConfigurationError
from rampload.logger import Logger, session_logger

_USER_AGENT = "rampload/0.1"


@dataclass(frozen=True)
class RequestSpec:
    url: str
    method: str = "GET"
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Response:
    """What checks get to see of a response: status and headers only."""

    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)


class Check(Protocol):
    """Named boolean assertion against a response."""

    name: str

    def __call__(self, response: Response) -> bool: ...


@dataclass(frozen=True)
class StatusCheck:
    expected: int = 200
    name: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            object.__setattr__(self, "name", f"status was {self.expected}")

    def __call__(self, response: Response) -> bool:
        return response.status_code == self.expected


@dataclass(frozen=True)
class Workload:
    """Per-iteration body: one request, its checks, then a fixed pacing wait."""

    request: RequestSpec
    checks: Sequence[Check] = (StatusCheck(200),)
    pacing_seconds: float = 1.0
    iteration_timeout_seconds: float = 30.0

    def __post_init__(self) -> None:
        if not self.request.url or not self.request.url.strip():
            raise ConfigurationError("EMPTY_URL", "workload request url must not be empty")
        if not self.request.method or not self.request.method.strip():
            raise ConfigurationError("EMPTY_METHOD", "workload request method must not be empty")
        if not math.isfinite(self.iteration_timeout_seconds) or self.iteration_timeout_seconds <= 0:
            raise ConfigurationError(
                "INVALID_TIMEOUT",
                "iteration timeout must be a finite number > 0",
                {"iteration_timeout_seconds": self.iteration_timeout_seconds},
            )
        if not math.isfinite(self.pacing_seconds) or self.pacing_seconds < 0:
            raise ConfigurationError(
                "INVALID_PACING",
                "pacing must be a finite number >= 0",
                {"pacing_seconds": self.pacing_seconds},
            )
        names = [check.name for check in self.checks]
        if len(set(names)) != len(names):
            raise ConfigurationError("DUPLICATE_CHECK", "check names must be unique", {"checks": names})


class Transport(Protocol):
    async def send(self, request: RequestSpec) -> Response: ...

    async def aclose(self) -> None: ...


class HttpxTransport:
    """Issues workload requests through a shared httpx.AsyncClient."""

    def __init__(
        self,
        timeout_seconds: float,
        *,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._http = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            follow_redirects=True,
            transport=http_transport,
            headers={"User-Agent": _USER_AGENT},
        )

    async def send(self, request: RequestSpec) -> Response:
        resp = await self._http.request(request.method, request.url, headers=dict(request.headers))
        return Response(status_code=resp.status_code, headers=dict(resp.headers))

    async def aclose(self) -> None:
        await self._http.aclose()


class WorkloadRunner:
    """Runs single workload iterations and classifies their outcome.

    Failures never propagate: every call returns an IterationOutcome.
    """

    def __init__(
        self,
        workload: Workload,
        *,
        transport: Transport | None = None,
        logger: Logger | None = None,
    ) -> None:
        self._workload = workload
        # None until the first send creates the default HttpxTransport.
        self._transport: Transport | None = transport
        self._logger = logger or session_logger

    @property
    def workload(self) -> Workload:
        return self._workload

    @property
    def transport(self) -> Transport | None:
        return self._transport

    async def aclose(self) -> None:
        if self._transport is not None:
            await self._transport.aclose()

    def _ensure_transport(self) -> Transport:
        if self._transport is None:
            self._transport = HttpxTransport(self._workload.iteration_timeout_seconds)
        return self._transport

    async def run_iteration(
        self,
        user_id: int,
        stop_event: asyncio.Event | None = None,
    ) -> IterationOutcome:
        workload = self._workload
        start_time = time.time()
        start = time.monotonic()

        try:
            response = await asyncio.wait_for(
                self._ensure_transport().send(workload.request),
                timeout=workload.iteration_timeout_seconds,
            )
        except asyncio.TimeoutError:
            outcome = IterationOutcome(
                user_id=user_id,
                start_time=start_time,
                duration_seconds=time.monotonic() - start,
                success=False,
                error_kind=ErrorKind.TIMEOUT,
                error_detail="iteration_timeout",
            )
        except Exception as exc:
            detail = _classify_exception(exc)
            outcome = IterationOutcome(
                user_id=user_id,
                start_time=start_time,
                duration_seconds=time.monotonic() - start,
                success=False,
                error_kind=ErrorKind.TIMEOUT if detail == "network_timeout" else ErrorKind.CONNECTION_ERROR,
                error_detail=detail,
            )
        else:
            outcome = self._evaluate(user_id, start_time, start, response)

        if not outcome.success:
            self._logger.warning(
                "workload.iteration_failed",
                event="workload.iteration_failed",
                user_id=user_id,
                url=workload.request.url,
                status_code=outcome.status_code,
                error_kind=outcome.error_kind.value if outcome.error_kind else None,
                error_detail=outcome.error_detail,
                duration_ms=int(outcome.duration_seconds * 1000),
            )

        # Pacing runs regardless of outcome so cadence stays stable under failures.
        await _pace(workload.pacing_seconds, stop_event)
        return outcome

    def _evaluate(self, user_id: int, start_time: float, start: float, response: Response) -> IterationOutcome:
        results: list[tuple[str, bool]] = []
        raised: str | None = None
        for check in self._workload.checks:
            try:
                passed = bool(check(response))
            except Exception as exc:
                passed = False
                raised = raised or f"check_raised:{type(exc).__name__}"
            results.append((check.name, passed))

        duration = time.monotonic() - start
        ok = all(passed for _, passed in results)
        if ok:
            return IterationOutcome(
                user_id=user_id,
                start_time=start_time,
                duration_seconds=duration,
                success=True,
                status_code=response.status_code,
                checks=tuple(results),
            )

        status_error = _classify_http_error(response.status_code)
        if status_error is not None and raised is None:
            kind = ErrorKind.UNEXPECTED_STATUS
            detail = status_error
        else:
            kind = ErrorKind.CHECK_FAILURE
            detail = raised or "check_failed"

        return IterationOutcome(
            user_id=user_id,
            start_time=start_time,
            duration_seconds=duration,
            success=False,
            error_kind=kind,
            status_code=response.status_code,
            error_detail=detail,
            checks=tuple(results),
        )


async def _pace(seconds: float, stop_event: asyncio.Event | None) -> None:
    if seconds <= 0:
        return
    if stop_event is None:
        await asyncio.sleep(seconds)
        return
    if stop_event.is_set():
        return
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        pass


# ---------------------------------------------------------------------------
# Helpers: error classification
# ---------------------------------------------------------------------------

def _classify_http_error(status_code: int) -> str | None:
    """Map an HTTP status code to a canonical error detail, or None if success."""
    if 200 <= status_code < 400:
        return None
    if status_code == 401:
        return "auth_unauthorized"
    if status_code == 403:
        return "auth_forbidden"
    if status_code == 404:
        return "not_found"
    if status_code == 429:
        return "rate_limited"
    if 400 <= status_code < 500:
        return "client_error"
    if 500 <= status_code < 600:
        return "server_error"
    return f"http_{status_code}"


def _classify_exception(exc: Exception) -> str:
    """Map a network-level exception to a canonical error detail."""
    if isinstance(exc, httpx.TimeoutException):
        return "network_timeout"
    if isinstance(exc, httpx.ConnectError):
        return "network_connect"
    if isinstance(exc, (httpx.RemoteProtocolError, httpx.LocalProtocolError)):
        return "network_protocol"
    if isinstance(exc, httpx.HTTPError):
        return "network_error"
    return type(exc).__name__
