"""Pytest configuration and fixtures

Provides shared fixtures for all tests: a local HTTP target server, an
in-memory transport for engine/pool tests and a quiet logger.
"""

import asyncio
import sys
from pathlib import Path

import pytest

# Add project root to sys.path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from rampload.core.workload import RequestSpec, Response  # noqa: E402
from rampload.fixtures.target_server import TargetServer  # noqa: E402
from rampload.logger import Logger  # noqa: E402


class FakeTransport:
    """In-memory transport: replies with a fixed status after an optional delay.

    ``status_code`` may be a callable taking the call number (1-based) to
    vary replies per request.
    """

    def __init__(self, status_code=200, delay_seconds: float = 0.0, error: Exception | None = None):
        self.status_code = status_code
        self.delay_seconds = delay_seconds
        self.error = error
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def send(self, request: RequestSpec) -> Response:
        self.calls += 1
        call = self.calls
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay_seconds > 0:
                await asyncio.sleep(self.delay_seconds)
            if self.error is not None:
                raise self.error
            status = self.status_code(call) if callable(self.status_code) else self.status_code
            return Response(status_code=status)
        finally:
            self.in_flight -= 1

    async def aclose(self) -> None:
        self.closed = True


class CapturingLogger(Logger):
    """Logger that keeps (level, message, fields) tuples for assertions."""

    def __init__(self) -> None:
        self.records: list[tuple[str, str, dict]] = []

    def debug(self, message: str, **kwargs) -> None:
        self.records.append(("debug", message, kwargs))

    def info(self, message: str, **kwargs) -> None:
        self.records.append(("info", message, kwargs))

    def warning(self, message: str, **kwargs) -> None:
        self.records.append(("warning", message, kwargs))

    def error(self, message: str, **kwargs) -> None:
        self.records.append(("error", message, kwargs))

    def set_level(self, level: int) -> None:
        pass

    def events(self, message: str) -> list[dict]:
        return [fields for _level, msg, fields in self.records if msg == message]


class ManualClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def capturing_logger():
    return CapturingLogger()


@pytest.fixture
def manual_clock():
    return ManualClock()


@pytest.fixture
def target_server():
    """Start a TargetServer on an ephemeral port for the duration of a test."""
    server = TargetServer()
    server.start()
    try:
        yield server
    finally:
        server.stop()
