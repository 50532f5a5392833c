from __future__ import annotations

import json
import os
import threading
import time
from dataclasses import dataclass, field
from urllib.parse import parse_qs, urlparse

from rampload.logger import Logger, session_logger


@dataclass
class TargetBehaviour:
    """Default reply for paths without an explicit override."""

    status_code: int = 200
    delay_seconds: float = 0.0
    routes: dict[str, tuple[int, float]] = field(default_factory=dict)


class TargetServer:
    """Lightweight HTTP target for fixture-mode runs and tests.

    Every GET returns a small JSON page shaped like the randos listing the
    load profile was written against. Per-request behaviour can be steered
    with query parameters:

    - ``?status=503`` replies with that status code
    - ``?delay_ms=250`` sleeps before replying

    or per path via ``set_route``.

    Addressing:
    - bind_host: where the server binds (RAMPLOAD_TARGET_HOST, default 127.0.0.1)
    - external_host: hostname placed into URLs returned by get_url/base_url
      (RAMPLOAD_TARGET_EXTERNAL_HOST, default 127.0.0.1)
    """

    def __init__(
        self,
        *,
        port: int = 0,
        status_code: int = 200,
        delay_seconds: float = 0.0,
        logger: Logger | None = None,
    ) -> None:
        self._logger = logger or session_logger
        self.port = port
        self.behaviour = TargetBehaviour(status_code=status_code, delay_seconds=delay_seconds)
        self.request_count = 0
        self._count_lock = threading.Lock()

        self._bind_host = os.environ.get("RAMPLOAD_TARGET_HOST", "127.0.0.1")
        self._external_host = os.environ.get("RAMPLOAD_TARGET_EXTERNAL_HOST", "127.0.0.1")

        self._server = None
        self._thread = None

    def set_route(self, path: str, *, status_code: int = 200, delay_seconds: float = 0.0) -> None:
        self.behaviour.routes["/" + path.lstrip("/")] = (status_code, delay_seconds)

    def start(self) -> None:
        import http.server

        target = self

        class Handler(http.server.BaseHTTPRequestHandler):
            def do_GET(self):  # noqa: N802
                status, delay = target._resolve(self.path)
                with target._count_lock:
                    target.request_count += 1
                if delay > 0:
                    time.sleep(delay)

                body = json.dumps(
                    {
                        "data": [],
                        "options": {"page": {"limit": 100, "offset": 0}},
                        "total": 0,
                    }
                ).encode("utf-8")
                self.send_response(status)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)

            def log_message(self, format, *args):  # noqa: A002, ARG002
                # Keep output deterministic and avoid noisy logs.
                pass

        class ReusableHTTPServer(http.server.ThreadingHTTPServer):
            allow_reuse_address = True
            daemon_threads = True

        self._server = ReusableHTTPServer((self._bind_host, self.port), Handler)
        self.port = int(self._server.server_port)
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

        self._logger.info(
            "target.server_started",
            event="target.server_started",
            bind_host=self._bind_host,
            external_host=self._external_host,
            port=self.port,
        )

    def stop(self) -> None:
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None

        self._logger.info(
            "target.server_stopped",
            event="target.server_stopped",
            port=self.port,
            request_count=self.request_count,
        )

    def get_url(self, path: str = "") -> str:
        path = path.lstrip("/")
        return f"http://{self._external_host}:{self.port}/{path}"

    @property
    def base_url(self) -> str:
        return f"http://{self._external_host}:{self.port}"

    def _resolve(self, raw_path: str) -> tuple[int, float]:
        parsed = urlparse(raw_path)
        status, delay = self.behaviour.routes.get(
            parsed.path,
            (self.behaviour.status_code, self.behaviour.delay_seconds),
        )

        query = parse_qs(parsed.query)
        if "status" in query:
            try:
                status = int(query["status"][0])
            except ValueError:
                pass
        if "delay_ms" in query:
            try:
                delay = max(0.0, float(query["delay_ms"][0]) / 1000.0)
            except ValueError:
                pass
        return status, delay

    def __enter__(self) -> "TargetServer":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
        return None
