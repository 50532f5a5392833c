"""Run lifecycle exceptions.

Per-iteration failures (check failure, timeout, connection error,
unexpected status) are recorded as outcomes and never raised. Only the
errors below escape the pool or the engine.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from .base import RampLoadError


class PoolSpawnError(RampLoadError):
    """Raised when the pool cannot start a virtual user. Fatal for the run."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, code: str = "POOL_SPAWN_FAILED"):
        super().__init__(code, message, details)


class InvalidRunStateError(RampLoadError):
    """Raised when an engine operation is not valid in its current state."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, code: str = "INVALID_RUN_STATE"):
        super().__init__(code, message, details)
