"""Base exception classes for rampload.

Every error carries a machine-readable ``code``, a human-readable
``message`` and an optional ``details`` dict.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class RampLoadError(Exception):
    """Base class for all rampload errors."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(self.__str__())

    def __str__(self) -> str:
        if self.details:
            return f"{self.code}: {self.message} (details: {self.details})"
        return f"{self.code}: {self.message}"


class ValidationError(RampLoadError, ValueError):
    """Raised when a runtime argument is out of range.

    Also a ValueError, so callers that only know the builtin still catch it.
    """

    pass


class ConfigurationError(RampLoadError):
    """Raised at construction time when the run configuration is unusable."""

    pass
