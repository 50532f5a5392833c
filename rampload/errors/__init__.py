"""Error mapping for reports and CLI output."""

from rampload.errors.mapper import (
    RECOVERY_STRATEGIES,
    error_to_payload,
    get_recovery_strategy,
)

__all__ = [
    "RECOVERY_STRATEGIES",
    "error_to_payload",
    "get_recovery_strategy",
]
