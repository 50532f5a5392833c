"""Error payload mapping for run reports and CLI output.

Converts structured RampLoadError exceptions (and unexpected ones) into
payloads with machine-readable error codes and recovery strategies.
"""

from typing import Any, Dict

from rampload.exceptions import (
    ConfigurationError,
    PoolSpawnError,
    RampLoadError,
    ValidationError,
)


# Recovery strategy templates keyed by error code
RECOVERY_STRATEGIES: Dict[str, str] = {
    # Pool errors
    "POOL_SPAWN_FAILED": "Raise max_users or lower the stage targets so the ramp fits the user budget.",
    "MAX_USERS_EXCEEDED": "A stage target exceeds max_users. Raise --max-users or lower the stage targets.",

    # Runtime argument errors
    "NEGATIVE_ELAPSED": "Elapsed time is measured from run start and cannot be negative; check the injected clock.",
    "NEGATIVE_TARGET": "Pool targets come from stage targets, which must be >= 0.",

    # Lifecycle errors
    "INVALID_RUN_STATE": "Create a new Engine for each run; an engine cannot be restarted.",

    # Configuration errors
    "EMPTY_URL": "Provide a target URL with --url, RAMPLOAD_TARGET_URL or workload.url in the config file.",
    "INVALID_TIMEOUT": "iteration_timeout must be a positive duration such as 30s.",
    "INVALID_PACING": "pacing must be a non-negative duration such as 1s.",
    "INVALID_STAGE": "Stages must look like 30s:20 (positive duration, non-negative target).",
    "CONFIG_NOT_FOUND": "Check the --config path.",
    "CONFIG_PARSE_ERROR": "The config file must be valid JSON.",
}


def get_recovery_strategy(error_code: str, error: Exception) -> str:
    """Get recovery strategy for an error.

    Returns specific strategy if available, otherwise a generic one.
    """
    if error_code in RECOVERY_STRATEGIES:
        return RECOVERY_STRATEGIES[error_code]

    if isinstance(error, PoolSpawnError):
        return RECOVERY_STRATEGIES["POOL_SPAWN_FAILED"]
    elif isinstance(error, ConfigurationError):
        return "Review the run configuration and correct the reported field."
    elif isinstance(error, ValidationError):
        return "Review the validation error details and correct the input."

    return "Review the error message and the run log, then retry."


def error_to_payload(error: Exception) -> Dict[str, Any]:
    """Convert an error into a report-friendly dict.

    Args:
        error: The exception to convert

    Returns:
        Dictionary with error_code, message, details and recovery
    """
    if isinstance(error, RampLoadError):
        code = error.code
        message = error.message
        details = dict(error.details)
    else:
        code = "UNEXPECTED_ERROR"
        message = str(error) or type(error).__name__
        details = {"error_type": type(error).__name__}

    return {
        "error_code": code,
        "message": message,
        "details": details,
        "recovery": get_recovery_strategy(code, error),
    }
