"""Custom exceptions for the load engine.

All exceptions carry a code, message and details so they can be mapped
into report payloads with a recovery hint (see rampload.errors.mapper).
"""

from rampload.exceptions.base import (
    RampLoadError,
    ValidationError,
    ConfigurationError,
)
from rampload.exceptions.run import (
    PoolSpawnError,
    InvalidRunStateError,
)

__all__ = [
    "RampLoadError",
    "ValidationError",
    "ConfigurationError",
    "PoolSpawnError",
    "InvalidRunStateError",
]
