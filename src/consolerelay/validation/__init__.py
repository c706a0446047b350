"""
Validation and error handling for the consolerelay package.

This module provides input validation, the relay error types and
retry strategies with consistent error reporting across the package.
"""

from .exceptions import (
    ConfigInvalid,
    ConnectionErrorKind,
    DeliveryAttemptError,
    DeliveryFailed,
    ErrorSeverity,
    RelayConnectionError,
    StreamClosed,
    ValidationError,
    handle_config_error,
    handle_error,
    handle_subprocess_error,
)

from .strategies import (
    compute_backoff_delay,
    retry_with_backoff,
    simple_retry,
)

from .validators import (
    validate_bool,
    validate_endpoint_url,
    validate_field,
    validate_non_empty,
    validate_positive_float,
    validate_positive_integer,
)

__all__ = [
    # Errors
    "ConfigInvalid",
    "ConnectionErrorKind",
    "DeliveryAttemptError",
    "DeliveryFailed",
    "ErrorSeverity",
    "RelayConnectionError",
    "StreamClosed",
    "ValidationError",
    "handle_config_error",
    "handle_error",
    "handle_subprocess_error",
    # Strategies
    "compute_backoff_delay",
    "retry_with_backoff",
    "simple_retry",
    # Validators
    "validate_bool",
    "validate_endpoint_url",
    "validate_field",
    "validate_non_empty",
    "validate_positive_float",
    "validate_positive_integer",
]
