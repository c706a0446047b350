"""
Exception types and error handling helpers.

This module provides the error vocabulary of the relay (invalid configuration,
closed capture streams, exhausted deliveries, failed connection tests) and the
consistent logging helpers used wherever those errors are caught.
"""

import logging
from enum import Enum
from typing import Any, Optional, Union

from ..models.runtime import ConnectionErrorKind

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Severity levels for error handling."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ValidationError(Exception):
    """
    Exception raised when validation fails.

    This is the main exception type used throughout the validation system.
    """

    def __init__(self, message: str, field_name: Optional[str] = None,
                 value: Any = None, severity: ErrorSeverity = ErrorSeverity.ERROR):
        super().__init__(message)
        self.field_name = field_name
        self.value = value
        self.severity = severity


class ConfigInvalid(ValidationError):
    """
    Raised when a relay configuration is missing or malformed.

    Surfaced at configuration time and blocks saving. The offending value is
    never kept on the exception for credential fields.
    """


class StreamClosed(Exception):
    """Raised when a capture source ends before its process terminated."""

    def __init__(self, message: str, last_sequence: Optional[int] = None):
        super().__init__(message)
        self.last_sequence = last_sequence


class DeliveryFailed(Exception):
    """
    Raised when a batch could not be delivered after all retry attempts.

    Attributes:
        attempts: Number of sends performed
        http_status: Status of the last response, None on transport errors
        detail: Redacted description of the last failure
        chunks: Number of chunks in the discarded batch
    """

    def __init__(self, attempts: int, http_status: Optional[int] = None,
                 detail: str = "", chunks: int = 0):
        super().__init__(
            f"Delivery failed after {attempts} attempt(s)"
            + (f" (last status {http_status})" if http_status is not None else "")
            + (f": {detail}" if detail else "")
        )
        self.attempts = attempts
        self.http_status = http_status
        self.detail = detail
        self.chunks = chunks


class DeliveryAttemptError(Exception):
    """A single unsuccessful send; retried until attempts run out."""

    def __init__(self, detail: str, http_status: Optional[int] = None):
        super().__init__(detail)
        self.detail = detail
        self.http_status = http_status


class RelayConnectionError(Exception):
    """Raised by ConnectionTester.check when the endpoint test fails."""

    def __init__(self, kind: ConnectionErrorKind, message: str,
                 http_status: Optional[int] = None):
        super().__init__(message)
        self.kind = kind
        self.http_status = http_status


def handle_error(
    error: Exception,
    context: str,
    severity: Union[ErrorSeverity, str] = ErrorSeverity.ERROR,
    reraise: bool = True,
    logger: Optional[logging.Logger] = None
) -> None:
    """
    Handle errors with consistent logging and optional re-raising.

    Args:
        error: The exception that occurred
        context: Context description of where the error occurred
        severity: Severity level for logging
        reraise: Whether to re-raise the exception after logging
        logger: Logger instance to use (defaults to module logger)
    """
    effective_logger = logger or globals()['logger']

    error_msg = f"Error in {context}: {error}"

    if isinstance(severity, str):
        severity_str = severity.lower()
    else:
        severity_str = severity.value

    if severity_str == "debug":
        effective_logger.debug(error_msg, exc_info=True)
    elif severity_str == "info":
        effective_logger.info(error_msg)
    elif severity_str == "warning":
        effective_logger.warning(error_msg)
    elif severity_str == "error":
        effective_logger.error(error_msg)
    elif severity_str == "critical":
        effective_logger.critical(error_msg, exc_info=True)

    if reraise:
        raise error


def handle_config_error(error: Exception, context: str, **kwargs) -> None:
    """Handle configuration-related errors."""
    handle_error(error, f"config {context}", **kwargs)


def handle_subprocess_error(error: Exception, command: str, **kwargs) -> None:
    """Handle subprocess-related errors."""
    handle_error(error, f"subprocess command '{command}'", **kwargs)
