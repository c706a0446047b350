"""
Console capture for wrapped builds.
"""

from .log_capture import DEFAULT_MAX_LINE_BYTES, LogCapture

__all__ = [
    "DEFAULT_MAX_LINE_BYTES",
    "LogCapture",
]
