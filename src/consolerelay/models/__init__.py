"""
Data models for the consolerelay package.

Configuration models and the runtime structures exchanged between capture,
relay and the build wrapper.
"""

from .config import RelayConfig, Secret
from .runtime import (
    BuildOutcome,
    ConnectionErrorKind,
    ConnectionTestResult,
    DeliveryResult,
    LogChunk,
    RelayState,
    RelaySummary,
    ValidationKind,
    ValidationResult,
)

__all__ = [
    # Configuration
    "RelayConfig",
    "Secret",
    # Runtime
    "BuildOutcome",
    "ConnectionErrorKind",
    "ConnectionTestResult",
    "DeliveryResult",
    "LogChunk",
    "RelayState",
    "RelaySummary",
    "ValidationKind",
    "ValidationResult",
]
