"""
Runtime data models.

This module contains data structures produced while a build is being relayed:
captured chunks, delivery results, connection test outcomes, validation
results and the per-build relay summary.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

ENCODING = "utf-8"


@dataclass(frozen=True)
class LogChunk:
    """
    One unit of captured console output.

    Sequence numbers start at 0 and grow by one per chunk of a single capture.
    The final chunk of a capture carries no content and marks end-of-stream.
    """

    sequence_number: int
    content: bytes
    timestamp: float
    final: bool = False

    @classmethod
    def end_of_stream(cls, sequence_number: int, timestamp: float) -> "LogChunk":
        """Create the sentinel chunk that closes a capture."""
        return cls(sequence_number=sequence_number, content=b"", timestamp=timestamp, final=True)

    @property
    def text(self) -> str:
        """Chunk content decoded as UTF-8, undecodable bytes replaced."""
        return self.content.decode(ENCODING, errors="replace")

    def __len__(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of a single send or flush on the relay client."""

    success: bool
    http_status: Optional[int] = None
    error_detail: Optional[str] = None
    # Number of chunks transmitted by this call; 0 when the chunk was only buffered.
    chunks_delivered: int = 0
    attempts: int = 0

    @classmethod
    def buffered(cls) -> "DeliveryResult":
        return cls(success=True)

    @property
    def transmitted(self) -> bool:
        return self.chunks_delivered > 0


class ValidationKind(Enum):
    """Outcome kinds of a form field validation."""
    OK = "ok"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class ValidationResult:
    """Result of validating one configuration field or a connection test."""

    kind: ValidationKind
    message: str = ""

    @classmethod
    def ok(cls, message: str = "") -> "ValidationResult":
        return cls(ValidationKind.OK, message)

    @classmethod
    def warning(cls, message: str) -> "ValidationResult":
        return cls(ValidationKind.WARNING, message)

    @classmethod
    def error(cls, message: str) -> "ValidationResult":
        return cls(ValidationKind.ERROR, message)

    @property
    def is_ok(self) -> bool:
        return self.kind is ValidationKind.OK

    @property
    def is_error(self) -> bool:
        return self.kind is ValidationKind.ERROR


class ConnectionErrorKind(Enum):
    """Classification of a failed connection test."""
    UNREACHABLE = "unreachable"
    AUTH_REJECTED = "auth_rejected"
    TIMEOUT = "timeout"
    UNEXPECTED_STATUS = "unexpected_status"


@dataclass(frozen=True)
class ConnectionTestResult:
    """Outcome of a connection test; kind is None when the test passed."""

    ok: bool
    message: str
    kind: Optional[ConnectionErrorKind] = None
    http_status: Optional[int] = None

    @classmethod
    def success(cls, http_status: Optional[int] = None) -> "ConnectionTestResult":
        return cls(
            ok=True,
            message="Success. Connection with repository verified.",
            http_status=http_status,
        )

    @classmethod
    def failure(cls, kind: ConnectionErrorKind, message: str,
                http_status: Optional[int] = None) -> "ConnectionTestResult":
        return cls(ok=False, message=message, kind=kind, http_status=http_status)


class RelayState(Enum):
    """Lifecycle states of a build relay."""
    IDLE = "idle"
    CAPTURING = "capturing"
    DRAINING = "draining"


@dataclass
class RelaySummary:
    """
    Counters and warnings collected while relaying one build.
    """

    chunks_captured: int = 0
    chunks_delivered: int = 0
    batches_sent: int = 0
    batches_failed: int = 0
    # Chunks dropped after an abort or because their batch failed.
    chunks_abandoned: int = 0
    stream_closed: bool = False
    aborted: bool = False
    relay_enabled: bool = True
    warnings: List[str] = field(default_factory=list)
    last_sequence_delivered: Optional[int] = None

    @property
    def fully_delivered(self) -> bool:
        return (
            self.relay_enabled
            and self.batches_failed == 0
            and self.chunks_abandoned == 0
            and self.chunks_delivered == self.chunks_captured
        )


@dataclass
class BuildOutcome:
    """Result of a wrapped build: its own exit code and the relay summary."""

    exit_code: int
    summary: RelaySummary
