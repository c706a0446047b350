"""
consolerelay: relay a build's console output to a REST endpoint.

The package captures the console of a wrapped build command and ships it,
in ordered batches, to an artifact repository endpoint while the build runs.

The package is organized into specialized modules:
- models: Configuration and runtime data structures
- validation: Input validation, error types and retry strategies
- config: Loading, validating and persisting the relay configuration
- capture: Turning a build's output pipe into LogChunks
- relay: Batched HTTP delivery and the connection preflight
- orchestration: Running a build with its capture/relay pair
- plugin: The build wrapper a host registers

Usage:
    from consolerelay import ConsoleLogSender, ExtensionRegistry, TomlConfigStore

    sender = ConsoleLogSender(TomlConfigStore(Path("conf/relay.toml")))
    registry = ExtensionRegistry()
    registry.register("console-log-sender", sender)
    outcome = sender.run("make all", cwd="/src/project")
"""

from .capture import LogCapture
from .config import ConfigStore, InMemoryConfigStore, TomlConfigStore
from .log_utils import SecretRedactingFilter, setup_logging
from .models import (
    BuildOutcome,
    ConnectionErrorKind,
    ConnectionTestResult,
    DeliveryResult,
    LogChunk,
    RelayConfig,
    RelayState,
    RelaySummary,
    Secret,
    ValidationKind,
    ValidationResult,
)
from .orchestration import BuildRelay, BuildRunner
from .plugin import ConsoleLogSender, ExtensionRegistry
from .relay import ConnectionTester, RelayClient
from .validation import (
    ConfigInvalid,
    DeliveryFailed,
    RelayConnectionError,
    StreamClosed,
    validate_field,
)

__version__ = "0.1.0"

__all__ = [
    # Build wrapper
    "ConsoleLogSender",
    "ExtensionRegistry",
    "BuildRunner",
    "BuildRelay",
    # Components
    "LogCapture",
    "RelayClient",
    "ConnectionTester",
    # Configuration
    "ConfigStore",
    "InMemoryConfigStore",
    "TomlConfigStore",
    "RelayConfig",
    "Secret",
    # Runtime models
    "BuildOutcome",
    "ConnectionErrorKind",
    "ConnectionTestResult",
    "DeliveryResult",
    "LogChunk",
    "RelayState",
    "RelaySummary",
    "ValidationKind",
    "ValidationResult",
    # Errors
    "ConfigInvalid",
    "DeliveryFailed",
    "RelayConnectionError",
    "StreamClosed",
    "validate_field",
    # Logging
    "SecretRedactingFilter",
    "setup_logging",
]
