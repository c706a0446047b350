"""
Orchestration of wrapped builds.

Components:
- BuildRunner: Runs one build with console relaying
- BuildRelay: Capture/relay pair with its producer and consumer threads
- ProcessManager: Build process lifecycle management
- SignalHandler: SIGINT/SIGTERM to abort-request translation
"""

from .build_relay import BuildRelay
from .build_runner import BuildRunner
from .process_manager import ProcessManager
from .shared_state import BuildCommand, RuntimeState, TimeoutConstants
from .signal_handler import SignalHandler

__all__ = [
    "BuildCommand",
    "BuildRelay",
    "BuildRunner",
    "ProcessManager",
    "RuntimeState",
    "SignalHandler",
    "TimeoutConstants",
]
