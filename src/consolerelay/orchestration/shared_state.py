"""
Shared data structures for the orchestration module.

This module defines the runtime state and timeout constants used across the
build runner, process manager and build relay.
"""

import subprocess
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional


@dataclass
class BuildCommand:
    """The command a wrapped build executes."""
    command: str
    cwd: Path
    env: Optional[Dict[str, str]] = None
    executable: Optional[str] = None


@dataclass
class RuntimeState:
    """
    Runtime state of one wrapped build.

    Shared between the build runner, its process manager and the signal
    handler; never shared between builds.
    """
    build_process: Optional[subprocess.Popen] = None
    abort_requested: threading.Event = field(default_factory=threading.Event)
    build_finished: threading.Event = field(default_factory=threading.Event)
    exit_code: Optional[int] = None
    relay: Optional[Any] = None


class TimeoutConstants:
    """
    Centralized timeout configuration.
    """
    # Queue operation timeouts
    QUEUE_GET_TIMEOUT = 0.5
    QUEUE_PUT_TIMEOUT = 0.5

    # Thread and process timeouts
    PRODUCER_STOP_TIMEOUT = 1.0
    CONSUMER_JOIN_GRACE = 5.0
    BUILD_WAIT_TIMEOUT = 0.5

    # Process termination timeouts
    TERMINATION_GRACEFUL_TIMEOUT = 3
    TERMINATION_FORCE_TIMEOUT = 2
