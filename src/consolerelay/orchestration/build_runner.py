"""
BuildRunner wraps one build command with console relaying.

The runner coordinates the specialized components: ProcessManager starts
and watches the build, LogCapture reads its console, BuildRelay ships the
output and SignalHandler turns SIGINT/SIGTERM into abort requests. The
build's exit code is reported unchanged whatever happens to the relay.
"""

import logging
from typing import Any, BinaryIO, Dict, Optional

import requests

from ..capture import LogCapture
from ..models.config import RelayConfig
from ..models.runtime import BuildOutcome, RelayState, RelaySummary
from ..relay.client import RelayClient
from .build_relay import BuildRelay
from .process_manager import ProcessManager
from .shared_state import BuildCommand, RuntimeState
from .signal_handler import SignalHandler

logger = logging.getLogger(__name__)


class BuildRunner:
    """
    Runs a build command while its console output is relayed.

    This class serves as the main orchestrator of one wrapped build,
    coordinating process management, capture, relaying and signal handling.
    """

    def __init__(
        self,
        build: BuildCommand,
        config: RelayConfig,
        session: Optional[requests.Session] = None,
        echo: Optional[BinaryIO] = None,
        build_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        handle_signals: bool = True,
        client: Optional[RelayClient] = None,
        drain_timeout: Optional[float] = None,
    ):
        """
        Initialize the BuildRunner with its components.

        Args:
            build: The command to run
            config: Relay configuration snapshot taken when the build starts
            session: HTTP session used for delivery
            echo: Binary stream receiving the build's console output
            build_id: Identifier of the build, sent with every batch
            metadata: Extra key/values sent with every batch
            handle_signals: Install SIGINT/SIGTERM handlers while running
            client: Relay client to use instead of creating one
            drain_timeout: Seconds to wait for the console to close after the
                build exited before the relay is aborted; defaults to the
                configured drain_timeout
        """
        self.state = RuntimeState()
        self.build = build
        self.config = config
        self.echo = echo
        self.handle_signals = handle_signals
        self.drain_timeout = drain_timeout if drain_timeout is not None else config.drain_timeout

        self.process_manager = ProcessManager(self.state)
        self.signal_handler = SignalHandler()
        self.relay = BuildRelay(
            config,
            client=client,
            session=session,
            build_id=build_id,
            metadata=metadata,
        )
        self.state.relay = self.relay
        self._runner_id = id(self)
        self._started = False

    def run(self) -> BuildOutcome:
        """
        Execute the build and relay its console until both are done.

        Returns:
            BuildOutcome with the build's exit code and the relay summary
        """
        try:
            self.start()
            return self.wait()
        finally:
            self.teardown()

    def start(self) -> None:
        """Start the build process and the relay of its output."""
        if self._started:
            raise RuntimeError("BuildRunner can only be started once")
        self._started = True

        if self.handle_signals:
            self.signal_handler.register_runner(self._runner_id, self)
            self.signal_handler.setup_signal_handlers()

        logger.info(f"--- Starting build: {self.build.command} ---")
        process = self.process_manager.start_build_process(self.build)
        capture = LogCapture.from_process(
            process,
            echo=self.echo,
            max_line_bytes=self.config.max_line_bytes,
        )
        self.relay.start(capture)

    def wait(self) -> BuildOutcome:
        """
        Wait for the build to exit and the relay to drain.

        Returns:
            BuildOutcome with the build's exit code and the relay summary
        """
        exit_code = self.process_manager.monitor_build_completion()
        summary = self.relay.finish(timeout=self.drain_timeout)
        if summary.warnings:
            logger.warning(
                f"Build exited with code {exit_code}; console relay reported "
                f"{len(summary.warnings)} warning(s)"
            )
        else:
            logger.info(f"Build exited with code {exit_code}")
        return BuildOutcome(exit_code=exit_code, summary=summary)

    def request_abort(self) -> None:
        """Abort the build and its relay; safe to call from a signal handler."""
        if self.state.abort_requested.is_set():
            return
        logger.warning("Abort requested for build")
        self.state.abort_requested.set()
        self.relay.abort()

    def teardown(self) -> None:
        """Release everything the build still holds."""
        logger.debug("Tearing down build resources...")
        try:
            process = self.state.build_process
            if process is not None and process.poll() is None:
                self.process_manager.terminate_process_tree(process.pid, "build process")

            if self.relay.state is not RelayState.IDLE:
                self.relay.abort()
                self.relay.finish(timeout=self.drain_timeout)

            if process is not None and self.relay.capture_open:
                logger.warning(
                    "Processes left behind by the build still hold its console, "
                    f"killing process group {process.pid}"
                )
                self.process_manager.kill_process_group(process.pid, "build process")
        finally:
            if self.handle_signals:
                self.signal_handler.cleanup_signal_handlers()
                self.signal_handler.unregister_runner(self._runner_id)

    @property
    def summary(self) -> RelaySummary:
        return self.relay.summary
