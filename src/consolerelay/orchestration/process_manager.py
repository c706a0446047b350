"""
Process management for wrapped builds.

This module starts the build command with its console piped for capture,
waits for completion while honouring abort requests, and terminates the
whole build process tree when a build is aborted.
"""

import logging
import os
import signal
import subprocess
from typing import List

import psutil

from ..validation import ErrorSeverity, handle_subprocess_error
from .shared_state import BuildCommand, RuntimeState, TimeoutConstants

logger = logging.getLogger(__name__)


class ProcessManager:
    """
    Build process lifecycle management and termination logic.
    """

    def __init__(self, state: RuntimeState):
        self.state = state

    def start_build_process(self, build: BuildCommand) -> subprocess.Popen:
        """
        Start the build with stdout and stderr merged into one capturable pipe.

        Args:
            build: Command, working directory and environment of the build

        Returns:
            The started subprocess.Popen object
        """
        logger.info("Starting build process...")

        try:
            build_process = subprocess.Popen(
                build.command,
                cwd=build.cwd,
                env=build.env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                shell=True,
                executable=build.executable,
                start_new_session=(os.name == "posix"),
            )
        except OSError as e:
            handle_subprocess_error(
                e,
                build.command,
                severity=ErrorSeverity.ERROR,
                reraise=True,
                logger=logger,
            )

        logger.info(f"Build process started with PID: {build_process.pid} in directory {build.cwd}")
        self.state.build_process = build_process
        return build_process

    def monitor_build_completion(self) -> int:
        """
        Wait for the build process to finish, terminating it if an abort is requested.

        Returns:
            The build process exit code
        """
        if not self.state.build_process:
            raise ValueError("No build process to monitor")

        build_exit_code = None
        logger.info("Waiting for build process to complete...")

        while build_exit_code is None:
            if self.state.abort_requested.is_set():
                logger.warning("Abort requested. Terminating build process...")
                self.terminate_process_tree(self.state.build_process.pid, "build process")
                build_exit_code = self.state.build_process.wait()
                logger.info(f"Terminated build process exited with code: {build_exit_code}")
                break

            try:
                build_exit_code = self.state.build_process.wait(timeout=TimeoutConstants.BUILD_WAIT_TIMEOUT)
            except subprocess.TimeoutExpired:
                continue

        self.state.exit_code = build_exit_code
        self.state.build_finished.set()
        logger.info(f"Build process finished with exit code: {build_exit_code}")
        return build_exit_code

    def terminate_process_tree(self, pid: int, name: str) -> None:
        """
        Terminate a process and all of its children.

        Sends SIGTERM to the whole tree, waits, then SIGKILLs whatever survived.
        """
        if pid <= 0:
            logger.warning(f"Invalid PID {pid} for {name}, skipping termination")
            return

        try:
            parent = psutil.Process(pid)
        except psutil.NoSuchProcess:
            logger.info(f"Process {name} (PID: {pid}) already terminated")
            return
        except psutil.AccessDenied:
            logger.warning(f"Access denied to process {name} (PID: {pid}), attempting force kill")
            self._force_kill_process(pid)
            return

        processes = [parent] + self._get_process_children(parent)
        logger.info(f"Terminating {name} (PID: {pid}) and {len(processes) - 1} children")

        for proc in processes:
            self._signal_process(proc, force=False)
        remaining = self._wait_for_termination(processes, TimeoutConstants.TERMINATION_GRACEFUL_TIMEOUT)

        if remaining:
            logger.warning(f"{len(remaining)} processes survived SIGTERM, sending SIGKILL")
            for proc in remaining:
                self._signal_process(proc, force=True)
            remaining = self._wait_for_termination(remaining, TimeoutConstants.TERMINATION_FORCE_TIMEOUT)
            if remaining:
                logger.error(f"Failed to terminate {len(remaining)} processes for {name}")

        self._cleanup_process_group(pid, name)
        logger.info(f"Termination completed for {name} (PID: {pid})")

    def kill_process_group(self, pid: int, name: str) -> None:
        """Kill whatever is left in the build's process group after the build exited."""
        self._cleanup_process_group(pid, name)

    def _is_process_alive(self, process: psutil.Process) -> bool:
        """Check that a process is still running and not a zombie."""
        try:
            if not process.is_running():
                return False
            return process.status() not in (psutil.STATUS_ZOMBIE, psutil.STATUS_DEAD)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return False

    def _get_process_children(self, parent: psutil.Process) -> List[psutil.Process]:
        try:
            return [child for child in parent.children(recursive=True) if self._is_process_alive(child)]
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return []

    def _signal_process(self, process: psutil.Process, force: bool) -> None:
        try:
            if not self._is_process_alive(process):
                return
            if force:
                process.kill()
            else:
                process.terminate()
            logger.debug(f"Sent {'SIGKILL' if force else 'SIGTERM'} to PID {process.pid}")
        except psutil.NoSuchProcess:
            pass
        except psutil.AccessDenied:
            logger.warning(f"Access denied signalling PID {process.pid}")

    def _wait_for_termination(self, processes: List[psutil.Process], timeout: float) -> List[psutil.Process]:
        """Wait for processes to exit and return the ones still alive."""
        if not processes:
            return []
        _, still_alive = psutil.wait_procs(processes, timeout=timeout)
        return [proc for proc in still_alive if self._is_process_alive(proc)]

    def _cleanup_process_group(self, pid: int, name: str) -> None:
        """Kill what is left of the build's process group (POSIX only)."""
        if not hasattr(os, "killpg"):
            return
        try:
            os.killpg(pid, signal.SIGKILL)
            logger.debug(f"Sent SIGKILL to process group {pid} for {name}")
        except ProcessLookupError:
            pass
        except PermissionError:
            logger.debug(f"No permission to kill process group {pid}")

    def _force_kill_process(self, pid: int) -> None:
        """Force kill a single process by PID as last resort."""
        try:
            os.kill(pid, signal.SIGKILL)
            logger.warning(f"Force killed process PID {pid}")
        except ProcessLookupError:
            pass
