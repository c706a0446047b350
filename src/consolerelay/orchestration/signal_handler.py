"""
Signal handling for wrapped builds.

This module manages signal registration, cleanup, and delegation to active
build runners using a global registry. SIGINT and SIGTERM become abort
requests for every registered build.
"""

import logging
import signal
import threading
from typing import TYPE_CHECKING, Any, Dict

if TYPE_CHECKING:
    from .build_runner import BuildRunner

logger = logging.getLogger(__name__)

# Signal handlers cannot be bound to instances, so active runners are kept
# in a registry that the process-wide handler walks.
_active_runners: Dict[int, "BuildRunner"] = {}
_active_runners_lock = threading.Lock()

# The process-wide handler is installed once for all concurrent builds and the
# pre-existing handlers are restored when the last user cleans up.
_handler_users = 0
_saved_handlers: Dict[int, Any] = {}
_install_lock = threading.Lock()


class SignalHandler:
    """
    Manages signal registration and cleanup for BuildRunner instances.
    """

    HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)

    def __init__(self):
        self._signal_handlers_set = False

    def setup_signal_handlers(self) -> None:
        """
        Install the process-wide handler, or join the builds already using it.

        Only possible from the main thread; elsewhere a debug message is logged
        and the build simply relies on explicit abort requests.
        """
        global _handler_users
        if self._signal_handlers_set:
            return
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on the main thread, signal handlers not installed")
            return

        with _install_lock:
            if _handler_users == 0:
                try:
                    for signum in self.HANDLED_SIGNALS:
                        _saved_handlers[signum] = signal.signal(signum, self._global_signal_handler)
                except (ValueError, OSError) as e:
                    logger.warning(f"Failed to set up signal handlers: {e}")
                    self._restore_saved_handlers()
                    return
                logger.debug("Signal handlers installed")
            _handler_users += 1
            self._signal_handlers_set = True
            logger.debug(f"Signal handlers in use by {_handler_users} build(s)")

    def cleanup_signal_handlers(self) -> None:
        """Restore the original signal handlers once the last build is done."""
        global _handler_users
        if not self._signal_handlers_set:
            return
        self._signal_handlers_set = False

        with _install_lock:
            _handler_users -= 1
            if _handler_users > 0:
                logger.debug(f"Signal handlers still in use by {_handler_users} build(s)")
                return
            self._restore_saved_handlers()
            logger.debug("Signal handlers restored")

    @staticmethod
    def _restore_saved_handlers() -> None:
        """Put back the handlers saved at install time. Caller holds the lock."""
        for signum, original in list(_saved_handlers.items()):
            try:
                if original is not None:
                    signal.signal(signum, original)
            except (ValueError, OSError) as e:
                logger.warning(f"Failed to restore handler for signal {signum}: {e}")
        _saved_handlers.clear()

    def register_runner(self, runner_id: int, runner: "BuildRunner") -> None:
        with _active_runners_lock:
            _active_runners[runner_id] = runner
            logger.debug(f"Registered BuildRunner {runner_id} for signal handling")

    def unregister_runner(self, runner_id: int) -> None:
        with _active_runners_lock:
            if _active_runners.pop(runner_id, None) is not None:
                logger.debug(f"Unregistered BuildRunner {runner_id} from signal handling")

    @staticmethod
    def active_runner_count() -> int:
        with _active_runners_lock:
            return len(_active_runners)

    @staticmethod
    def _global_signal_handler(signum: int, frame: Any) -> None:
        """
        Request an abort from every active BuildRunner.

        Args:
            signum: Signal number that was received
            frame: Current stack frame (unused)
        """
        logger.warning(f"Signal {signum} received. Aborting all active builds.")
        with _active_runners_lock:
            runners = list(_active_runners.items())
        for runner_id, runner in runners:
            logger.info(f"Requesting abort for BuildRunner {runner_id}")
            runner.request_abort()
