"""
Per-build capture/relay pair.

BuildRelay connects one LogCapture to one RelayClient through a bounded
queue. A producer thread pumps captured chunks into the queue (blocking when
it is full) and a consumer thread hands them to the client, flushing on size
and on time. The build itself never waits on network I/O, and relay failures
end up as warnings in the RelaySummary rather than exceptions.

Lifecycle: IDLE -> CAPTURING (start) -> DRAINING (capture ended or abort)
-> IDLE (finish). Draining always ends in IDLE, even after delivery failures.
"""

import logging
import queue
import threading
import time
from typing import Any, Callable, Dict, Optional

import requests

from ..capture import LogCapture
from ..config.validators import ensure_relay_config
from ..log_utils import install_redaction, redact, remove_redaction
from ..models.config import RelayConfig
from ..models.runtime import DeliveryResult, LogChunk, RelayState, RelaySummary
from ..relay.client import RelayClient
from ..validation import ConfigInvalid, DeliveryFailed, StreamClosed
from .shared_state import TimeoutConstants

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "consolerelay"

_ALLOWED_TRANSITIONS = {
    RelayState.IDLE: (RelayState.CAPTURING,),
    RelayState.CAPTURING: (RelayState.DRAINING,),
    RelayState.DRAINING: (RelayState.IDLE,),
}

# Marks the end of the producer's output in the queue.
_PRODUCER_DONE = None


class BuildRelay:
    """
    Relays one build's console output; owned by exactly one build.
    """

    def __init__(
        self,
        config: RelayConfig,
        client: Optional[RelayClient] = None,
        session: Optional[requests.Session] = None,
        build_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the build relay.

        Args:
            config: Configuration snapshot for this build
            client: Relay client to use; created from session/build_id/metadata when omitted
            session: HTTP session for a client created here
            build_id: Build identifier sent with every batch
            metadata: Extra key/values sent with every batch
            clock: Monotonic clock used for the final flush deadline
        """
        if config.enabled:
            ensure_relay_config(config)

        self.config = config
        self.client = client or RelayClient(session=session, build_id=build_id, metadata=metadata)
        self.summary = RelaySummary(relay_enabled=config.enabled)
        self._clock = clock

        self._state = RelayState.IDLE
        self._state_lock = threading.Lock()
        self._used = False
        self._queue: "queue.Queue[Optional[LogChunk]]" = queue.Queue(maxsize=config.queue_capacity)
        self._abort = threading.Event()
        self._capture: Optional[LogCapture] = None
        self._producer: Optional[threading.Thread] = None
        self._consumer: Optional[threading.Thread] = None
        self._consumer_stopped = threading.Event()
        self._redaction = None

        # Resources are released by finish(), or by the consumer itself when
        # finish() gave up waiting for it.
        self._release_lock = threading.Lock()
        self._consumer_exited = False
        self._release_deferred = False
        self._released = False

    @property
    def state(self) -> RelayState:
        with self._state_lock:
            return self._state

    @property
    def aborted(self) -> bool:
        return self._abort.is_set()

    @property
    def capture_open(self) -> bool:
        """True while the producer is still blocked on the build's console."""
        return self._producer is not None and self._producer.is_alive()

    def _transition(self, new_state: RelayState, expected: Optional[RelayState] = None) -> bool:
        """
        Move to new_state.

        With expected, the move only happens from that state and False is
        returned otherwise; without it an invalid move raises RuntimeError.
        """
        with self._state_lock:
            if expected is not None and self._state is not expected:
                return False
            if new_state not in _ALLOWED_TRANSITIONS[self._state]:
                raise RuntimeError(f"Invalid relay transition {self._state.value} -> {new_state.value}")
            logger.debug(f"Relay state {self._state.value} -> {new_state.value}")
            self._state = new_state
            return True

    def start(self, capture: LogCapture) -> None:
        """
        Begin capturing and relaying.

        Raises:
            RuntimeError: If this relay was already started
        """
        if self._used:
            raise RuntimeError("BuildRelay can only be started once")
        self._used = True
        self._capture = capture
        self._transition(RelayState.CAPTURING)

        if self.config.enabled:
            self._redaction = install_redaction(
                logging.getLogger(PACKAGE_LOGGER), self.config.secret_values()
            )
            self._consumer = threading.Thread(
                target=self._consume_loop, name="ConsoleRelayConsumer", daemon=True
            )
            self._consumer.start()
        else:
            logger.info("Console relay disabled, output is captured but not sent")

        self._producer = threading.Thread(
            target=self._produce_loop, name="ConsoleRelayProducer", daemon=True
        )
        self._producer.start()

    def abort(self) -> None:
        """
        Stop capturing, attempt one final flush with a short deadline and
        abandon whatever is still queued.
        """
        if self._abort.is_set():
            return
        logger.warning("Console relay aborted")
        self.summary.aborted = True
        self._abort.set()
        if self._capture is not None:
            self._capture.stop()

    def finish(self, timeout: Optional[float] = None) -> RelaySummary:
        """
        Wait until the captured output is relayed and return to IDLE.

        Args:
            timeout: Upper bound for waiting on the capture to end; defaults
                to waiting until the console is closed

        Returns:
            The RelaySummary for this build
        """
        if self._producer is not None:
            self._producer.join(timeout)
            if self._producer.is_alive():
                self._warn(f"Console still open {timeout}s after the build exited, relay aborted")
                self.abort()
                # A read blocked on the pipe only returns once the last writer exits.
                self._producer.join(TimeoutConstants.PRODUCER_STOP_TIMEOUT)

        if self._consumer is not None:
            grace = self.config.final_flush_timeout + TimeoutConstants.CONSUMER_JOIN_GRACE
            self._consumer.join(None if not self._abort.is_set() else grace)
            if self._consumer.is_alive():
                logger.warning("Relay consumer did not stop in time")

        if not self.capture_open and not (self._consumer and self._consumer.is_alive()):
            abandoned = self._drain_queue()
            if abandoned:
                self.summary.chunks_abandoned += abandoned
                self._warn(f"Abandoned {abandoned} queued chunk(s) the relay could not send")

        self._transition(RelayState.DRAINING, expected=RelayState.CAPTURING)
        self._transition(RelayState.IDLE, expected=RelayState.DRAINING)

        with self._release_lock:
            if self._consumer is not None and not self._consumer_exited:
                logger.debug("Relay consumer still running, it releases the client on exit")
                self._release_deferred = True
            else:
                self._release()

        logger.info(
            f"Console relay finished: {self.summary.chunks_delivered}/{self.summary.chunks_captured} "
            f"chunk(s) delivered in {self.summary.batches_sent} batch(es), "
            f"{self.summary.batches_failed} failed, {self.summary.chunks_abandoned} abandoned"
        )
        return self.summary

    def relay(self, capture: LogCapture) -> RelaySummary:
        """Start relaying capture and wait until it is done."""
        self.start(capture)
        return self.finish()

    # --- Producer ---

    def _produce_loop(self) -> None:
        relaying = self.config.enabled
        try:
            for chunk in self._capture:
                if not chunk.final:
                    self.summary.chunks_captured += 1
                if self._abort.is_set():
                    break
                if relaying:
                    relaying = self._put(chunk)
                    if not relaying and self._abort.is_set():
                        break
                if self.config.enabled and not relaying and not chunk.final:
                    # The consumer is gone; keep reading so the build never blocks on its console.
                    self.summary.chunks_abandoned += 1
        except StreamClosed as e:
            self.summary.stream_closed = True
            self._warn(f"Console capture ended abnormally: {e}")
        finally:
            self._transition(RelayState.DRAINING, expected=RelayState.CAPTURING)
            if self.config.enabled:
                self._put(_PRODUCER_DONE, force=True)

    def _put(self, item: Optional[LogChunk], force: bool = False) -> bool:
        """
        Blocking put that gives up when the relay is aborted or the consumer
        has stopped.

        With force the item is enqueued even after an abort, as long as the
        consumer is still around to read it.
        """
        while True:
            if self._abort.is_set() and not force:
                return False
            if self._consumer_stopped.is_set():
                return False
            try:
                self._queue.put(item, timeout=TimeoutConstants.QUEUE_PUT_TIMEOUT)
                return True
            except queue.Full:
                if not (self._consumer and self._consumer.is_alive()):
                    return False

    # --- Consumer ---

    def _consume_loop(self) -> None:
        try:
            while not self._abort.is_set():
                wait = self.client.time_until_due(self.config)
                if wait is None or wait > TimeoutConstants.QUEUE_GET_TIMEOUT:
                    wait = TimeoutConstants.QUEUE_GET_TIMEOUT
                try:
                    item = self._queue.get(timeout=wait)
                except queue.Empty:
                    if self.client.batch_due(self.config):
                        self._deliver(lambda: self.client.flush(self.config))
                    continue

                if item is _PRODUCER_DONE:
                    if self.client.pending:
                        self._deliver(lambda: self.client.flush(self.config))
                    return

                self._deliver(lambda chunk=item: self.client.send(chunk, self.config))
                if item.final:
                    return

            self._final_flush()
        except ConfigInvalid as e:
            self._stop_consuming(f"Console relay stopped, configuration invalid: {e}")
        except Exception as e:
            logger.debug("Relay consumer failed", exc_info=True)
            self._stop_consuming(f"Console relay stopped after an unexpected error: {type(e).__name__}: {e}")
        finally:
            self._consumer_stopped.set()
            with self._release_lock:
                self._consumer_exited = True
                if self._release_deferred:
                    self._release()

    def _stop_consuming(self, message: str) -> None:
        """Record why the consumer stopped; whatever it still buffers is abandoned."""
        self._consumer_stopped.set()
        self._warn(redact(message, self.config.secret_values()))
        abandoned = self.client.discard_pending()
        if abandoned:
            self.summary.chunks_abandoned += abandoned

    def _final_flush(self) -> None:
        deadline = self._clock() + self.config.final_flush_timeout
        self._deliver(lambda: self.client.flush(self.config, deadline=deadline))

        abandoned = self.client.discard_pending() + self._drain_queue()
        if abandoned:
            self.summary.chunks_abandoned += abandoned
            self._warn(f"Abandoned {abandoned} unsent chunk(s) after abort")

    def _drain_queue(self) -> int:
        """Empty the queue and return how many content chunks it held."""
        drained = 0
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return drained
            if item is not _PRODUCER_DONE and not item.final:
                drained += 1

    def _release(self) -> None:
        """Remove log redaction and close the client. Caller holds the release lock."""
        if self._released:
            return
        self._released = True
        if self._redaction is not None:
            remove_redaction(logging.getLogger(PACKAGE_LOGGER), self._redaction)
            self._redaction = None
        self.client.close()

    def _deliver(self, operation: Callable[[], DeliveryResult]) -> None:
        try:
            result = operation()
        except DeliveryFailed as e:
            self.summary.batches_failed += 1
            self.summary.chunks_abandoned += e.chunks
            self._warn(str(e))
            return
        if result.http_status is not None:
            self.summary.batches_sent += 1
            self.summary.chunks_delivered += result.chunks_delivered
            if self.client.last_sequence_delivered is not None:
                self.summary.last_sequence_delivered = self.client.last_sequence_delivered

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self.summary.warnings.append(message)
