"""
Batching HTTP client that delivers captured console chunks.

RelayClient buffers chunks and POSTs them as one JSON document when the
batch is full, when the oldest buffered chunk has waited long enough, or when
the end-of-stream chunk arrives. Failed POSTs are retried with exponential
backoff; once attempts are exhausted the batch is dropped and DeliveryFailed
is raised to the caller.
"""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import requests

from ..config.validators import ensure_relay_config
from ..log_utils import redact
from ..models.config import RelayConfig
from ..models.runtime import DeliveryResult, LogChunk
from ..validation import (
    ConfigInvalid,
    DeliveryAttemptError,
    DeliveryFailed,
    retry_with_backoff,
)
from .auth import request_headers, safe_url

logger = logging.getLogger(__name__)

# Lower bound for a request timeout squeezed by a deadline.
MIN_REQUEST_TIMEOUT = 0.1


class RelayClient:
    """
    Delivers LogChunks to the configured endpoint in ordered batches.

    One client belongs to one build; it is not shared between builds.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        build_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the relay client.

        Args:
            session: HTTP session to use; a new requests.Session when omitted
            build_id: Identifier of the build, sent with every batch
            metadata: Extra key/values sent with every batch
            sleep: Sleep function used between retries
            clock: Monotonic clock for batch age and deadlines
        """
        self._owns_session = session is None
        self._session = session if session is not None else requests.Session()
        self.build_id = build_id
        self.metadata = dict(metadata or {})
        self._sleep = sleep
        self._clock = clock

        self._lock = threading.Lock()
        self._buffer: List[LogChunk] = []
        self._oldest_buffered_at: Optional[float] = None
        self._last_sequence: Optional[int] = None
        self._final_seen = False

        self.batches_sent = 0
        self.batches_failed = 0
        self.chunks_delivered = 0
        self.last_sequence_delivered: Optional[int] = None

    @property
    def pending(self) -> int:
        """Number of chunks buffered and not yet transmitted."""
        with self._lock:
            return len(self._buffer)

    def batch_due(self, config: RelayConfig) -> bool:
        """True when the oldest buffered chunk has waited max_batch_interval."""
        with self._lock:
            if self._oldest_buffered_at is None:
                return False
            return self._clock() - self._oldest_buffered_at >= config.max_batch_interval

    def time_until_due(self, config: RelayConfig) -> Optional[float]:
        """Seconds until the current batch is due, None when nothing is buffered."""
        with self._lock:
            if self._oldest_buffered_at is None:
                return None
            return max(0.0, self._oldest_buffered_at + config.max_batch_interval - self._clock())

    def send(self, chunk: LogChunk, config: RelayConfig) -> DeliveryResult:
        """
        Queue a chunk for delivery, transmitting the batch when a threshold is hit.

        Args:
            chunk: Next chunk; sequence numbers must increase
            config: Relay configuration for this build

        Returns:
            DeliveryResult of the transmission, or a buffered result
            (success, no status, chunks_delivered == 0)

        Raises:
            ConfigInvalid: If the configuration is disabled or invalid
            DeliveryFailed: If a triggered transmission exhausted its retries
            ValueError: If the chunk is out of order
        """
        self._check_sendable(config)

        with self._lock:
            if self._final_seen:
                raise ValueError("Chunk received after end-of-stream")
            if self._last_sequence is not None and chunk.sequence_number <= self._last_sequence:
                raise ValueError(
                    f"Chunk {chunk.sequence_number} out of order, last was {self._last_sequence}"
                )
            self._last_sequence = chunk.sequence_number

            if chunk.final:
                self._final_seen = True
            else:
                self._buffer.append(chunk)
                if self._oldest_buffered_at is None:
                    self._oldest_buffered_at = self._clock()
            batch_full = len(self._buffer) >= config.max_batch_size

        if chunk.final or batch_full or self.batch_due(config):
            return self.flush(config, final=chunk.final)
        return DeliveryResult.buffered()

    def flush(self, config: RelayConfig, deadline: Optional[float] = None,
              final: bool = False) -> DeliveryResult:
        """
        Transmit every buffered chunk as one POST.

        Args:
            config: Relay configuration for this build
            deadline: Monotonic time after which no new attempt is started
            final: Mark the batch as the last one of the build

        Returns:
            DeliveryResult with the response status and number of chunks sent

        Raises:
            ConfigInvalid: If the configuration is disabled or invalid
            DeliveryFailed: If all attempts failed; the batch is dropped
        """
        self._check_sendable(config)

        with self._lock:
            batch = self._buffer
            self._buffer = []
            self._oldest_buffered_at = None

        if not batch and not final:
            return DeliveryResult(success=True)

        payload = self._build_payload(batch, final)
        headers = request_headers(config)
        secrets = config.secret_values()
        url = config.endpoint_url
        attempts = 0

        def attempt() -> requests.Response:
            nonlocal attempts
            attempts += 1
            timeout = config.request_timeout
            if deadline is not None:
                timeout = max(MIN_REQUEST_TIMEOUT, min(timeout, deadline - self._clock()))
            try:
                response = self._session.post(url, json=payload, headers=headers, timeout=timeout)
            except requests.RequestException as e:
                raise DeliveryAttemptError(redact(f"{type(e).__name__}: {e}", secrets))
            if not 200 <= response.status_code < 300:
                raise DeliveryAttemptError(
                    f"HTTP {response.status_code} from {safe_url(url)}",
                    http_status=response.status_code,
                )
            return response

        try:
            response = retry_with_backoff(
                attempt,
                max_attempts=config.max_attempts,
                base_delay=config.backoff_base,
                max_delay=config.backoff_max,
                context=f"log delivery to {safe_url(url)}",
                retry_on=(DeliveryAttemptError,),
                deadline=deadline,
                sleep=self._sleep,
                clock=self._clock,
            )
        except DeliveryAttemptError as e:
            self.batches_failed += 1
            logger.warning(
                f"Dropping batch of {len(batch)} chunk(s) after {attempts} attempt(s): {e.detail}"
            )
            raise DeliveryFailed(
                attempts=attempts,
                http_status=e.http_status,
                detail=e.detail,
                chunks=len(batch),
            ) from e
        except Exception:
            # Unexpected failures leave the batch buffered so the caller can account for it.
            with self._lock:
                self._buffer = batch + self._buffer
            raise

        self.batches_sent += 1
        self.chunks_delivered += len(batch)
        if batch:
            self.last_sequence_delivered = batch[-1].sequence_number
        logger.debug(
            f"Delivered {len(batch)} chunk(s) to {safe_url(url)} "
            f"with HTTP {response.status_code} after {attempts} attempt(s)"
        )
        return DeliveryResult(
            success=True,
            http_status=response.status_code,
            chunks_delivered=len(batch),
            attempts=attempts,
        )

    def discard_pending(self) -> int:
        """Drop buffered chunks without sending them; returns how many were dropped."""
        with self._lock:
            dropped = len(self._buffer)
            self._buffer = []
            self._oldest_buffered_at = None
        if dropped:
            logger.info(f"Abandoned {dropped} buffered chunk(s)")
        return dropped

    def close(self) -> None:
        if self._owns_session:
            self._session.close()

    def __enter__(self) -> "RelayClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _check_sendable(self, config: RelayConfig) -> None:
        if not config.enabled:
            raise ConfigInvalid("Console relay is disabled", field_name="relay.enabled")
        ensure_relay_config(config)

    def _build_payload(self, batch: List[LogChunk], final: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "encoding": "utf-8",
            "final": final,
            "chunks": [
                {
                    "sequence": chunk.sequence_number,
                    "timestamp": datetime.fromtimestamp(chunk.timestamp, timezone.utc).isoformat(),
                    "content": chunk.text,
                }
                for chunk in batch
            ],
        }
        if batch:
            payload["first_sequence"] = batch[0].sequence_number
            payload["last_sequence"] = batch[-1].sequence_number
        if self.build_id is not None:
            payload["build_id"] = self.build_id
        if self.metadata:
            payload["metadata"] = self.metadata
        return payload
