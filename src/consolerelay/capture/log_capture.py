"""
Console output capture.

LogCapture turns a build process's output pipe into a lazy sequence of
LogChunk objects, one per line, in emission order. The sequence is finite:
it ends with an end-of-stream sentinel chunk once the process has closed its
output and exited. It can be consumed only once.
"""

import logging
import subprocess
import threading
import time
from typing import BinaryIO, Callable, Iterator, Optional, Tuple

from ..models.runtime import LogChunk
from ..validation import StreamClosed

logger = logging.getLogger(__name__)

DEFAULT_MAX_LINE_BYTES = 65536
# How long the process may take to exit after closing its output.
DEFAULT_EXIT_GRACE = 2.0


class LogCapture:
    """
    Lazy, append-only, non-restartable sequence of captured console lines.

    Every line read from the stream is optionally echoed unchanged to `echo`
    (the build's own console) before it is yielded, so relaying never hides
    output from the build log.
    """

    def __init__(
        self,
        stream: BinaryIO,
        process: Optional[subprocess.Popen] = None,
        echo: Optional[BinaryIO] = None,
        max_line_bytes: int = DEFAULT_MAX_LINE_BYTES,
        exit_grace: float = DEFAULT_EXIT_GRACE,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the capture.

        Args:
            stream: Binary stream to read lines from (e.g. process.stdout)
            process: Process writing to the stream; enables the check that the
                stream did not close while the process kept running
            echo: Binary stream receiving a copy of every line
            max_line_bytes: Longest chunk produced from a single line
            exit_grace: Seconds to wait for the process to exit after EOF
            clock: Timestamp source for chunks
        """
        if max_line_bytes < 1:
            raise ValueError(f"max_line_bytes must be >= 1, got {max_line_bytes}")
        self._stream = stream
        self._process = process
        self._echo = echo
        self._max_line_bytes = max_line_bytes
        self._exit_grace = exit_grace
        self._clock = clock

        self._started = False
        self._finished = False
        self._stop_requested = threading.Event()
        self.chunks_emitted = 0

    @classmethod
    def from_process(cls, process: subprocess.Popen, **kwargs) -> "LogCapture":
        """Capture the stdout pipe of a started process."""
        if process.stdout is None:
            raise ValueError("Process was not started with stdout=subprocess.PIPE")
        return cls(process.stdout, process=process, **kwargs)

    @property
    def last_sequence(self) -> Optional[int]:
        """Sequence number of the last content chunk, None before the first."""
        return self.chunks_emitted - 1 if self.chunks_emitted else None

    @property
    def finished(self) -> bool:
        return self._finished

    def stop(self) -> None:
        """
        Stop producing chunks.

        Takes effect at the next line boundary; the sequence then ends with the
        end-of-stream sentinel without checking the process state.
        """
        self._stop_requested.set()

    def __iter__(self) -> Iterator[LogChunk]:
        if self._started:
            raise RuntimeError("LogCapture can only be iterated once")
        self._started = True
        return self._generate()

    def _generate(self) -> Iterator[LogChunk]:
        sequence = 0
        carry = b""
        while not self._stop_requested.is_set():
            line = carry + self._read_line(self._max_line_bytes - len(carry))
            carry = b""
            if not line:
                break
            if not line.endswith(b"\n"):
                # Cut at the line limit: keep a partial UTF-8 character for the next chunk.
                line, carry = split_incomplete_utf8(line)
                if not line:
                    line, carry = carry, b""
            self._echo_line(line)
            yield LogChunk(sequence_number=sequence, content=line, timestamp=self._clock())
            sequence += 1
            self.chunks_emitted = sequence

        if not self._stop_requested.is_set():
            self._ensure_process_ended()

        self._finished = True
        logger.debug(f"Capture finished after {sequence} chunk(s)")
        yield LogChunk.end_of_stream(sequence, self._clock())

    def _read_line(self, limit: int) -> bytes:
        try:
            return self._stream.readline(limit)
        except (OSError, ValueError) as e:
            self._finished = True
            raise StreamClosed(
                f"Console stream closed unexpectedly: {e}",
                last_sequence=self.last_sequence,
            ) from e

    def _echo_line(self, line: bytes) -> None:
        if self._echo is None:
            return
        try:
            self._echo.write(line)
            self._echo.flush()
        except (OSError, ValueError) as e:
            logger.warning(f"Echoing console output failed, echo disabled: {e}")
            self._echo = None

    def _ensure_process_ended(self) -> None:
        """Raise StreamClosed when EOF arrived but the process is still running."""
        if self._process is None:
            return
        try:
            self._process.wait(timeout=self._exit_grace)
        except subprocess.TimeoutExpired:
            self._finished = True
            raise StreamClosed(
                f"Console stream of PID {self._process.pid} closed while the process is still running",
                last_sequence=self.last_sequence,
            )


def split_incomplete_utf8(data: bytes) -> Tuple[bytes, bytes]:
    """
    Split data before a UTF-8 character that is cut off at its end.

    Returns:
        (complete, tail) where tail holds the bytes of the unfinished
        character; tail is empty when data ends on a character boundary
    """
    # A UTF-8 character is at most 4 bytes, so its lead byte is in the last 4.
    for back in range(1, min(4, len(data)) + 1):
        byte = data[-back]
        if byte & 0xC0 == 0x80:
            continue
        if byte & 0xE0 == 0xC0:
            length = 2
        elif byte & 0xF0 == 0xE0:
            length = 3
        elif byte & 0xF8 == 0xF0:
            length = 4
        else:
            length = 1
        if length > back:
            return data[:-back], data[-back:]
        break
    return data, b""
