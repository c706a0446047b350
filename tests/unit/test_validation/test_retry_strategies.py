"""
Unit tests for retry strategies and error handling helpers.
"""

import logging

import pytest

from consolerelay.validation import (
    ErrorSeverity,
    compute_backoff_delay,
    handle_error,
    retry_with_backoff,
    simple_retry,
)


class Flaky:
    """Callable failing a fixed number of times before returning 'ok'."""

    def __init__(self, failures: int, exc_type=ConnectionError):
        self.failures = failures
        self.calls = 0
        self.exc_type = exc_type

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc_type(f"failure {self.calls}")
        return "ok"


@pytest.mark.unit
class TestBackoff:
    """Test cases for the exponential backoff computation."""

    def test_delays_double_and_cap(self):
        delays = [compute_backoff_delay(n, 0.5, 3.0) for n in range(1, 6)]
        assert delays == [0.5, 1.0, 2.0, 3.0, 3.0]

    def test_attempt_zero_has_no_delay(self):
        assert compute_backoff_delay(0, 0.5, 8.0) == 0.0


@pytest.mark.unit
class TestRetryWithBackoff:
    """Test cases for retry_with_backoff."""

    def test_succeeds_after_failures(self, recording_sleep):
        func = Flaky(failures=2)

        result = retry_with_backoff(func, max_attempts=3, base_delay=0.5, max_delay=8.0,
                                    sleep=recording_sleep)

        assert result == "ok"
        assert func.calls == 3
        assert recording_sleep.delays == [0.5, 1.0]

    def test_raises_last_error_after_max_attempts(self, recording_sleep):
        func = Flaky(failures=10)

        with pytest.raises(ConnectionError, match="failure 4"):
            retry_with_backoff(func, max_attempts=4, base_delay=0.1, max_delay=1.0,
                               sleep=recording_sleep)

        assert func.calls == 4
        assert len(recording_sleep.delays) == 3

    def test_does_not_retry_other_exceptions(self, recording_sleep):
        func = Flaky(failures=1, exc_type=KeyError)

        with pytest.raises(KeyError):
            retry_with_backoff(func, retry_on=(ConnectionError,), sleep=recording_sleep)

        assert func.calls == 1
        assert recording_sleep.delays == []

    def test_deadline_stops_retrying(self, fake_clock, recording_sleep):
        func = Flaky(failures=10)

        with pytest.raises(ConnectionError):
            retry_with_backoff(
                func,
                max_attempts=10,
                base_delay=1.0,
                max_delay=8.0,
                deadline=fake_clock() + 2.5,
                sleep=recording_sleep,
                clock=fake_clock,
            )

        # 1s after the first failure fits, 2s after the second does not.
        assert func.calls == 2
        assert recording_sleep.delays == [1.0]

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            retry_with_backoff(lambda: None, max_attempts=0)


@pytest.mark.unit
class TestSimpleRetry:
    """Test cases for simple_retry."""

    def test_fixed_delay_retry(self):
        func = Flaky(failures=1, exc_type=OSError)

        assert simple_retry(func, max_attempts=3, delay=0.0, context="write") == "ok"
        assert func.calls == 2


@pytest.mark.unit
class TestHandleError:
    """Test cases for handle_error."""

    def test_logs_and_reraises(self, caplog):
        logger = logging.getLogger("consolerelay.test")
        with pytest.raises(ValueError):
            handle_error(ValueError("bad"), "parsing", ErrorSeverity.ERROR, reraise=True, logger=logger)
        assert "Error in parsing: bad" in caplog.text

    def test_warning_without_reraise(self, caplog):
        logger = logging.getLogger("consolerelay.test")
        handle_error(OSError("gone"), "cleanup", "warning", reraise=False, logger=logger)
        assert "Error in cleanup: gone" in caplog.text
