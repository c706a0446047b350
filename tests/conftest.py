"""
Pytest configuration and shared fixtures for the consolerelay test suite.

This module provides common fixtures, fake HTTP sessions and clocks, and
configuration helpers for all test modules.
"""

import io
import logging
import sys
import tempfile
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional
from unittest.mock import Mock

import pytest
import requests

# Add src to Python path for testing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


# ============================================================================
# Test Configuration
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


# ============================================================================
# Core Fixtures
# ============================================================================


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path)
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def sample_relay_data() -> Dict[str, Any]:
    """Sample `[relay]` table with fast retry settings."""
    return {
        "enabled": True,
        "endpoint_url": "https://repo.example.com/service/rest/logs",
        "username": "",
        "credential": "tok123",
        "batching": {
            "max_batch_size": 100,
            "max_batch_interval": 2.0,
            "queue_capacity": 1000,
            "max_line_bytes": 65536,
            "drain_timeout": 5.0,
        },
        "retry": {
            "max_attempts": 3,
            "backoff_base": 0.01,
            "backoff_max": 0.04,
            "request_timeout": 2.0,
            "final_flush_timeout": 0.5,
        },
        "connection_test": {
            "timeout": 1.0,
            "health_path": "",
        },
    }


@pytest.fixture
def relay_config(sample_relay_data):
    """Validated RelayConfig built from sample_relay_data."""
    from consolerelay.config.validators import validate_relay_config

    return validate_relay_config(sample_relay_data)


@pytest.fixture
def relay_logs(caplog):
    """Capture every consolerelay log record down to DEBUG."""
    caplog.set_level(logging.DEBUG, logger="consolerelay")
    return caplog


# ============================================================================
# Mock Fixtures
# ============================================================================


def make_response(status_code: int = 200) -> Mock:
    """Create a mock requests.Response with the given status."""
    response = Mock(spec=requests.Response)
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    return response


@pytest.fixture
def mock_session():
    """Mock requests.Session answering 200 to every request."""
    session = Mock(spec=requests.Session)
    session.post.return_value = make_response(200)
    session.head.return_value = make_response(200)
    session.get.return_value = make_response(200)
    return session


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Sleep replacement that records delays and advances a FakeClock."""

    def __init__(self, clock: Optional[FakeClock] = None):
        self.delays: List[float] = []
        self.clock = clock

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def recording_sleep(fake_clock):
    return RecordingSleep(fake_clock)


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def config_files(temp_dir, sample_relay_data):
    """Create a temporary relay configuration file for testing."""
    import toml

    config_file = temp_dir / "relay.toml"
    with open(config_file, "w") as f:
        toml.dump({"relay": sample_relay_data}, f)

    return {
        "config": config_file,
        "dir": temp_dir,
    }


# ============================================================================
# Test Utilities
# ============================================================================


class TestUtils:
    """Utility functions for testing."""

    @staticmethod
    def line_stream(*lines: str) -> io.BytesIO:
        """Binary stream containing the given lines, newline-terminated."""
        return io.BytesIO("".join(f"{line}\n" for line in lines).encode("utf-8"))

    @staticmethod
    def posted_payloads(session: Mock) -> List[Dict[str, Any]]:
        """JSON bodies of every POST made through a mock session."""
        return [call.kwargs["json"] for call in session.post.call_args_list]

    @staticmethod
    def posted_sequences(session: Mock) -> List[int]:
        """Sequence numbers of every chunk POSTed, in sending order."""
        return [
            chunk["sequence"]
            for call in session.post.call_args_list
            for chunk in call.kwargs["json"]["chunks"]
        ]


@pytest.fixture
def test_utils():
    """Provide test utility functions."""
    return TestUtils
