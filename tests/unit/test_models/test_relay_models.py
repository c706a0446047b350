"""
Unit tests for the configuration and runtime data models.
"""

import base64
import dataclasses

import pytest

from consolerelay.models import (
    ConnectionErrorKind,
    ConnectionTestResult,
    DeliveryResult,
    LogChunk,
    RelayConfig,
    RelaySummary,
    Secret,
    ValidationKind,
    ValidationResult,
)


@pytest.mark.unit
class TestSecret:
    """Test cases for the Secret wrapper."""

    def test_masked_representations(self):
        secret = Secret("tok123")
        assert str(secret) == "******"
        assert "tok123" not in repr(secret)
        assert "tok123" not in f"{secret}"
        assert secret.reveal() == "tok123"

    def test_empty_secret(self):
        assert not Secret()
        assert str(Secret("")) == ""
        assert len(Secret("abc")) == 3

    def test_equality_and_hash(self):
        assert Secret("a") == Secret("a")
        assert Secret("a") != Secret("b")
        assert len({Secret("a"), Secret("a")}) == 1


@pytest.mark.unit
class TestRelayConfig:
    """Test cases for RelayConfig."""

    def test_is_frozen(self):
        config = RelayConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.enabled = True

    def test_repr_hides_credential(self):
        config = RelayConfig(enabled=True, endpoint_url="https://x.example", credential=Secret("tok123"))
        assert "tok123" not in repr(config)

    def test_secret_values_bearer(self):
        config = RelayConfig(credential=Secret("tok123"))
        assert config.secret_values() == ["tok123"]
        assert config.uses_basic_auth is False

    def test_secret_values_include_basic_token(self):
        config = RelayConfig(username="ci", credential=Secret("pw"))
        token = base64.b64encode(b"ci:pw").decode("ascii")
        assert config.secret_values() == ["pw", token]

    def test_with_updates_returns_copy(self):
        config = RelayConfig()
        updated = config.with_updates(enabled=True)
        assert updated.enabled is True
        assert config.enabled is False


@pytest.mark.unit
class TestRuntimeModels:
    """Test cases for runtime results."""

    def test_log_chunk_text_replaces_invalid_bytes(self):
        chunk = LogChunk(sequence_number=0, content=b"ok \xff\n", timestamp=0.0)
        assert chunk.text == "ok \ufffd\n"
        assert len(chunk) == 5

    def test_end_of_stream(self):
        chunk = LogChunk.end_of_stream(7, 1.0)
        assert chunk.final is True
        assert chunk.sequence_number == 7
        assert chunk.content == b""

    def test_buffered_delivery_result(self):
        result = DeliveryResult.buffered()
        assert result.success is True
        assert result.http_status is None
        assert result.chunks_delivered == 0
        assert not result.transmitted

    def test_connection_results(self):
        ok = ConnectionTestResult.success(http_status=200)
        failed = ConnectionTestResult.failure(ConnectionErrorKind.TIMEOUT, "slow")

        assert ok.ok and ok.message == "Success. Connection with repository verified."
        assert not failed.ok and failed.kind is ConnectionErrorKind.TIMEOUT

    def test_validation_result_kinds(self):
        assert ValidationResult.ok().kind is ValidationKind.OK
        assert ValidationResult.warning("w").kind is ValidationKind.WARNING
        assert ValidationResult.error("e").is_error

    def test_summary_fully_delivered(self):
        summary = RelaySummary(chunks_captured=3, chunks_delivered=3)
        assert summary.fully_delivered
        summary.chunks_abandoned = 1
        assert not summary.fully_delivered
        assert not RelaySummary(relay_enabled=False).fully_delivered
