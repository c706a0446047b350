"""
Unit tests for RelayClient batching, delivery, retries and redaction.
"""

import base64
from unittest.mock import Mock

import pytest
import requests

from consolerelay.models.config import RelayConfig, Secret
from consolerelay.models.runtime import LogChunk
from consolerelay.relay import RelayClient, authorization_header, safe_url
from consolerelay.relay.auth import connection_test_url
from consolerelay.validation import ConfigInvalid, DeliveryFailed

from conftest import make_response


def chunk(seq, text="line\n", final=False):
    if final:
        return LogChunk.end_of_stream(seq, 1700000000.0)
    return LogChunk(sequence_number=seq, content=text.encode("utf-8"), timestamp=1700000000.0 + seq)


@pytest.fixture
def client(mock_session, fake_clock, recording_sleep):
    return RelayClient(session=mock_session, sleep=recording_sleep, clock=fake_clock)


@pytest.mark.unit
class TestAuth:
    """Test cases for authentication headers and URL helpers."""

    def test_bearer_without_username(self):
        config = RelayConfig(credential=Secret("tok123"))
        assert authorization_header(config) == "Bearer tok123"

    def test_basic_with_username(self):
        config = RelayConfig(username="ci", credential=Secret("pw"))
        expected = base64.b64encode(b"ci:pw").decode("ascii")
        assert authorization_header(config) == f"Basic {expected}"

    def test_safe_url_strips_userinfo(self):
        assert safe_url("https://ci:pw@repo.example.com:8443/logs") == "https://repo.example.com:8443/logs"
        assert safe_url("https://repo.example.com/logs") == "https://repo.example.com/logs"

    def test_connection_test_url(self):
        config = RelayConfig(endpoint_url="https://repo.example.com/service/rest", health_path="status")
        assert connection_test_url(config) == "https://repo.example.com/service/rest/status"
        assert connection_test_url(config.with_updates(health_path="")) == "https://repo.example.com/service/rest"


@pytest.mark.unit
class TestBatching:
    """Test cases for batch triggers."""

    def test_three_chunks_one_post_with_bearer(self, client, mock_session, relay_config, test_utils):
        results = [client.send(chunk(i), relay_config) for i in range(3)]
        final = client.send(chunk(3, final=True), relay_config)

        assert all(r.success and r.chunks_delivered == 0 for r in results)
        assert final.success
        assert final.http_status == 200
        assert final.chunks_delivered == 3

        mock_session.post.assert_called_once()
        call = mock_session.post.call_args
        assert call.args[0] == relay_config.endpoint_url
        assert call.kwargs["headers"]["Authorization"] == "Bearer tok123"
        payload = call.kwargs["json"]
        assert payload["final"] is True
        assert payload["encoding"] == "utf-8"
        assert test_utils.posted_sequences(mock_session) == [0, 1, 2]
        assert payload["chunks"][0]["content"] == "line\n"
        assert payload["chunks"][0]["timestamp"].startswith("2023-11-14T22:13:20")

    def test_full_batch_is_sent(self, client, mock_session, relay_config):
        config = relay_config.with_updates(max_batch_size=2)

        first = client.send(chunk(0), config)
        second = client.send(chunk(1), config)

        assert first.chunks_delivered == 0
        assert second.chunks_delivered == 2
        assert mock_session.post.call_count == 1
        assert mock_session.post.call_args.kwargs["json"]["final"] is False
        assert client.pending == 0

    def test_old_batch_is_sent_on_next_chunk(self, client, mock_session, relay_config, fake_clock):
        client.send(chunk(0), relay_config)
        fake_clock.advance(relay_config.max_batch_interval + 0.1)

        result = client.send(chunk(1), relay_config)

        assert result.chunks_delivered == 2
        assert mock_session.post.call_count == 1

    def test_batch_due_and_time_until_due(self, client, relay_config, fake_clock):
        assert client.time_until_due(relay_config) is None
        assert not client.batch_due(relay_config)

        client.send(chunk(0), relay_config)
        fake_clock.advance(0.5)

        assert client.time_until_due(relay_config) == pytest.approx(1.5)
        fake_clock.advance(1.5)
        assert client.batch_due(relay_config)

    def test_empty_final_batch_is_sent(self, client, mock_session, relay_config):
        result = client.send(chunk(0, final=True), relay_config)

        assert result.http_status == 200
        payload = mock_session.post.call_args.kwargs["json"]
        assert payload == {"encoding": "utf-8", "final": True, "chunks": []}

    def test_flush_with_nothing_buffered_is_noop(self, client, mock_session, relay_config):
        result = client.flush(relay_config)

        assert result.success and result.http_status is None
        mock_session.post.assert_not_called()

    def test_build_metadata_in_payload(self, mock_session, relay_config):
        client = RelayClient(session=mock_session, build_id="job#42", metadata={"branch": "main"})

        client.send(chunk(0, final=True), relay_config)

        payload = mock_session.post.call_args.kwargs["json"]
        assert payload["build_id"] == "job#42"
        assert payload["metadata"] == {"branch": "main"}


@pytest.mark.unit
class TestOrdering:
    """Test cases for sequence ordering."""

    def test_sequences_arrive_in_order_without_gaps(self, client, mock_session, relay_config, test_utils):
        config = relay_config.with_updates(max_batch_size=7)

        for i in range(50):
            client.send(chunk(i), config)
        client.send(chunk(50, final=True), config)

        assert test_utils.posted_sequences(mock_session) == list(range(50))
        assert client.last_sequence_delivered == 49

    def test_out_of_order_chunk_rejected(self, client, relay_config):
        client.send(chunk(3), relay_config)
        with pytest.raises(ValueError, match="out of order"):
            client.send(chunk(2), relay_config)

    def test_chunk_after_final_rejected(self, client, relay_config):
        client.send(chunk(0, final=True), relay_config)
        with pytest.raises(ValueError, match="end-of-stream"):
            client.send(chunk(1), relay_config)


@pytest.mark.unit
class TestRetries:
    """Test cases for retries and terminal failures."""

    def test_persistent_500_exhausts_attempts(self, client, mock_session, relay_config, recording_sleep):
        mock_session.post.return_value = make_response(500)
        config = relay_config.with_updates(max_attempts=3, backoff_base=0.5, backoff_max=8.0)
        client.send(chunk(0), config)

        with pytest.raises(DeliveryFailed) as exc_info:
            client.flush(config)

        assert mock_session.post.call_count == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.http_status == 500
        assert exc_info.value.chunks == 1
        assert recording_sleep.delays == [0.5, 1.0]
        assert client.pending == 0
        assert client.batches_failed == 1

    def test_recovers_after_transient_failure(self, client, mock_session, relay_config):
        mock_session.post.side_effect = [
            requests.ConnectionError("reset"),
            make_response(503),
            make_response(201),
        ]
        client.send(chunk(0), relay_config)

        result = client.flush(relay_config)

        assert result.http_status == 201
        assert result.attempts == 3
        assert client.batches_sent == 1

    def test_client_errors_are_retried(self, client, mock_session, relay_config):
        mock_session.post.return_value = make_response(400)
        client.send(chunk(0), relay_config)

        with pytest.raises(DeliveryFailed):
            client.flush(relay_config)

        assert mock_session.post.call_count == relay_config.max_attempts

    def test_deadline_limits_attempts(self, client, mock_session, relay_config, fake_clock):
        mock_session.post.return_value = make_response(502)
        config = relay_config.with_updates(max_attempts=10, backoff_base=1.0, backoff_max=1.0)
        client.send(chunk(0), config)

        with pytest.raises(DeliveryFailed):
            client.flush(config, deadline=fake_clock() + 2.5)

        assert mock_session.post.call_count == 3
        for call in mock_session.post.call_args_list:
            assert call.kwargs["timeout"] <= 2.5

    def test_failure_detail_is_redacted(self, client, mock_session, relay_config, relay_logs):
        mock_session.post.side_effect = requests.ConnectionError("refused for Bearer tok123")
        client.send(chunk(0), relay_config)

        with pytest.raises(DeliveryFailed) as exc_info:
            client.flush(relay_config)

        assert "tok123" not in str(exc_info.value)
        assert "******" in exc_info.value.detail
        assert "tok123" not in relay_logs.text

    def test_unexpected_error_keeps_batch_buffered(self, client, mock_session, relay_config):
        mock_session.post.side_effect = TypeError("Object of type datetime is not JSON serializable")
        client.send(chunk(0), relay_config)
        client.send(chunk(1), relay_config)

        with pytest.raises(TypeError):
            client.flush(relay_config)

        assert mock_session.post.call_count == 1
        assert client.pending == 2
        assert client.discard_pending() == 2


@pytest.mark.unit
class TestConfigChecks:
    """Test cases for configuration checks before network calls."""

    def test_empty_endpoint_rejected_without_network(self, client, mock_session):
        config = RelayConfig(enabled=True, endpoint_url="", credential=Secret("tok123"))

        with pytest.raises(ConfigInvalid):
            client.send(chunk(0), config)

        mock_session.post.assert_not_called()

    def test_disabled_config_rejected(self, client, mock_session, relay_config):
        with pytest.raises(ConfigInvalid, match="disabled"):
            client.flush(relay_config.with_updates(enabled=False), final=True)

        mock_session.post.assert_not_called()


@pytest.mark.unit
class TestSessionOwnership:
    """Test cases for session lifecycle."""

    def test_injected_session_not_closed(self, mock_session):
        with RelayClient(session=mock_session):
            pass
        mock_session.close.assert_not_called()

    def test_discard_pending(self, client, relay_config):
        client.send(chunk(0), relay_config)
        client.send(chunk(1), relay_config)

        assert client.discard_pending() == 2
        assert client.pending == 0
