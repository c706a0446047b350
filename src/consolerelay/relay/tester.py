"""
Connection preflight for the relay endpoint.

ConnectionTester sends one lightweight request (HEAD on the endpoint, or GET
on a configured health path) with a short timeout and classifies the outcome.
It is purely diagnostic and never touches stored configuration.
"""

import logging
from typing import Optional

import requests

from ..config.validators import ensure_relay_config
from ..log_utils import redact
from ..models.config import RelayConfig
from ..models.runtime import ConnectionErrorKind, ConnectionTestResult
from ..validation import RelayConnectionError
from .auth import connection_test_url, request_headers, safe_url

logger = logging.getLogger(__name__)

AUTH_REJECTED_STATUSES = (401, 403)
# Answers to HEAD that mean "try GET instead".
HEAD_UNSUPPORTED_STATUSES = (405, 501)


class ConnectionTester:
    """Checks endpoint reachability and credential validity without sending logs."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: Optional[float] = None):
        """
        Initialize the tester.

        Args:
            session: HTTP session to use; a new requests.Session when omitted
            timeout: Override for the configured test timeout (seconds)
        """
        self._owns_session = session is None
        self._session = session if session is not None else requests.Session()
        self._timeout = timeout

    def test(self, config: RelayConfig) -> ConnectionTestResult:
        """
        Test the endpoint described by config.

        The configuration is validated as if the relay were enabled, so a
        missing URL or credential is reported before any request is made.

        Returns:
            ConnectionTestResult; ok is False with a kind on failure

        Raises:
            ConfigInvalid: If the URL or credential is missing or malformed
        """
        ensure_relay_config(config.with_updates(enabled=True))

        url = connection_test_url(config)
        shown_url = safe_url(url)
        timeout = self._timeout if self._timeout is not None else config.test_timeout
        headers = request_headers(config)
        secrets = config.secret_values()

        logger.info(f"Testing connection to {shown_url}")
        try:
            if config.health_path:
                response = self._get(url, headers, timeout)
            else:
                response = self._session.head(url, headers=headers, timeout=timeout, allow_redirects=True)
                if response.status_code in HEAD_UNSUPPORTED_STATUSES:
                    logger.debug(f"HEAD answered {response.status_code}, retrying with GET")
                    response = self._get(url, headers, timeout)
        except requests.Timeout:
            result = ConnectionTestResult.failure(
                ConnectionErrorKind.TIMEOUT,
                f"Timed out after {timeout:g}s waiting for {shown_url}",
            )
        except requests.RequestException as e:
            # ConnectionError, SSLError, InvalidURL, TooManyRedirects
            result = ConnectionTestResult.failure(
                ConnectionErrorKind.UNREACHABLE,
                redact(f"Cannot reach {shown_url}: {type(e).__name__}", secrets),
            )
        else:
            result = self._classify_status(response.status_code, shown_url)

        if result.ok:
            logger.info(f"Connection test to {shown_url} succeeded")
        else:
            logger.warning(f"Connection test to {shown_url} failed ({result.kind.value}): {result.message}")
        return result

    def check(self, config: RelayConfig) -> ConnectionTestResult:
        """
        Like test(), but raise on failure.

        Raises:
            RelayConnectionError: Carrying the failure kind
            ConfigInvalid: If the configuration is incomplete
        """
        result = self.test(config)
        if not result.ok:
            raise RelayConnectionError(result.kind, result.message, http_status=result.http_status)
        return result

    def close(self) -> None:
        if self._owns_session:
            self._session.close()

    def _get(self, url, headers, timeout) -> requests.Response:
        response = self._session.get(url, headers=headers, timeout=timeout, stream=True)
        response.close()
        return response

    @staticmethod
    def _classify_status(status: int, shown_url: str) -> ConnectionTestResult:
        if 200 <= status < 400:
            return ConnectionTestResult.success(http_status=status)
        if status in AUTH_REJECTED_STATUSES:
            return ConnectionTestResult.failure(
                ConnectionErrorKind.AUTH_REJECTED,
                f"Credentials rejected by {shown_url} (HTTP {status})",
                http_status=status,
            )
        return ConnectionTestResult.failure(
            ConnectionErrorKind.UNEXPECTED_STATUS,
            f"Unexpected HTTP {status} from {shown_url}",
            http_status=status,
        )
