"""
Request authentication and URL helpers shared by the relay client and tester.
"""

import base64
from typing import Dict
from urllib.parse import urljoin, urlsplit, urlunsplit

from ..models.config import RelayConfig

USER_AGENT = "consolerelay/1.0"


def authorization_header(config: RelayConfig) -> str:
    """
    Authorization header value derived from the stored credential.

    Basic auth when a username is configured, otherwise the credential is sent
    as a bearer token.
    """
    credential = config.credential.reveal()
    if config.uses_basic_auth:
        token = base64.b64encode(f"{config.username}:{credential}".encode("utf-8")).decode("ascii")
        return f"Basic {token}"
    return f"Bearer {credential}"


def request_headers(config: RelayConfig) -> Dict[str, str]:
    return {
        "Authorization": authorization_header(config),
        "User-Agent": USER_AGENT,
    }


def safe_url(url: str) -> str:
    """URL with any user:password part removed, for log messages."""
    parts = urlsplit(url)
    if parts.username is None and parts.password is None:
        return url
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return urlunsplit((parts.scheme, host, parts.path, parts.query, parts.fragment))


def connection_test_url(config: RelayConfig) -> str:
    """The endpoint itself, or the health path resolved against it."""
    if not config.health_path:
        return config.endpoint_url
    base = config.endpoint_url if config.endpoint_url.endswith("/") else config.endpoint_url + "/"
    return urljoin(base, config.health_path)
