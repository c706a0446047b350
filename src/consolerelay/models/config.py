"""
Configuration data models.

This module contains the relay configuration loaded from TOML or submitted
through the configuration form, and the Secret wrapper that keeps the
credential out of reprs and logs.
"""

import base64
from dataclasses import dataclass, field, replace
from typing import List

MASK = "******"


class Secret:
    """
    A credential value that never shows up in str() or repr().

    Use reveal() at the single place the plaintext is needed (building the
    Authorization header).
    """

    __slots__ = ("_value",)

    def __init__(self, value: str = ""):
        self._value = value or ""

    def reveal(self) -> str:
        return self._value

    def __bool__(self) -> bool:
        return bool(self._value)

    def __len__(self) -> int:
        return len(self._value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Secret):
            return NotImplemented
        return self._value == other._value

    def __hash__(self) -> int:
        return hash(("Secret", self._value))

    def __repr__(self) -> str:
        return f"Secret('{MASK}')" if self._value else "Secret('')"

    def __str__(self) -> str:
        return MASK if self._value else ""


@dataclass(frozen=True)
class RelayConfig:
    """
    Configuration for relaying a build's console, loaded from the `[relay]` tables.

    Instances are immutable: a build reads one snapshot for its whole duration
    and reconfiguration replaces the object.
    """

    # [relay]
    enabled: bool = False
    endpoint_url: str = ""
    username: str = ""
    credential: Secret = field(default_factory=Secret)

    # [relay.batching]
    max_batch_size: int = 100  # chunks per POST
    max_batch_interval: float = 2.0  # seconds the oldest buffered chunk may wait
    queue_capacity: int = 1000  # chunks held between capture and relay
    max_line_bytes: int = 65536
    drain_timeout: float = 10.0  # seconds the console may stay open after the build exited

    # [relay.retry]
    max_attempts: int = 3
    backoff_base: float = 0.5
    backoff_max: float = 8.0
    request_timeout: float = 10.0
    final_flush_timeout: float = 5.0

    # [relay.connection_test]
    test_timeout: float = 5.0
    health_path: str = ""

    @property
    def uses_basic_auth(self) -> bool:
        return bool(self.username)

    def secret_values(self) -> List[str]:
        """
        Every string derived from the credential that could reach a log line.

        Includes the base64 token of the Basic header when a username is set.
        """
        raw = self.credential.reveal()
        if not raw:
            return []
        values = [raw]
        if self.username:
            token = base64.b64encode(f"{self.username}:{raw}".encode("utf-8")).decode("ascii")
            values.append(token)
        return values

    def with_updates(self, **changes) -> "RelayConfig":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)
