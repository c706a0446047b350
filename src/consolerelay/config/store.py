"""
Configuration stores.

A ConfigStore loads and persists the relay configuration. Stores are injected
into the build wrapper instead of living in a module-level singleton, and
`configure` wraps validate-then-persist in one transaction: either the new
configuration is validated and written, or nothing changes.
"""

import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

import toml

from ..models.config import RelayConfig
from ..validation import ErrorSeverity, handle_config_error, simple_retry
from .loader import load_relay_section
from .secrets import decrypt_secret, encrypt_secret, resolve_secret_key
from .validators import relay_config_to_dict, validate_relay_config

logger = logging.getLogger(__name__)


class ConfigStore(ABC):
    """
    Load/save interface for the relay configuration.

    Subclasses implement `_read` and `_write`; the base class provides the
    cached snapshot and the configure transaction.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._current: Optional[RelayConfig] = None

    @abstractmethod
    def _read(self) -> Optional[RelayConfig]:
        """Read the persisted configuration, None when nothing is stored yet."""

    @abstractmethod
    def _write(self, config: RelayConfig) -> None:
        """Persist the configuration atomically."""

    def load(self) -> RelayConfig:
        """
        Load the persisted configuration, falling back to a disabled default.

        The result is cached and returned by `current()`.
        """
        with self._lock:
            config = self._read()
            if config is None:
                logger.info("No relay configuration stored yet, relay disabled")
                config = RelayConfig()
            self._current = config
            return config

    def current(self) -> RelayConfig:
        """Cached configuration snapshot, loading it on first access."""
        with self._lock:
            if self._current is None:
                return self.load()
            return self._current

    def save(self, config: RelayConfig) -> None:
        with self._lock:
            self._write(config)
            self._current = config
            logger.info("Relay configuration saved")

    @contextmanager
    def transaction(self) -> Iterator["_Transaction"]:
        """
        Stage a configuration and persist it only if the block completes.

        Usage:
            with store.transaction() as txn:
                txn.stage(validate_relay_config(form))
        """
        with self._lock:
            txn = _Transaction()
            yield txn
            if txn.staged is not None:
                self.save(txn.staged)

    def configure(self, relay_data: Dict[str, Any]) -> RelayConfig:
        """
        Validate raw configuration data and persist it.

        Args:
            relay_data: Raw `[relay]` data

        Returns:
            The saved RelayConfig

        Raises:
            ConfigInvalid: If validation fails; nothing is persisted
        """
        with self.transaction() as txn:
            txn.stage(validate_relay_config(relay_data))
        return txn.staged

    def clear_cache(self) -> None:
        with self._lock:
            self._current = None
            logger.debug("Configuration cache cleared")


class _Transaction:
    """Holds the configuration staged inside ConfigStore.transaction()."""

    def __init__(self):
        self.staged: Optional[RelayConfig] = None

    def stage(self, config: RelayConfig) -> None:
        self.staged = config


class InMemoryConfigStore(ConfigStore):
    """Store that keeps the configuration in memory, for tests and embedding hosts."""

    def __init__(self, initial: Optional[RelayConfig] = None):
        super().__init__()
        self._stored = initial
        self.save_count = 0

    def _read(self) -> Optional[RelayConfig]:
        return self._stored

    def _write(self, config: RelayConfig) -> None:
        self._stored = config
        self.save_count += 1


class TomlConfigStore(ConfigStore):
    """
    Store backed by a TOML file with a `[relay]` table.

    The credential is encrypted with Fernet when a secret key is available
    (explicit passphrase or CONSOLERELAY_SECRET_KEY). Writes go to a temporary
    file in the same directory that then replaces the original.
    """

    def __init__(self, path: Path, passphrase: Optional[str] = None):
        super().__init__()
        self.path = Path(path)
        self._key = resolve_secret_key(passphrase)

    def _read(self) -> Optional[RelayConfig]:
        if not self.path.exists():
            return None
        relay_data = dict(load_relay_section(self.path))
        relay_data["credential"] = decrypt_secret(relay_data.get("credential", ""), self._key)
        return validate_relay_config(relay_data)

    def _write(self, config: RelayConfig) -> None:
        data = {"relay": relay_config_to_dict(config, encrypt_secret(config.credential, self._key))}
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                toml.dump(data, f)
            simple_retry(
                lambda: os.replace(tmp_name, self.path),
                max_attempts=3,
                delay=0.1,
                context=f"replacing {self.path}",
            )
        except OSError as e:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            handle_config_error(
                error=e,
                context=f"writing {self.path}",
                severity=ErrorSeverity.ERROR,
                reraise=True,
                logger=logger,
            )
        logger.debug(f"Relay configuration written to {self.path}")


__all__ = [
    "ConfigStore",
    "InMemoryConfigStore",
    "TomlConfigStore",
]
