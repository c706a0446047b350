"""
Logging helpers.

Provides the package's standard log format and a filter that masks
credential values in every record passing through a logger.
"""

import logging
import sys
import threading
from typing import Iterable, List, Optional

from .models.config import MASK

LOG_FORMAT = "%(asctime)s [%(levelname)-5.5s] %(name)s:%(filename)s:%(lineno)d\t %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: int = logging.INFO, stream=None) -> None:
    """Configure root logging with the package format."""
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        stream=stream or sys.stdout,
    )


def redact(text: Optional[str], secrets: Iterable[str]) -> Optional[str]:
    """Replace every occurrence of the given secret values in text with a mask."""
    if not text:
        return text
    for secret in sorted((s for s in secrets if s), key=len, reverse=True):
        text = text.replace(secret, MASK)
    return text


class SecretRedactingFilter(logging.Filter):
    """
    Masks registered secret values in log records.

    The record message is rendered once with its arguments, redacted, and
    stored back without arguments so handlers never see the raw value.
    Exception text is redacted the same way.
    """

    def __init__(self, secrets: Iterable[str] = ()):
        super().__init__()
        self._lock = threading.Lock()
        self._secrets: List[str] = [s for s in secrets if s]

    def add_secret(self, secret: str) -> None:
        if not secret:
            return
        with self._lock:
            if secret not in self._secrets:
                self._secrets.append(secret)

    def remove_secret(self, secret: str) -> None:
        with self._lock:
            if secret in self._secrets:
                self._secrets.remove(secret)

    @property
    def secrets(self) -> List[str]:
        with self._lock:
            return list(self._secrets)

    def filter(self, record: logging.LogRecord) -> bool:
        secrets = self.secrets
        if not secrets:
            return True

        message = record.getMessage()
        redacted = redact(message, secrets)
        if redacted != message:
            record.msg = redacted
            record.args = None

        if record.exc_info and not record.exc_text:
            record.exc_text = logging.Formatter().formatException(record.exc_info)
        if record.exc_text:
            record.exc_text = redact(record.exc_text, secrets)
        return True


def install_redaction(logger: logging.Logger, secrets: Iterable[str]) -> SecretRedactingFilter:
    """
    Attach a redacting filter for the given secrets to a logger and its handlers.

    Filters on a logger only apply to records logged directly on it, so the
    filter is added to every handler reachable from the logger as well.
    """
    redacting_filter = SecretRedactingFilter(secrets)
    logger.addFilter(redacting_filter)
    for handler in _reachable_handlers(logger):
        handler.addFilter(redacting_filter)
    return redacting_filter


def remove_redaction(logger: logging.Logger, redacting_filter: SecretRedactingFilter) -> None:
    """Detach a filter installed by install_redaction."""
    logger.removeFilter(redacting_filter)
    for handler in _reachable_handlers(logger):
        handler.removeFilter(redacting_filter)


def _reachable_handlers(logger: logging.Logger) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    current: Optional[logging.Logger] = logger
    while current is not None:
        handlers.extend(current.handlers)
        if not current.propagate:
            break
        current = current.parent
    return handlers
