"""Encryption of stored credentials with Fernet.

A passphrase (explicit, or the CONSOLERELAY_SECRET_KEY environment variable)
is turned into a Fernet key. Encrypted values are stored with a `{fernet}`
prefix so plaintext values written by hand are still readable.
"""

import base64
import hashlib
import logging
import os
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from ..models.config import Secret
from ..validation import ConfigInvalid

logger = logging.getLogger(__name__)

SECRET_KEY_ENV = "CONSOLERELAY_SECRET_KEY"
ENCRYPTED_PREFIX = "{fernet}"


def derive_fernet_key(passphrase: str) -> bytes:
    """Accept a ready Fernet key or derive one deterministically from a passphrase."""
    if len(passphrase) == 44 and passphrase.endswith("="):
        return passphrase.encode("utf-8")
    digest = hashlib.sha256(passphrase.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)


def resolve_secret_key(passphrase: Optional[str] = None) -> Optional[bytes]:
    """Key from the explicit passphrase, else from the environment, else None."""
    value = passphrase if passphrase is not None else os.environ.get(SECRET_KEY_ENV)
    if not value:
        return None
    return derive_fernet_key(value)


def is_encrypted(stored: str) -> bool:
    return isinstance(stored, str) and stored.startswith(ENCRYPTED_PREFIX)


def encrypt_secret(secret: Secret, key: Optional[bytes]) -> str:
    """
    Serialize a secret for storage.

    Without a key the plaintext is returned and a warning is logged.
    """
    if not secret:
        return ""
    if key is None:
        logger.warning(
            f"No {SECRET_KEY_ENV} configured; credential will be stored unencrypted"
        )
        return secret.reveal()
    token = Fernet(key).encrypt(secret.reveal().encode("utf-8"))
    return ENCRYPTED_PREFIX + token.decode("ascii")


def decrypt_secret(stored: str, key: Optional[bytes]) -> Secret:
    """
    Turn a stored credential back into a Secret.

    Raises:
        ConfigInvalid: If the value is encrypted and no key, or the wrong key, is available
    """
    if not stored:
        return Secret()
    if not is_encrypted(stored):
        return Secret(stored)
    if key is None:
        raise ConfigInvalid(
            f"Stored credential is encrypted but {SECRET_KEY_ENV} is not set",
            field_name="credential",
        )
    try:
        plain = Fernet(key).decrypt(stored[len(ENCRYPTED_PREFIX):].encode("ascii"))
    except InvalidToken:
        raise ConfigInvalid(
            "Stored credential cannot be decrypted with the configured key",
            field_name="credential",
        )
    return Secret(plain.decode("utf-8"))
