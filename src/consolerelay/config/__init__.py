"""
Configuration management for the consolerelay package.

This module provides loading, validation and persistence of the relay
configuration stored in TOML files.
"""

from .loader import load_relay_section, load_toml_file
from .secrets import decrypt_secret, encrypt_secret, resolve_secret_key
from .store import ConfigStore, InMemoryConfigStore, TomlConfigStore
from .validators import ensure_relay_config, relay_config_to_dict, validate_relay_config

__all__ = [
    # Stores
    "ConfigStore",
    "InMemoryConfigStore",
    "TomlConfigStore",
    # Loading and validation
    "load_toml_file",
    "load_relay_section",
    "validate_relay_config",
    "ensure_relay_config",
    "relay_config_to_dict",
    # Credentials at rest
    "encrypt_secret",
    "decrypt_secret",
    "resolve_secret_key",
]
