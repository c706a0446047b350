"""
Configuration validation utilities.

This module turns raw `[relay]` data (from TOML or a submitted form) into a
validated RelayConfig and checks the enabled-relay invariant on existing
instances.
"""

import logging
from typing import Any, Dict, Union

from ..models.config import RelayConfig, Secret
from ..validation import (
    ConfigInvalid,
    ValidationError,
    validate_bool,
    validate_endpoint_url,
    validate_non_empty,
    validate_positive_float,
    validate_positive_integer,
)

logger = logging.getLogger(__name__)


def _as_secret(value: Union[str, Secret, None]) -> Secret:
    if isinstance(value, Secret):
        return value
    if value is None:
        return Secret()
    if not isinstance(value, str):
        raise ConfigInvalid("relay.credential must be a string", field_name="relay.credential")
    return Secret(value)


def _section(relay_data: Dict[str, Any], name: str) -> Dict[str, Any]:
    """Return a nested `[relay.<name>]` table, empty when absent."""
    section = relay_data.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ValidationError(
            f"relay.{name} must be a table, got {type(section).__name__}",
            field_name=f"relay.{name}",
            value=section,
        )
    return section


def validate_relay_config(relay_data: Dict[str, Any]) -> RelayConfig:
    """
    Validate and create a RelayConfig from raw configuration data.

    Args:
        relay_data: Raw `[relay]` table; the credential may be a str or Secret

    Returns:
        Validated RelayConfig instance

    Raises:
        ConfigInvalid: If validation fails
    """
    defaults = RelayConfig()

    try:
        batching = _section(relay_data, "batching")
        retry = _section(relay_data, "retry")
        connection_test = _section(relay_data, "connection_test")

        enabled = validate_bool(relay_data.get("enabled", False), field_name="relay.enabled")

        endpoint_url = relay_data.get("endpoint_url", "") or ""
        if not isinstance(endpoint_url, str):
            raise ValidationError("relay.endpoint_url must be a string", field_name="relay.endpoint_url")
        if enabled or endpoint_url.strip():
            endpoint_url = validate_endpoint_url(endpoint_url, field_name="relay.endpoint_url")

        username = relay_data.get("username", "") or ""
        if not isinstance(username, str):
            raise ValidationError("relay.username must be a string", field_name="relay.username")
        username = username.strip()

        credential = _as_secret(relay_data.get("credential"))
        if enabled:
            validate_non_empty(credential.reveal(), field_name="relay.credential", secret=True)

        max_batch_size = validate_positive_integer(
            batching.get("max_batch_size", defaults.max_batch_size),
            min_value=1,
            max_value=10000,
            field_name="relay.batching.max_batch_size",
        )
        max_batch_interval = validate_positive_float(
            batching.get("max_batch_interval", defaults.max_batch_interval),
            min_value=0.01,
            max_value=300.0,
            field_name="relay.batching.max_batch_interval",
        )
        queue_capacity = validate_positive_integer(
            batching.get("queue_capacity", defaults.queue_capacity),
            min_value=1,
            max_value=1_000_000,
            field_name="relay.batching.queue_capacity",
        )
        max_line_bytes = validate_positive_integer(
            batching.get("max_line_bytes", defaults.max_line_bytes),
            min_value=64,
            field_name="relay.batching.max_line_bytes",
        )
        drain_timeout = validate_positive_float(
            batching.get("drain_timeout", defaults.drain_timeout),
            min_value=0.1,
            max_value=3600.0,
            field_name="relay.batching.drain_timeout",
        )

        max_attempts = validate_positive_integer(
            retry.get("max_attempts", defaults.max_attempts),
            min_value=1,
            max_value=20,
            field_name="relay.retry.max_attempts",
        )
        backoff_base = validate_positive_float(
            retry.get("backoff_base", defaults.backoff_base),
            min_value=0.0,
            max_value=60.0,
            field_name="relay.retry.backoff_base",
        )
        backoff_max = validate_positive_float(
            retry.get("backoff_max", defaults.backoff_max),
            min_value=0.0,
            max_value=600.0,
            field_name="relay.retry.backoff_max",
        )
        if backoff_max < backoff_base:
            raise ValidationError(
                "relay.retry.backoff_max must be >= relay.retry.backoff_base",
                field_name="relay.retry.backoff_max",
                value=backoff_max,
            )
        request_timeout = validate_positive_float(
            retry.get("request_timeout", defaults.request_timeout),
            min_value=0.1,
            max_value=300.0,
            field_name="relay.retry.request_timeout",
        )
        final_flush_timeout = validate_positive_float(
            retry.get("final_flush_timeout", defaults.final_flush_timeout),
            min_value=0.1,
            max_value=120.0,
            field_name="relay.retry.final_flush_timeout",
        )

        test_timeout = validate_positive_float(
            connection_test.get("timeout", defaults.test_timeout),
            min_value=0.1,
            max_value=30.0,
            field_name="relay.connection_test.timeout",
        )
        health_path = connection_test.get("health_path", "") or ""
        if not isinstance(health_path, str):
            raise ValidationError(
                "relay.connection_test.health_path must be a string",
                field_name="relay.connection_test.health_path",
            )

    except ConfigInvalid:
        raise
    except ValidationError as e:
        logger.error(f"Relay configuration validation failed: {e}")
        raise ConfigInvalid(str(e), field_name=e.field_name, value=e.value) from e

    return RelayConfig(
        enabled=enabled,
        endpoint_url=endpoint_url,
        username=username,
        credential=credential,
        max_batch_size=max_batch_size,
        max_batch_interval=max_batch_interval,
        queue_capacity=queue_capacity,
        max_line_bytes=max_line_bytes,
        drain_timeout=drain_timeout,
        max_attempts=max_attempts,
        backoff_base=backoff_base,
        backoff_max=backoff_max,
        request_timeout=request_timeout,
        final_flush_timeout=final_flush_timeout,
        test_timeout=test_timeout,
        health_path=health_path.strip(),
    )


def ensure_relay_config(config: RelayConfig) -> RelayConfig:
    """
    Check the enabled-relay invariant on an existing RelayConfig.

    Used before any network call so an invalid configuration never reaches
    the wire.

    Raises:
        ConfigInvalid: If the relay is enabled without a valid URL and credential
    """
    if not config.enabled:
        return config
    try:
        validate_endpoint_url(config.endpoint_url, field_name="relay.endpoint_url")
        validate_non_empty(config.credential.reveal(), field_name="relay.credential", secret=True)
    except ValidationError as e:
        raise ConfigInvalid(str(e), field_name=e.field_name, value=e.value) from e
    return config


def relay_config_to_dict(config: RelayConfig, stored_credential: str) -> Dict[str, Any]:
    """
    Serialize a RelayConfig into the `[relay]` table layout.

    Args:
        config: Configuration to serialize
        stored_credential: Credential as it should appear on disk (usually encrypted)
    """
    return {
        "enabled": config.enabled,
        "endpoint_url": config.endpoint_url,
        "username": config.username,
        "credential": stored_credential,
        "batching": {
            "max_batch_size": config.max_batch_size,
            "max_batch_interval": config.max_batch_interval,
            "queue_capacity": config.queue_capacity,
            "max_line_bytes": config.max_line_bytes,
            "drain_timeout": config.drain_timeout,
        },
        "retry": {
            "max_attempts": config.max_attempts,
            "backoff_base": config.backoff_base,
            "backoff_max": config.backoff_max,
            "request_timeout": config.request_timeout,
            "final_flush_timeout": config.final_flush_timeout,
        },
        "connection_test": {
            "timeout": config.test_timeout,
            "health_path": config.health_path,
        },
    }
