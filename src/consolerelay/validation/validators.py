"""
Validation functions.

Value-level validators that raise ValidationError, plus the UI-independent
field validator used by the configuration form.
"""

from typing import Any, Callable, Dict, Optional
from urllib.parse import urlparse

from ..models.runtime import ValidationResult
from .exceptions import ValidationError

# Fields shorter than this produce a warning from the legacy key/value checks.
MIN_LEGACY_FIELD_LENGTH = 4

ALLOWED_URL_SCHEMES = ("http", "https")


def validate_positive_integer(
    value: Any,
    min_value: int = 1,
    max_value: Optional[int] = None,
    field_name: str = "value"
) -> int:
    """
    Validate that a value is a positive integer.

    Args:
        value: Value to validate
        min_value: Minimum allowed value (inclusive)
        max_value: Maximum allowed value (inclusive), None for no limit
        field_name: Name of the field being validated

    Returns:
        Validated integer value

    Raises:
        ValidationError: If validation fails
    """
    if isinstance(value, bool):
        raise ValidationError(
            f"{field_name} must be a valid integer, got {value}",
            field_name=field_name,
            value=value
        )
    try:
        int_value = int(value)
    except (ValueError, TypeError):
        raise ValidationError(
            f"{field_name} must be a valid integer, got {value}",
            field_name=field_name,
            value=value
        )
    if int_value < min_value:
        raise ValidationError(
            f"{field_name} must be >= {min_value}, got {int_value}",
            field_name=field_name,
            value=value
        )
    if max_value is not None and int_value > max_value:
        raise ValidationError(
            f"{field_name} must be <= {max_value}, got {int_value}",
            field_name=field_name,
            value=value
        )
    return int_value


def validate_positive_float(
    value: Any,
    min_value: float = 0.0,
    max_value: Optional[float] = None,
    field_name: str = "value"
) -> float:
    """
    Validate that a value is a positive float.

    Args:
        value: Value to validate
        min_value: Minimum allowed value (inclusive)
        max_value: Maximum allowed value (inclusive), None for no limit
        field_name: Name of the field being validated

    Returns:
        Validated float value

    Raises:
        ValidationError: If validation fails
    """
    if isinstance(value, bool):
        raise ValidationError(
            f"{field_name} must be a valid number, got {value}",
            field_name=field_name,
            value=value
        )
    try:
        float_value = float(value)
    except (ValueError, TypeError):
        raise ValidationError(
            f"{field_name} must be a valid number, got {value}",
            field_name=field_name,
            value=value
        )
    if float_value < min_value:
        raise ValidationError(
            f"{field_name} must be >= {min_value}, got {float_value}",
            field_name=field_name,
            value=value
        )
    if max_value is not None and float_value > max_value:
        raise ValidationError(
            f"{field_name} must be <= {max_value}, got {float_value}",
            field_name=field_name,
            value=value
        )
    return float_value


def validate_non_empty(value: Any, field_name: str = "value", secret: bool = False) -> str:
    """
    Validate that a value is a non-blank string.

    Args:
        value: Value to validate
        field_name: Name of the field being validated
        secret: Keep the value off the raised exception

    Returns:
        The string value unchanged

    Raises:
        ValidationError: If the value is missing or blank
    """
    if value is None or not isinstance(value, str) or not value.strip():
        raise ValidationError(
            f"{field_name} must not be empty",
            field_name=field_name,
            value=None if secret else value
        )
    return value


def validate_endpoint_url(url: Any, field_name: str = "endpoint_url") -> str:
    """
    Validate that a URL is a well-formed absolute http(s) URL.

    Args:
        url: URL to validate
        field_name: Name of the field being validated

    Returns:
        The URL with surrounding whitespace removed

    Raises:
        ValidationError: If the URL is empty, relative or uses another scheme
    """
    url = validate_non_empty(url, field_name=field_name).strip()
    parsed = urlparse(url)
    if parsed.scheme.lower() not in ALLOWED_URL_SCHEMES:
        raise ValidationError(
            f"{field_name} must use http or https, got '{parsed.scheme or 'none'}'",
            field_name=field_name,
            value=url
        )
    if not parsed.netloc or not parsed.hostname:
        raise ValidationError(
            f"{field_name} must be an absolute URL with a host",
            field_name=field_name,
            value=url
        )
    try:
        parsed.port
    except ValueError:
        raise ValidationError(
            f"{field_name} has an invalid port",
            field_name=field_name,
            value=url
        )
    return url


def validate_bool(value: Any, field_name: str = "value") -> bool:
    """Validate that a value is a real boolean."""
    if not isinstance(value, bool):
        raise ValidationError(
            f"{field_name} must be a boolean, got {value!r}",
            field_name=field_name,
            value=value
        )
    return value


# --- Form field validation ---


def _check_endpoint_url(value: str) -> ValidationResult:
    if not value:
        return ValidationResult.error("Please set the repository URL")
    try:
        validate_endpoint_url(value)
    except ValidationError as e:
        return ValidationResult.error(str(e))
    return ValidationResult.ok()


def _check_credential(value: str) -> ValidationResult:
    if not value:
        return ValidationResult.error("Please set a password or token")
    return ValidationResult.ok()


def _check_username(value: str) -> ValidationResult:
    return ValidationResult.ok()


def _legacy_length_check(label: str) -> Callable[[str], ValidationResult]:
    def check(value: str) -> ValidationResult:
        if len(value) == 0:
            return ValidationResult.error(f"Please set a {label}")
        if len(value) < MIN_LEGACY_FIELD_LENGTH:
            return ValidationResult.warning(f"Isn't the {label} too short?")
        return ValidationResult.ok()
    return check


FIELD_CHECKS: Dict[str, Callable[[str], ValidationResult]] = {
    "endpoint_url": _check_endpoint_url,
    "credential": _check_credential,
    "username": _check_username,
    "key": _legacy_length_check("key"),
    "value": _legacy_length_check("value"),
}

# Form names used by earlier configuration screens.
FIELD_ALIASES = {
    "nexusUrl": "endpoint_url",
    "nexusUser": "username",
    "nexusPassword": "credential",
}


def validate_field(field: str, value: Optional[str]) -> ValidationResult:
    """
    Validate a single configuration form field.

    Pure function usable without any UI framework: returns OK, WARNING or
    ERROR with a human-readable message instead of raising.

    Args:
        field: Field name (aliases such as 'nexusUrl' are accepted)
        value: Value typed by the user; None counts as empty

    Returns:
        ValidationResult describing the outcome
    """
    name = FIELD_ALIASES.get(field, field)
    check = FIELD_CHECKS.get(name)
    if check is None:
        return ValidationResult.error(f"Unknown field: {field}")
    return check(value or "")
