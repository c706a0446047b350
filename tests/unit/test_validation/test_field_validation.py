"""
Unit tests for value validators and the configuration form field validator.
"""

import pytest

from consolerelay.models.runtime import ValidationKind
from consolerelay.validation import (
    ValidationError,
    validate_bool,
    validate_endpoint_url,
    validate_field,
    validate_non_empty,
    validate_positive_float,
    validate_positive_integer,
)


@pytest.mark.unit
class TestValueValidators:
    """Test cases for the value-level validators."""

    def test_positive_integer_accepts_numeric_strings(self):
        assert validate_positive_integer("42", field_name="size") == 42

    def test_positive_integer_rejects_bool(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_positive_integer(True, field_name="size")
        assert exc_info.value.field_name == "size"

    def test_positive_integer_bounds(self):
        with pytest.raises(ValidationError, match="must be >= 1"):
            validate_positive_integer(0)
        with pytest.raises(ValidationError, match="must be <= 10"):
            validate_positive_integer(11, max_value=10)

    def test_positive_float_rejects_garbage(self):
        with pytest.raises(ValidationError, match="valid number"):
            validate_positive_float("fast")

    def test_non_empty_keeps_secret_off_exception(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_non_empty("   ", field_name="credential", secret=True)
        assert exc_info.value.value is None

    def test_bool_must_be_real_boolean(self):
        assert validate_bool(False) is False
        with pytest.raises(ValidationError):
            validate_bool("yes")

    @pytest.mark.parametrize("url", [
        "https://repo.example.com/logs",
        "http://localhost:8081",
        "  https://repo.example.com:8443/a/b?x=1  ",
    ])
    def test_endpoint_url_accepts_absolute_http(self, url):
        assert validate_endpoint_url(url) == url.strip()

    @pytest.mark.parametrize("url, message", [
        ("", "must not be empty"),
        ("repo.example.com/logs", "http or https"),
        ("ftp://repo.example.com", "http or https"),
        ("https://", "absolute URL"),
        ("https://repo.example.com:99999/", "invalid port"),
    ])
    def test_endpoint_url_rejects_malformed(self, url, message):
        with pytest.raises(ValidationError, match=message):
            validate_endpoint_url(url)


@pytest.mark.unit
class TestFieldValidation:
    """Test cases for validate_field."""

    def test_empty_endpoint_is_error(self):
        result = validate_field("endpoint_url", "")
        assert result.kind is ValidationKind.ERROR
        assert result.message == "Please set the repository URL"

    def test_relative_endpoint_is_error(self):
        result = validate_field("endpoint_url", "/logs")
        assert result.is_error

    def test_valid_endpoint_is_ok(self):
        assert validate_field("endpoint_url", "https://repo.example.com").is_ok

    def test_empty_credential_is_error(self):
        result = validate_field("credential", None)
        assert result.is_error
        assert result.message == "Please set a password or token"

    def test_username_is_always_ok(self):
        assert validate_field("username", "").is_ok
        assert validate_field("username", "ci-bot").is_ok

    @pytest.mark.parametrize("field", ["key", "value"])
    def test_legacy_fields(self, field):
        empty = validate_field(field, "")
        short = validate_field(field, "abc")
        long_enough = validate_field(field, "abcd")

        assert empty.is_error
        assert empty.message == f"Please set a {field}"
        assert short.kind is ValidationKind.WARNING
        assert short.message == f"Isn't the {field} too short?"
        assert long_enough.is_ok

    def test_form_aliases(self):
        assert validate_field("nexusUrl", "").message == "Please set the repository URL"
        assert validate_field("nexusPassword", "").is_error
        assert validate_field("nexusUser", "").is_ok

    def test_unknown_field(self):
        result = validate_field("colour", "blue")
        assert result.is_error
        assert "colour" in result.message
