"""Tests for the exception hierarchy.

These tests verify:
1. Exception structure (code, message, details)
2. Inheritance hierarchy
3. String representation
4. Default codes on lifecycle errors
"""

import pytest

from rampload.exceptions import (
    ConfigurationError,
    InvalidRunStateError,
    PoolSpawnError,
    RampLoadError,
    ValidationError,
)


class TestRampLoadError:
    """Tests for base RampLoadError class."""

    def test_basic_construction(self):
        """Test basic exception construction."""
        error = RampLoadError("TEST_CODE", "Test message")

        assert error.code == "TEST_CODE"
        assert error.message == "Test message"
        assert error.details == {}

    def test_construction_with_details(self):
        """Test exception with details dict."""
        details = {"key1": "value1", "key2": 42}
        error = RampLoadError("TEST_CODE", "Test message", details=details)

        assert error.details == details

    def test_str_without_details(self):
        """Test string representation without details."""
        assert str(RampLoadError("TEST_CODE", "Test message")) == "TEST_CODE: Test message"

    def test_str_with_details(self):
        """Test string representation with details."""
        result = str(RampLoadError("TEST_CODE", "Test message", details={"foo": "bar"}))

        assert "TEST_CODE" in result
        assert "Test message" in result
        assert "foo" in result
        assert "bar" in result

    def test_can_be_raised(self):
        """Test that exception can be raised and caught."""
        with pytest.raises(RampLoadError) as exc_info:
            raise RampLoadError("RAISED", "This was raised")

        assert exc_info.value.code == "RAISED"


class TestConfigurationError:
    def test_inherits_from_base(self):
        assert isinstance(ConfigurationError("CODE", "message"), RampLoadError)

    def test_not_caught_as_validation_error(self):
        """ConfigurationError and ValidationError are siblings."""
        with pytest.raises(ConfigurationError):
            try:
                raise ConfigurationError("EMPTY_URL", "no url")
            except ValidationError:
                pytest.fail("Should not catch as ValidationError")


class TestPoolSpawnError:
    def test_default_code(self):
        error = PoolSpawnError("failed to start virtual user")
        assert error.code == "POOL_SPAWN_FAILED"
        assert error.message == "failed to start virtual user"

    def test_custom_code_and_details(self):
        error = PoolSpawnError("too many", {"max_users": 3}, code="MAX_USERS_EXCEEDED")
        assert error.code == "MAX_USERS_EXCEEDED"
        assert error.details["max_users"] == 3


class TestValidationError:
    def test_is_also_a_value_error(self):
        error = ValidationError("NEGATIVE_TARGET", "target_count must be >= 0")
        assert isinstance(error, ValueError)
        assert str(error) == "NEGATIVE_TARGET: target_count must be >= 0"


class TestInvalidRunStateError:
    def test_default_code(self):
        error = InvalidRunStateError("engine has already been started")
        assert error.code == "INVALID_RUN_STATE"


class TestExceptionHierarchy:
    def test_all_errors_are_rampload_errors(self):
        errors = [
            ValidationError("CODE", "message"),
            ConfigurationError("CODE", "message"),
            PoolSpawnError("message"),
            InvalidRunStateError("message"),
        ]

        for error in errors:
            assert isinstance(error, RampLoadError)
            assert isinstance(error, Exception)
