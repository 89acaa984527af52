"""Unit tests for error classification utilities."""

import httpx
import pytest

from threadflow.core.errors import (
    AuthorizationError,
    ErrorCategory,
    ErrorCode,
    ErrorSeverity,
    NetworkError,
    NotFoundError,
    RemoteStoreError,
    ValidationError,
    classify_error,
    classify_error_with_response,
)


@pytest.mark.unit
class TestClassifyError:
    """Tests for classify_error function."""

    def test_typed_errors_keep_their_category(self):
        """Each RemoteStoreError subclass reports its own category."""
        assert classify_error(NetworkError("down")) == ErrorCategory.NETWORK_ERROR
        assert classify_error(AuthorizationError("no")) == ErrorCategory.AUTHORIZATION_FAILED
        assert classify_error(NotFoundError("gone")) == ErrorCategory.NOT_FOUND
        assert classify_error(ValidationError("bad")) == ErrorCategory.VALIDATION_FAILED
        assert classify_error(RemoteStoreError("odd")) == ErrorCategory.UNKNOWN

    def test_transport_errors_are_network_errors(self):
        """httpx transport failures and timeouts classify as network errors."""
        request = httpx.Request("GET", "http://threadflow.test/api/tasks")
        assert classify_error(httpx.ConnectError("refused", request=request)) == ErrorCategory.NETWORK_ERROR
        assert classify_error(TimeoutError()) == ErrorCategory.NETWORK_ERROR
        assert classify_error(ConnectionError()) == ErrorCategory.NETWORK_ERROR

    def test_builtin_errors(self):
        """Builtin permission, lookup and value errors map onto the taxonomy."""
        assert classify_error(PermissionError()) == ErrorCategory.AUTHORIZATION_FAILED
        assert classify_error(KeyError("task")) == ErrorCategory.NOT_FOUND
        assert classify_error(ValueError("nope")) == ErrorCategory.VALIDATION_FAILED
        assert classify_error(RuntimeError("boom")) == ErrorCategory.UNKNOWN

    def test_status_code_is_kept(self):
        """The HTTP status travels with the exception."""
        error = NotFoundError("Task not found", status_code=404)
        assert error.status_code == 404
        assert str(error) == "Task not found"


@pytest.mark.unit
class TestClassifyErrorWithResponse:
    """Tests for classify_error_with_response function."""

    def test_network_error_response(self):
        """Network errors suggest checking the connection."""
        response = classify_error_with_response(NetworkError("GET /api/tasks failed"))

        assert response.code == ErrorCode.ERR_NETWORK_ERROR
        assert response.message == "Network error occurred."
        assert "connection" in response.suggestion.lower()
        assert response.severity == ErrorSeverity.MEDIUM

    def test_authorization_error_keeps_reason(self):
        """Permission denials show the policy's own wording."""
        response = classify_error_with_response(AuthorizationError("Only reviewers can verify tasks"))

        assert response.code == ErrorCode.ERR_PERMISSION_DENIED
        assert response.message == "Only reviewers can verify tasks"

    def test_not_found_error_strips_key_quotes(self):
        """KeyError reprs lose their quotes."""
        response = classify_error_with_response(KeyError("Task 9 not found"))

        assert response.code == ErrorCode.ERR_NOT_FOUND
        assert response.message == "Task 9 not found"
        assert response.severity == ErrorSeverity.LOW

    def test_validation_error_default_message(self):
        """An empty validation error still produces a readable message."""
        response = classify_error_with_response(ValidationError(""))

        assert response.code == ErrorCode.ERR_VALIDATION_FAILED
        assert response.message == "Some required information is missing."

    def test_unknown_error_hides_details(self):
        """Unexpected errors never leak their internals to the user."""
        response = classify_error_with_response(RuntimeError("secret stack detail"))

        assert response.code == ErrorCode.ERR_UNKNOWN
        assert "secret" not in response.message
