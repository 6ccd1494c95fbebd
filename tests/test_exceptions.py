"""Tests for exception handling."""

from scheduling_core.exceptions import (
    APIException,
    AuthenticationError,
    DatabaseError,
    DomainError,
    NotFoundError,
    ValidationError,
)


def test_api_exception():
    """Test base APIException."""
    exc = APIException("Test error", status_code=400, code="TEST_ERROR")
    assert exc.message == "Test error"
    assert exc.status_code == 400
    assert exc.code == "TEST_ERROR"
    assert exc.to_dict()["error"]["message"] == "Test error"


def test_authentication_error():
    """Test AuthenticationError."""
    exc = AuthenticationError("Missing X-Organization-Id header")
    assert exc.status_code == 401
    assert exc.code == "AUTHENTICATION_ERROR"


def test_validation_error_reason():
    """ValidationError carries a machine-readable reason."""
    exc = ValidationError("Bad range", errors={"end_date": "before start_date"}, reason="INVALID_RANGE")
    assert exc.status_code == 422
    assert exc.code == "VALIDATION_ERROR"
    assert exc.reason == "INVALID_RANGE"
    assert exc.details["reason"] == "INVALID_RANGE"
    assert exc.details["validation_errors"] == {"end_date": "before start_date"}


def test_not_found_error():
    """Test NotFoundError."""
    exc = NotFoundError("Department", resource_id="123")
    assert exc.status_code == 404
    assert exc.code == "NOT_FOUND"
    assert "Department not found with id: 123" in exc.message


def test_domain_error():
    """DomainError uses the rule as its code."""
    exc = DomainError("APPOINTMENT_CANCELLED")
    assert exc.status_code == 409
    assert exc.code == "APPOINTMENT_CANCELLED"
    assert exc.message == "Appointment cancelled"
    assert exc.to_dict()["error"]["code"] == "APPOINTMENT_CANCELLED"


def test_database_error():
    """Test DatabaseError."""
    exc = DatabaseError("Connection failed")
    assert exc.status_code == 500
    assert exc.code == "DATABASE_ERROR"
