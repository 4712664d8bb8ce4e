"""Tests for the compliance error hierarchy."""

import pytest

from context_compliance.domain.shared_kernel import DomainException
from context_compliance.infrastructure.context.errors import (
    ComplianceError,
    EmptyHistoryError,
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
    InvalidMessageError,
)


@pytest.mark.unit
class TestComplianceError:
    def test_defaults(self):
        error = ComplianceError("boom")

        assert isinstance(error, DomainException)
        assert error.category == ErrorCategory.INTERNAL
        assert error.severity == ErrorSeverity.ERROR
        assert error.context.operation == "unknown"
        assert str(error) == "[INTERNAL] boom"

    def test_str_includes_context(self):
        error = ComplianceError(
            "boom",
            context=ErrorContext(operation="repair", message_id="a1"),
        )
        assert str(error) == "[INTERNAL] boom | operation=repair | message_id=a1"

    def test_to_dict(self):
        error = ComplianceError("boom", context=ErrorContext(operation="prepare"))

        data = error.to_dict()

        assert data["error_type"] == "ComplianceError"
        assert data["category"] == "internal"
        assert data["context"]["operation"] == "prepare"
        assert "timestamp" in data["context"]
        assert set(data["context"]) == {"operation", "message_id", "timestamp", "details"}

    def test_severities_in_use(self):
        assert {s.value for s in ErrorSeverity} == {"warning", "error", "critical"}


@pytest.mark.unit
class TestEmptyHistoryError:
    def test_is_critical_structure_error(self):
        error = EmptyHistoryError("nothing left", original_count=3)

        assert isinstance(error, ComplianceError)
        assert error.category == ErrorCategory.STRUCTURE
        assert error.severity == ErrorSeverity.CRITICAL
        assert error.to_dict()["original_count"] == 3


@pytest.mark.unit
class TestInvalidMessageError:
    def test_carries_index_and_cause(self):
        cause = ValueError("bad role")
        error = InvalidMessageError("cannot decode", index=2, cause=cause)

        assert error.category == ErrorCategory.VALIDATION
        assert error.cause is cause
        assert error.to_dict()["index"] == 2

    def test_index_omitted_when_unknown(self):
        assert "index" not in InvalidMessageError("cannot decode").to_dict()
