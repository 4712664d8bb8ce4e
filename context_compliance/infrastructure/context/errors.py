"""Error hierarchy for the context compliance engine.

Only two conditions are ever raised to callers: a history that cannot be
parsed into messages, and a history that would be empty after repair.
Everything else degrades or is repaired and logged.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from context_compliance.domain.shared_kernel import DomainException


class ErrorSeverity(Enum):
    """Severity levels for compliance errors."""
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Categories of compliance errors."""
    VALIDATION = "validation"           # Malformed inbound messages
    STRUCTURE = "structure"             # Unrecoverable structural repair outcome
    INTERNAL = "internal"               # Internal engine errors


@dataclass
class ErrorContext:
    """Context information for an error."""
    operation: str
    message_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert context to dictionary."""
        return {
            "operation": self.operation,
            "message_id": self.message_id,
            "timestamp": self.timestamp.isoformat(),
            "details": self.details,
        }


class ComplianceError(DomainException):
    """Base exception for all compliance engine errors.

    Provides consistent error structure with context, severity, and category.
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.INTERNAL,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        """Initialize the compliance error.

        Args:
            message: Human-readable error message
            category: Error category for filtering/routing
            severity: Error severity level
            context: Additional context about the error
            cause: Original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext(operation="unknown")
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for API responses."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "context": self.context.to_dict(),
        }

    def __str__(self) -> str:
        parts = [f"[{self.category.value.upper()}] {self.message}"]
        if self.context.operation != "unknown":
            parts.append(f"operation={self.context.operation}")
        if self.context.message_id:
            parts.append(f"message_id={self.context.message_id}")
        return " | ".join(parts)


class EmptyHistoryError(ComplianceError):
    """Raised when processing would leave no message to send.

    The caller must abort the request instead of sending an empty history.
    """

    def __init__(
        self,
        message: str,
        original_count: int = 0,
        context: Optional[ErrorContext] = None,
    ) -> None:
        super().__init__(
            message=message,
            category=ErrorCategory.STRUCTURE,
            severity=ErrorSeverity.CRITICAL,
            context=context,
        )
        self.original_count = original_count

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["original_count"] = self.original_count
        return data


class InvalidMessageError(ComplianceError):
    """Raised when an inbound message cannot be decoded."""

    def __init__(
        self,
        message: str,
        index: Optional[int] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(
            message=message,
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.WARNING,
            context=context,
            cause=cause,
        )
        self.index = index

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.index is not None:
            data["index"] = self.index
        return data
