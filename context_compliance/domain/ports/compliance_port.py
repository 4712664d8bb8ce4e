"""
Context Compliance Port - Domain layer interface for outbound history preparation.

Defines contracts for:
1. Strategy records - direct vs. proxy-compressed delivery
2. Validation records - structural protocol violations and warnings
3. ContextCompliance - the full per-request pipeline (facade)

Following hexagonal architecture: domain layer depends only on ports.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from context_compliance.domain.model.message import Message


class MissingReasoningPolicy(str, Enum):
    """What to do with a tool-invoking assistant message that has no reasoning block."""

    PLACEHOLDER = "placeholder"  # Insert a synthetic placeholder block
    DISABLE_REASONING = "disable_reasoning"  # Turn reasoning mode off for the request


@dataclass(frozen=True)
class ContextStrategy:
    """Routing decision for delivering history to the provider."""

    use_extended_thinking: bool
    use_proxy_delivery: bool
    estimated_tokens: int
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "use_extended_thinking": self.use_extended_thinking,
            "use_proxy_delivery": self.use_proxy_delivery,
            "estimated_tokens": self.estimated_tokens,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class ValidationIssue:
    """A single structural error or warning found in a message sequence."""

    message_index: int
    message_id: str
    detail: str
    call_id: str | None = None

    def __str__(self) -> str:
        prefix = f"Message {self.message_index} ({self.message_id})"
        if self.call_id:
            return f"{prefix} [{self.call_id}]: {self.detail}"
        return f"{prefix}: {self.detail}"


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a structural validation pass."""

    errors: tuple[ValidationIssue, ...] = ()
    warnings: tuple[ValidationIssue, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class RepairFix:
    """One change applied by the structure repairer."""

    message_index: int
    message_id: str
    fix: str
    call_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "message_index": self.message_index,
            "message_id": self.message_id,
            "call_id": self.call_id,
            "fix": self.fix,
        }


@dataclass
class ComplianceRequest:
    """Request to prepare a conversation history for the model-calling adapter."""

    messages: list[Message]
    ceiling_tokens: int | None = None
    reasoning_mode: bool | None = None
    # History replayed from persistence; unsigned reasoning blocks are stripped from it
    strip_unsigned_reasoning: bool = True


@dataclass
class ComplianceResult:
    """Processed history plus routing decision and diagnostics."""

    messages: list[Message]
    strategy: ContextStrategy
    original_message_count: int = 0
    original_tokens: int = 0
    tokens_estimate: int = 0
    truncated_tool_results: bool = False
    windowed_messages: bool = False
    removed_unsigned_reasoning: int = 0
    reasoning_disabled: bool = False
    fixes_applied: list[RepairFix] = field(default_factory=list)
    validation: ValidationResult = field(default_factory=ValidationResult)

    def to_event_data(self) -> dict[str, Any]:
        """Convert to telemetry event data."""
        return {
            "strategy": self.strategy.to_dict(),
            "original_message_count": self.original_message_count,
            "final_message_count": len(self.messages),
            "original_tokens": self.original_tokens,
            "tokens_estimate": self.tokens_estimate,
            "truncated_tool_results": self.truncated_tool_results,
            "windowed_messages": self.windowed_messages,
            "removed_unsigned_reasoning": self.removed_unsigned_reasoning,
            "reasoning_disabled": self.reasoning_disabled,
            "fixes_applied": [fix.to_dict() for fix in self.fixes_applied],
            "validation_errors": [str(issue) for issue in self.validation.errors],
            "validation_warnings": [str(issue) for issue in self.validation.warnings],
        }


@runtime_checkable
class ContextCompliancePort(Protocol):
    """
    Port for preparing outbound conversation history.

    Responsibilities:
    - Choose direct or proxy-compressed delivery
    - Keep direct-delivery history within the token ceiling
    - Return a structurally valid message sequence
    """

    def prepare(self, request: ComplianceRequest) -> ComplianceResult:
        """
        Prepare a history for the model-calling adapter.

        Args:
            request: Compliance request

        Returns:
            Compliance result with processed messages

        Raises:
            EmptyHistoryError: If nothing would be left to send
        """
        ...
