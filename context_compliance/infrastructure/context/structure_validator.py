"""
Structure Validator - Inspect a message sequence for tool protocol violations.

Protocol:
- Each tool invocation in an assistant message must be answered by a tool
  result with the same call id in the immediately following user message.
- Tool results belong in user messages, never in assistant messages.
- Invocation call ids are unique within one assistant message.
- With reasoning mode active, an invoking assistant message starts with a
  reasoning block.

Orphan tool results (no matching invocation right before them) are reported
as warnings only.
"""

import logging
from collections.abc import Sequence

from context_compliance.domain.model.message import Message, MessageRole
from context_compliance.domain.ports.compliance_port import ValidationIssue, ValidationResult

logger = logging.getLogger(__name__)


class StructureValidator:
    """Pure inspection pass; never mutates input and never raises."""

    def validate(
        self,
        messages: Sequence[Message],
        require_reasoning_first: bool = False,
    ) -> ValidationResult:
        """
        Validate tool invocation/result pairing and placement.

        Args:
            messages: Message sequence to inspect
            require_reasoning_first: Also require a leading reasoning block
                on every assistant message with tool invocations

        Returns:
            ValidationResult with errors and warnings
        """
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []

        for index, message in enumerate(messages):
            if message.role == MessageRole.ASSISTANT:
                errors.extend(self._check_assistant(messages, index, require_reasoning_first))
            elif message.role == MessageRole.USER:
                warnings.extend(self._check_user_results(messages, index))

        return ValidationResult(errors=tuple(errors), warnings=tuple(warnings))

    @staticmethod
    def _check_assistant(
        messages: Sequence[Message],
        index: int,
        require_reasoning_first: bool,
    ) -> list[ValidationIssue]:
        message = messages[index]
        issues: list[ValidationIssue] = []

        if message.has_tool_results():
            issues.append(
                ValidationIssue(
                    message_index=index,
                    message_id=message.id,
                    detail="assistant message contains tool results; results belong in a user message",
                )
            )

        invocations = message.tool_invocations()
        if not invocations:
            return issues

        seen: set[str] = set()
        for invocation in invocations:
            if invocation.call_id in seen:
                issues.append(
                    ValidationIssue(
                        message_index=index,
                        message_id=message.id,
                        call_id=invocation.call_id,
                        detail="duplicate tool invocation id within one message",
                    )
                )
            seen.add(invocation.call_id)

        if require_reasoning_first and not message.starts_with_reasoning():
            issues.append(
                ValidationIssue(
                    message_index=index,
                    message_id=message.id,
                    detail="assistant message with tool invocations does not start with a reasoning block",
                )
            )

        next_message = messages[index + 1] if index + 1 < len(messages) else None
        if next_message is None:
            issues.extend(
                ValidationIssue(
                    message_index=index,
                    message_id=message.id,
                    call_id=call_id,
                    detail="tool invocation without any following message",
                )
                for call_id in _unique_ids(invocations)
            )
        elif next_message.role != MessageRole.USER:
            issues.extend(
                ValidationIssue(
                    message_index=index,
                    message_id=message.id,
                    call_id=call_id,
                    detail=(
                        f"next message has wrong role: {next_message.role.value} "
                        "(expected user with tool results)"
                    ),
                )
                for call_id in _unique_ids(invocations)
            )
        else:
            result_ids = {result.call_id for result in next_message.tool_results()}
            issues.extend(
                ValidationIssue(
                    message_index=index,
                    message_id=message.id,
                    call_id=call_id,
                    detail=f'tool invocation id "{call_id}" not found in tool results of next message',
                )
                for call_id in _unique_ids(invocations)
                if call_id not in result_ids
            )

        return issues

    @staticmethod
    def _check_user_results(messages: Sequence[Message], index: int) -> list[ValidationIssue]:
        message = messages[index]
        results = message.tool_results()
        if not results:
            return []

        previous = messages[index - 1] if index > 0 else None
        invocation_ids: set[str] = set()
        if previous is not None and previous.role == MessageRole.ASSISTANT:
            invocation_ids = {inv.call_id for inv in previous.tool_invocations()}

        return [
            ValidationIssue(
                message_index=index,
                message_id=message.id,
                call_id=result.call_id,
                detail=(
                    f'tool result id "{result.call_id}" has no corresponding '
                    "tool invocation in the previous assistant message"
                ),
            )
            for result in results
            if result.call_id not in invocation_ids
        ]


def _unique_ids(invocations) -> list[str]:
    """Invocation call ids in order, duplicates removed."""
    return list(dict.fromkeys(inv.call_id for inv in invocations))


def log_validation(result: ValidationResult, label: str = "Messages") -> None:
    """Log validation errors and warnings; advisory only."""
    if result.is_valid and not result.warnings:
        return
    if result.errors:
        logger.error(f"{label}: {len(result.errors)} structural errors")
        for issue in result.errors:
            logger.error(f"  {issue}")
    if result.warnings:
        logger.warning(f"{label}: {len(result.warnings)} structural warnings")
        for issue in result.warnings:
            logger.warning(f"  {issue}")
