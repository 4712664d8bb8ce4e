"""
Structure Repairer - Deterministically rewrite a sequence to satisfy the tool protocol.

Passes, in order:
1. Split interleaved tool content: an assistant message holding both tool
   invocations and tool results becomes assistant[invocations] +
   user[results] + assistant[remaining parts]. Results in an assistant
   message without invocations move to a preceding user message.
   Duplicate invocation ids inside one message collapse to the first.
2. Strip orphaned invocations: invocations without a matching result in the
   next user message are removed individually; the surrounding text and
   reasoning stay. A message is dropped only when nothing is left in it.

Synthetic message ids derive from the source id so repeated runs produce
identical output.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from context_compliance.domain.model.message import (
    Message,
    MessageRole,
    Part,
    ToolInvocationPart,
    ToolResultPart,
)
from context_compliance.domain.ports.compliance_port import RepairFix
from context_compliance.infrastructure.context.errors import EmptyHistoryError, ErrorContext

logger = logging.getLogger(__name__)

TOOL_RESULTS_ID_SUFFIX = ":tool-results"
CONTINUATION_ID_SUFFIX = ":continuation"


@dataclass
class RepairResult:
    """Result of structural repair."""

    fixed_messages: list[Message]
    fixes_applied: list[RepairFix] = field(default_factory=list)

    @property
    def was_repaired(self) -> bool:
        return bool(self.fixes_applied)


class StructureRepairer:
    """
    Rewrites a message sequence so the structure validator reports no errors.

    Usage:
        result = StructureRepairer().repair(messages)
        # result.fixed_messages, result.fixes_applied
    """

    def repair(self, messages: Sequence[Message]) -> RepairResult:
        """
        Repair tool content placement and pairing.

        Args:
            messages: Message sequence to repair

        Returns:
            RepairResult with the fixed sequence and every fix applied

        Raises:
            EmptyHistoryError: If a non-empty sequence would be repaired to nothing
        """
        fixes: list[RepairFix] = []

        split = self._split_interleaved(messages, fixes)
        fixed = self._strip_orphaned_invocations(split, fixes)

        if messages and not fixed:
            raise EmptyHistoryError(
                f"Structural repair removed all {len(messages)} messages",
                original_count=len(messages),
                context=ErrorContext(
                    operation="repair",
                    details={"fixes_applied": [fix.to_dict() for fix in fixes]},
                ),
            )

        for fix in fixes:
            logger.warning(
                f"Repaired message {fix.message_index} ({fix.message_id})"
                + (f" [{fix.call_id}]" if fix.call_id else "")
                + f": {fix.fix}"
            )
        if fixes:
            logger.info(f"Applied {len(fixes)} structural fixes ({len(messages)} -> {len(fixed)} messages)")

        return RepairResult(fixed_messages=fixed, fixes_applied=fixes)

    def _split_interleaved(
        self,
        messages: Sequence[Message],
        fixes: list[RepairFix],
    ) -> list[Message]:
        result: list[Message] = []

        for index, message in enumerate(messages):
            if message.role != MessageRole.ASSISTANT:
                result.append(message)
                continue

            message = self._dedupe_invocations(message, index, fixes)
            has_invocations = message.has_tool_invocations()
            has_results = message.has_tool_results()

            if has_invocations and has_results:
                split = self._split_message(message)
                fixes.append(
                    RepairFix(
                        message_index=index,
                        message_id=message.id,
                        fix=f"Split interleaved tool invocations and results into {len(split)} messages",
                    )
                )
                result.extend(split)
            elif has_results:
                results = message.tool_results()
                remaining = [p for p in message.parts if not isinstance(p, ToolResultPart)]
                result.append(self._results_message(message, results))
                if remaining:
                    result.append(message.with_parts(remaining))
                fixes.append(
                    RepairFix(
                        message_index=index,
                        message_id=message.id,
                        fix="Moved tool results without invocations into a preceding user message",
                    )
                )
            else:
                result.append(message)

        return result

    @staticmethod
    def _dedupe_invocations(
        message: Message,
        index: int,
        fixes: list[RepairFix],
    ) -> Message:
        seen: set[str] = set()
        kept: list[Part] = []
        for part in message.parts:
            if isinstance(part, ToolInvocationPart):
                if part.call_id in seen:
                    fixes.append(
                        RepairFix(
                            message_index=index,
                            message_id=message.id,
                            call_id=part.call_id,
                            fix="Removed duplicate tool invocation id",
                        )
                    )
                    continue
                seen.add(part.call_id)
            kept.append(part)
        if len(kept) == len(message.parts):
            return message
        return message.with_parts(kept)

    def _split_message(self, message: Message) -> list[Message]:
        """Partition an interleaved assistant message into up to three messages."""
        before: list[Part] = []
        with_invocations: list[Part] = []
        after: list[Part] = []
        results: list[ToolResultPart] = []
        seen_invocation = False
        seen_result = False

        for part in message.parts:
            if isinstance(part, ToolInvocationPart):
                seen_invocation = True
                with_invocations.append(part)
            elif isinstance(part, ToolResultPart):
                seen_result = True
                results.append(part)
            elif not seen_invocation:
                before.append(part)
            elif seen_result:
                after.append(part)
            else:
                # Between invocation and result: stays with the invocation
                with_invocations.append(part)

        split = [message.with_parts(before + with_invocations), self._results_message(message, results)]
        if after:
            split.append(
                Message(
                    id=f"{message.id}{CONTINUATION_ID_SUFFIX}",
                    role=MessageRole.ASSISTANT,
                    parts=tuple(after),
                    metadata=message.metadata,
                )
            )
        return split

    @staticmethod
    def _results_message(source: Message, results: list[ToolResultPart]) -> Message:
        return Message(
            id=f"{source.id}{TOOL_RESULTS_ID_SUFFIX}",
            role=MessageRole.USER,
            parts=tuple(results),
            metadata=source.metadata,
        )

    @staticmethod
    def _strip_orphaned_invocations(
        messages: list[Message],
        fixes: list[RepairFix],
    ) -> list[Message]:
        result: list[Message] = []

        for index, message in enumerate(messages):
            if message.role != MessageRole.ASSISTANT or not message.has_tool_invocations():
                result.append(message)
                continue

            next_message = messages[index + 1] if index + 1 < len(messages) else None
            if next_message is None:
                paired_ids: set[str] = set()
                reason = "no following message"
            elif next_message.role != MessageRole.USER:
                paired_ids = set()
                reason = f"next message is {next_message.role.value}, not user"
            else:
                paired_ids = {r.call_id for r in next_message.tool_results()}
                reason = "no matching tool result in next message"

            kept: list[Part] = []
            for part in message.parts:
                if isinstance(part, ToolInvocationPart) and part.call_id not in paired_ids:
                    fixes.append(
                        RepairFix(
                            message_index=index,
                            message_id=message.id,
                            call_id=part.call_id,
                            fix=f"Removed orphaned tool invocation: {reason}",
                        )
                    )
                    continue
                kept.append(part)

            if len(kept) == len(message.parts):
                result.append(message)
            elif kept:
                result.append(message.with_parts(kept))
            else:
                fixes.append(
                    RepairFix(
                        message_index=index,
                        message_id=message.id,
                        fix="Removed message left empty after stripping orphaned invocations",
                    )
                )

        return result
