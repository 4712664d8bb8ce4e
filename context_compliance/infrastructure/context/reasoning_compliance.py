"""Reasoning-block compliance for reasoning-mode (extended thinking) requests.

With reasoning mode active the provider rejects any assistant message that
carries tool invocations without leading with a reasoning block, even when
the tool pairing itself is valid. Independently, reasoning blocks without a
provider signature are invalid as client-submitted input and are stripped
from replayed history.
"""

import logging
from collections.abc import Sequence

from context_compliance.domain.model.message import Message, MessageRole, ReasoningPart
from context_compliance.domain.ports.compliance_port import MissingReasoningPolicy

logger = logging.getLogger(__name__)

PLACEHOLDER_REASONING_TEXT = "[Planning tool usage]"


def placeholder_reasoning_block() -> ReasoningPart:
    """Synthetic filler block; unsigned and marked as engine-generated."""
    return ReasoningPart(text=PLACEHOLDER_REASONING_TEXT, signature=None, synthetic=True)


def _needs_reasoning_first(message: Message) -> bool:
    return (
        message.role == MessageRole.ASSISTANT
        and message.has_tool_invocations()
        and not message.starts_with_reasoning()
    )


def find_messages_missing_reasoning(messages: Sequence[Message]) -> list[int]:
    """Indices of invoking assistant messages that contain no reasoning block at all."""
    return [
        index
        for index, message in enumerate(messages)
        if _needs_reasoning_first(message) and not message.reasoning_blocks()
    ]


def ensure_reasoning_block_first(
    messages: Sequence[Message],
    policy: MissingReasoningPolicy = MissingReasoningPolicy.PLACEHOLDER,
) -> list[Message]:
    """
    Make every assistant message with tool invocations start with a reasoning block.

    Existing reasoning blocks are moved to the front, keeping their relative
    order. A message with none gets a placeholder block under the
    ``PLACEHOLDER`` policy and is left alone under ``DISABLE_REASONING``
    (the caller turns reasoning mode off instead).

    Args:
        messages: Message sequence
        policy: What to do when a message has no reasoning block

    Returns:
        New message list
    """
    result: list[Message] = []

    for index, message in enumerate(messages):
        if not _needs_reasoning_first(message):
            result.append(message)
            continue

        reasoning = [p for p in message.parts if isinstance(p, ReasoningPart)]
        others = [p for p in message.parts if not isinstance(p, ReasoningPart)]

        if reasoning:
            logger.info(
                f"[Message {index}] Reordering reasoning blocks to start of message "
                f"{message.id} for reasoning-mode compliance"
            )
            result.append(message.with_parts(reasoning + others))
        elif policy == MissingReasoningPolicy.PLACEHOLDER:
            logger.warning(
                f"[Message {index}] Assistant message {message.id} has tool invocations "
                "but no reasoning block - inserting placeholder"
            )
            result.append(message.with_parts([placeholder_reasoning_block(), *others]))
        else:
            result.append(message)

    return result


def strip_unsigned_reasoning(messages: Sequence[Message]) -> tuple[list[Message], int]:
    """
    Remove unsigned reasoning blocks from replayed history.

    Engine-inserted placeholders (``synthetic``) are kept. Messages left
    with no parts are dropped.

    Args:
        messages: Historical messages about to be sent to the provider

    Returns:
        Tuple of (messages, number of reasoning blocks removed)
    """
    result: list[Message] = []
    removed = 0

    for message in messages:
        kept = [
            part
            for part in message.parts
            if not (isinstance(part, ReasoningPart) and not part.is_signed and not part.synthetic)
        ]
        dropped = len(message.parts) - len(kept)
        if not dropped:
            result.append(message)
            continue

        removed += dropped
        if kept:
            result.append(message.with_parts(kept))
        else:
            logger.debug(f"Dropped message {message.id}: only unsigned reasoning blocks")

    if removed:
        logger.info(f"Stripped {removed} unsigned reasoning blocks from outbound history")
    return result, removed
