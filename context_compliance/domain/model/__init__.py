"""Conversation message model - messages and their tagged-union parts."""

from context_compliance.domain.model.message import (
    Message,
    MessageMetadata,
    MessageRole,
    Part,
    ReasoningPart,
    TextPart,
    ToolInvocationPart,
    ToolResultPart,
)

__all__ = [
    "Message",
    "MessageMetadata",
    "MessageRole",
    "Part",
    "ReasoningPart",
    "TextPart",
    "ToolInvocationPart",
    "ToolResultPart",
]
