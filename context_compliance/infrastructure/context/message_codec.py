"""
Message Codec - Convert UI-format message dicts to and from domain messages.

Inbound histories come from a persistence/session layer in the chat UI
format (``{"id", "role", "parts", "content", "metadata"}``). Several part
spellings occur in stored histories and are all accepted:

- reasoning: ``reasoning``, ``reasoning-delta``, ``thinking``, ``redacted_thinking``
- invocation: ``tool-call``, ``tool-use``, ``tool_use``
- result: ``tool-result``, ``tool_result``

When a message has no ``parts`` but an Anthropic-style ``content`` array,
the array items are decoded as parts. Unknown part types are skipped.
"""

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

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
from context_compliance.infrastructure.context.errors import ErrorContext, InvalidMessageError

logger = logging.getLogger(__name__)

REASONING_TYPES = {"reasoning", "reasoning-delta", "thinking", "redacted_thinking"}
INVOCATION_TYPES = {"tool-call", "tool-use", "tool_use"}
RESULT_TYPES = {"tool-result", "tool_result"}

PREVIEW_CHARS = 50


class PartSchema(BaseModel):
    """Loose schema for one stored message part."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: str
    text: str | None = None
    thinking: str | None = None
    data: str | None = None  # redacted_thinking payload
    signature: str | None = None
    id: str | None = None
    tool_call_id: str | None = Field(default=None, alias="toolCallId")
    tool_use_id: str | None = None
    tool_name: str | None = Field(default=None, alias="toolName")
    name: str | None = None
    args: Any = None
    input: Any = None
    result: Any = None
    output: Any = None
    content: Any = None


class MetadataSchema(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    created_at: datetime | None = Field(default=None, alias="createdAt")


class MessageSchema(BaseModel):
    """Loose schema for one stored UI message."""

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    role: Literal["user", "assistant", "system"]
    parts: list[Any] | None = None
    content: Any = None
    metadata: MetadataSchema | None = None


def _decode_part(raw: Any) -> Part | None:
    if not isinstance(raw, dict):
        return None
    try:
        part = PartSchema.model_validate(raw)
    except ValidationError:
        logger.debug(f"Skipping malformed part: {raw!r:.100}")
        return None

    if part.type == "text":
        return TextPart(text=part.text or "")
    if part.type in REASONING_TYPES:
        return ReasoningPart(
            text=part.text or part.thinking or part.data or "",
            signature=part.signature or None,
        )
    if part.type in INVOCATION_TYPES:
        call_id = part.tool_call_id or part.id
        if not call_id:
            logger.debug("Skipping tool invocation without an id")
            return None
        return ToolInvocationPart(
            call_id=call_id,
            name=part.tool_name or part.name or "",
            args=part.args if part.args is not None else part.input,
        )
    if part.type in RESULT_TYPES:
        call_id = part.tool_call_id or part.tool_use_id or part.id
        if not call_id:
            logger.debug("Skipping tool result without an id")
            return None
        result = part.result
        if result is None:
            result = part.output if part.output is not None else part.content
        return ToolResultPart(call_id=call_id, name=part.tool_name or part.name or "", result=result)

    logger.debug(f"Skipping unsupported part type: {part.type}")
    return None


def decode_message(data: dict[str, Any], index: int = 0) -> Message:
    """
    Decode one UI-format message dict.

    Args:
        data: Stored message
        index: Position in the history (used for a fallback id)

    Returns:
        Domain message

    Raises:
        InvalidMessageError: If the dict is not a message
    """
    try:
        schema = MessageSchema.model_validate(data)
    except ValidationError as e:
        message_id = data.get("id") if isinstance(data, dict) else None
        raise InvalidMessageError(
            f"Message {index} could not be decoded: {e.error_count()} validation errors",
            index=index,
            context=ErrorContext(
                operation="decode_message",
                message_id=message_id if isinstance(message_id, str) else None,
                details={"errors": e.errors()},
            ),
            cause=e,
        ) from e

    raw_parts: Iterable[Any] = schema.parts or ()
    flat_content = ""
    if isinstance(schema.content, str):
        flat_content = schema.content
    elif isinstance(schema.content, list) and not schema.parts:
        raw_parts = schema.content

    parts = tuple(p for p in (_decode_part(raw) for raw in raw_parts) if p is not None)
    metadata = None
    if schema.metadata is not None:
        metadata = MessageMetadata(created_at=schema.metadata.created_at)

    return Message(
        id=schema.id or f"message-{index}",
        role=MessageRole(schema.role),
        parts=parts,
        content=flat_content,
        metadata=metadata,
    )


def decode_messages(data: Sequence[dict[str, Any]]) -> list[Message]:
    """Decode a whole stored history."""
    return [decode_message(item, index) for index, item in enumerate(data)]


def _encode_part(part: Part) -> dict[str, Any]:
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.text}
    if isinstance(part, ReasoningPart):
        encoded: dict[str, Any] = {"type": "reasoning", "text": part.text}
        if part.signature:
            encoded["signature"] = part.signature
        return encoded
    if isinstance(part, ToolInvocationPart):
        return {
            "type": "tool-call",
            "toolCallId": part.call_id,
            "toolName": part.name,
            "args": part.args,
        }
    if isinstance(part, ToolResultPart):
        return {
            "type": "tool-result",
            "toolCallId": part.call_id,
            "toolName": part.name,
            "result": part.result,
        }
    raise TypeError(f"Unsupported message part: {type(part).__name__}")


def encode_message(message: Message) -> dict[str, Any]:
    """Encode a domain message in the canonical UI spelling."""
    encoded: dict[str, Any] = {
        "id": message.id,
        "role": message.role.value,
        "parts": [_encode_part(part) for part in message.parts],
    }
    if message.content:
        encoded["content"] = message.content
    if message.metadata is not None and message.metadata.created_at is not None:
        encoded["metadata"] = {"createdAt": message.metadata.created_at.isoformat()}
    return encoded


def encode_messages(messages: Sequence[Message]) -> list[dict[str, Any]]:
    return [encode_message(message) for message in messages]


def _preview(text: str) -> str:
    preview = text[:PREVIEW_CHARS]
    return f'"{preview}..."' if len(text) > PREVIEW_CHARS else f'"{preview}"'


def describe_structure(messages: Sequence[Message], label: str = "Messages") -> str:
    """Render a compact, one-line-per-part outline of a message sequence for debug logs."""
    lines = [f"{label} structure ({len(messages)} messages):"]
    for index, message in enumerate(messages):
        lines.append(f"[{index}] {message.role.value.upper()} (id: {message.id}) parts={len(message.parts)}")
        for part in message.parts:
            if isinstance(part, TextPart):
                lines.append(f"    - text: {_preview(part.text)}")
            elif isinstance(part, ReasoningPart):
                kind = "synthetic" if part.synthetic else ("signed" if part.is_signed else "unsigned")
                lines.append(f"    - reasoning ({kind}): {_preview(part.text)}")
            elif isinstance(part, ToolInvocationPart):
                lines.append(f"    - tool-call: {part.name or 'unknown'} (id: {part.call_id})")
            elif isinstance(part, ToolResultPart):
                lines.append(f"    - tool-result: {part.name or 'unknown'} (id: {part.call_id})")
            else:
                raise TypeError(f"Unsupported message part: {type(part).__name__}")
    return "\n".join(lines)
