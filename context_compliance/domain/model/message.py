"""Conversation message value objects handed to the compliance engine.

A message is an ordered tuple of parts. ``Part`` is a closed union of four
frozen dataclasses; every consumer dispatches on it with ``isinstance`` and
rejects anything else.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Union

from context_compliance.domain.shared_kernel import ValueObject


class MessageRole(str, Enum):
    """Role of the message sender."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass(frozen=True)
class TextPart(ValueObject):
    """Plain conversational text."""

    text: str


@dataclass(frozen=True)
class ReasoningPart(ValueObject):
    """
    A reasoning ("thinking") block of an assistant message.

    Attributes:
        text: Reasoning text
        signature: Provider-issued authenticity token. Only the provider can
            produce it; a block without one is not trustworthy provider output.
        synthetic: True only for placeholders inserted by this engine
    """

    text: str
    signature: str | None = None
    synthetic: bool = False

    @property
    def is_signed(self) -> bool:
        return bool(self.signature)


@dataclass(frozen=True)
class ToolInvocationPart(ValueObject):
    """A function call made by the assistant."""

    call_id: str
    name: str
    args: Any = None


@dataclass(frozen=True)
class ToolResultPart(ValueObject):
    """The outcome of a tool invocation, matched by ``call_id``."""

    call_id: str
    name: str
    result: Any = None


Part = Union[TextPart, ReasoningPart, ToolInvocationPart, ToolResultPart]


@dataclass(frozen=True)
class MessageMetadata(ValueObject):
    """Optional message metadata."""

    created_at: datetime | None = None


@dataclass(frozen=True)
class Message(ValueObject):
    """
    A single immutable conversation message.

    ``content`` carries flat legacy text for messages stored without parts;
    it is only consulted by token estimation.
    """

    id: str
    role: MessageRole
    parts: tuple[Part, ...] = field(default_factory=tuple)
    content: str = ""
    metadata: MessageMetadata | None = None

    def __post_init__(self):
        # Accept any iterable of parts but always store a tuple
        if not isinstance(self.parts, tuple):
            object.__setattr__(self, "parts", tuple(self.parts))
        if not isinstance(self.role, MessageRole):
            object.__setattr__(self, "role", MessageRole(self.role))

    def is_from_user(self) -> bool:
        return self.role == MessageRole.USER

    def is_from_assistant(self) -> bool:
        return self.role == MessageRole.ASSISTANT

    def tool_invocations(self) -> list[ToolInvocationPart]:
        return [p for p in self.parts if isinstance(p, ToolInvocationPart)]

    def tool_results(self) -> list[ToolResultPart]:
        return [p for p in self.parts if isinstance(p, ToolResultPart)]

    def reasoning_blocks(self) -> list[ReasoningPart]:
        return [p for p in self.parts if isinstance(p, ReasoningPart)]

    def has_tool_invocations(self) -> bool:
        return any(isinstance(p, ToolInvocationPart) for p in self.parts)

    def has_tool_results(self) -> bool:
        return any(isinstance(p, ToolResultPart) for p in self.parts)

    def has_text(self) -> bool:
        return any(isinstance(p, TextPart) for p in self.parts)

    def is_tool_result_only(self) -> bool:
        """True when every part is a tool result (and there is at least one)."""
        return bool(self.parts) and all(isinstance(p, ToolResultPart) for p in self.parts)

    def starts_with_reasoning(self) -> bool:
        return bool(self.parts) and isinstance(self.parts[0], ReasoningPart)

    def with_parts(self, parts) -> "Message":
        """Return a copy of this message carrying ``parts``."""
        return replace(self, parts=tuple(parts))
