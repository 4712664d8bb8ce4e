"""
Token Estimator - Heuristic token cost model for conversation messages.

Not a tokenizer: counts characters per part, divides by a chars-per-token
ratio and adds a structural overhead. Cheap enough to run on every request
and every intermediate result of budget enforcement.
"""

import json
import logging
import math
from collections.abc import Iterable
from typing import Any

from context_compliance.domain.model.message import (
    Message,
    Part,
    ReasoningPart,
    TextPart,
    ToolInvocationPart,
    ToolResultPart,
)

logger = logging.getLogger(__name__)

# Rough heuristic: ~4 chars per token for English text
CHARS_PER_TOKEN = 4.0

# Multiplier for message framing / JSON structure sent with the content
STRUCTURAL_OVERHEAD = 1.15

# Fixed cost of a tool invocation beyond its name and arguments
TOOL_INVOCATION_OVERHEAD_CHARS = 50


def serialize_value(value: Any) -> str:
    """
    Serialize a tool payload the way it is sent to the provider.

    Strings are sent as-is; everything else as compact JSON.

    Raises:
        TypeError, ValueError: If the value cannot be serialized
    """
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def serialized_length(value: Any) -> int:
    """Length of the serialized payload, or 0 when it cannot be serialized."""
    if value is None:
        return 0
    try:
        return len(serialize_value(value))
    except (TypeError, ValueError, RecursionError) as e:
        logger.debug(f"Could not serialize tool payload for estimation: {e}")
        return 0


def text_length(value: Any) -> int:
    """Length of a text field, or 0 when it is not a string."""
    return len(value) if isinstance(value, str) else 0


class TokenEstimator:
    """
    Estimates token counts for messages.

    Usage:
        estimator = TokenEstimator()
        tokens = estimator.estimate_total(messages)
    """

    def __init__(
        self,
        chars_per_token: float = CHARS_PER_TOKEN,
        structural_overhead: float = STRUCTURAL_OVERHEAD,
        tool_invocation_overhead_chars: int = TOOL_INVOCATION_OVERHEAD_CHARS,
    ):
        """
        Initialize the token estimator.

        Args:
            chars_per_token: Average characters per token
            structural_overhead: Multiplier applied to the raw token estimate
            tool_invocation_overhead_chars: Fixed character cost per tool invocation
        """
        if chars_per_token <= 0:
            raise ValueError(f"chars_per_token must be positive, got {chars_per_token}")
        self.chars_per_token = chars_per_token
        self.structural_overhead = structural_overhead
        self.tool_invocation_overhead_chars = tool_invocation_overhead_chars

    def estimate_part(self, part: Part) -> int:
        """
        Estimate the character cost of a single part.

        Args:
            part: Message part

        Returns:
            Character count (not tokens)
        """
        if isinstance(part, (TextPart, ReasoningPart)):
            return text_length(part.text)
        if isinstance(part, ToolInvocationPart):
            return (
                text_length(part.name)
                + serialized_length(part.args)
                + self.tool_invocation_overhead_chars
            )
        if isinstance(part, ToolResultPart):
            return serialized_length(part.result)
        logger.debug(f"Unknown part type {type(part).__name__} estimated at zero cost")
        return 0

    def chars_to_tokens(self, char_count: int) -> int:
        """Convert a character count into estimated tokens."""
        if char_count <= 0:
            return 0
        return math.ceil((char_count / self.chars_per_token) * self.structural_overhead)

    def tokens_to_chars(self, tokens: int) -> int:
        """Largest character count whose estimate does not exceed ``tokens``."""
        if tokens <= 0:
            return 0
        return int(tokens * self.chars_per_token / self.structural_overhead)

    def estimate(self, message: Message) -> int:
        """
        Estimate token count for a message.

        Falls back to the flat ``content`` field when the message has no parts.
        Never raises: malformed data degrades to zero cost.

        Args:
            message: Message to estimate

        Returns:
            Estimated token count (>= 0)
        """
        parts = getattr(message, "parts", None) or ()
        char_count = sum(self.estimate_part(part) for part in parts)

        if not parts:
            content = getattr(message, "content", None)
            if isinstance(content, str):
                char_count = len(content)

        return self.chars_to_tokens(char_count)

    def estimate_total(self, messages: Iterable[Message]) -> int:
        """
        Estimate total token count for messages.

        Args:
            messages: Messages to estimate

        Returns:
            Sum of per-message estimates
        """
        return sum(self.estimate(msg) for msg in messages)
