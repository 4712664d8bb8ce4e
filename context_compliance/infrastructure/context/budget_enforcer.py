"""
Budget Enforcer - Fit conversation history under a hard token ceiling.

Enforcement runs in stages, each only when the previous one was not enough:
1. Fast path - history already fits, returned unchanged
2. Windowing - protect the most recent messages, admit older messages
   whole by descending priority score, drop the rest
3. Tool result truncation - shrink tool results inside the protected tail,
   spreading the required savings evenly, down to a per-result floor
4. Emergency windowing - keep only the newest messages that fit a fraction
   of the ceiling; the only stage allowed to drop protected messages

Scoring policy: never sacrifice the live conversational thread, keep
tool-call markers (cheap, valuable), shed bulk tool output first.
"""

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from context_compliance.domain.model.message import Message, MessageRole, ToolResultPart
from context_compliance.infrastructure.context.compliance_config import ComplianceConfig
from context_compliance.infrastructure.context.token_estimator import TokenEstimator
from context_compliance.infrastructure.context.tool_result_truncation import (
    truncate_tool_result,
)

logger = logging.getLogger(__name__)

# Messages this close to the end of the history get the recency bonuses
RECENT_BONUS_WINDOW = 5

RECENCY_SCALE = 1000
USER_SCORE = 500
RECENT_USER_BONUS = 300
ASSISTANT_TEXT_SCORE = 200
RECENT_ASSISTANT_TEXT_BONUS = 200
TOOL_RESULT_ONLY_PENALTY = -100
TOOL_INVOCATION_SCORE = 100

# Truncation rounds over the protected tail before falling back to emergency windowing
MAX_TRUNCATION_ROUNDS = 3

DEFAULT_WINDOW_TOKENS = 80_000


@dataclass(frozen=True)
class ScoredMessage:
    """A message annotated for one enforcement pass."""

    message: Message
    index: int
    score: float
    token_cost: int


@dataclass
class WindowResult:
    """Result of plain recency windowing."""

    messages: list[Message]
    original_count: int = 0
    windowed_count: int = 0
    estimated_tokens: int = 0
    dropped_count: int = 0


@dataclass
class BudgetEnforcementResult:
    """Result of budget enforcement."""

    messages: list[Message]
    tokens_estimate: int = 0
    truncated_tool_results: bool = False
    windowed_messages: bool = False
    original_tokens: int = 0
    dropped_count: int = 0

    def to_event_data(self) -> dict[str, Any]:
        """Convert to telemetry event data."""
        return {
            "tokens_estimate": self.tokens_estimate,
            "original_tokens": self.original_tokens,
            "truncated_tool_results": self.truncated_tool_results,
            "windowed_messages": self.windowed_messages,
            "final_message_count": len(self.messages),
            "dropped_count": self.dropped_count,
        }


class BudgetEnforcer:
    """
    Trims a history so its estimated size fits a token ceiling.

    Usage:
        enforcer = BudgetEnforcer(ComplianceConfig(ceiling_tokens=180_000))
        result = enforcer.enforce(messages)
        # result.messages fits the ceiling (see emergency edge case)
    """

    def __init__(
        self,
        config: ComplianceConfig | None = None,
        estimator: TokenEstimator | None = None,
    ):
        """
        Initialize budget enforcer.

        Args:
            config: Configuration options. Uses defaults if None.
            estimator: Token estimator. Uses the default heuristic if None.
        """
        self.config = config or ComplianceConfig()
        self.estimator = estimator or TokenEstimator()

    def score_messages(self, messages: Sequence[Message]) -> list[ScoredMessage]:
        """Score every message by recency, role and content."""
        count = len(messages)
        scored = []
        for index, message in enumerate(messages):
            in_recent = index >= count - RECENT_BONUS_WINDOW
            score = (index + 1) / count * RECENCY_SCALE

            if message.role == MessageRole.USER:
                score += USER_SCORE
                if in_recent:
                    score += RECENT_USER_BONUS
            elif message.role == MessageRole.ASSISTANT and message.has_text():
                score += ASSISTANT_TEXT_SCORE
                if in_recent:
                    score += RECENT_ASSISTANT_TEXT_BONUS

            if message.is_tool_result_only():
                score += TOOL_RESULT_ONLY_PENALTY
            if message.has_tool_invocations():
                score += TOOL_INVOCATION_SCORE

            scored.append(
                ScoredMessage(
                    message=message,
                    index=index,
                    score=score,
                    token_cost=self.estimator.estimate(message),
                )
            )
        return scored

    def enforce(
        self,
        messages: Sequence[Message],
        ceiling_tokens: int | None = None,
    ) -> BudgetEnforcementResult:
        """
        Produce a history that fits ``ceiling_tokens``.

        Args:
            messages: Full conversation history (oldest first)
            ceiling_tokens: Token ceiling. Uses the configured ceiling if None.

        Returns:
            BudgetEnforcementResult with the trimmed history and diagnostics
        """
        ceiling = self.config.ceiling_tokens if ceiling_tokens is None else ceiling_tokens
        original_tokens = self.estimator.estimate_total(messages)

        if original_tokens <= ceiling:
            return BudgetEnforcementResult(
                messages=list(messages),
                tokens_estimate=original_tokens,
                original_tokens=original_tokens,
            )

        logger.info(
            f"Token budget exceeded: {original_tokens} tokens > ceiling {ceiling} "
            f"({len(messages)} messages)"
        )

        scored = self.score_messages(messages)
        protected_count = min(self.config.protected_recent_count, len(scored))
        split_at = len(scored) - protected_count
        older, protected = scored[:split_at], scored[split_at:]

        protected_cost = sum(sm.token_cost for sm in protected)
        admitted = self._admit_older(older, ceiling - protected_cost)
        windowed = len(admitted) < len(older)
        if windowed:
            logger.info(
                f"Windowed {len(older) - len(admitted)} older messages "
                f"(protected tail: {protected_cost} tokens)"
            )

        kept = sorted(admitted + protected, key=lambda sm: sm.index)
        result_messages = [sm.message for sm in kept]
        truncated = False

        if protected_cost > ceiling:
            result_messages, truncated = self._truncate_tool_results(
                result_messages, ceiling, protected_start=len(result_messages) - len(protected)
            )

        tokens = self.estimator.estimate_total(result_messages)
        if tokens > ceiling:
            result_messages = self._emergency_window(result_messages, ceiling)
            windowed = True
            tokens = self.estimator.estimate_total(result_messages)

        return BudgetEnforcementResult(
            messages=result_messages,
            tokens_estimate=tokens,
            truncated_tool_results=truncated,
            windowed_messages=windowed,
            original_tokens=original_tokens,
            dropped_count=len(messages) - len(result_messages),
        )

    def window_recent(
        self,
        messages: Sequence[Message],
        max_tokens: int = DEFAULT_WINDOW_TOKENS,
    ) -> WindowResult:
        """
        Keep the most recent messages that fit within ``max_tokens``.

        Walks backwards from the newest message and stops at the first one
        that does not fit.

        Args:
            messages: Conversation history (oldest first)
            max_tokens: Token budget for the window

        Returns:
            WindowResult with the windowed messages
        """
        if not messages:
            return WindowResult(messages=[])

        total = self.estimator.estimate_total(messages)
        if total <= max_tokens:
            return WindowResult(
                messages=list(messages),
                original_count=len(messages),
                windowed_count=len(messages),
                estimated_tokens=total,
            )

        accumulated = 0
        window: list[Message] = []
        for message in reversed(messages):
            cost = self.estimator.estimate(message)
            if accumulated + cost > max_tokens:
                break
            window.append(message)
            accumulated += cost
        window.reverse()

        return WindowResult(
            messages=window,
            original_count=len(messages),
            windowed_count=len(window),
            estimated_tokens=accumulated,
            dropped_count=len(messages) - len(window),
        )

    @staticmethod
    def _admit_older(older: list[ScoredMessage], budget: int) -> list[ScoredMessage]:
        """Greedily admit whole messages by descending score (later index wins ties)."""
        admitted = []
        used = 0
        for sm in sorted(older, key=lambda s: (-s.score, -s.index)):
            if used + sm.token_cost <= budget:
                admitted.append(sm)
                used += sm.token_cost
        return admitted

    def _truncate_tool_results(
        self,
        messages: list[Message],
        ceiling: int,
        protected_start: int = 0,
    ) -> tuple[list[Message], bool]:
        """
        Shrink tool results evenly until ``messages`` fit or every result is at the floor.

        Only messages from ``protected_start`` onwards are touched.
        """
        floor = self.config.tool_result_floor_tokens
        truncated = False

        for _ in range(MAX_TRUNCATION_ROUNDS):
            excess = self.estimator.estimate_total(messages) - ceiling
            if excess <= 0:
                break

            targets = [
                (msg_index, part_index, self._part_tokens(part))
                for msg_index, message in enumerate(messages)
                if msg_index >= protected_start
                for part_index, part in enumerate(message.parts)
                if isinstance(part, ToolResultPart)
            ]
            targets = [t for t in targets if t[2] > floor]
            if not targets:
                break

            per_result = math.ceil(excess / len(targets))
            replacements: dict[int, dict[int, ToolResultPart]] = {}
            for msg_index, part_index, tokens in targets:
                target_tokens = max(floor, tokens - per_result)
                part = messages[msg_index].parts[part_index]
                new_result = truncate_tool_result(
                    part.result, self.estimator.tokens_to_chars(target_tokens)
                )
                if new_result is part.result:
                    continue
                replacements.setdefault(msg_index, {})[part_index] = ToolResultPart(
                    call_id=part.call_id, name=part.name, result=new_result
                )

            if not replacements:
                break

            truncated = True
            messages = [
                message.with_parts(
                    replacements[msg_index].get(i, part) for i, part in enumerate(message.parts)
                )
                if msg_index in replacements
                else message
                for msg_index, message in enumerate(messages)
            ]
            logger.info(
                f"Truncated {sum(len(r) for r in replacements.values())} tool results "
                f"(~{per_result} tokens each) to close a {excess}-token gap"
            )

        return messages, truncated

    def _part_tokens(self, part: ToolResultPart) -> int:
        return self.estimator.chars_to_tokens(self.estimator.estimate_part(part))

    def _emergency_window(self, messages: list[Message], ceiling: int) -> list[Message]:
        """Final safety net: keep only the newest messages that fit the emergency budget."""
        budget = int(ceiling * self.config.emergency_window_ratio)
        window = self.window_recent(messages, budget).messages
        if not window and messages:
            # A single oversized message: send it alone rather than nothing
            window = [messages[-1]]
        logger.warning(
            f"Emergency windowing: kept {len(window)}/{len(messages)} messages "
            f"within {budget} tokens"
        )
        return window
