"""
Unit tests for budget enforcement.

Tests cover:
- Fast path (history already within the ceiling)
- Priority scoring
- Windowing of older messages around a protected tail
- Proportional tool result truncation inside the protected tail
- Emergency windowing
"""

import pytest

from context_compliance.domain.model.message import (
    Message,
    MessageRole,
    TextPart,
    ToolInvocationPart,
    ToolResultPart,
)
from context_compliance.infrastructure.context.budget_enforcer import BudgetEnforcer
from context_compliance.infrastructure.context.compliance_config import ComplianceConfig
from context_compliance.infrastructure.context.tool_result_truncation import METADATA_KEY


def _text(message_id: str, role: MessageRole, chars: int, char: str = "x") -> Message:
    return Message(id=message_id, role=role, parts=(TextPart(char * chars),))


def _call(message_id: str, call_id: str) -> Message:
    return Message(
        id=message_id,
        role=MessageRole.ASSISTANT,
        parts=(ToolInvocationPart(call_id=call_id, name="searchWeb", args={}),),
    )


def _result(message_id: str, call_id: str, result) -> Message:
    return Message(
        id=message_id,
        role=MessageRole.USER,
        parts=(ToolResultPart(call_id=call_id, name="searchWeb", result=result),),
    )


@pytest.fixture
def enforcer() -> BudgetEnforcer:
    return BudgetEnforcer(ComplianceConfig())


@pytest.mark.unit
class TestFastPath:
    def test_short_conversation_unchanged(self, enforcer):
        messages = [
            _text("1", MessageRole.USER, 5),
            _text("2", MessageRole.ASSISTANT, 20),
            _text("3", MessageRole.USER, 20),
            _text("4", MessageRole.ASSISTANT, 40),
            _text("5", MessageRole.USER, 12),
            _text("6", MessageRole.ASSISTANT, 30),
        ]

        result = enforcer.enforce(messages, 180_000)

        assert result.messages == messages
        assert result.windowed_messages is False
        assert result.truncated_tool_results is False
        assert result.tokens_estimate == result.original_tokens
        assert result.tokens_estimate < 1000

    def test_uses_configured_ceiling_by_default(self):
        enforcer = BudgetEnforcer(ComplianceConfig(ceiling_tokens=500))
        messages = [_text(str(i), MessageRole.USER, 400) for i in range(10)]

        result = enforcer.enforce(messages)

        assert result.tokens_estimate <= 500

    def test_empty_history(self, enforcer):
        result = enforcer.enforce([], 180_000)

        assert result.messages == []
        assert result.tokens_estimate == 0
        assert result.windowed_messages is False
        assert result.truncated_tool_results is False

    def test_enforcing_own_output_is_noop(self, enforcer):
        messages = [_text(str(i), MessageRole.USER, 400) for i in range(20)]
        first = enforcer.enforce(messages, 1_000)

        second = enforcer.enforce(first.messages, 1_000)

        assert second.messages == first.messages
        assert second.windowed_messages is False


@pytest.mark.unit
class TestScoring:
    def test_score_components(self, enforcer):
        messages = [
            _text("0", MessageRole.USER, 10),
            Message(
                id="1",
                role=MessageRole.ASSISTANT,
                parts=(TextPart("let me check"), ToolInvocationPart("c1", "searchWeb", {})),
            ),
            _result("2", "c1", "data"),
            *[_text(str(i), MessageRole.USER, 10) for i in range(3, 8)],
            _text("8", MessageRole.ASSISTANT, 10),
            _text("9", MessageRole.USER, 10),
        ]

        scores = [sm.score for sm in enforcer.score_messages(messages)]

        assert scores[0] == pytest.approx(100 + 500)
        assert scores[1] == pytest.approx(200 + 200 + 100)
        assert scores[2] == pytest.approx(300 + 500 - 100)
        assert scores[8] == pytest.approx(900 + 200 + 200)
        assert scores[9] == pytest.approx(1000 + 500 + 300)

    def test_token_cost_matches_estimator(self, enforcer, estimator):
        messages = [_text("0", MessageRole.USER, 400)]
        scored = enforcer.score_messages(messages)
        assert scored[0].token_cost == estimator.estimate(messages[0])
        assert scored[0].index == 0


@pytest.mark.unit
class TestWindowing:
    def test_older_messages_admitted_by_descending_score(self, enforcer, estimator):
        roles = [MessageRole.USER, MessageRole.ASSISTANT]
        older = [_text(f"old-{i}", roles[i % 2], 20_100) for i in range(45)]
        protected = [_text(f"new-{i}", roles[(45 + i) % 2], 27_826) for i in range(5)]
        messages = older + protected
        assert 295_000 < estimator.estimate_total(messages) < 305_000
        assert estimator.estimate_total(protected) == 40_000

        result = enforcer.enforce(messages, 180_000)

        older_cost = estimator.estimate(older[0])
        expected_admitted = (180_000 - 40_000) // older_cost
        assert result.windowed_messages is True
        assert result.truncated_tool_results is False
        assert len(result.messages) == 5 + expected_admitted
        assert result.messages[-5:] == protected
        assert result.tokens_estimate <= 180_000

        kept_ids = {m.id for m in result.messages}
        scores = {sm.message.id: sm.score for sm in enforcer.score_messages(messages)}
        admitted = [scores[m.id] for m in older if m.id in kept_ids]
        dropped = [scores[m.id] for m in older if m.id not in kept_ids]
        assert min(admitted) >= max(dropped)

    def test_output_keeps_chronological_order(self, enforcer):
        messages = [
            _text(str(i), MessageRole.USER if i % 2 == 0 else MessageRole.ASSISTANT, 400)
            for i in range(30)
        ]

        result = enforcer.enforce(messages, 1_500)

        ids = [int(m.id) for m in result.messages]
        assert ids == sorted(ids)

    def test_many_small_messages_low_budget(self, enforcer):
        messages = [_text(str(i), MessageRole.USER, 100) for i in range(100)]

        result = enforcer.enforce(messages, 1_000)

        assert result.tokens_estimate <= 1_000
        assert len(result.messages) < 100
        assert result.windowed_messages is True


@pytest.mark.unit
class TestToolResultTruncation:
    def test_single_monster_result_is_truncated(self, enforcer):
        messages = [
            _text("1", MessageRole.USER, 30),
            _call("2", "c1"),
            _result("3", "c1", "x" * 1_000_000),
            _text("4", MessageRole.ASSISTANT, 30),
        ]

        result = enforcer.enforce(messages, 180_000)

        assert result.original_tokens > 200_000
        assert result.truncated_tool_results is True
        assert result.windowed_messages is False
        assert [m.id for m in result.messages] == ["1", "2", "3", "4"]
        assert result.tokens_estimate <= 180_000
        truncated = result.messages[2].parts[0].result
        assert "[... truncated" in truncated

    def test_savings_spread_across_results(self, enforcer):
        big = [{"content": "x" * 1_000}] * 400
        messages = [
            _text("1", MessageRole.USER, 30),
            _call("2", "c1"),
            _result("3", "c1", big),
            _call("4", "c2"),
            _result("5", "c2", big),
        ]

        result = enforcer.enforce(messages, 180_000)

        assert result.truncated_tool_results is True
        assert result.tokens_estimate <= 180_000
        first = result.messages[2].parts[0].result
        second = result.messages[4].parts[0].result
        assert first[METADATA_KEY]["truncated"] is True
        assert second[METADATA_KEY]["truncated"] is True
        assert first[METADATA_KEY]["originalCount"] == 400
        assert abs(first[METADATA_KEY]["returnedCount"] - second[METADATA_KEY]["returnedCount"]) <= 1

    def test_does_not_mutate_input(self, enforcer):
        payload = "x" * 1_000_000
        messages = [_call("1", "c1"), _result("2", "c1", payload)]

        enforcer.enforce(messages, 10_000)

        assert messages[1].parts[0].result is payload

    def test_only_protected_tail_results_are_shrunk(self, enforcer):
        older = _result("1", "c0", "a" * 40_000)
        messages = [older, _call("2", "c1"), _result("3", "c1", "x" * 40_000)]

        shrunk, truncated = enforcer._truncate_tool_results(messages, 5_000, protected_start=1)

        assert truncated is True
        assert shrunk[0] is older
        assert "[... truncated" in shrunk[2].parts[0].result

    def test_floor_then_emergency_windowing(self, estimator):
        enforcer = BudgetEnforcer(ComplianceConfig(tool_result_floor_tokens=500))
        messages = [
            _text("1", MessageRole.USER, 10),
            _call("2", "c1"),
            _result("3", "c1", "x" * 40_000),
            _call("4", "c2"),
            _result("5", "c2", "y" * 40_000),
            _text("6", MessageRole.ASSISTANT, 10),
        ]

        result = enforcer.enforce(messages, 800)

        assert result.truncated_tool_results is True
        assert result.windowed_messages is True
        assert result.tokens_estimate <= 800
        assert [m.id for m in result.messages] == ["4", "5", "6"]
        assert estimator.estimate(result.messages[1]) <= 500


@pytest.mark.unit
class TestEmergencyWindowing:
    def test_protected_tail_without_tool_results(self, enforcer):
        messages = [_text(str(i), MessageRole.USER, 400) for i in range(5)]

        result = enforcer.enforce(messages, 300)

        assert result.truncated_tool_results is False
        assert result.windowed_messages is True
        assert [m.id for m in result.messages] == ["3", "4"]
        assert result.tokens_estimate <= int(300 * 0.9)

    def test_single_oversized_message_is_kept_alone(self, enforcer):
        messages = [_text("0", MessageRole.USER, 10), _text("1", MessageRole.USER, 4_000)]

        result = enforcer.enforce(messages, 100)

        assert [m.id for m in result.messages] == ["1"]
        assert result.tokens_estimate > 100
        assert result.windowed_messages is True


@pytest.mark.unit
class TestWindowRecent:
    def test_keeps_everything_within_budget(self, enforcer):
        messages = [_text(str(i), MessageRole.USER, 40) for i in range(3)]

        result = enforcer.window_recent(messages, 80_000)

        assert result.messages == messages
        assert result.dropped_count == 0
        assert result.windowed_count == 3

    def test_stops_at_first_message_that_does_not_fit(self, enforcer):
        messages = [
            _text("0", MessageRole.USER, 40),
            _text("1", MessageRole.USER, 4_000),
            _text("2", MessageRole.USER, 40),
        ]

        result = enforcer.window_recent(messages, 100)

        assert [m.id for m in result.messages] == ["2"]
        assert result.original_count == 3
        assert result.dropped_count == 2

    def test_empty(self, enforcer):
        result = enforcer.window_recent([], 100)
        assert result.messages == []
        assert result.original_count == 0
