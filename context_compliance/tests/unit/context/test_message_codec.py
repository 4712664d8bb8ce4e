"""Tests for decoding and encoding stored UI-format messages."""

from datetime import datetime, timezone

import pytest

from context_compliance.domain.model.message import (
    Message,
    MessageMetadata,
    MessageRole,
    ReasoningPart,
    TextPart,
    ToolInvocationPart,
    ToolResultPart,
)
from context_compliance.infrastructure.context.errors import InvalidMessageError
from context_compliance.infrastructure.context.message_codec import (
    decode_message,
    decode_messages,
    describe_structure,
    encode_message,
)


@pytest.mark.unit
class TestDecodeMessage:
    def test_ui_format_parts(self):
        message = decode_message(
            {
                "id": "a1",
                "role": "assistant",
                "parts": [
                    {"type": "reasoning", "text": "plan", "signature": "sig"},
                    {"type": "text", "text": "checking"},
                    {
                        "type": "tool-call",
                        "toolCallId": "c1",
                        "toolName": "getPrice",
                        "args": {"symbol": "SOL"},
                    },
                ],
            }
        )

        assert message.id == "a1"
        assert message.role == MessageRole.ASSISTANT
        assert message.parts == (
            ReasoningPart("plan", signature="sig"),
            TextPart("checking"),
            ToolInvocationPart(call_id="c1", name="getPrice", args={"symbol": "SOL"}),
        )

    @pytest.mark.parametrize(
        "raw",
        [
            {"type": "tool-result", "toolCallId": "c1", "toolName": "getPrice", "result": 1},
            {"type": "tool_result", "tool_use_id": "c1", "name": "getPrice", "content": 1},
            {"type": "tool-result", "id": "c1", "toolName": "getPrice", "output": 1},
        ],
    )
    def test_tool_result_spellings(self, raw):
        message = decode_message({"id": "u1", "role": "user", "parts": [raw]})
        assert message.parts == (ToolResultPart(call_id="c1", name="getPrice", result=1),)

    def test_anthropic_content_array(self):
        message = decode_message(
            {
                "role": "assistant",
                "content": [
                    {"type": "thinking", "thinking": "plan", "signature": "sig"},
                    {"type": "tool_use", "id": "c1", "name": "getPrice", "input": {"s": "SOL"}},
                ],
            },
            index=3,
        )

        assert message.id == "message-3"
        assert message.parts == (
            ReasoningPart("plan", signature="sig"),
            ToolInvocationPart(call_id="c1", name="getPrice", args={"s": "SOL"}),
        )

    def test_flat_content_kept(self):
        message = decode_message({"id": "u1", "role": "user", "content": "hello"})
        assert message.parts == ()
        assert message.content == "hello"

    def test_unknown_and_incomplete_parts_skipped(self):
        message = decode_message(
            {
                "id": "a1",
                "role": "assistant",
                "parts": [
                    {"type": "step-start"},
                    {"type": "tool-call", "toolName": "noId"},
                    "garbage",
                    {"type": "text", "text": "kept"},
                ],
            }
        )
        assert message.parts == (TextPart("kept"),)

    def test_empty_signature_decoded_as_unsigned(self):
        message = decode_message(
            {"role": "assistant", "parts": [{"type": "reasoning", "text": "x", "signature": ""}]}
        )
        assert message.parts[0].signature is None

    def test_metadata_created_at(self):
        message = decode_message(
            {
                "id": "u1",
                "role": "user",
                "parts": [],
                "metadata": {"createdAt": "2024-05-01T12:00:00Z"},
            }
        )
        assert message.metadata.created_at == datetime(2024, 5, 1, 12, tzinfo=timezone.utc)

    def test_invalid_role_raises(self):
        with pytest.raises(InvalidMessageError) as exc_info:
            decode_messages([{"role": "user", "parts": []}, {"role": "tool", "parts": []}])
        assert exc_info.value.index == 1

    def test_missing_role_raises(self):
        with pytest.raises(InvalidMessageError):
            decode_message({"id": "x", "parts": []})

    def test_error_names_offending_message(self):
        with pytest.raises(InvalidMessageError) as exc_info:
            decode_message({"id": "bad", "role": "tool"}, index=4)

        error = exc_info.value
        assert error.context.operation == "decode_message"
        assert error.context.message_id == "bad"
        assert "message_id=bad" in str(error)
        assert error.to_dict()["context"]["message_id"] == "bad"

    def test_error_without_id_has_no_message_id(self):
        with pytest.raises(InvalidMessageError) as exc_info:
            decode_message({"role": "tool"})
        assert exc_info.value.context.message_id is None


@pytest.mark.unit
class TestEncodeMessage:
    def test_canonical_spelling(self):
        message = Message(
            id="a1",
            role=MessageRole.ASSISTANT,
            parts=(
                ReasoningPart("plan"),
                ToolInvocationPart(call_id="c1", name="getPrice", args={"s": "SOL"}),
            ),
        )

        assert encode_message(message) == {
            "id": "a1",
            "role": "assistant",
            "parts": [
                {"type": "reasoning", "text": "plan"},
                {"type": "tool-call", "toolCallId": "c1", "toolName": "getPrice", "args": {"s": "SOL"}},
            ],
        }

    def test_signature_and_metadata_encoded_when_present(self):
        created = datetime(2024, 5, 1, 12, tzinfo=timezone.utc)
        message = Message(
            id="u1",
            role=MessageRole.USER,
            parts=(ToolResultPart(call_id="c1", name="getPrice", result=1),),
            metadata=MessageMetadata(created_at=created),
        )

        encoded = encode_message(message)

        assert encoded["parts"][0] == {
            "type": "tool-result",
            "toolCallId": "c1",
            "toolName": "getPrice",
            "result": 1,
        }
        assert encoded["metadata"] == {"createdAt": created.isoformat()}

    def test_decode_of_encoded_message_is_equal(self, tool_exchange):
        decoded = decode_messages([encode_message(m) for m in tool_exchange])
        assert decoded == tool_exchange

    def test_unknown_part_rejected(self):
        message = Message(id="a1", role=MessageRole.ASSISTANT, parts=("bogus",))
        with pytest.raises(TypeError):
            encode_message(message)


@pytest.mark.unit
class TestDescribeStructure:
    def test_outline(self, tool_exchange):
        outline = describe_structure(tool_exchange, "Outbound")

        lines = outline.splitlines()
        assert lines[0] == "Outbound structure (4 messages):"
        assert "[1] ASSISTANT (id: a1) parts=3" in lines
        assert "    - reasoning (signed): \"I should search the web\"" in lines
        assert "    - tool-call: searchWeb (id: c1)" in lines
        assert "    - tool-result: searchWeb (id: c1)" in lines

    def test_long_text_previewed(self):
        message = Message(id="u1", role=MessageRole.USER, parts=(TextPart("y" * 80),))
        assert f'"{"y" * 50}..."' in describe_structure([message])
