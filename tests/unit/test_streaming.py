"""Unit tests for delta decoding and tool-call accumulation."""

import logging
import re

import pytest

from chatstream.errors import FrameParseError
from chatstream.events import ToolCallEvent
from chatstream.streaming import (
    ToolCallAccumulator,
    ToolCallFragment,
    decode_payload,
    generate_call_id,
)


class TestDecodePayload:
    def test_content_delta(self):
        chunk = decode_payload('{"choices":[{"index":0,"delta":{"content":"Hel"}}]}')
        assert len(chunk.choices) == 1
        assert chunk.choices[0].content == "Hel"
        assert chunk.choices[0].tool_call_fragments == []

    def test_reasoning_and_reasoning_content(self):
        a = decode_payload('{"choices":[{"delta":{"reasoning":"hmm"}}]}')
        b = decode_payload('{"choices":[{"delta":{"reasoning_content":"hm"}}]}')
        assert a.choices[0].reasoning == "hmm"
        assert b.choices[0].reasoning == "hm"

    def test_null_content_is_none(self):
        chunk = decode_payload('{"choices":[{"delta":{"content":null}}]}')
        assert chunk.choices[0].content is None

    def test_tool_call_fragments(self):
        chunk = decode_payload(
            '{"choices":[{"delta":{"tool_calls":['
            '{"index":1,"id":"c1","function":{"name":"echo","arguments":"{\\"a"}}'
            ']}}]}'
        )
        assert chunk.choices[0].tool_call_fragments == [
            ToolCallFragment(index=1, call_id="c1", name="echo", arguments_delta='{"a'),
        ]

    def test_missing_tool_index_defaults_to_zero(self):
        chunk = decode_payload(
            '{"choices":[{"delta":{"tool_calls":[{"function":{"name":"f"}}]}}]}'
        )
        assert chunk.choices[0].tool_call_fragments[0].index == 0

    def test_finish_reason(self):
        chunk = decode_payload('{"choices":[{"delta":{},"finish_reason":"stop"}]}')
        assert chunk.choices[0].finish_reason == "stop"

    @pytest.mark.parametrize("payload", ['{"choices": [', "not json", "{'a': 1}"])
    def test_invalid_json_raises(self, payload):
        with pytest.raises(FrameParseError) as exc_info:
            decode_payload(payload)
        assert exc_info.value.payload == payload

    @pytest.mark.parametrize("payload", ["[]", "42", '{"usage": {}}', '{"choices": null}'])
    def test_unexpected_shape_decodes_empty(self, payload):
        assert decode_payload(payload).choices == []


class TestToolCallAccumulator:
    def test_single_fragment_finalizes_immediately(self):
        acc = ToolCallAccumulator()
        call = acc.feed(ToolCallFragment(
            index=0, call_id="c1", name="echo", arguments_delta='{"text": "hi"}',
        ))
        assert call == ToolCallEvent(call_id="c1", name="echo", arguments={"text": "hi"})
        assert acc.pending == {}
        assert acc.completed == {0}

    def test_arguments_reconstructed_from_fragments(self):
        acc = ToolCallAccumulator()
        assert acc.update(0, call_id="c1", name="add", arguments_delta='{"a":') is None
        assert acc.update(0, arguments_delta='1,"b":') is None
        call = acc.update(0, arguments_delta="2}")
        assert call is not None
        assert call.arguments == {"a": 1, "b": 2}

    def test_completed_index_ignored(self):
        acc = ToolCallAccumulator()
        acc.update(0, call_id="c1", name="echo", arguments_delta="{}")
        assert acc.update(0, call_id="c1", name="echo", arguments_delta="{}") is None
        assert acc.update(0, arguments_delta='{"x": 1}') is None
        assert acc.pending == {}

    def test_first_id_and_name_win(self):
        acc = ToolCallAccumulator()
        acc.update(0, call_id="first", name="alpha", arguments_delta='{"a"')
        call = acc.update(0, call_id="second", name="beta", arguments_delta=": 1}")
        assert call.call_id == "first"
        assert call.name == "alpha"

    def test_empty_strings_do_not_claim_id_or_name(self):
        acc = ToolCallAccumulator()
        acc.update(0, call_id="", name="")
        call = acc.update(0, call_id="c9", name="late", arguments_delta="{}")
        assert call.call_id == "c9"
        assert call.name == "late"

    def test_waits_for_name(self):
        acc = ToolCallAccumulator()
        assert acc.update(0, arguments_delta='{"a": 1}') is None
        call = acc.update(0, name="named")
        assert call.name == "named"
        assert call.arguments == {"a": 1}

    def test_non_object_arguments_never_finalize(self):
        acc = ToolCallAccumulator()
        assert acc.update(0, name="f", arguments_delta="[1, 2]") is None
        assert acc.update(1, name="g", arguments_delta='"str"') is None
        assert acc.flush() == []

    def test_generated_id_when_missing(self):
        acc = ToolCallAccumulator(id_factory=lambda: "generated")
        call = acc.update(0, name="f", arguments_delta="{}")
        assert call.call_id == "generated"

    def test_finalization_follows_completion_order(self):
        acc = ToolCallAccumulator()
        acc.update(0, call_id="c0", name="first", arguments_delta='{"a":')
        acc.update(1, call_id="c1", name="second", arguments_delta='{"b":')
        done_1 = acc.update(1, arguments_delta=" 2}")
        done_0 = acc.update(0, arguments_delta=" 1}")
        assert [done_1.name, done_0.name] == ["second", "first"]

    def test_flush_drops_incomplete_calls(self):
        acc = ToolCallAccumulator()
        acc.update(0, call_id="c0", name="broken", arguments_delta='{"a": ')
        acc.update(1, call_id="c1", arguments_delta="{}")
        assert acc.flush() == []
        assert acc.pending == {}
        assert acc.completed == frozenset()

    def test_pending_returns_copies(self):
        acc = ToolCallAccumulator()
        acc.update(1, call_id="c1", arguments_delta="{}")
        acc.pending[1].name = "outside"
        assert acc.pending[1].name is None
        assert acc.update(1, name="search") == ToolCallEvent(
            call_id="c1", name="search", arguments={},
        )

    def test_logs_to_injected_logger(self, caplog):
        log = logging.getLogger("tests.accumulator")
        acc = ToolCallAccumulator(log=log)
        acc.update(0, call_id="c0", name="f", arguments_delta="{}")
        with caplog.at_level(logging.DEBUG, logger="tests.accumulator"):
            acc.update(0, arguments_delta="{}")
            acc.update(1, name="g", arguments_delta="{")
            acc.flush()
        messages = [r.message for r in caplog.records if r.name == "tests.accumulator"]
        assert any("completed tool call #0" in m for m in messages)
        assert any("Dropping incomplete tool call #1" in m for m in messages)

    def test_flush_on_empty_accumulator(self):
        assert ToolCallAccumulator().flush() == []


def test_generate_call_id_format():
    ids = {generate_call_id() for _ in range(20)}
    assert len(ids) == 20
    assert all(re.fullmatch(r"call_[a-z0-9]{8}", i) for i in ids)
