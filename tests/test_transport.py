"""Tests for transport.py: LiteLLM streaming and history conversion."""

import json
import types
from unittest.mock import MagicMock, patch

import pytest

from burrow.conversation import (
    MODEL,
    USER,
    Entry,
    Fragment,
    TextPart,
    ToolCall,
    ToolCallPart,
    ToolResultPart,
)
from burrow.errors import TransportError
from burrow.results import ToolResult
from burrow.transport import LiteLLMTransport, list_models, to_messages


def _chunk(content=None, tool_calls=None):
    delta = types.SimpleNamespace(content=content, tool_calls=tool_calls)
    return types.SimpleNamespace(choices=[types.SimpleNamespace(delta=delta)])


def _tc_delta(index, id=None, name=None, arguments=None):
    return types.SimpleNamespace(
        index=index,
        id=id,
        function=types.SimpleNamespace(name=name, arguments=arguments),
    )


@pytest.fixture
def completion():
    with patch("litellm.completion") as mock:
        yield mock


# =========================================================================
# History -> messages
# =========================================================================


class TestToMessages:
    def test_plain_exchange(self):
        entries = [
            Entry(USER, (TextPart("hi"),)),
            Entry(MODEL, (TextPart("hello"),)),
        ]
        assert to_messages(entries) == [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
        ]

    def test_empty_model_entry_has_string_content(self):
        entries = [
            Entry(USER, (TextPart("hi"),)),
            Entry(MODEL, ()),
            Entry(USER, (TextPart("again"),)),
        ]
        messages = to_messages(entries)
        assert messages[1] == {"role": "assistant", "content": ""}
        assert "tool_calls" not in messages[1]

    def test_tool_round(self):
        call_a = ToolCall("read_file", {"path": "a"}, id="call_a")
        call_b = ToolCall("list_files", {"path": "."}, id="call_b")
        res_a = ToolResult.success({"content": "A"})
        res_b = ToolResult.failure("not_found", "path not found: .")
        entries = [
            Entry(USER, (TextPart("go"),)),
            Entry(MODEL, (ToolCallPart(call_a), ToolCallPart(call_b))),
            Entry(USER, (ToolResultPart(call_a, res_a), ToolResultPart(call_b, res_b))),
        ]
        messages = to_messages(entries)
        assert messages[1]["role"] == "assistant"
        assert messages[1]["content"] is None
        assert [tc["id"] for tc in messages[1]["tool_calls"]] == ["call_a", "call_b"]
        assert json.loads(messages[1]["tool_calls"][0]["function"]["arguments"]) == {"path": "a"}
        assert messages[2] == {
            "role": "tool",
            "tool_call_id": "call_a",
            "content": json.dumps({"ok": True, "data": {"content": "A"}}),
        }
        assert messages[3]["tool_call_id"] == "call_b"
        assert json.loads(messages[3]["content"])["error"]["code"] == "not_found"
        assert len(messages) == 4

    def test_missing_ids_are_paired_by_position(self):
        call = ToolCall("list_files", {"path": "."})
        entries = [
            Entry(MODEL, (TextPart("checking"), ToolCallPart(call))),
            Entry(USER, (ToolResultPart(call, ToolResult.success({"files": []})),)),
        ]
        messages = to_messages(entries)
        assert messages[0]["content"] == "checking"
        assert messages[0]["tool_calls"][0]["id"] == messages[1]["tool_call_id"]


# =========================================================================
# Streaming
# =========================================================================


class TestStream:
    def test_text_fragments_in_order(self, completion):
        completion.return_value = iter([_chunk("Hel"), _chunk("lo"), _chunk(None)])
        transport = LiteLLMTransport()
        fragments = list(transport.stream((), [], "gemini/test"))
        assert fragments == [Fragment(text="Hel"), Fragment(text="lo")]

    def test_passes_model_tools_and_credentials(self, completion):
        completion.return_value = iter([])
        tools = [{"type": "function", "function": {"name": "read_file"}}]
        transport = LiteLLMTransport(api_key="k", base_url="http://proxy")
        list(transport.stream((Entry(USER, (TextPart("hi"),)),), tools, "gemini/test"))
        kwargs = completion.call_args.kwargs
        assert kwargs["model"] == "gemini/test"
        assert kwargs["stream"] is True
        assert kwargs["tools"] == tools
        assert kwargs["api_key"] == "k"
        assert kwargs["api_base"] == "http://proxy"
        assert kwargs["messages"] == [{"role": "user", "content": "hi"}]

    def test_no_tools_omits_tool_kwargs(self, completion):
        completion.return_value = iter([])
        list(LiteLLMTransport().stream((), [], "m"))
        assert "tools" not in completion.call_args.kwargs
        assert "api_key" not in completion.call_args.kwargs

    def test_tool_call_deltas_accumulate(self, completion):
        completion.return_value = iter(
            [
                _chunk("Let me look."),
                _chunk(tool_calls=[_tc_delta(0, id="c1", name="read_file", arguments='{"pa')]),
                _chunk(tool_calls=[_tc_delta(0, arguments='th": "a.txt"}')]),
                _chunk(tool_calls=[_tc_delta(1, id="c2", name="list_files", arguments='{"path": "."}')]),
            ]
        )
        fragments = list(LiteLLMTransport().stream((), [], "m"))
        assert fragments[0] == Fragment(text="Let me look.")
        assert fragments[1].tool_calls == (
            ToolCall("read_file", {"path": "a.txt"}, id="c1"),
            ToolCall("list_files", {"path": "."}, id="c2"),
        )
        assert len(fragments) == 2

    def test_bad_arguments_are_kept_raw(self, completion):
        completion.return_value = iter(
            [_chunk(tool_calls=[_tc_delta(0, id="c1", name="read_file", arguments="{oops")])]
        )
        (fragment,) = list(LiteLLMTransport().stream((), [], "m"))
        assert fragment.tool_calls[0].args == {"_raw_arguments": "{oops"}

    def test_missing_call_id_is_generated(self, completion):
        completion.return_value = iter(
            [_chunk(tool_calls=[_tc_delta(0, name="list_files", arguments="")])]
        )
        (fragment,) = list(LiteLLMTransport().stream((), [], "m"))
        call = fragment.tool_calls[0]
        assert call.args == {}
        assert call.id.startswith("call_")

    def test_completion_failure(self, completion):
        completion.side_effect = RuntimeError("401 unauthorized")
        with pytest.raises(TransportError, match="401 unauthorized"):
            list(LiteLLMTransport().stream((), [], "m"))

    def test_mid_stream_failure(self, completion):
        def chunks():
            yield _chunk("partial")
            raise ConnectionError("reset by peer")

        completion.return_value = chunks()
        stream = LiteLLMTransport().stream((), [], "m")
        assert next(stream) == Fragment(text="partial")
        with pytest.raises(TransportError, match="reset by peer"):
            next(stream)


def test_list_models():
    fake = MagicMock()
    fake.models_by_provider = {"gemini": ["gemini-b", "gemini-a"]}
    with patch.dict("sys.modules", {"litellm": fake}):
        assert list_models("gemini/gemini-3-flash-preview") == [
            "gemini/gemini-a",
            "gemini/gemini-b",
        ]


def test_list_models_unknown_provider():
    from burrow.errors import ConfigError

    fake = MagicMock()
    fake.models_by_provider = {}
    with patch.dict("sys.modules", {"litellm": fake}):
        with pytest.raises(ConfigError):
            list_models("nope/model")
