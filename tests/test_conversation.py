"""Tests for conversation.py and results.py: history values and result envelopes."""

from unittest.mock import MagicMock, patch

import pytest

from burrow.conversation import (
    MODEL,
    USER,
    Conversation,
    Entry,
    Fragment,
    TextPart,
    ToolCall,
    ToolCallPart,
    estimate_tokens,
    merge_fragments,
)
from burrow.results import ToolResult


class TestMergeFragments:
    def test_adjacent_text_coalesced(self):
        entry = merge_fragments([Fragment(text="a"), Fragment(text="b"), Fragment(text="c")])
        assert entry == Entry(MODEL, (TextPart("abc"),))

    def test_order_preserved_around_calls(self):
        call = ToolCall("list_files", {"path": "."})
        entry = merge_fragments(
            [Fragment(text="x"), Fragment(tool_calls=(call,)), Fragment(text="y")]
        )
        assert entry.parts == (TextPart("x"), ToolCallPart(call), TextPart("y"))

    def test_fragment_with_text_and_calls(self):
        call = ToolCall("read_file", {"path": "a"})
        entry = merge_fragments([Fragment(text="t", tool_calls=(call,))])
        assert entry.parts == (TextPart("t"), ToolCallPart(call))
        assert entry.text == "t"
        assert entry.tool_calls == [call]

    def test_empty_stream(self):
        assert merge_fragments([]) == Entry(MODEL, ())


class TestEntry:
    def test_unknown_role(self):
        with pytest.raises(ValueError):
            Entry("system", ())

    def test_entries_are_immutable(self):
        entry = Entry(USER, (TextPart("hi"),))
        with pytest.raises(AttributeError):
            entry.role = MODEL


class TestConversation:
    def test_append_only_view(self):
        conv = Conversation()
        conv.append(Entry(USER, (TextPart("hi"),)))
        view = conv.entries
        assert isinstance(view, tuple)
        conv.append(Entry(MODEL, (TextPart("hello"),)))
        assert len(view) == 1
        assert len(conv) == 2


def test_estimate_tokens_counts_parts():
    encoder = MagicMock()
    encoder.encode.side_effect = lambda s: s.split()
    entries = [Entry(USER, (TextPart("one two three"),))]
    with patch("burrow.conversation._encoder", return_value=encoder):
        assert estimate_tokens(entries) == 3 + 4


class TestToolResult:
    def test_success_shape(self):
        assert ToolResult.success({"files": []}).as_dict() == {"ok": True, "data": {"files": []}}

    def test_failure_omits_empty_suggestions(self):
        result = ToolResult.failure("io_error", "disk full")
        assert result.as_dict() == {
            "ok": False,
            "error": {"code": "io_error", "message": "disk full"},
        }

    def test_failure_with_suggestions(self):
        result = ToolResult.failure("not_found", "nope", ["Did you mean 'a'?"])
        assert result.as_dict()["error"]["suggestions"] == ["Did you mean 'a'?"]

    def test_unknown_code_rejected(self):
        with pytest.raises(ValueError):
            ToolResult.failure("oops", "bad")

    def test_ok_requires_data(self):
        with pytest.raises(ValueError):
            ToolResult(ok=True)
