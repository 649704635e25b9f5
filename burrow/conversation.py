"""Conversation history: roles, content parts and streamed fragments."""

import functools
import json
from dataclasses import dataclass, field
from typing import Union

import tiktoken

from .results import ToolResult

USER = "user"
MODEL = "model"


@functools.cache
def _encoder():
    # Loaded on first use: the BPE table may need a download.
    return tiktoken.get_encoding("cl100k_base")


@dataclass(frozen=True)
class ToolCall:
    """One tool invocation requested by the model."""

    name: str
    args: dict = field(default_factory=dict)
    id: str | None = None


@dataclass(frozen=True)
class Fragment:
    """One piece of a streamed model response."""

    text: str = ""
    tool_calls: tuple[ToolCall, ...] = ()


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class ToolCallPart:
    call: ToolCall


@dataclass(frozen=True)
class ToolResultPart:
    call: ToolCall
    result: ToolResult


Part = Union[TextPart, ToolCallPart, ToolResultPart]


@dataclass(frozen=True)
class Entry:
    role: str
    parts: tuple[Part, ...]

    def __post_init__(self):
        if self.role not in (USER, MODEL):
            raise ValueError(f"unknown role {self.role!r}")

    @property
    def text(self) -> str:
        return "".join(p.text for p in self.parts if isinstance(p, TextPart))

    @property
    def tool_calls(self) -> list[ToolCall]:
        return [p.call for p in self.parts if isinstance(p, ToolCallPart)]

    @property
    def tool_results(self) -> list[ToolResultPart]:
        return [p for p in self.parts if isinstance(p, ToolResultPart)]


def merge_fragments(fragments: list[Fragment]) -> Entry:
    """Collapse the fragments of one model invocation into a single model entry.

    Order is preserved; adjacent text pieces are joined into one TextPart.
    """
    parts: list[Part] = []
    pending_text: list[str] = []
    for fragment in fragments:
        if fragment.text:
            pending_text.append(fragment.text)
        if fragment.tool_calls:
            if pending_text:
                parts.append(TextPart("".join(pending_text)))
                pending_text = []
            parts.extend(ToolCallPart(call) for call in fragment.tool_calls)
    if pending_text:
        parts.append(TextPart("".join(pending_text)))
    return Entry(MODEL, tuple(parts))


class Conversation:
    """Append-only sequence of entries, owned by a single Agent.

    The agent may drop the entries of a turn that failed before it finished.
    """

    def __init__(self):
        self._entries: list[Entry] = []

    def append(self, entry: Entry) -> None:
        self._entries.append(entry)

    @property
    def entries(self) -> tuple[Entry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def _truncate(self, length: int) -> None:
        """Drop every entry past the first ``length``; used to undo a failed turn."""
        del self._entries[length:]


def estimate_tokens(entries, tools: list | None = None) -> int:
    """Rough token count of a history, for diagnostics only."""
    encoder = _encoder()
    total = 0
    for entry in entries:
        for part in entry.parts:
            if isinstance(part, TextPart):
                content = part.text
            elif isinstance(part, ToolCallPart):
                content = part.call.name + json.dumps(part.call.args)
            else:
                content = json.dumps(part.result.as_dict())
            total += len(encoder.encode(content))
    if tools:
        total += len(encoder.encode(json.dumps(tools)))
    # Per-entry overhead (role, separators): ~4 tokens each
    total += 4 * len(entries)
    return total
