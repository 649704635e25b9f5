"""Turn orchestration: stream the model, run its tool calls, repeat."""

import enum
from datetime import datetime
from pathlib import Path

from . import fmt
from .conversation import (
    USER,
    Conversation,
    Entry,
    TextPart,
    ToolResultPart,
    estimate_tokens,
    merge_fragments,
)
from .errors import TransportError
from .results import NOT_FOUND, PERMISSION_DENIED, ToolResult
from .sandbox import AccessKind, Sandbox, SandboxError
from .tools import Tool, execute

MAX_HISTORY_SIZE = 500 * 1024  # 500KB

HISTORY_DIR = ".burrow"
HISTORY_FILE = "HISTORY.md"

_FILESYSTEM_TOOLS = {Tool.READ_FILE.value, Tool.WRITE_FILE.value, Tool.LIST_FILES.value}
_REJECTION_CODES = {NOT_FOUND, PERMISSION_DENIED}


class TurnState(enum.Enum):
    AWAITING_INPUT = "awaiting_input"
    STREAMING = "streaming"
    EXECUTING_TOOLS = "executing_tools"
    TURN_COMPLETE = "turn_complete"


def state_dir(sandbox: Sandbox) -> Path:
    """Create (if needed) and return the .burrow directory under the root.

    Raises SandboxError if .burrow resolves outside the root.
    """
    path = sandbox.resolve(HISTORY_DIR, AccessKind.WRITE)
    path.mkdir(exist_ok=True)
    return path


def append_history(sandbox: Sandbox, question: str, answer: str) -> None:
    """Append a timestamped Q&A entry to .burrow/HISTORY.md under the root.

    Both the directory and the file go through the sandbox, so a symlinked
    .burrow pointing outside the root is refused. Failures only warn.
    """
    if not answer or not answer.strip():
        return

    try:
        state_dir(sandbox)
        history_path = sandbox.resolve(f"{HISTORY_DIR}/{HISTORY_FILE}", AccessKind.WRITE)
    except SandboxError as e:
        fmt.warning(f"history path rejected ({e.code}: {e.message}), skipping write")
        return
    except OSError:
        fmt.warning("failed to create history directory")
        return

    try:
        current_size = history_path.stat().st_size if history_path.exists() else 0
        if current_size >= MAX_HISTORY_SIZE:
            fmt.warning("history file at capacity, skipping write")
            return

        q_display = question[:200] + "..." if len(question) > 200 else question
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        entry = f"---\n\n**{timestamp}** *{q_display}*\n\n{answer}\n\n"

        with history_path.open("a", encoding="utf-8") as f:
            f.write(entry)
    except OSError:
        fmt.warning("failed to write history entry")


class Agent:
    """Owns one conversation and drives it turn by turn.

    ``transport`` is anything with ``stream(entries, tools, model)`` returning
    an iterator of Fragments. ``display`` receives the transcript and debug
    callbacks; it defaults to the ``fmt`` module.
    """

    def __init__(
        self,
        sandbox: Sandbox,
        transport,
        model: str,
        tools: list[dict],
        *,
        debug: bool = False,
        display=fmt,
    ):
        self.sandbox = sandbox
        self.transport = transport
        self.model = model
        self.tools = tools
        self.debug = debug
        self.display = display
        self.state = TurnState.AWAITING_INPUT
        self._conversation = Conversation()
        self._rounds = 0

    @property
    def history(self) -> tuple[Entry, ...]:
        return self._conversation.entries

    def run_turn(self, text: str) -> str:
        """Run one user turn to completion and return the model's final text.

        Raises TransportError if the model call fails. A turn that does not
        finish leaves nothing behind: its user entry and every round it
        completed are dropped before the exception propagates.
        """
        start = len(self._conversation)
        self._conversation.append(Entry(USER, (TextPart(text),)))
        try:
            while True:
                model_entry = self._stream_round()
                calls = model_entry.tool_calls
                if not calls:
                    self.state = TurnState.TURN_COMPLETE
                    return model_entry.text
                self._execute_calls(calls)
        except BaseException:
            self._conversation._truncate(start)
            self.display.model_text_end()
            self.state = TurnState.AWAITING_INPUT
            raise

    def _stream_round(self) -> Entry:
        self.state = TurnState.STREAMING
        self._rounds += 1
        if self.debug:
            self.display.round_header(
                self._rounds, estimate_tokens(self.history, self.tools)
            )

        fragments = []
        for fragment in self.transport.stream(self.history, self.tools, self.model):
            fragments.append(fragment)
            if fragment.text:
                self.display.model_text(fragment.text)
            for call in fragment.tool_calls:
                self.display.tool_marker(call.name)
        self.display.model_text_end()

        entry = merge_fragments(fragments)
        self._conversation.append(entry)
        return entry

    def _execute_calls(self, calls) -> None:
        self.state = TurnState.EXECUTING_TOOLS
        parts: list[ToolResultPart] = []
        for call in calls:
            result = execute(call.name, call.args, self.sandbox)
            if self.debug:
                self._log_call(call, result)
            parts.append(ToolResultPart(call, result))
        self._conversation.append(Entry(USER, tuple(parts)))

    def _log_call(self, call, result: ToolResult) -> None:
        self.display.debug_tool_call(call.name, call.args)
        if (
            not result.ok
            and call.name in _FILESYSTEM_TOOLS
            and result.error.code in _REJECTION_CODES
        ):
            self.display.debug_rejection(call.name, result.error.code, result.error.message)
        self.display.debug_tool_result(call.name, result.as_dict())

    def run(self, read_line, on_answer=None) -> None:
        """Read lines until read_line() returns None, running one turn per line.

        Blank lines are skipped. A transport failure or Ctrl-C abandons only the
        current turn, which is rolled back out of the history.
        ``on_answer(question, answer)`` is called after each completed turn.
        """
        while True:
            self.state = TurnState.AWAITING_INPUT
            line = read_line()
            if line is None:
                return
            line = line.strip()
            if not line:
                continue
            try:
                answer = self.run_turn(line)
            except TransportError as e:
                self.display.error(str(e))
                continue
            except KeyboardInterrupt:
                self.display.warning("interrupted, turn aborted.")
                continue
            if on_answer is not None:
                on_answer(line, answer)
