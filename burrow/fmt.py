"""Terminal output using Rich.

The transcript (streamed model text, tool markers) goes to stdout.
Diagnostics and debug output go to stderr so they never mix with it.
"""

import json

from rich.console import Console
from rich.rule import Rule
from rich.text import Text

MAX_DEBUG_JSON = 1000

_console = Console(stderr=True)
_out = Console(highlight=False)
_streaming = False


def init(*, color: bool = False, no_color: bool = False) -> None:
    """Reconfigure both consoles from CLI flags.

    Call once at startup, before any output.
    """
    global _console, _out
    kwargs: dict = {}
    if color:
        kwargs["force_terminal"] = True
        kwargs["no_color"] = False
    if no_color:
        kwargs["no_color"] = True
    _console = Console(stderr=True, **kwargs)
    _out = Console(highlight=False, **kwargs)


def _json_preview(value) -> str:
    try:
        pretty = json.dumps(value, indent=2, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        pretty = repr(value)
    if len(pretty) > MAX_DEBUG_JSON:
        pretty = pretty[:MAX_DEBUG_JSON] + "\n... (truncated)"
    return pretty


# -- Transcript (stdout) -----------------------------------------------------


def model_text(chunk: str) -> None:
    """Show a streamed piece of model text immediately."""
    global _streaming
    if not chunk:
        return
    if not _streaming:
        _out.print(Text("Model: ", style="bold yellow"), end="")
        _streaming = True
    _out.print(Text(chunk), end="", soft_wrap=True)
    _out.file.flush()


def model_text_end() -> None:
    """Terminate the current line of streamed text, if any."""
    global _streaming
    if _streaming:
        _out.print()
        _streaming = False


def tool_marker(name: str) -> None:
    model_text_end()
    _out.print(Text(f"→ {name}", style="green"))


# -- Debug (stderr) ----------------------------------------------------------


def round_header(n: int, token_est: int) -> None:
    _console.print(Rule(f"Round {n} (~{token_est} tokens)", style="cyan"))


def debug(msg: str) -> None:
    _console.print(Text(f"[debug] {msg}", style="dim"))


def debug_tool_call(name: str, args) -> None:
    header = Text()
    header.append("  ▶ ", style="bold magenta")
    header.append(name, style="bold magenta")
    _console.print(header)
    for line in _json_preview(args).splitlines():
        _console.print(Text(f"    {line}", style="dim"))


def debug_tool_result(name: str, result: dict) -> None:
    ok = result.get("ok", False)
    header = Text()
    header.append(f"  {'✓' if ok else '✗'} {name}", style="green" if ok else "red")
    _console.print(header)
    for line in _json_preview(result).splitlines():
        _console.print(Text(f"    {line}", style="dim"))


def debug_rejection(name: str, code: str, message: str) -> None:
    line = Text()
    line.append("  ⛔ sandbox: ", style="bold red")
    line.append(f"{name} {code}: {message}", style="red")
    _console.print(line)


def context_stats(label: str, tokens: int) -> None:
    _console.print(Text(f"  {label}: ~{tokens} tokens", style="dim"))


# -- Diagnostics -------------------------------------------------------------


def info(msg: str) -> None:
    _console.print(Text(f"  {msg}", style="dim"))


def warning(msg: str) -> None:
    line = Text()
    line.append("  ⚠ Warning: ", style="yellow")
    line.append(msg, style="yellow")
    _console.print(line)


def error(msg: str) -> None:
    line = Text()
    line.append("Error: ", style="bold red")
    line.append(msg, style="red")
    _console.print(line)


def repl_banner(model: str, root: str) -> None:
    _console.print(
        Text(f"Chat with {model} in {root} (/exit or Ctrl-D to quit)", style="dim")
    )
