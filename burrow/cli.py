"""Command-line entry point and interactive REPL."""

import argparse
import sys
from importlib import metadata

from . import fmt
from .agent import Agent, append_history, state_dir
from .config import _UNSET, DEFAULT_MODEL, apply_config_to_args, generate_config, load_config
from .errors import AgentError
from .sandbox import Sandbox, SandboxError
from .tools import build_tools
from .transport import LiteLLMTransport, list_models


def build_parser():
    """Build and return the argument parser."""
    parser = argparse.ArgumentParser(
        prog="burrow",
        description="A terminal chat agent whose file tools are sandboxed to one directory.",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print the version and exit.",
    )
    parser.add_argument(
        "--model",
        default=_UNSET,
        help=f"LiteLLM model string (default: {DEFAULT_MODEL}).",
    )
    parser.add_argument(
        "--root",
        default=".",
        help="Directory the file tools are confined to (default: current directory).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=_UNSET,
        help="Log tool calls, results and sandbox rejections to stderr.",
    )
    parser.add_argument(
        "--api-key",
        default=_UNSET,
        help="API key for the provider (overrides env var).",
    )
    parser.add_argument(
        "--base-url",
        default=_UNSET,
        help="Override the provider's API base URL.",
    )
    parser.add_argument(
        "--no-fetch",
        action="store_true",
        default=_UNSET,
        help="Do not offer the fetch_url tool to the model.",
    )
    parser.add_argument(
        "--no-history",
        action="store_true",
        default=_UNSET,
        help="Don't write answers to .burrow/HISTORY.md.",
    )
    color_group = parser.add_mutually_exclusive_group()
    color_group.add_argument(
        "--color",
        action="store_true",
        default=_UNSET,
        help="Force ANSI color even when output is not a TTY.",
    )
    color_group.add_argument(
        "--no-color",
        action="store_true",
        default=_UNSET,
        help="Disable ANSI color even when output is a TTY.",
    )
    parser.add_argument(
        "--list-models",
        action="store_true",
        help="List the models LiteLLM knows for the provider of --model and exit.",
    )
    parser.add_argument(
        "--init-config",
        action="store_true",
        help="Print a commented burrow.toml template and exit.",
    )
    return parser


def _repl_help() -> None:
    """Print available REPL commands."""
    fmt.info(
        "Available commands:\n"
        "  /help              Show this help message\n"
        "  /exit, /quit       Exit the REPL"
    )


def _tty_reader(sandbox: Sandbox):
    from prompt_toolkit import PromptSession
    from prompt_toolkit.formatted_text import FormattedText
    from prompt_toolkit.history import FileHistory, InMemoryHistory

    try:
        history = FileHistory(str(state_dir(sandbox) / "repl_history"))
    except (SandboxError, OSError):
        fmt.warning("cannot use .burrow/repl_history, input history is not saved")
        history = InMemoryHistory()

    session = PromptSession(history=history, enable_history_search=True)
    prompt_text = FormattedText([("bold fg:ansiblue", "You: ")])

    def read() -> str | None:
        try:
            return session.prompt(prompt_text)
        except (EOFError, KeyboardInterrupt):
            print(file=sys.stderr)  # newline after ^D / ^C
            return None

    return read


def _stream_reader(stream):
    def read() -> str | None:
        line = stream.readline()
        if not line:
            return None
        return line.rstrip("\n")

    return read


def repl_loop(agent: Agent, *, no_history: bool = False, stdin=None) -> None:
    """Interactive read-eval-print loop.

    Uses prompt_toolkit when stdin is a terminal and plain line reads
    otherwise, so piped input works too.
    """
    stdin = stdin if stdin is not None else sys.stdin
    if stdin.isatty():
        fmt.repl_banner(agent.model, str(agent.sandbox.root))
        raw_read = _tty_reader(agent.sandbox)
    else:
        raw_read = _stream_reader(stdin)

    def read_line() -> str | None:
        while True:
            line = raw_read()
            if line is None:
                return None
            command = line.strip()
            if command in ("/exit", "/quit"):
                return None
            if command == "/help":
                _repl_help()
                continue
            return line

    def on_answer(question: str, answer: str) -> None:
        if not no_history:
            append_history(agent.sandbox, question, answer)

    agent.run(read_line, on_answer=on_answer)


def _run_main(args) -> None:
    sandbox = Sandbox(args.root)
    apply_config_to_args(args, load_config(sandbox.root))
    fmt.init(color=args.color, no_color=args.no_color)

    if args.list_models:
        for name in list_models(args.model):
            print(name)
        return

    transport = LiteLLMTransport(api_key=args.api_key, base_url=args.base_url)
    agent = Agent(
        sandbox,
        transport,
        args.model,
        build_tools(fetch=not args.no_fetch),
        debug=args.debug,
    )
    if args.debug:
        fmt.debug(f"root: {sandbox.root}")
        fmt.debug(f"model: {args.model}")
    repl_loop(agent, no_history=args.no_history)


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        try:
            version = metadata.version("burrow-agent")
        except metadata.PackageNotFoundError:
            version = "unknown"
        print(version)
        sys.exit(0)

    if args.init_config:
        print(generate_config(project=True))
        sys.exit(0)

    try:
        _run_main(args)
    except AgentError as e:
        fmt.error(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
