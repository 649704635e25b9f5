"""Tool declarations and the executor that runs them against the sandbox."""

import enum
import os

from .fetch import FORMATS, fetch_url
from .results import INVALID_ARGUMENT, IO_ERROR, ToolResult
from .sandbox import AccessKind, Sandbox, SandboxError


class Tool(enum.Enum):
    READ_FILE = "read_file"
    WRITE_FILE = "write_file"
    LIST_FILES = "list_files"
    FETCH_URL = "fetch_url"


_PATH_DESCRIPTION = "Workspace-relative path under the project root."

TOOLS = [
    {
        "type": "function",
        "function": {
            "name": Tool.READ_FILE.value,
            "description": (
                "Read the contents of a file. Workspace-relative path under the project root."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": _PATH_DESCRIPTION},
                },
                "required": ["path"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": Tool.WRITE_FILE.value,
            "description": (
                "Create or overwrite a file with the given content. "
                "The parent directory must already exist."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": _PATH_DESCRIPTION},
                    "content": {
                        "type": "string",
                        "description": "Content to write to the file.",
                    },
                },
                "required": ["path", "content"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": Tool.LIST_FILES.value,
            "description": (
                "List the entries of a directory. Subdirectories end with '/'. "
                "Use '.' for the project root."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "Directory under the project root (use '.' for root).",
                    },
                },
                "required": ["path"],
            },
        },
    },
]

FETCH_URL_TOOL = {
    "type": "function",
    "function": {
        "name": Tool.FETCH_URL.value,
        "description": (
            "Fetch a URL over HTTP(S). JSON responses are returned decoded; "
            "HTML is returned as markdown, plain text, or raw HTML."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "url": {
                    "type": "string",
                    "description": "The URL to fetch (must start with http:// or https://).",
                },
                "format": {
                    "type": "string",
                    "enum": list(FORMATS),
                    "description": "Output format for HTML pages (default: markdown).",
                },
                "timeout": {
                    "type": "integer",
                    "description": "Request timeout in seconds (1-120, default 30).",
                },
            },
            "required": ["url"],
        },
    },
}


def build_tools(fetch: bool = True) -> list[dict]:
    """Return the tool declarations sent to the model."""
    tools = list(TOOLS)
    if fetch:
        tools.append(FETCH_URL_TOOL)
    return tools


class _ArgumentError(Exception):
    pass


def _string_arg(args: dict, key: str, default: str | None = None) -> str:
    if key not in args:
        if default is not None:
            return default
        raise _ArgumentError(f"missing argument: {key}")
    value = args[key]
    if not isinstance(value, str):
        raise _ArgumentError(f"argument {key} must be a string")
    return value


def _read_file(args: dict, sandbox: Sandbox) -> ToolResult:
    path = _string_arg(args, "path")
    resolved = sandbox.resolve(path, AccessKind.READ)
    if resolved.is_dir():
        return ToolResult.failure(
            INVALID_ARGUMENT, f"path is a directory, use list_files: {path}"
        )
    try:
        data = resolved.read_bytes()
    except OSError as exc:
        return ToolResult.failure(IO_ERROR, f"failed to read file: {exc.strerror or exc}")
    return ToolResult.success({"content": data.decode("utf-8", errors="replace")})


def _write_file(args: dict, sandbox: Sandbox) -> ToolResult:
    path = _string_arg(args, "path")
    content = _string_arg(args, "content")
    resolved = sandbox.resolve(path, AccessKind.WRITE)
    if resolved.is_dir():
        return ToolResult.failure(INVALID_ARGUMENT, f"path is a directory: {path}")
    data = content.encode("utf-8")
    try:
        resolved.write_bytes(data)
    except OSError as exc:
        return ToolResult.failure(IO_ERROR, f"failed to write file: {exc.strerror or exc}")
    return ToolResult.success(
        {"message": f"wrote {len(data)} bytes to {path}", "bytes": len(data)}
    )


def _list_files(args: dict, sandbox: Sandbox) -> ToolResult:
    path = _string_arg(args, "path")
    resolved = sandbox.resolve(path, AccessKind.LIST)
    if not resolved.is_dir():
        return ToolResult.failure(INVALID_ARGUMENT, f"path is not a directory: {path}")
    try:
        with os.scandir(resolved) as it:
            names = [
                entry.name + ("/" if entry.is_dir() else "") for entry in it
            ]
    except OSError as exc:
        return ToolResult.failure(
            IO_ERROR, f"failed to list directory: {exc.strerror or exc}"
        )
    return ToolResult.success({"files": sorted(names)})


def _fetch_url(args: dict, sandbox: Sandbox) -> ToolResult:
    url = _string_arg(args, "url")
    fmt = _string_arg(args, "format", default="markdown")
    return fetch_url(url, format=fmt, timeout=args.get("timeout", 30))


_HANDLERS = {
    Tool.READ_FILE: _read_file,
    Tool.WRITE_FILE: _write_file,
    Tool.LIST_FILES: _list_files,
    Tool.FETCH_URL: _fetch_url,
}


def execute(name: str, args: dict, sandbox: Sandbox) -> ToolResult:
    """Run one tool call and wrap the outcome in a ToolResult.

    Never raises: argument problems, sandbox rejections and unexpected
    failures all come back as ``ok=False`` results. Arguments are validated
    before any I/O happens.
    """
    try:
        tool = Tool(name)
    except ValueError:
        return ToolResult.failure(INVALID_ARGUMENT, f"unknown tool: {name}")
    if not isinstance(args, dict):
        return ToolResult.failure(INVALID_ARGUMENT, "tool arguments must be an object")

    try:
        return _HANDLERS[tool](args, sandbox)
    except _ArgumentError as exc:
        return ToolResult.failure(INVALID_ARGUMENT, str(exc))
    except SandboxError as exc:
        return exc.to_result()
    except OSError as exc:
        return ToolResult.failure(IO_ERROR, f"{tool.value} failed: {exc.strerror or exc}")
    except Exception as exc:
        return ToolResult.failure(
            IO_ERROR, f"{tool.value} failed: {type(exc).__name__}: {exc}"
        )
