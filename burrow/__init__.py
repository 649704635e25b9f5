"""burrow: a terminal chat agent with sandboxed file tools."""

from .agent import Agent, TurnState
from .errors import AgentError, ConfigError, TransportError
from .results import ToolResult
from .sandbox import AccessKind, Sandbox, SandboxError

__all__ = [
    "AccessKind",
    "Agent",
    "AgentError",
    "ConfigError",
    "Sandbox",
    "SandboxError",
    "ToolResult",
    "TransportError",
    "TurnState",
]
