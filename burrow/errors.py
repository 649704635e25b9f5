"""Exception types shared across burrow."""


class AgentError(Exception):
    """Raised by the agent loop or setup helpers for reportable runtime failures."""


class ConfigError(AgentError):
    """Raised for invalid configuration (bad root, malformed config file, etc.)."""


class TransportError(AgentError):
    """Raised when the model transport fails while a turn is streaming."""
