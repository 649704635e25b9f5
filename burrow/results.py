"""Uniform result envelope returned by every tool call."""

from dataclasses import dataclass, field

INVALID_ARGUMENT = "invalid_argument"
NOT_FOUND = "not_found"
PERMISSION_DENIED = "permission_denied"
IO_ERROR = "io_error"
NETWORK_ERROR = "network_error"
PARSE_ERROR = "parse_error"

ERROR_CODES = frozenset(
    {
        INVALID_ARGUMENT,
        NOT_FOUND,
        PERMISSION_DENIED,
        IO_ERROR,
        NETWORK_ERROR,
        PARSE_ERROR,
    }
)


@dataclass(frozen=True)
class ToolError:
    code: str
    message: str
    suggestions: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        result: dict = {"code": self.code, "message": self.message}
        if self.suggestions:
            result["suggestions"] = list(self.suggestions)
        return result


@dataclass(frozen=True)
class ToolResult:
    """Outcome of one tool call.

    Exactly one of ``data`` / ``error`` is set: ``data`` when ``ok`` is true,
    ``error`` otherwise. ``as_dict()`` is the shape the model sees.
    """

    ok: bool
    data: dict | None = None
    error: ToolError | None = None

    def __post_init__(self):
        if self.ok and (self.data is None or self.error is not None):
            raise ValueError("successful result must carry data and no error")
        if not self.ok and (self.error is None or self.data is not None):
            raise ValueError("failed result must carry an error and no data")

    @classmethod
    def success(cls, data: dict) -> "ToolResult":
        return cls(ok=True, data=data)

    @classmethod
    def failure(
        cls, code: str, message: str, suggestions: list[str] | None = None
    ) -> "ToolResult":
        if code not in ERROR_CODES:
            raise ValueError(f"unknown error code {code!r}")
        return cls(ok=False, error=ToolError(code, message, list(suggestions or [])))

    def as_dict(self) -> dict:
        result: dict = {"ok": self.ok}
        if self.data is not None:
            result["data"] = self.data
        if self.error is not None:
            result["error"] = self.error.as_dict()
        return result
