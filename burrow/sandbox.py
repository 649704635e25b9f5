"""Path sandbox: confine tool paths to a single root directory."""

import enum
import errno
import os
from pathlib import Path

from .errors import ConfigError
from .results import (
    INVALID_ARGUMENT,
    IO_ERROR,
    NOT_FOUND,
    PERMISSION_DENIED,
    ToolResult,
)

MAX_SUGGESTIONS = 3
ESCAPE_HINT = "Use a relative path under the project root (e.g., './subdir/file.txt')"


class AccessKind(enum.Enum):
    """How a path is about to be used. Decides how symlinks are evaluated."""

    READ = "read"
    WRITE = "write"
    LIST = "list"


class SandboxError(Exception):
    """Structured rejection raised by Sandbox.resolve()."""

    def __init__(self, code: str, message: str, suggestions: list[str] | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestions = list(suggestions or [])

    def to_result(self) -> ToolResult:
        return ToolResult.failure(self.code, self.message, self.suggestions)


def _real_path(path: Path) -> Path | None:
    """Resolve every symlink in path. Returns None if anything in the chain is missing."""
    try:
        return path.resolve(strict=True)
    except (FileNotFoundError, NotADirectoryError, RuntimeError):
        # RuntimeError: symlink loop on Python < 3.13
        return None
    except OSError as exc:
        if exc.errno == errno.ELOOP:
            return None
        raise SandboxError(
            IO_ERROR, f"failed to resolve path: {exc.strerror or exc}"
        ) from exc


class Sandbox:
    """Resolves user/model supplied paths against a fixed root.

    The root is made absolute and symlink-resolved once, at construction.
    Every call to resolve() re-reads the filesystem; results are never cached
    because symlink targets may change between calls.
    """

    def __init__(self, root: str | os.PathLike):
        try:
            resolved = Path(root).expanduser().resolve(strict=True)
        except (OSError, RuntimeError) as exc:
            raise ConfigError(f"cannot resolve root {str(root)!r}: {exc}") from exc
        if not resolved.is_dir():
            raise ConfigError(f"root is not a directory: {root}")
        self.root = resolved

    def __repr__(self) -> str:
        return f"Sandbox(root={str(self.root)!r})"

    def resolve(self, user_path: str, access: AccessKind) -> Path:
        """Map user_path to an absolute real path inside the root.

        Raises:
            SandboxError: with code invalid_argument, not_found,
                permission_denied or io_error.
        """
        if not isinstance(user_path, str):
            raise SandboxError(INVALID_ARGUMENT, "path must be a string")
        if not user_path.strip():
            raise SandboxError(INVALID_ARGUMENT, "path cannot be empty")
        if "\x00" in user_path:
            raise SandboxError(INVALID_ARGUMENT, "path cannot contain NUL bytes")

        clean = os.path.normpath(user_path)
        if os.path.isabs(clean):
            candidate = Path(clean)
        else:
            candidate = Path(os.path.normpath(os.path.join(self.root, clean)))

        # Lexical escapes are refused before touching the filesystem, so the
        # answer never depends on what exists outside the root.
        if not self.contains(candidate):
            raise self._escape(user_path)

        if access is AccessKind.WRITE:
            real = self._resolve_for_write(candidate, user_path)
        else:
            real = _real_path(candidate)
            if real is None:
                raise SandboxError(
                    NOT_FOUND,
                    f"path not found: {user_path}",
                    self._suggest(candidate),
                )

        if not self.contains(real):
            raise self._escape(user_path)
        return real

    @staticmethod
    def _escape(user_path: str) -> SandboxError:
        return SandboxError(
            PERMISSION_DENIED,
            f"path escapes project root: {user_path}",
            [ESCAPE_HINT],
        )

    def _resolve_for_write(self, candidate: Path, user_path: str) -> Path:
        real = _real_path(candidate)
        if real is not None:
            return real

        if candidate.is_symlink():
            # Dangling link: the write would land wherever the link points.
            candidate = Path(os.path.realpath(candidate))

        parent = candidate.parent
        real_parent = _real_path(parent)
        if real_parent is None:
            raise SandboxError(
                NOT_FOUND,
                f"parent directory not found: {os.path.dirname(user_path) or '.'}",
                self._suggest(parent),
            )
        return real_parent / candidate.name

    def contains(self, path: Path) -> bool:
        """True if path equals the root or lies beneath it (lexical check)."""
        try:
            rel = os.path.relpath(path, self.root)
        except ValueError:
            # Different drives on Windows
            return False
        return rel != os.pardir and not rel.startswith(os.pardir + os.sep)

    def _suggest(self, missing: Path) -> list[str]:
        """Suggest up to three sibling names of a missing path.

        Case-insensitive prefix matches rank first, then substring matches.
        Nothing is suggested for directories outside the root.
        """
        real_parent = None
        try:
            real_parent = _real_path(missing.parent)
        except SandboxError:
            pass  # unreadable parent, no suggestions
        if real_parent is None or not self.contains(real_parent):
            return []
        try:
            names = sorted(os.listdir(real_parent))
        except OSError:
            return []

        needle = missing.name.lower()
        matches = [n for n in names if n.lower().startswith(needle)]
        matches += [n for n in names if needle in n.lower() and n not in matches]
        return [f"Did you mean '{name}'?" for name in matches[:MAX_SUGGESTIONS]]
