"""Tests for the append-only answer history (.burrow/HISTORY.md)."""

import os
import re

import pytest

from burrow import agent, fmt
from burrow.agent import MAX_HISTORY_SIZE, append_history, state_dir
from burrow.sandbox import Sandbox, SandboxError


@pytest.fixture(autouse=True)
def _init_fmt():
    fmt.init(color=False, no_color=False)


@pytest.fixture
def sandbox(tmp_path):
    root = tmp_path / "ws"
    root.mkdir()
    return Sandbox(root)


def _history(sandbox):
    return sandbox.root / ".burrow" / "HISTORY.md"


# ---------------------------------------------------------------------------
# Core behavior
# ---------------------------------------------------------------------------


class TestCoreBehavior:
    def test_append_creates_file(self, sandbox):
        append_history(sandbox, "What is 2+2?", "4")
        content = _history(sandbox).read_text()
        assert "What is 2+2?" in content
        assert "4" in content

    def test_append_multiple_entries(self, sandbox):
        append_history(sandbox, "Q1", "A1")
        append_history(sandbox, "Q2", "A2")
        append_history(sandbox, "Q3", "A3")
        content = _history(sandbox).read_text()
        assert content.count("---") == 3
        assert content.index("A1") < content.index("A2") < content.index("A3")

    def test_entry_format(self, sandbox):
        append_history(sandbox, "my question", "my answer")
        content = _history(sandbox).read_text()
        assert content.startswith("---\n\n")
        assert re.search(
            r"\*\*\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\*\* \*my question\*", content
        )
        assert "\n\nmy answer\n\n" in content

    @pytest.mark.parametrize("answer", ["", "   \n"])
    def test_blank_answer_skipped(self, sandbox, answer):
        append_history(sandbox, "q", answer)
        assert not _history(sandbox).exists()

    def test_long_question_truncated(self, sandbox):
        append_history(sandbox, "x" * 250, "answer")
        content = _history(sandbox).read_text()
        assert "x" * 200 + "..." in content
        assert "x" * 201 not in content


# ---------------------------------------------------------------------------
# Limits and failures
# ---------------------------------------------------------------------------


class TestLimits:
    def test_size_cap(self, sandbox, capsys):
        path = _history(sandbox)
        path.parent.mkdir()
        path.write_text("x" * MAX_HISTORY_SIZE)
        append_history(sandbox, "q", "a")
        assert path.stat().st_size == MAX_HISTORY_SIZE
        assert "at capacity" in capsys.readouterr().err

    def test_write_failure_only_warns(self, sandbox, capsys, monkeypatch):
        def boom(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(agent.Path, "open", boom)
        append_history(sandbox, "q", "a")
        assert "failed to write history entry" in capsys.readouterr().err


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
class TestSymlinkedStateDir:
    def test_state_dir_outside_root_is_refused(self, sandbox, tmp_path, capsys):
        elsewhere = tmp_path / "elsewhere"
        elsewhere.mkdir()
        (sandbox.root / ".burrow").symlink_to(elsewhere)

        append_history(sandbox, "q", "a")

        assert list(elsewhere.iterdir()) == []
        assert "history path rejected" in capsys.readouterr().err

    def test_state_dir_raises_for_escape(self, sandbox, tmp_path):
        elsewhere = tmp_path / "elsewhere"
        elsewhere.mkdir()
        (sandbox.root / ".burrow").symlink_to(elsewhere)
        with pytest.raises(SandboxError):
            state_dir(sandbox)

    def test_history_file_symlink_outside_is_refused(self, sandbox, tmp_path):
        target = tmp_path / "stolen.md"
        (sandbox.root / ".burrow").mkdir()
        _history(sandbox).symlink_to(target)
        append_history(sandbox, "q", "a")
        assert not target.exists()
