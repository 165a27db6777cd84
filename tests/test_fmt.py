"""Tests for the fmt module (Rich-formatted output helpers)."""

from io import StringIO

from rich.console import Console

from cody import fmt


def _capture(func, *args, **kwargs):
    """Call a fmt function with a captured console and return plain-text output."""
    buf = StringIO()
    old = fmt._console
    fmt._console = Console(file=buf, no_color=True, width=80)
    try:
        func(*args, **kwargs)
    finally:
        fmt._console = old
    return buf.getvalue()


class TestTurnHeader:
    def test_attended(self):
        out = _capture(fmt.turn_header, 3, 10, 4200)
        assert "Cycle 3/10" in out
        assert "4200 tokens" in out

    def test_unattended_has_no_cap(self):
        out = _capture(fmt.turn_header, 12, None)
        assert "Cycle 12" in out


class TestCompletion:
    def test_ok(self):
        out = _capture(fmt.completion, 5, "ok")
        assert "Agent finished" in out
        assert "5 cycles" in out

    def test_capped(self):
        out = _capture(fmt.completion, 10, "hit maximum iterations (10)")
        assert "Agent stopped" in out
        assert "maximum iterations" in out


class TestToolLines:
    def test_call(self):
        out = _capture(fmt.tool_call, "read_file", '{\n  "path": "foo.txt"\n}')
        assert "read_file" in out
        assert "foo.txt" in out

    def test_result(self):
        out = _capture(fmt.tool_result, "read_file", 0.1, "Hello world")
        assert "0.1s" in out
        assert "Hello world" in out

    def test_error(self):
        out = _capture(fmt.tool_error, "read_file", "file not found")
        assert "file not found" in out

    def test_rejected(self):
        out = _capture(fmt.tool_rejected, "run_command")
        assert "run_command" in out
        assert "rejected" in out


class TestApprovalAndBoss:
    def test_approval_request(self):
        out = _capture(fmt.approval_request, "rm -rf build", "Recursive force delete")
        assert "Recursive force delete" in out
        assert "$ rm -rf build" in out

    def test_boss_banners(self):
        assert "boss mode" in _capture(fmt.boss_started).lower()
        assert "[Cycle 4]" in _capture(fmt.boss_cycle, 4)
        assert "2 cycle" in _capture(fmt.boss_stopped, 2)


def test_answer_renders_markdown_on_stdout():
    buf = StringIO()
    old = fmt._out
    fmt._out = Console(file=buf, no_color=True, width=80)
    try:
        fmt.answer("**bold** text")
    finally:
        fmt._out = old
    out = buf.getvalue()
    assert "bold text" in out
    assert "**" not in out


def test_context_stats():
    out = _capture(fmt.context_stats, "before", 1234)
    assert "before: ~1234 tokens" in out
