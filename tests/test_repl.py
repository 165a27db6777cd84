"""Tests for the CLI: argument parsing, approval prompt, and the REPL loop."""

import contextlib
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from cody import cli
from cody.cli import (
    TerminalApproval,
    _repl_reset,
    _toggle_debug,
    _toggle_thinking,
    build_parser,
    cli_overrides,
    repl_loop,
)
from cody.agent import AgentLoop
from cody.config import Config
from cody.conversation import Conversation, Message, ToolCallRequest
from cody.errors import AgentError
from cody.gate import Approve, Redirect, Reject
from cody.settings import RuntimeSettings
from cody.tools import build_registry


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


class TestParser:
    def test_defaults(self):
        args = build_parser().parse_args([])
        assert args.question is None
        assert args.provider is None
        assert not args.boss

    def test_question_and_flags(self):
        args = build_parser().parse_args(
            ["fix the bug", "--provider", "openrouter", "--no-thinking", "--debug"]
        )
        assert args.question == "fix the bug"
        overrides = cli_overrides(args)
        assert overrides["provider"] == "openrouter"
        assert overrides["show_thinking"] is False
        assert overrides["debug"] is True
        assert "color" not in overrides

    def test_unknown_provider_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--provider", "nope"])

    def test_color_flags_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--color", "--no-color"])

    def test_no_color_override(self):
        args = build_parser().parse_args(["--no-color"])
        assert cli_overrides(args)["color"] is False

    def test_version(self, capsys, monkeypatch):
        monkeypatch.setattr("sys.argv", ["cody", "--version"])
        with pytest.raises(SystemExit) as exc:
            cli.main()
        assert exc.value.code == 0
        assert capsys.readouterr().out.strip()

    def test_init_config(self, capsys, monkeypatch):
        monkeypatch.setattr("sys.argv", ["cody", "--init-config"])
        with pytest.raises(SystemExit):
            cli.main()
        assert "# provider" in capsys.readouterr().out


# ---------------------------------------------------------------------------
# Approval prompt
# ---------------------------------------------------------------------------


def _scripted_prompt(*answers):
    queue = list(answers)

    def prompt(message):
        item = queue.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    return prompt


class TestTerminalApproval:
    def test_yes(self):
        assert TerminalApproval(prompt_fn=_scripted_prompt("y")).ask("rm -rf x", "r") == Approve()

    def test_no(self):
        assert TerminalApproval(prompt_fn=_scripted_prompt("No")).ask("rm -rf x", "r") == Reject()

    def test_instruct(self):
        approval = TerminalApproval(prompt_fn=_scripted_prompt("i", "  use trash instead "))
        assert approval.ask("rm -rf x", "r") == Redirect("use trash instead")

    def test_empty_instruction_rejects(self):
        approval = TerminalApproval(prompt_fn=_scripted_prompt("i", ""))
        assert approval.ask("rm -rf x", "r") == Reject()

    def test_reprompts_on_garbage(self):
        approval = TerminalApproval(prompt_fn=_scripted_prompt("maybe", "yes"))
        assert approval.ask("rm -rf x", "r") == Approve()

    def test_eof_rejects(self):
        approval = TerminalApproval(prompt_fn=_scripted_prompt(EOFError()))
        assert approval.ask("rm -rf x", "r") == Reject()

    def test_pauses_listener(self):
        events = []

        @contextlib.contextmanager
        def pause():
            events.append("pause")
            yield
            events.append("resume")

        approval = TerminalApproval(pause=pause, prompt_fn=_scripted_prompt("y"))
        approval.ask("sudo ls", "Superuser command")
        assert events == ["pause", "resume"]


# ---------------------------------------------------------------------------
# REPL helpers and loop
# ---------------------------------------------------------------------------


def test_toggle_thinking():
    settings = RuntimeSettings()
    _toggle_thinking(settings)
    assert settings.show_thinking is False
    _toggle_thinking(settings)
    assert settings.show_thinking is True


def test_toggle_debug():
    settings = RuntimeSettings()
    _toggle_debug(settings)
    assert settings.debug is True
    _toggle_debug(settings)
    assert settings.debug is False


def test_reset(tmp_path):
    conv = Conversation(cwd=str(tmp_path))
    conv.add_user("hi")
    _repl_reset(conv)
    assert conv.size() == 0


def _run_repl(lines, tmp_path, monkeypatch, agent=None, boss=None):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    settings = RuntimeSettings()
    conv = Conversation(cwd=str(tmp_path))
    if agent is None:
        agent = MagicMock()
        agent.run.return_value = "an answer"
    boss = boss or MagicMock()
    session = MagicMock()
    session.prompt.side_effect = list(lines)
    with patch("prompt_toolkit.PromptSession", return_value=session), patch(
        "prompt_toolkit.history.FileHistory"
    ):
        repl_loop(agent, boss, conv, client=None, settings=settings, config=Config())
    return SimpleNamespace(agent=agent, boss=boss, settings=settings, conv=conv)


def test_repl_dispatches_commands(tmp_path, monkeypatch):
    result = _run_repl(["/think", "  ", "write a test", "/exit"], tmp_path, monkeypatch)
    assert result.settings.show_thinking is False
    result.agent.run.assert_called_once_with(result.conv, "write a test")


def test_repl_boss_command(tmp_path, monkeypatch):
    result = _run_repl(["/boss", "/quit"], tmp_path, monkeypatch)
    result.boss.start.assert_called_once_with(result.conv)


def test_repl_ends_on_eof(tmp_path, monkeypatch):
    result = _run_repl(["hello", EOFError()], tmp_path, monkeypatch)
    assert result.agent.run.call_count == 1


def test_repl_survives_agent_errors(tmp_path, monkeypatch):
    failing = MagicMock()
    failing.run.side_effect = AgentError("LLM call failed: refused")
    result = _run_repl(["first", "second", "/exit"], tmp_path, monkeypatch, agent=failing)
    assert result.agent.run.call_count == 2


def test_repl_survives_boss_interrupt(tmp_path, monkeypatch):
    boss = MagicMock()
    boss.start.side_effect = KeyboardInterrupt
    result = _run_repl(["/boss", "after", "/exit"], tmp_path, monkeypatch, boss=boss)
    boss.start.assert_called_once()
    result.agent.run.assert_called_once_with(result.conv, "after")


def test_ask_after_interrupted_tool_call(tmp_path):
    requests = []
    replies = [
        Message(
            role="assistant",
            tool_calls=(ToolCallRequest(id="c1", name="run_command", arguments='{"command": "ls"}'),),
        ),
        Message(role="assistant", content="fine"),
    ]

    def complete(messages, tools=None, max_tokens=None):
        requests.append(messages)
        return replies.pop(0)

    def interrupt(command):
        raise KeyboardInterrupt

    agent = AgentLoop(
        SimpleNamespace(complete=complete),
        build_registry(SimpleNamespace(run=interrupt)),
        RuntimeSettings(),
    )
    conv = Conversation(cwd=str(tmp_path))
    cli._ask(agent, conv, None, "list files")
    cli._ask(agent, conv, None, "continue")

    roles = [m["role"] for m in requests[1]]
    assert roles == ["system", "user", "assistant", "tool", "user"]
