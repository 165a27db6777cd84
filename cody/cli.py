"""Command-line entry point and interactive REPL."""

import argparse
import contextlib
import logging
import os
import sys
from importlib import metadata
from pathlib import Path

from . import fmt
from .agent import AgentLoop
from .boss import BossMode
from .client import PROVIDERS, CompletionClient
from .config import Config, generate_config, global_config_dir, resolve_config
from .conversation import Conversation, estimate_tokens
from .errors import AgentError
from .gate import Approve, ApprovalResponse, CommandGate, Redirect, Reject
from .settings import RuntimeSettings
from .tools import build_registry

logger = logging.getLogger(__name__)


def build_parser():
    """Build and return the argument parser."""
    parser = argparse.ArgumentParser(
        prog="cody",
        usage="%(prog)s [options] [question]",
        description="An open source coding agent for local and hosted LLMs.",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print the version and exit.",
    )
    parser.add_argument(
        "question",
        nargs="?",
        default=None,
        help="Answer a single question and exit. Without it, start the REPL.",
    )
    parser.add_argument(
        "--provider",
        choices=list(PROVIDERS),
        default=None,
        help="LLM provider: lmstudio (local) or openrouter "
        "(default: openrouter when OPENROUTER_API_KEY is set).",
    )
    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="Model identifier (overrides CODY_MODEL).",
    )
    parser.add_argument(
        "--base-url",
        default=None,
        help="Endpoint base URL (default: http://localhost:1234/v1 for lmstudio).",
    )
    parser.add_argument(
        "--api-key",
        type=str,
        default=None,
        help="API key for the provider (overrides OPENROUTER_API_KEY).",
    )
    parser.add_argument(
        "--temperature",
        type=float,
        default=None,
        help="Sampling temperature (default: 0.1).",
    )
    parser.add_argument(
        "--max-tokens",
        type=int,
        default=None,
        help="Maximum output tokens per response (default: 8192).",
    )
    parser.add_argument(
        "--no-thinking",
        action="store_true",
        help="Hide the model's <think> reasoning.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Show turn headers, token estimates and internal logs.",
    )
    parser.add_argument(
        "--boss",
        action="store_true",
        help="Start in boss mode: work autonomously until ESC is pressed.",
    )
    parser.add_argument(
        "--init-config",
        action="store_true",
        help="Print a commented config template and exit.",
    )

    color_group = parser.add_mutually_exclusive_group()
    color_group.add_argument(
        "--color",
        action="store_true",
        help="Force ANSI color even when stderr is not a TTY.",
    )
    color_group.add_argument(
        "--no-color",
        action="store_true",
        help="Disable ANSI color even when stderr is a TTY.",
    )

    return parser


def cli_overrides(args: argparse.Namespace) -> dict:
    """Options the user actually passed, keyed like the config file."""
    overrides = {
        "provider": args.provider,
        "model": args.model,
        "base_url": args.base_url,
        "api_key": args.api_key,
        "temperature": args.temperature,
        "max_tokens": args.max_tokens,
    }
    if args.no_thinking:
        overrides["show_thinking"] = False
    if args.debug:
        overrides["debug"] = True
    if args.color:
        overrides["color"] = True
    elif args.no_color:
        overrides["color"] = False
    return overrides


# ---------------------------------------------------------------------------
# Command approval
# ---------------------------------------------------------------------------


class TerminalApproval:
    """Asks the operator about a dangerous command on the terminal.

    ``pause`` returns a context manager that hands the terminal over while
    the prompt is shown (boss mode's ESC listener is paused through it).
    """

    CHOICES = "[y]es / [n]o / [i]nstruct > "

    def __init__(self, pause=None, prompt_fn=None):
        self.pause = pause or contextlib.nullcontext
        if prompt_fn is None:
            from prompt_toolkit import prompt as prompt_fn
        self.prompt_fn = prompt_fn

    def ask(self, command: str, reason: str) -> ApprovalResponse:
        fmt.approval_request(command, reason)
        try:
            with self.pause():
                while True:
                    choice = self.prompt_fn(self.CHOICES).strip().lower()
                    if choice in ("y", "yes"):
                        return Approve()
                    if choice in ("n", "no"):
                        return Reject()
                    if choice in ("i", "instruct"):
                        instruction = self.prompt_fn("Instruction for the agent > ")
                        instruction = instruction.strip()
                        if not instruction:
                            return Reject()
                        return Redirect(instruction)
                    fmt.warning("please answer y, n or i")
        except (EOFError, KeyboardInterrupt):
            return Reject()


# ---------------------------------------------------------------------------
# REPL command helpers
# ---------------------------------------------------------------------------


def _repl_help() -> None:
    """Print available REPL commands."""
    fmt.info(
        "Available commands:\n"
        "  /help              Show this help message\n"
        "  /think             Toggle display of the model's reasoning\n"
        "  /debug             Toggle debug output\n"
        "  /boss              Work autonomously until ESC is pressed\n"
        "  /compact           Summarize the conversation to save context\n"
        "  /reset, /clear     Start a fresh conversation\n"
        "  /exit, /quit       Exit the REPL"
    )


def _toggle_thinking(settings: RuntimeSettings) -> None:
    settings.show_thinking = not settings.show_thinking
    fmt.info(f"thinking display {'on' if settings.show_thinking else 'off'}")


def _toggle_debug(settings: RuntimeSettings) -> None:
    settings.debug = not settings.debug
    fmt.configure_logging(settings.debug)
    fmt.info(f"debug output {'on' if settings.debug else 'off'}")


def _repl_reset(conversation: Conversation) -> None:
    dropped = conversation.size()
    conversation.reset()
    fmt.info(f"conversation reset ({dropped} messages removed)")


def _repl_compact(conversation: Conversation, client) -> None:
    before = estimate_tokens(conversation.to_wire())
    fmt.context_stats("before", before)
    if not conversation.compact(client):
        fmt.info("nothing to compact")
        return
    fmt.context_stats("after", estimate_tokens(conversation.to_wire()))


def _boss(boss: BossMode, conversation: Conversation) -> None:
    """Run boss mode from the REPL; Ctrl-C returns to the prompt."""
    try:
        boss.start(conversation)
    except KeyboardInterrupt:
        fmt.warning("interrupted, boss mode aborted.")


def _ask(agent: AgentLoop, conversation: Conversation, client, text: str) -> None:
    """One attended operator turn. Errors are reported, never raised."""
    try:
        answer = agent.run(conversation, text)
    except KeyboardInterrupt:
        fmt.warning("interrupted, question aborted.")
        return
    except AgentError as e:
        logger.debug("turn failed", exc_info=True)
        fmt.error(str(e))
        return
    fmt.answer(answer)

    if conversation.needs_compaction():
        fmt.info(f"compacting {conversation.size()} messages...")
        conversation.compact(client)


def repl_loop(
    agent: AgentLoop,
    boss: BossMode,
    conversation: Conversation,
    client,
    settings: RuntimeSettings,
    config: Config,
) -> None:
    """Interactive read-eval-print loop."""
    from prompt_toolkit import PromptSession
    from prompt_toolkit.formatted_text import FormattedText
    from prompt_toolkit.history import FileHistory

    history_path = global_config_dir() / "history"
    history_path.parent.mkdir(parents=True, exist_ok=True)
    session = PromptSession(
        history=FileHistory(str(history_path)),
        enable_history_search=True,
    )
    prompt_text = FormattedText([("bold fg:ansicyan", "cody> ")])

    fmt.repl_banner(config.provider, config.model, config.base_url)

    while True:
        try:
            print(file=sys.stderr)  # blank line before prompt
            line = session.prompt(prompt_text)
        except (EOFError, KeyboardInterrupt):
            print(file=sys.stderr)  # newline after ^D / ^C
            break

        line = line.strip()
        if not line:
            continue

        cmd = line.split(None, 1)[0].lower()
        if cmd in ("/exit", "/quit"):
            break
        elif cmd == "/help":
            _repl_help()
        elif cmd == "/think":
            _toggle_thinking(settings)
        elif cmd == "/debug":
            _toggle_debug(settings)
        elif cmd in ("/reset", "/clear"):
            _repl_reset(conversation)
        elif cmd == "/compact":
            _repl_compact(conversation, client)
        elif cmd == "/boss":
            _boss(boss, conversation)
        else:
            _ask(agent, conversation, client, line)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main():
    parser = build_parser()
    args = parser.parse_args()

    if args.version:
        try:
            version = metadata.version("cody")
        except metadata.PackageNotFoundError:
            version = "unknown"
        print(version)
        sys.exit(0)

    if args.init_config:
        print(generate_config(project=False))
        sys.exit(0)

    fmt.init(color=args.color, no_color=args.no_color)
    fmt.configure_logging(args.debug)

    try:
        _run_main(args)
    except AgentError as e:
        fmt.error(str(e))
        sys.exit(1)


def _run_main(args):
    cwd = os.getcwd()
    config = resolve_config(cli_overrides(args), Path(cwd))
    if config.color is not None:
        fmt.init(color=config.color, no_color=not config.color)
    fmt.configure_logging(config.debug)

    client = CompletionClient(
        provider=config.provider,
        model=config.model,
        base_url=config.base_url,
        api_key=config.api_key,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
    )
    settings = RuntimeSettings(show_thinking=config.show_thinking, debug=config.debug)
    gate = CommandGate(settings, cwd=cwd, timeout=config.command_timeout)
    registry = build_registry(gate)
    conversation = Conversation(cwd)
    agent = AgentLoop(
        client, registry, settings, max_iterations=config.max_iterations
    )
    boss = BossMode(agent, client, settings)

    interactive = sys.stdin.isatty()
    if interactive:
        settings.approval = TerminalApproval(pause=boss.paused)

    if config.debug:
        fmt.model_info(f"{config.provider}: {config.model} at {config.base_url}")

    if args.boss:
        boss.start(conversation)
        return

    if args.question is not None:
        answer = agent.run(conversation, args.question)
        fmt.answer(answer)
        return

    if not interactive:
        # Piped input: treat the whole of stdin as one question
        question = sys.stdin.read().strip()
        if not question:
            raise AgentError("no question given and stdin is empty")
        fmt.answer(agent.run(conversation, question))
        return

    repl_loop(agent, boss, conversation, client, settings, config)


if __name__ == "__main__":
    main()
