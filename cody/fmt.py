"""ANSI-formatted terminal output using Rich."""

import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.rule import Rule
from rich.text import Text

_console = Console(stderr=True)
_out = Console()
_log_handler: RichHandler | None = None


def init(*, color: bool = False, no_color: bool = False) -> None:
    """Reconfigure the module-level consoles from CLI flags.

    Call once at startup, before any output.
    """
    global _console, _out
    kwargs: dict = {}
    if color:
        kwargs["force_terminal"] = True
        kwargs["no_color"] = False
    if no_color:
        kwargs["no_color"] = True
    _console = Console(stderr=True, **kwargs)
    _out = Console(**kwargs)


def configure_logging(debug: bool) -> None:
    """Route the ``cody`` logger through Rich; DEBUG when debug is on."""
    global _log_handler
    logger = logging.getLogger("cody")
    if _log_handler is None:
        _log_handler = RichHandler(
            console=_console, show_path=False, markup=False, rich_tracebacks=True
        )
        logger.addHandler(_log_handler)
        logger.propagate = False
    _log_handler.console = _console
    level = logging.DEBUG if debug else logging.WARNING
    logger.setLevel(level)
    _log_handler.setLevel(level)


# -- Turn structure ----------------------------------------------------------


def turn_header(n: int, max_n: int | None, token_est: int | None = None) -> None:
    title = f"Cycle {n}/{max_n}" if max_n is not None else f"Cycle {n}"
    if token_est is not None:
        title += f" (~{token_est} tokens)"
    _console.print(Rule(title, style="cyan"))


def llm_spinner(label: str = "Thinking"):
    """Return a Rich Status context manager that spins on stderr."""
    return _console.status(f"  {label}", spinner="dots")


def completion(cycles: int, outcome: str) -> None:
    if outcome == "ok":
        _console.print(
            Text(f"  ✓ Agent finished: {cycles} cycles", style="bold green")
        )
    else:
        _console.print(
            Text(f"  Agent stopped: {cycles} cycles, {outcome}", style="bold red")
        )


# -- Tool calls --------------------------------------------------------------


def tool_call(name: str, args_json: str) -> None:
    header = Text()
    header.append("  ▶ ", style="bold magenta")
    header.append(name, style="bold magenta")
    _console.print(header)
    if args_json:
        for line in args_json.splitlines():
            _console.print(Text(f"    {line}", style="dim"))


def tool_result(name: str, elapsed: float, preview: str) -> None:
    header = Text()
    header.append(f"  ✓ {name}", style="green")
    header.append(f"  {elapsed:.1f}s", style="green")
    _console.print(header)
    if preview:
        _console.print(Text(f"    {preview}", style="dim"))


def tool_error(name: str, msg: str) -> None:
    header = Text()
    header.append(f"  ✗ {name}", style="bold red")
    header.append(f"  {msg}", style="red")
    _console.print(header)


def tool_rejected(name: str) -> None:
    _console.print(Text(f"  ✗ {name}  not run (rejected by operator)", style="yellow"))


# -- Command approval --------------------------------------------------------


def approval_request(command: str, reason: str) -> None:
    line = Text()
    line.append("  ⚠ Approval required: ", style="bold yellow")
    line.append(reason, style="yellow")
    _console.print(line)
    _console.print(Text(f"    $ {command}", style="bold"))


# -- Assistant text ----------------------------------------------------------


def assistant_text(text: str) -> None:
    line = Text()
    line.append("  [assistant] ", style="blue")
    line.append(text)
    _console.print(line)


def answer(text: str) -> None:
    """Render a final answer as markdown on stdout."""
    _out.print(Markdown(text))


# -- Boss mode ---------------------------------------------------------------


def boss_started() -> None:
    _console.print(
        Text(
            "Entering boss mode - working autonomously on todos.md or app improvements...",
            style="bold magenta",
        )
    )
    _console.print(Text("  Press ESC to stop after the current cycle.", style="dim"))


def boss_cycle(n: int) -> None:
    _console.print(Rule(Text(f"[Cycle {n}]"), style="magenta"))


def boss_stopped(cycles: int) -> None:
    _console.print(
        Text(
            f"[Boss mode ended after {cycles} cycle(s) - returning to normal]",
            style="bold magenta",
        )
    )


# -- Diagnostics -------------------------------------------------------------


def info(msg: str) -> None:
    _console.print(Text(f"  {msg}", style="dim"))


def model_info(msg: str) -> None:
    _console.print(Text(f"  {msg}", style="dim"))


def context_stats(label: str, tokens: int) -> None:
    _console.print(Text(f"  {label}: ~{tokens} tokens", style="dim"))


def warning(msg: str) -> None:
    line = Text()
    line.append("  ⚠ Warning: ", style="yellow")
    line.append(msg, style="yellow")
    _console.print(line)


def error(msg: str) -> None:
    line = Text()
    line.append("Error: ", style="bold red")
    line.append(msg, style="red")
    _console.print(line)


def repl_banner(provider: str, model: str, base_url: str) -> None:
    _console.print(Text("Cody - an open source coding CLI", style="bold cyan"))
    _console.print(
        Text(f"  {provider} · {model} · {base_url}", style="dim")
    )
    _console.print(Text("  Type /help for commands, /exit or Ctrl-D to quit.", style="dim"))
