"""Shell command execution behind a dangerous-pattern approval gate."""

import logging
import os
import re
import subprocess
import sys
import threading
from dataclasses import dataclass

from .settings import RuntimeSettings
from .tools import ToolResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30  # seconds
MAX_OUTPUT = 1024 * 1024  # 1 MiB of combined stdout/stderr
_KILL_WAIT_TIMEOUT = 5  # seconds to wait for process to die after kill signals


@dataclass(frozen=True)
class Approve:
    pass


@dataclass(frozen=True)
class Reject:
    pass


@dataclass(frozen=True)
class Redirect:
    instruction: str


ApprovalResponse = Approve | Reject | Redirect


DANGEROUS_PATTERNS: list[tuple[re.Pattern, str]] = [
    # Destructive file operations
    (re.compile(r"\brm\s+-rf\b"), "Recursive force delete"),
    (re.compile(r"\brm\s+-r\b"), "Recursive delete"),
    (re.compile(r"\brm\s+-f\b"), "Force delete"),
    (re.compile(r"\brmdir\b"), "Directory removal"),
    # System commands
    (re.compile(r"\bsudo\b"), "Superuser command"),
    (re.compile(r"\bshutdown\b"), "System shutdown"),
    (re.compile(r"\breboot\b"), "System reboot"),
    (re.compile(r"\bkill\s+-9\b"), "Force kill process"),
    (re.compile(r"\bkillall\b"), "Kill all processes"),
    # Disk operations
    (re.compile(r"\bdd\b"), "Low-level disk operation"),
    (re.compile(r"\bmkfs\b"), "Filesystem creation"),
    # Network downloads piped to a shell
    (re.compile(r"curl.*\|\s*(ba)?sh"), "Remote script execution"),
    (re.compile(r"wget.*\|\s*(ba)?sh"), "Remote script execution"),
    # Git history rewrites
    (re.compile(r"\bgit\s+push\s+.*--force\b"), "Force push"),
    (re.compile(r"\bgit\s+reset\s+--hard\b"), "Hard reset"),
]


def classify(command: str) -> str | None:
    """Return the reason a command needs approval, or None if it is safe."""
    for pattern, reason in DANGEROUS_PATTERNS:
        if pattern.search(command):
            return reason
    return None


def _kill_process_tree(proc: subprocess.Popen) -> None:
    """Kill a process and its descendants, then wait for exit.

    On Unix, uses process groups (via start_new_session=True) to kill the
    entire tree. On Windows, uses taskkill /T /F to kill the process tree.
    """
    if sys.platform != "win32":
        import signal

        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except OSError:
            pass  # already exited
    else:
        try:
            subprocess.run(
                ["taskkill", "/T", "/F", "/PID", str(proc.pid)],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                timeout=5,
            )
        except (OSError, subprocess.TimeoutExpired):
            pass  # best-effort
    try:
        proc.kill()
    except OSError:
        pass  # already dead
    try:
        proc.wait(timeout=_KILL_WAIT_TIMEOUT)
    except subprocess.TimeoutExpired:
        pass  # unkillable


def _capture(proc: subprocess.Popen, timeout: float, max_output: int):
    """Wait for a process, collecting its output under a size ceiling.

    Returns (output_bytes, timed_out, overflowed). The process tree is
    killed as soon as either limit is hit.
    """
    chunks: list[bytes] = []
    total = 0
    overflowed = threading.Event()

    def _reader():
        nonlocal total
        try:
            while True:
                chunk = proc.stdout.read(4096)
                if not chunk:
                    break
                if overflowed.is_set():
                    continue  # keep draining until the kill lands
                chunks.append(chunk[: max_output - total])
                total += len(chunks[-1])
                if total >= max_output and len(chunk) > len(chunks[-1]):
                    overflowed.set()
                    _kill_process_tree(proc)
        except (OSError, ValueError):
            pass  # pipe closed/broken after kill

    reader_thread = threading.Thread(target=_reader, daemon=True)
    reader_thread.start()

    timed_out = False
    try:
        proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        timed_out = True
        _kill_process_tree(proc)

    reader_thread.join(timeout=2)
    proc.stdout.close()
    return b"".join(chunks), timed_out, overflowed.is_set()


def run_shell(
    command: str,
    *,
    cwd: str | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    max_output: int = MAX_OUTPUT,
) -> ToolResult:
    """Run ``command`` through the platform shell."""
    if sys.platform == "win32":
        shell_cmd = ["cmd.exe", "/c", command]
    else:
        shell_cmd = ["/bin/sh", "-c", command]

    popen_kwargs: dict = dict(
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        stdin=subprocess.DEVNULL,
        cwd=cwd,
    )
    if sys.platform != "win32":
        popen_kwargs["start_new_session"] = True

    try:
        proc = subprocess.Popen(shell_cmd, **popen_kwargs)
    except OSError as e:
        return ToolResult(False, f"Failed to execute command: {e}")

    raw, timed_out, overflowed = _capture(proc, timeout, max_output)
    output = raw.decode("utf-8", errors="replace").strip()

    if timed_out:
        return ToolResult(
            False, f"Command timed out after {timeout:g}s and was killed.\n{output}".strip()
        )
    if overflowed:
        return ToolResult(
            False,
            f"Command output exceeded {max_output} bytes and the command was killed.\n"
            f"{output[:2000]}".strip(),
        )
    if proc.returncode != 0:
        return ToolResult(
            False, f"Command failed (exit code {proc.returncode}): {output}".rstrip()
        )
    return ToolResult(True, output or "(no output)")


class CommandGate:
    """The run_command tool: dangerous commands need operator approval."""

    def __init__(
        self,
        settings: RuntimeSettings,
        *,
        cwd: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_output: int = MAX_OUTPUT,
    ):
        self.settings = settings
        self.cwd = cwd
        self.timeout = timeout
        self.max_output = max_output

    def _execute(self, command: str) -> ToolResult:
        return run_shell(
            command, cwd=self.cwd, timeout=self.timeout, max_output=self.max_output
        )

    def run(self, command: str) -> ToolResult:
        reason = classify(command)
        if reason is None:
            return self._execute(command)

        approval = self.settings.approval
        if approval is None:
            logger.info("blocked %r (%s), no approval prompt available", command, reason)
            return ToolResult(
                False,
                f'BLOCKED: "{command}" - {reason}. '
                "Run interactively for an approval prompt.",
            )

        response = approval.ask(command, reason)
        if isinstance(response, Approve):
            logger.info("operator approved %r", command)
            return self._execute(command)
        if isinstance(response, Redirect):
            return ToolResult(
                False,
                f'COMMAND REJECTED. The operator refused to run "{command}" and said: '
                f'"{response.instruction}". The command did not run and produced no '
                "output. Follow the operator's instruction and do NOT claim the "
                "command ran.",
                silent=True,
            )
        return ToolResult(
            False,
            f'COMMAND REJECTED. The operator refused to run "{command}". '
            "It did not run and produced no output. Do NOT claim it ran.",
            silent=True,
        )
