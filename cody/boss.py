"""Boss mode: autonomous operation until the operator presses ESC.

The controller replaces operator input with a fixed continuation prompt.
Cancellation is cooperative: ESC only sets a flag, and the flag is checked
between cycles, so a cycle in flight (including one waiting on an approval
prompt or a slow command) always finishes first.
"""

import contextlib
import logging
import os
import select
import sys
import threading

from . import fmt
from .settings import CancellationToken, RuntimeSettings

logger = logging.getLogger(__name__)

BOSS_CONTINUATION_PROMPT = """You are in autonomous boss mode. Decide what to work on next:
- Check todos.md for pending tasks (create it if needed)
- Or think of improvements to make this app more useful/attractive

Pick the most valuable action and execute it. When done, explain what you did."""

ESC_KEY = b"\x1b"
_POLL_INTERVAL = 0.1  # seconds


class EscapeListener:
    """Cancels a token when ESC is pressed on the controlling terminal.

    Used as a context manager. On entry stdin is switched to cbreak mode and
    a daemon thread polls it; on exit the thread stops and the previous
    terminal attributes are restored. When stdin is not a POSIX TTY the
    listener does nothing.
    """

    def __init__(self, token: CancellationToken, stream=None):
        self.token = token
        self.stream = stream if stream is not None else sys.stdin
        self._stop = threading.Event()
        self._paused = threading.Event()
        self._thread: threading.Thread | None = None
        self._saved_attrs = None

    def available(self) -> bool:
        try:
            return os.name == "posix" and self.stream.isatty()
        except (AttributeError, ValueError):
            return False

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *exc):
        self.stop()
        return False

    def start(self) -> None:
        if self._thread is not None or not self.available():
            return
        import termios
        import tty

        fd = self.stream.fileno()
        self._saved_attrs = termios.tcgetattr(fd)
        tty.setcbreak(fd)
        self._stop.clear()
        self._thread = threading.Thread(target=self._poll, args=(fd,), daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._thread is None:
            return
        self._stop.set()
        self._thread.join(timeout=1)
        self._thread = None
        self._restore()

    def _restore(self) -> None:
        if self._saved_attrs is None:
            return
        import termios

        try:
            termios.tcsetattr(
                self.stream.fileno(), termios.TCSADRAIN, self._saved_attrs
            )
        except (termios.error, ValueError, OSError):
            logger.debug("could not restore terminal attributes", exc_info=True)

    @contextlib.contextmanager
    def paused(self):
        """Give the terminal back (cooked mode) while another prompt reads it."""
        if self._thread is None:
            yield
            return
        import termios
        import tty

        self._paused.set()
        self._restore()
        try:
            yield
        finally:
            fd = self.stream.fileno()
            try:
                tty.setcbreak(fd)
            except termios.error:
                logger.debug("could not re-enter cbreak mode", exc_info=True)
            self._paused.clear()

    def _poll(self, fd: int) -> None:
        while not self._stop.is_set():
            if self._paused.is_set():
                self._stop.wait(_POLL_INTERVAL)
                continue
            try:
                ready, _, _ = select.select([fd], [], [], _POLL_INTERVAL)
            except (OSError, ValueError):
                return
            if not ready or self._paused.is_set():
                continue
            try:
                ch = os.read(fd, 1)
            except OSError:
                return
            if ch == ESC_KEY:
                logger.debug("ESC pressed, boss mode will stop after this cycle")
                fmt.info("ESC received - stopping after the current cycle...")
                self.token.cancel()


class BossMode:
    """Runs the agent loop unattended, cycle after cycle."""

    def __init__(
        self,
        agent,
        client,
        settings: RuntimeSettings,
        *,
        listener_factory=EscapeListener,
        prompt: str = BOSS_CONTINUATION_PROMPT,
    ):
        self.agent = agent
        self.client = client
        self.settings = settings
        self.listener_factory = listener_factory
        self.prompt = prompt
        self._listener = None

    def paused(self):
        """Suspend ESC polling while something else reads the terminal."""
        if self._listener is None:
            return contextlib.nullcontext()
        return self._listener.paused()

    def start(self, conversation) -> int:
        """Work until interrupted. Returns the number of cycles run."""
        settings = self.settings
        token = settings.interrupt

        cycles = 0
        try:
            settings.boss_mode = True
            token.clear()
            fmt.boss_started()
            self._listener = self.listener_factory(token)
            with self._listener:
                while not token.cancelled:
                    cycles += 1
                    fmt.boss_cycle(cycles)
                    try:
                        answer = self.agent.run(
                            conversation, self.prompt, unattended=True
                        )
                        fmt.answer(answer)
                    except Exception as e:
                        logger.debug("boss cycle %d failed", cycles, exc_info=True)
                        fmt.error(f"cycle {cycles} failed: {e}")

                    if conversation.needs_compaction():
                        fmt.info(f"compacting {conversation.size()} messages...")
                        if conversation.compact(self.client):
                            fmt.info("conversation compacted into a summary")
        finally:
            self._listener = None
            settings.boss_mode = False
            token.clear()
            fmt.boss_stopped(cycles)
        return cycles
