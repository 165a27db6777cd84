"""Runtime toggles shared by the agent loop, command gate and boss mode."""

import threading
from dataclasses import dataclass, field
from typing import Protocol


class CancellationToken:
    """A flag that any source (key listener, timer, signal) can set.

    Consumers poll ``cancelled`` between units of work; nothing is preempted.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def clear(self) -> None:
        self._event.clear()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class ApprovalProtocol(Protocol):
    def ask(self, command: str, reason: str): ...


@dataclass
class RuntimeSettings:
    show_thinking: bool = True
    debug: bool = False
    boss_mode: bool = False
    interrupt: CancellationToken = field(default_factory=CancellationToken)
    approval: ApprovalProtocol | None = None
