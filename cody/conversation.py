"""Conversation history: an append-only message log behind a fixed system prompt."""

import json
import logging
import os
from dataclasses import dataclass

from .errors import AgentError
from .thinking import strip_thinking

logger = logging.getLogger(__name__)

COMPACTION_THRESHOLD = 30
TOOL_PREVIEW_CHARS = 200
SUMMARY_MAX_TOKENS = 1024
SUMMARY_PREFIX = "[Summary of the conversation so far]"

SUMMARY_PROMPT = (
    "You are compacting the history of a coding session so it can continue "
    "with less context. Write a status report of at most 300 words covering: "
    "the goals the user asked for, what has been done (files created or "
    "changed, commands run), what is still pending, and any decisions or "
    "facts needed to keep going. Use plain prose or short bullet points. "
    "Do not call tools.\n\n"
    "Transcript:\n\n"
)

_encoder = None


def system_prompt(cwd: str | None = None) -> str:
    """Build the system prompt for the current working directory."""
    cwd = cwd or os.getcwd()
    return f"""You are Cody, an open source coding CLI.

Working directory: {cwd}

IMPORTANT: You are an AGENT that takes ACTION. Don't just describe what to do - DO IT.
- When asked to fix/change/add something: READ the file, then WRITE the changes
- When asked to refactor: UPDATE all related files, not just the one mentioned
- When asked to create something: WRITE the file, don't just show code
- Only explain without acting if explicitly asked to "explain" or "describe"

Workflow:
1. List directory to understand project structure
2. Read files before modifying them
3. Write changes directly - don't ask permission for code edits
4. Run commands to verify (build, test, lint) when appropriate

Be concise. Show what you changed, not what you're going to change."""


@dataclass(frozen=True)
class ToolCallRequest:
    id: str
    name: str
    arguments: str = ""
    type: str = "function"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass(frozen=True)
class Message:
    role: str
    content: str = ""
    tool_calls: tuple[ToolCallRequest, ...] = ()
    tool_call_id: str | None = None

    def to_dict(self) -> dict:
        """Render the OpenAI chat-completions wire shape."""
        if self.role == "tool":
            return {
                "role": "tool",
                "tool_call_id": self.tool_call_id,
                "content": self.content,
            }
        if self.role == "assistant" and self.tool_calls:
            return {
                "role": "assistant",
                "content": self.content or None,
                "tool_calls": [tc.to_dict() for tc in self.tool_calls],
            }
        return {"role": self.role, "content": self.content}


def user_message(content: str) -> Message:
    return Message(role="user", content=content)


def tool_message(tool_call_id: str, content: str) -> Message:
    return Message(role="tool", content=content, tool_call_id=tool_call_id)


def estimate_tokens(messages: list[dict], tools: list | None = None) -> int:
    """Count tokens across wire-shaped messages using tiktoken."""
    global _encoder
    if _encoder is None:
        import tiktoken

        _encoder = tiktoken.get_encoding("cl100k_base")

    total = 0
    for m in messages:
        content = m.get("content") or ""
        for tc in m.get("tool_calls") or []:
            fn = tc.get("function", {})
            content += fn.get("name", "") + (fn.get("arguments") or "")
        total += len(_encoder.encode(content))
    if tools:
        total += len(_encoder.encode(json.dumps(tools)))
    # ~4 tokens of per-message overhead (role, separators)
    total += 4 * len(messages)
    return total


def render_transcript(messages) -> str:
    """Flatten non-system messages into plain text for summarization."""
    lines = []
    for m in messages:
        if m.role == "user":
            lines.append(f"User: {m.content}")
        elif m.role == "assistant":
            text = strip_thinking(m.content)
            if not text and m.tool_calls:
                names = ", ".join(tc.name for tc in m.tool_calls)
                text = f"[called tools: {names}]"
            lines.append(f"Assistant: {text}")
        elif m.role == "tool":
            preview = m.content[:TOOL_PREVIEW_CHARS]
            if len(m.content) > TOOL_PREVIEW_CHARS:
                preview += "..."
            lines.append(f"Tool result: {preview}")
    return "\n\n".join(lines)


class Conversation:
    """Message history kept across operator turns.

    The first message is always the system prompt. Entries are frozen
    ``Message`` objects and are never edited in place; compaction replaces
    everything after the system prompt with a single summary message.
    """

    def __init__(self, cwd: str | None = None):
        self._cwd = cwd
        self._messages: list[Message] = []
        self.reset()

    def reset(self) -> None:
        """Drop all history, leaving a freshly generated system prompt."""
        self._messages = [Message(role="system", content=system_prompt(self._cwd))]

    def add_user(self, content: str) -> None:
        self._messages.append(user_message(content))

    def add_assistant(self, message: Message) -> None:
        if message.role != "assistant":
            raise ValueError(f"expected an assistant message, got {message.role!r}")
        self._messages.append(message)

    def add_tool_results(self, results: list[Message]) -> None:
        """Append tool messages answering the latest assistant tool calls."""
        pending = self._pending_call_ids()
        for result in results:
            if result.role != "tool":
                raise ValueError(f"expected a tool message, got {result.role!r}")
            if result.tool_call_id not in pending:
                raise ValueError(
                    f"tool result {result.tool_call_id!r} does not answer a call "
                    f"from the preceding assistant message"
                )
        self._messages.extend(results)

    def _pending_call_ids(self) -> set[str]:
        for m in reversed(self._messages):
            if m.role == "tool":
                continue
            if m.role == "assistant":
                return {tc.id for tc in m.tool_calls}
            break
        return set()

    def snapshot(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def to_wire(self) -> list[dict]:
        """Fresh list of message dicts for a completion request."""
        return [m.to_dict() for m in self._messages]

    def size(self) -> int:
        return len(self._messages) - 1

    def needs_compaction(self) -> bool:
        return self.size() > COMPACTION_THRESHOLD

    def compact(self, client) -> bool:
        """Replace history with a model-written summary.

        Returns True when the history was replaced. An empty summary or a
        failed request leaves the history as it was.
        """
        if self.size() < 2:
            return False

        transcript = render_transcript(self._messages[1:])
        request = [
            {"role": "system", "content": "You summarize coding sessions."},
            {"role": "user", "content": SUMMARY_PROMPT + transcript},
        ]
        try:
            reply = client.complete(request, max_tokens=SUMMARY_MAX_TOKENS)
        except AgentError as e:
            logger.warning("compaction request failed, keeping history: %s", e)
            return False

        summary = strip_thinking(reply.content)
        if not summary:
            logger.warning("compaction produced no summary, keeping history")
            return False

        before = self.size()
        self._messages = [
            self._messages[0],
            user_message(f"{SUMMARY_PREFIX}\n\n{summary}"),
        ]
        logger.debug("compacted %d messages into a summary", before)
        return True
