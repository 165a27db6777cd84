"""Separation of <think>...</think> reasoning blocks from model answers.

Reasoning models wrap their chain of thought in a tag pair. Some of them
(or their chat templates) drop the opening tag, so the reasoning simply runs
from the start of the content up to the first ``</think>``. Both forms are
handled here.
"""

import re

OPEN_TAG = "<think>"
CLOSE_TAG = "</think>"

_FLAGS = re.DOTALL | re.IGNORECASE
_FULL_RE = re.compile(re.escape(OPEN_TAG) + r"(.*?)" + re.escape(CLOSE_TAG), _FLAGS)
_CLOSE_ONLY_RE = re.compile(r"^(.*?)" + re.escape(CLOSE_TAG), _FLAGS)


def extract_thinking(text: str | None) -> tuple[str | None, str]:
    """Split model output into (reasoning, body).

    reasoning is None when no thinking block is present. body is the
    remaining answer text with the tags removed and whitespace trimmed.
    """
    if not text:
        return None, ""

    match = _FULL_RE.search(text)
    if match is None:
        match = _CLOSE_ONLY_RE.search(text)
    if match is None:
        return None, text.strip()

    reasoning = match.group(1).strip()
    body = (text[: match.start()] + text[match.end() :]).strip()
    return reasoning or None, body


def strip_thinking(text: str | None) -> str:
    """Return only the answer part of ``text``."""
    return extract_thinking(text)[1]


def render_response(text: str | None, show_thinking: bool) -> str:
    """Format an answer for the operator.

    With ``show_thinking`` on and a reasoning block present, the result has
    a Thinking section followed by a Response section. Otherwise only the
    answer body is returned.
    """
    reasoning, body = extract_thinking(text)
    if show_thinking and reasoning:
        quoted = "\n".join(f"> {line}" if line else ">" for line in reasoning.splitlines())
        return f"**Thinking**\n\n{quoted}\n\n**Response**\n\n{body}"
    return body
