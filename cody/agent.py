"""The tool-calling agent loop.

One call to ``AgentLoop.run`` handles one operator request: the model is
called repeatedly, its tool calls are executed in order and their results
are fed back, until it answers without asking for tools.
"""

import json
import logging
import re
import time

from . import fmt
from .conversation import Conversation, Message, estimate_tokens, tool_message
from .settings import RuntimeSettings
from .thinking import render_response
from .tools import ToolRegistry, ToolResult

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 10
MAX_TOOL_OUTPUT = 50 * 1024  # 50 KB
MAX_ARG_LOG = 1000
RESULT_PREVIEW = 200

NO_RESPONSE = "(no response)"
STOPPED_RESPONSE = "(agent stopped - too many iterations)"
INTERRUPTED_RESULT = "Interrupted by the operator. This tool call did not run."

# {path: hello.py}  ->  {"path": hello.py}
_BARE_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_][\w\-]*)\s*:")
# {"path": hello.py}  ->  {"path": "hello.py"}
_BARE_VALUE_RE = re.compile(r':\s*([^\s",{}\[\]][^",{}\[\]]*?)\s*([,}])')
_JSON_LITERAL_RE = re.compile(r"^(true|false|null|-?\d+(\.\d+)?([eE][+-]?\d+)?)$")


def repair_arguments(text: str) -> str | None:
    """Best-effort fix for arguments that local models emit without quotes.

    Quotes bare object keys and bare values that sit before a comma or a
    closing brace. JSON literals (numbers, true, false, null) are left
    alone. Returns the rewritten text, or None if nothing was changed.
    """

    def _quote_value(m: re.Match) -> str:
        value = m.group(1)
        if _JSON_LITERAL_RE.match(value):
            return f": {value}{m.group(2)}"
        return f": {json.dumps(value)}{m.group(2)}"

    fixed = _BARE_KEY_RE.sub(r'\1"\2":', text)
    fixed = _BARE_VALUE_RE.sub(_quote_value, fixed)
    return fixed if fixed != text else None


def parse_tool_arguments(text: str | None) -> dict:
    """Parse a tool-call argument payload, never raising.

    Valid JSON objects come back unchanged. Malformed payloads get one
    repair attempt; anything still unparseable, blank, or not an object
    becomes an empty dict so the tool reports the missing arguments itself.
    """
    if not text or not text.strip():
        return {}

    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        logger.warning("malformed JSON in tool arguments: %s", text[:MAX_ARG_LOG])
        fixed = repair_arguments(text)
        if fixed is None:
            return {}
        try:
            parsed = json.loads(fixed)
        except json.JSONDecodeError:
            return {}
        logger.debug("repaired tool arguments: %s", fixed[:MAX_ARG_LOG])

    return parsed if isinstance(parsed, dict) else {}


def truncate_output(output: str, limit: int = MAX_TOOL_OUTPUT) -> str:
    """Clip tool output to ``limit`` bytes of UTF-8."""
    data = output.encode("utf-8")
    if len(data) <= limit:
        return output
    clipped = data[:limit].decode("utf-8", errors="ignore")
    return clipped + f"\n[output truncated at {limit // 1024}KB of {len(data)} bytes]"


def _last_text(conversation: Conversation) -> str:
    for m in reversed(conversation.snapshot()[1:]):
        if m.content and m.content.strip():
            return m.content
    return STOPPED_RESPONSE


class AgentLoop:
    """Drives model <-> tool exchanges over a shared ``Conversation``."""

    def __init__(
        self,
        client,
        registry: ToolRegistry,
        settings: RuntimeSettings,
        *,
        max_iterations: int = MAX_ITERATIONS,
        max_tool_output: int = MAX_TOOL_OUTPUT,
    ):
        self.client = client
        self.registry = registry
        self.settings = settings
        self.max_iterations = max_iterations
        self.max_tool_output = max_tool_output

    def run(
        self, conversation: Conversation, text: str, *, unattended: bool = False
    ) -> str:
        """Answer one request. Raises ProtocolError/AgentError from the endpoint."""
        conversation.add_user(text)
        tools = self.registry.schemas()
        cap = None if unattended else self.max_iterations

        cycles = 0
        while cap is None or cycles < cap:
            cycles += 1
            messages = conversation.to_wire()
            if self.settings.debug:
                fmt.turn_header(cycles, cap, estimate_tokens(messages, tools))

            t0 = time.monotonic()
            with fmt.llm_spinner():
                msg = self.client.complete(messages, tools)
            logger.debug("model replied in %.1fs", time.monotonic() - t0)

            conversation.add_assistant(msg)

            if not msg.tool_calls:
                if self.settings.debug:
                    fmt.completion(cycles, "ok")
                return render_response(msg.content, self.settings.show_thinking) or NO_RESPONSE

            if msg.content and msg.content.strip():
                fmt.assistant_text(render_response(msg.content, False))

            calls = [c for c in msg.tool_calls if c.type == "function"]
            for call in msg.tool_calls:
                if call.type != "function":
                    logger.debug("skipping non-function tool call %s (%s)", call.id, call.type)
            results = []
            try:
                for call in calls:
                    results.append(self._handle_tool_call(call))
            except BaseException:
                # Every call still needs a reply or the next request is rejected
                for call in calls[len(results) :]:
                    results.append(tool_message(call.id, INTERRUPTED_RESULT))
                conversation.add_tool_results(results)
                raise
            conversation.add_tool_results(results)

        fmt.completion(cycles, f"hit maximum iterations ({cap})")
        logger.warning("hit maximum iterations (%d)", cap)
        last = _last_text(conversation)
        return render_response(last, self.settings.show_thinking) or STOPPED_RESPONSE

    def _handle_tool_call(self, call) -> Message:
        args = parse_tool_arguments(call.arguments)

        pretty = json.dumps(args, indent=2)
        if len(pretty) > MAX_ARG_LOG:
            pretty = pretty[:MAX_ARG_LOG] + "\n... (truncated)"
        fmt.tool_call(call.name, pretty)

        t0 = time.monotonic()
        result: ToolResult = self.registry.execute(call.name, args)
        elapsed = time.monotonic() - t0

        if result.success:
            preview = result.output[:RESULT_PREVIEW]
            if len(result.output) > RESULT_PREVIEW:
                preview += "..."
            fmt.tool_result(call.name, elapsed, preview)
        elif result.silent:
            fmt.tool_rejected(call.name)
        else:
            fmt.tool_error(call.name, result.output[:RESULT_PREVIEW])

        return tool_message(call.id, truncate_output(result.output, self.max_tool_output))
