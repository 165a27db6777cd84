"""Chat-completion endpoint access through LiteLLM."""

import logging

from .conversation import Message, ToolCallRequest
from .errors import AgentError, ProtocolError

logger = logging.getLogger(__name__)

PROVIDERS = ("lmstudio", "openrouter")


def decode_response(response) -> Message:
    """Turn a completion response into an assistant ``Message``.

    This is the only place that inspects the raw response shape. Anything
    without a first choice carrying a message raises ProtocolError.
    """
    choices = getattr(response, "choices", None)
    if not choices:
        raise ProtocolError("No response from LLM (empty choices)")
    raw = getattr(choices[0], "message", None)
    if raw is None:
        raise ProtocolError("No response from LLM (choice has no message)")

    calls = []
    for tc in getattr(raw, "tool_calls", None) or []:
        fn = getattr(tc, "function", None)
        if fn is None:
            raise ProtocolError(f"tool call {getattr(tc, 'id', '?')!r} has no function")
        arguments = fn.arguments
        if not isinstance(arguments, str):
            arguments = "" if arguments is None else str(arguments)
        calls.append(
            ToolCallRequest(
                id=tc.id,
                name=fn.name or "",
                arguments=arguments,
                type=getattr(tc, "type", None) or "function",
            )
        )

    content = getattr(raw, "content", None)
    return Message(
        role="assistant",
        content=content if isinstance(content, str) else "",
        tool_calls=tuple(calls),
    )


class CompletionClient:
    """OpenAI-compatible completion endpoint with fixed sampling parameters."""

    def __init__(
        self,
        *,
        provider: str,
        model: str,
        base_url: str | None,
        api_key: str | None = None,
        temperature: float = 0.1,
        max_tokens: int = 8192,
    ):
        if provider not in PROVIDERS:
            raise AgentError(f"unknown provider {provider!r}")
        self.provider = provider
        self.model = model
        self.base_url = base_url
        self.api_key = api_key
        self.temperature = temperature
        self.max_tokens = max_tokens

    def _route(self) -> tuple[str, dict]:
        if self.provider == "lmstudio":
            # LM Studio doesn't need a real key, but the OpenAI client requires one
            return f"openai/{self.model}", {
                "api_base": self.base_url,
                "api_key": self.api_key or "lm-studio",
            }
        bare_id = self.model.removeprefix("openrouter/")
        kwargs = {"api_key": self.api_key}
        if self.base_url:
            kwargs["api_base"] = self.base_url
        return f"openrouter/{bare_id}", kwargs

    def complete(
        self,
        messages: list[dict],
        tools: list[dict] | None = None,
        max_tokens: int | None = None,
    ) -> Message:
        """Send one completion request and decode the reply."""
        import litellm

        litellm.suppress_debug_info = True

        model_str, kwargs = self._route()
        completion_kwargs = dict(
            model=model_str,
            messages=messages,
            temperature=self.temperature,
            max_tokens=max_tokens or self.max_tokens,
            **kwargs,
        )
        if tools:
            completion_kwargs["tools"] = tools
            completion_kwargs["tool_choice"] = "auto"

        logger.debug(
            "calling %s with %d messages, %d tools, max_tokens=%s",
            model_str,
            len(messages),
            len(tools or []),
            completion_kwargs["max_tokens"],
        )
        try:
            response = litellm.completion(**completion_kwargs)
        except Exception as e:
            raise AgentError(f"LLM call failed: {e}") from e

        return decode_response(response)
