"""Cody: an open source coding agent for local and hosted LLMs."""

from .agent import AgentLoop, parse_tool_arguments, repair_arguments
from .boss import BossMode, EscapeListener
from .client import CompletionClient
from .conversation import Conversation, Message, ToolCallRequest
from .errors import AgentError, ConfigError, ProtocolError
from .gate import Approve, CommandGate, Redirect, Reject
from .settings import CancellationToken, RuntimeSettings
from .tools import ToolDefinition, ToolRegistry, ToolResult, build_registry

__all__ = [
    "AgentError",
    "AgentLoop",
    "Approve",
    "BossMode",
    "CancellationToken",
    "CommandGate",
    "CompletionClient",
    "ConfigError",
    "Conversation",
    "EscapeListener",
    "Message",
    "ProtocolError",
    "Redirect",
    "Reject",
    "RuntimeSettings",
    "ToolCallRequest",
    "ToolDefinition",
    "ToolRegistry",
    "ToolResult",
    "build_registry",
    "parse_tool_arguments",
    "repair_arguments",
]
