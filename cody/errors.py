"""Exception types shared across the agent."""


class AgentError(Exception):
    """Raised by the agent loop or setup helpers for reportable runtime failures."""


class ConfigError(AgentError):
    """Raised for invalid configuration (bad TOML, wrong key types, unknown provider)."""


class ProtocolError(AgentError):
    """Raised when a completion response has no usable choice or message."""
