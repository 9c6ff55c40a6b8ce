"""Exception types shared across chalk."""


class AgentError(Exception):
    """Raised by the chat loop or setup helpers for reportable runtime failures."""


class ConfigError(AgentError):
    """Raised for invalid configuration (bad TOML, wrong types, missing API key)."""
