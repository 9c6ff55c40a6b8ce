"""Configuration loading and persistence for chalk.

Reads TOML config from ~/.config/chalk/config.toml (global) and
<base_dir>/chalk.toml (project), then applies environment variables.
Precedence: CLI > environment > project > global > defaults.
"""

import json
import os
import re
import sys
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from .errors import ConfigError

DEFAULT_MODEL = "deepseek/deepseek-r1-0528"
DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 4096


# --- Schema ---

CONFIG_KEYS: dict[str, type | tuple[type, ...]] = {
    "api_key": str,
    "model": str,
    "base_url": str,
    "temperature": (int, float),
    "max_tokens": int,
    "max_rounds": int,
}

# Environment variable -> config key
ENV_KEYS: dict[str, str] = {
    "OPENROUTER_API_KEY": "api_key",
    "CHALK_MODEL": "model",
    "OPENROUTER_BASE_URL": "base_url",
    "CHALK_MAX_ROUNDS": "max_rounds",
}


@dataclass
class ChalkConfig:
    """Resolved configuration record handed to the chat loop."""

    api_key: str = ""
    model: str = DEFAULT_MODEL
    base_url: str = DEFAULT_BASE_URL
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS
    max_rounds: int | None = None
    config_dir: Path = field(default_factory=lambda: global_config_dir())

    def masked_api_key(self) -> str:
        if not self.api_key:
            return "(not set)"
        return self.api_key[:14] + "..."


# --- Internal helpers ---


def global_config_dir() -> Path:
    """Return the global config directory, respecting XDG_CONFIG_HOME."""
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "chalk"
    return Path.home() / ".config" / "chalk"


def global_config_path() -> Path:
    return global_config_dir() / "config.toml"


def _type_name(expected: type | tuple[type, ...]) -> str:
    if isinstance(expected, tuple):
        return " or ".join(t.__name__ for t in expected)
    return expected.__name__


def _validate_config(config: dict, source: str) -> dict:
    """Check value types and drop unknown keys (with a warning).

    Raises ConfigError for type mismatches.
    """
    known = {}
    for key, value in config.items():
        if key not in CONFIG_KEYS:
            print(f"warning: {source}: unknown config key {key!r}", file=sys.stderr)
            continue

        expected = CONFIG_KEYS[key]
        # bool is a subclass of int; reject it explicitly.
        if isinstance(value, bool) or not isinstance(value, expected):
            raise ConfigError(
                f"{source}: {key!r} expected {_type_name(expected)}, got {type(value).__name__}"
            )
        known[key] = value

    if "max_rounds" in known and known["max_rounds"] < 1:
        raise ConfigError(f"{source}: 'max_rounds' must be at least 1")
    return known


def _load_single(path: Path, label: str) -> dict:
    """Load and validate a single TOML config file. Returns empty dict if missing."""
    if not path.is_file():
        return {}
    try:
        with open(path, "rb") as f:
            config = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{label}: invalid TOML: {e}") from e
    return _validate_config(config, label)


def _load_env() -> dict:
    env = {}
    for var, key in ENV_KEYS.items():
        raw = os.environ.get(var)
        if not raw:
            continue
        if key == "max_rounds":
            try:
                env[key] = int(raw)
            except ValueError:
                raise ConfigError(f"{var}: expected an integer, got {raw!r}")
        else:
            env[key] = raw
    return _validate_config(env, "environment")


# --- Public API ---


def load_config(base_dir: str | Path = ".", overrides: dict | None = None) -> ChalkConfig:
    """Resolve the layered configuration into a ChalkConfig.

    `overrides` carries CLI values; None entries are ignored.
    """
    global_path = global_config_path()
    merged = _load_single(global_path, str(global_path))

    project_path = Path(base_dir).resolve() / "chalk.toml"
    merged.update(_load_single(project_path, str(project_path)))

    merged.update(_load_env())

    if overrides:
        merged.update({k: v for k, v in overrides.items() if v is not None})

    return ChalkConfig(config_dir=global_path.parent, **merged)


def save_config_value(key: str, value: str, path: Path | None = None) -> Path:
    """Replace `key = ...` in the global config file, or append it.

    Creates the config directory and file when missing. Returns the path written.
    """
    if key not in CONFIG_KEYS:
        raise ConfigError(f"unknown config key {key!r}")

    path = path or global_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    # A JSON string literal is a valid TOML basic string.
    line = f"{key} = {json.dumps(value)}"
    pattern = re.compile(rf"^{re.escape(key)}\s*=.*$", re.MULTILINE)

    if path.is_file():
        content = path.read_text(encoding="utf-8")
        if pattern.search(content):
            content = pattern.sub(lambda _m: line, content, count=1)
        else:
            content = content.rstrip() + ("\n" if content.strip() else "") + line + "\n"
    else:
        content = line + "\n"

    path.write_text(content, encoding="utf-8")
    return path


def config_summary(config: ChalkConfig, cwd: str) -> str:
    """Human-readable configuration dump for `chalk config` and /config."""
    return (
        f"Config home:    {config.config_dir}\n"
        f"Model:          {config.model}\n"
        f"API base:       {config.base_url}\n"
        f"API key:        {config.masked_api_key()}\n"
        f"Working dir:    {cwd}"
    )
