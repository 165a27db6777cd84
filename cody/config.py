"""Configuration loading and merging for cody.

Reads TOML config from ~/.config/cody/config.toml (global) and
<base_dir>/cody.toml (project), plus dotenv files (~/.codyrc, then .env).
Precedence: CLI > environment > project > global > defaults.
"""

import logging
import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from .errors import ConfigError

logger = logging.getLogger(__name__)


# --- Schema ---

CONFIG_KEYS: dict[str, type | tuple[type, ...]] = {
    "provider": str,
    "model": str,
    "api_key": str,
    "base_url": str,
    "temperature": (int, float),
    "max_tokens": int,
    "max_iterations": int,
    "command_timeout": (int, float),
    "show_thinking": bool,
    "debug": bool,
    "color": bool,
}

PROVIDER_DEFAULTS: dict[str, dict[str, str]] = {
    "openrouter": {
        "base_url": "https://openrouter.ai/api/v1",
        "model": "xiaomi/mimo-v2-flash:free",
    },
    "lmstudio": {
        "base_url": "http://localhost:1234/v1",
        "model": "nvidia-nemotron-3-nano-30b-a3b-mlx",
    },
}

# Environment variable -> config key
ENV_KEYS: dict[str, str] = {
    "OPENROUTER_API_KEY": "api_key",
    "CODY_MODEL": "model",
    "CODY_BASE_URL": "base_url",
}


@dataclass
class Config:
    provider: str = "lmstudio"
    model: str = PROVIDER_DEFAULTS["lmstudio"]["model"]
    base_url: str = PROVIDER_DEFAULTS["lmstudio"]["base_url"]
    api_key: str | None = None
    temperature: float = 0.1
    max_tokens: int = 8192
    max_iterations: int = 10
    command_timeout: float = 30
    show_thinking: bool = True
    debug: bool = False
    color: bool | None = None  # None = auto-detect


# --- Internal helpers ---


def global_config_dir() -> Path:
    """Return the global config directory, respecting XDG_CONFIG_HOME."""
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "cody"
    return Path.home() / ".config" / "cody"


def _type_name(expected: type | tuple[type, ...]) -> str:
    if isinstance(expected, tuple):
        return " or ".join(t.__name__ for t in expected)
    return expected.__name__


def _validate_config(config: dict, source: str) -> None:
    """Check value types. Raises ConfigError; unknown keys only warn."""
    for key, value in config.items():
        if key not in CONFIG_KEYS:
            logger.warning("%s: unknown config key %r", source, key)
            continue

        expected = CONFIG_KEYS[key]
        # bool is a subclass of int
        if isinstance(value, bool) and expected is not bool:
            raise ConfigError(
                f"{source}: {key!r} expected {_type_name(expected)}, got bool"
            )
        if not isinstance(value, expected):
            raise ConfigError(
                f"{source}: {key!r} expected {_type_name(expected)}, got {type(value).__name__}"
            )

    provider = config.get("provider")
    if provider is not None and provider not in PROVIDER_DEFAULTS:
        raise ConfigError(
            f"{source}: unknown provider {provider!r} "
            f"(expected one of: {', '.join(sorted(PROVIDER_DEFAULTS))})"
        )


def _load_single(path: Path, label: str) -> dict:
    """Load and validate a single TOML config file. Returns empty dict if missing."""
    if not path.is_file():
        return {}
    try:
        with open(path, "rb") as f:
            config = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{label}: invalid TOML: {e}") from e

    _validate_config(config, label)
    return {k: v for k, v in config.items() if k in CONFIG_KEYS}


def load_dotenv_files(base_dir: Path | str | None = None) -> None:
    """Load ~/.codyrc then <base_dir>/.env into os.environ.

    Variables already present in the environment are never overridden, so
    the first source to define a name wins.
    """
    for path in (Path.home() / ".codyrc", Path(base_dir or ".") / ".env"):
        if path.is_file():
            logger.debug("loading environment from %s", path)
            load_dotenv(path, override=False)


def _env_config() -> dict:
    config = {}
    for var, key in ENV_KEYS.items():
        value = os.environ.get(var)
        if value:
            config[key] = value
    return config


# --- Public API ---


def load_config(base_dir: Path | str) -> dict:
    """Load and merge global + project config files.

    Returns only the keys actually set in the files; defaults are applied
    later by ``resolve_config``.
    """
    global_path = global_config_dir() / "config.toml"
    global_config = _load_single(global_path, str(global_path))

    project_path = Path(base_dir).resolve() / "cody.toml"
    project_config = _load_single(project_path, str(project_path))

    return {**global_config, **project_config}


def resolve_config(
    cli_overrides: dict[str, Any] | None = None,
    base_dir: Path | str = ".",
    *,
    load_env_files: bool = True,
) -> Config:
    """Build the effective configuration.

    ``cli_overrides`` holds only the options the user actually passed;
    ``None`` values are ignored.
    """
    if load_env_files:
        load_dotenv_files(base_dir)

    file_config = load_config(base_dir)
    env_config = _env_config()
    cli = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    _validate_config(cli, "command line")

    merged = {**file_config, **env_config, **cli}

    provider = merged.get("provider")
    if provider is None:
        # An OpenRouter key in the environment means the user wants OpenRouter
        provider = "openrouter" if env_config.get("api_key") else "lmstudio"
    defaults = PROVIDER_DEFAULTS[provider]

    config = Config(
        provider=provider,
        model=merged.get("model") or defaults["model"],
        base_url=merged.get("base_url") or defaults["base_url"],
        api_key=merged.get("api_key"),
    )
    for key in (
        "temperature",
        "max_tokens",
        "max_iterations",
        "command_timeout",
        "show_thinking",
        "debug",
        "color",
    ):
        if key in merged:
            setattr(config, key, merged[key])

    if config.provider == "openrouter" and not config.api_key:
        raise ConfigError(
            "OpenRouter needs an API key: set OPENROUTER_API_KEY "
            "(in the environment, ~/.codyrc or .env) or pass --api-key"
        )
    if config.max_tokens < 1:
        raise ConfigError(f"max_tokens must be positive, got {config.max_tokens}")
    if config.max_iterations < 1:
        raise ConfigError(
            f"max_iterations must be positive, got {config.max_iterations}"
        )

    logger.debug(
        "config: provider=%s model=%s base_url=%s",
        config.provider,
        config.model,
        config.base_url,
    )
    return config


def generate_config(project: bool = False) -> str:
    """Return a commented-out template config string."""
    lines = [
        "# Cody configuration file",
        f"# {'Project' if project else 'Global'} config: "
        f"{'<project>/cody.toml' if project else '~/.config/cody/config.toml'}",
        "#",
        "# CLI flags and environment variables override these values.",
        "",
        "# --- Provider / model ---",
        '# provider = "lmstudio"          # "lmstudio" | "openrouter"',
        '# model = "nvidia-nemotron-3-nano-30b-a3b-mlx"',
        '# api_key = "sk-or-..."            # prefer OPENROUTER_API_KEY',
        '# base_url = "http://localhost:1234/v1"',
        "",
        "# --- Generation parameters ---",
        "# temperature = 0.1",
        "# max_tokens = 8192",
        "",
        "# --- Agent behaviour ---",
        "# max_iterations = 10",
        "# command_timeout = 30",
        "# show_thinking = true",
        "# debug = false",
        "",
        "# --- UI ---",
        "# color = true       # true = force color, false = force no-color, absent = auto",
        "",
    ]
    return "\n".join(lines)
