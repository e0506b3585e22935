"""Shared promptcascade configuration utilities.

Centralises reading of ~/.promptcascade/configuration.json so that the
CLI, the walker and the providers share one implementation.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_MODEL = "openai/gpt-4o-mini"
DEFAULT_MAX_TOKENS = 4096
DEFAULT_MAX_DEPTH = 99
DEFAULT_MAX_QUESTION_ATTEMPTS = 10
DEFAULT_FALLBACK_MESSAGE = "Execute this prompt"

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------


def get_home_dir() -> Path:
    """Return the promptcascade home directory (PROMPTCASCADE_HOME overrides)."""
    override = os.environ.get("PROMPTCASCADE_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".promptcascade"


def get_config_file() -> Path:
    return get_home_dir() / "configuration.json"


def get_cascade_config_data() -> dict[str, Any]:
    """Load configuration from ~/.promptcascade/configuration.json."""
    config_file = get_config_file()
    if not config_file.exists():
        return {}
    try:
        with open(config_file, encoding="utf-8-sig") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def get_preferred_model() -> str:
    """Return the preferred model string (e.g. 'openai/gpt-4o-mini')."""
    llm = get_cascade_config_data().get("llm", {})
    if llm.get("provider") and llm.get("model"):
        return f"{llm['provider']}/{llm['model']}"
    return DEFAULT_MODEL


def get_max_tokens() -> int:
    """Return the configured max_tokens, falling back to DEFAULT_MAX_TOKENS."""
    return get_cascade_config_data().get("llm", {}).get("max_tokens", DEFAULT_MAX_TOKENS)


def get_api_key() -> str | None:
    """Return the API key from the environment variable specified in configuration."""
    llm = get_cascade_config_data().get("llm", {})
    api_key_env_var = llm.get("api_key_env_var")
    if api_key_env_var:
        return os.environ.get(api_key_env_var)
    return None


def get_max_depth() -> int:
    """Return the maximum cascade depth (auto-spawn recursion bound)."""
    return int(get_cascade_config_data().get("cascade", {}).get("max_depth", DEFAULT_MAX_DEPTH))


def get_max_question_attempts() -> int:
    """Return how many question round-trips a node may make before failing."""
    cascade = get_cascade_config_data().get("cascade", {})
    return int(cascade.get("max_question_attempts", DEFAULT_MAX_QUESTION_ATTEMPTS))


def get_fallback_message() -> str:
    """Return the user message sent when a node has no prompt text at all."""
    cascade = get_cascade_config_data().get("cascade", {})
    return cascade.get("fallback_message", DEFAULT_FALLBACK_MESSAGE)


def get_storage_path() -> Path:
    """Return where traces, spans and cost records are written."""
    storage = get_cascade_config_data().get("storage", {})
    if storage.get("path"):
        return Path(storage["path"]).expanduser()
    return get_home_dir() / "storage"


# ---------------------------------------------------------------------------
# CascadeConfig – shared by the walker, executor and CLI
# ---------------------------------------------------------------------------


@dataclass
class CascadeConfig:
    """Engine configuration loaded from ~/.promptcascade/configuration.json."""

    model: str = field(default_factory=get_preferred_model)
    max_tokens: int = field(default_factory=get_max_tokens)
    api_key: str | None = field(default_factory=get_api_key)
    api_base: str | None = None
    max_depth: int = field(default_factory=get_max_depth)
    max_question_attempts: int = field(default_factory=get_max_question_attempts)
    fallback_message: str = field(default_factory=get_fallback_message)
    storage_path: Path = field(default_factory=get_storage_path)
