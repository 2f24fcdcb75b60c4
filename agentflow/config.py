"""Shared agentflow configuration utilities.

Centralises reading of ~/.agentflow/configuration.json so that agents,
nodes and storage backends pick up the same defaults.
"""

import json
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

DEFAULT_CONTEXT_WINDOW = 50000
DEFAULT_TOOL_MAX_TRIES = 10
DEFAULT_STRUCTURED_MAX_RETRIES = 1

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------


def get_config_path() -> Path:
    """Return the configuration file path, honouring AGENTFLOW_CONFIG."""
    override = os.environ.get("AGENTFLOW_CONFIG")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".agentflow" / "configuration.json"


@lru_cache(maxsize=1)
def get_agentflow_config() -> dict[str, Any]:
    """Load agentflow configuration from disk, or {} when absent or unreadable."""
    path = get_config_path()
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8-sig") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def reload_config() -> dict[str, Any]:
    """Drop the cached configuration and read the file again."""
    get_agentflow_config.cache_clear()
    return get_agentflow_config()


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def _section(name: str) -> dict[str, Any]:
    section = get_agentflow_config().get(name, {})
    return section if isinstance(section, dict) else {}


def get_preferred_model() -> str:
    """Return the configured model as a litellm model string."""
    llm = _section("llm")
    if llm.get("provider") and llm.get("model"):
        return f"{llm['provider']}/{llm['model']}"
    return "anthropic/claude-sonnet-4-5"


def get_api_key() -> str | None:
    """Return the API key from the environment variable named in the configuration."""
    env_var = _section("llm").get("api_key_env_var")
    if env_var:
        return os.environ.get(env_var)
    return None


def get_context_window() -> int:
    return int(_section("history").get("context_window", DEFAULT_CONTEXT_WINDOW))


def get_tool_max_tries() -> int:
    return int(_section("tools").get("max_tries", DEFAULT_TOOL_MAX_TRIES))


def get_parallel_tool_workers() -> int | None:
    workers = _section("tools").get("parallel_workers")
    return int(workers) if workers else None


def get_structured_max_retries() -> int:
    return int(_section("structured_output").get("max_retries", DEFAULT_STRUCTURED_MAX_RETRIES))


def get_storage_path() -> Path:
    """Return the directory FilePersistence writes interrupts to."""
    configured = _section("storage").get("path")
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".agentflow" / "workflows"


# ---------------------------------------------------------------------------
# AgentConfig – defaults shared by Agent and the agent nodes
# ---------------------------------------------------------------------------


@dataclass
class AgentConfig:
    """Agent defaults loaded from ~/.agentflow/configuration.json."""

    context_window: int = field(default_factory=get_context_window)
    tool_max_tries: int = field(default_factory=get_tool_max_tries)
    structured_max_retries: int = field(default_factory=get_structured_max_retries)
    parallel_tool_workers: int | None = field(default_factory=get_parallel_tool_workers)
