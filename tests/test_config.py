"""
Tests for configuration loading and the derived defaults.
"""

import json

import pytest

from agentflow.config import (
    DEFAULT_CONTEXT_WINDOW,
    DEFAULT_STRUCTURED_MAX_RETRIES,
    DEFAULT_TOOL_MAX_TRIES,
    AgentConfig,
    get_agentflow_config,
    get_api_key,
    get_preferred_model,
    reload_config,
)


@pytest.fixture
def write_config(tmp_path, monkeypatch):
    def _write(data) -> None:
        path = tmp_path / "configuration.json"
        path.write_text(data if isinstance(data, str) else json.dumps(data))
        monkeypatch.setenv("AGENTFLOW_CONFIG", str(path))
        reload_config()

    return _write


def test_defaults_without_a_config_file():
    config = AgentConfig()

    assert get_agentflow_config() == {}
    assert config.context_window == DEFAULT_CONTEXT_WINDOW
    assert config.tool_max_tries == DEFAULT_TOOL_MAX_TRIES
    assert config.structured_max_retries == DEFAULT_STRUCTURED_MAX_RETRIES
    assert config.parallel_tool_workers is None
    assert get_api_key() is None


def test_values_come_from_the_config_file(write_config, monkeypatch):
    write_config(
        {
            "llm": {"provider": "openai", "model": "gpt-4o-mini", "api_key_env_var": "MY_KEY"},
            "history": {"context_window": 8000},
            "tools": {"max_tries": 3, "parallel_workers": 4},
            "structured_output": {"max_retries": 2},
        }
    )
    monkeypatch.setenv("MY_KEY", "sk-from-env")

    config = AgentConfig()

    assert get_preferred_model() == "openai/gpt-4o-mini"
    assert get_api_key() == "sk-from-env"
    assert config.context_window == 8000
    assert config.tool_max_tries == 3
    assert config.parallel_tool_workers == 4
    assert config.structured_max_retries == 2


def test_unreadable_config_falls_back_to_defaults(write_config):
    write_config("{not json")

    assert get_agentflow_config() == {}
    assert AgentConfig().tool_max_tries == DEFAULT_TOOL_MAX_TRIES


def test_explicit_values_override_the_file(write_config):
    write_config({"tools": {"max_tries": 3}})

    assert AgentConfig(tool_max_tries=7).tool_max_tries == 7
