"""Shared fixtures: isolated configuration and a fresh agent state."""

import pytest

from agentflow.chat.history import ChatHistory
from agentflow.config import reload_config
from agentflow.graph.state import AgentState
from agentflow.observability import clear_trace_context


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point the config loader at an empty location so ~/.agentflow never leaks in."""
    monkeypatch.setenv("AGENTFLOW_CONFIG", str(tmp_path / "missing-configuration.json"))
    reload_config()
    yield
    clear_trace_context()
    reload_config()


@pytest.fixture
def agent_state():
    return AgentState(chat_history=ChatHistory(context_window=50000))
