"""Workflow state shared by the nodes of one run."""

from __future__ import annotations

import copy
from typing import Any

from agentflow.chat.history import ChatHistory


class WorkflowState:
    """
    Key/value bag owned by a single workflow run.

    Nodes and middleware receive it by reference and mutate it in place; the
    executor runs one of them at a time, so no locking is involved. Values
    should be JSON-compatible when the run is persisted to disk.
    """

    def __init__(self, data: dict[str, Any] | None = None):
        self._data: dict[str, Any] = dict(data or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def has(self, key: str) -> bool:
        return key in self._data

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def all(self) -> dict[str, Any]:
        return dict(self._data)

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._data[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._data!r})"

    def to_dict(self) -> dict[str, Any]:
        return {"data": copy.deepcopy(self._data)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkflowState:
        return cls(copy.deepcopy(data.get("data") or {}))


class AgentState(WorkflowState):
    """State of an agent run: the chat history plus per-tool attempt counters."""

    TOOL_ATTEMPTS_KEY = "tool_attempts"

    def __init__(self, data: dict[str, Any] | None = None, chat_history: ChatHistory | None = None):
        super().__init__(data)
        self.chat_history = chat_history or ChatHistory()

    def tool_attempts(self, tool_name: str) -> int:
        return self.get(self.TOOL_ATTEMPTS_KEY, {}).get(tool_name, 0)

    def increment_tool_attempts(self, tool_name: str) -> int:
        attempts = dict(self.get(self.TOOL_ATTEMPTS_KEY, {}))
        attempts[tool_name] = attempts.get(tool_name, 0) + 1
        self.set(self.TOOL_ATTEMPTS_KEY, attempts)
        return attempts[tool_name]

    def reset_tool_attempts(self) -> None:
        self.delete(self.TOOL_ATTEMPTS_KEY)

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d["chat_history"] = self.chat_history.to_storage_dict()
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AgentState:
        history = None
        if data.get("chat_history") is not None:
            history = ChatHistory.from_storage_dict(data["chat_history"])
        return cls(copy.deepcopy(data.get("data") or {}), chat_history=history)
