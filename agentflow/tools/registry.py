"""Tool discovery and registration."""

import importlib.util
import inspect
import logging
from collections.abc import Callable, Iterator
from pathlib import Path
from types import ModuleType
from typing import Any

from agentflow.tools.tool import Tool

logger = logging.getLogger(__name__)


def _load_module(path: Path) -> ModuleType | None:
    spec = importlib.util.spec_from_file_location(f"agentflow_tools_{path.stem}", path)
    if spec is None or spec.loader is None:
        return None
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _module_tools(module: ModuleType) -> Iterator[Tool]:
    # An explicit TOOLS list wins over module attributes with the same name
    yield from (t for t in getattr(module, "TOOLS", []) if isinstance(t, Tool))
    for _, value in inspect.getmembers(module, lambda v: isinstance(v, Tool)):
        yield value


class ToolRegistry:
    """
    Collects the tools an agent may offer to the model.

    Tools come from three places: ``Tool`` objects registered directly,
    plain functions (the definition is generated from the signature) and
    ``tools.py`` style modules exposing ``Tool`` objects or a ``TOOLS`` list.
    """

    def __init__(self):
        self._by_name: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        if tool.name in self._by_name:
            logger.warning(f"Tool '{tool.name}' registered twice; keeping the latest definition")
        self._by_name[tool.name] = tool

    def register_function(
        self,
        func: Callable[..., Any],
        name: str | None = None,
        description: str | None = None,
        max_tries: int | None = None,
    ) -> Tool:
        """Wrap ``func`` in a Tool, register it and return it."""
        created = Tool.from_function(func, name=name, description=description, max_tries=max_tries)
        self.register(created)
        return created

    def discover_from_module(self, module_path: Path | str) -> int:
        """Import a module file and register its tools; returns how many were found."""
        path = Path(module_path)
        module = _load_module(path) if path.exists() else None
        if module is None:
            return 0

        found: dict[str, Tool] = {}
        for candidate in _module_tools(module):
            found.setdefault(candidate.name, candidate)
        for candidate in found.values():
            self.register(candidate)

        logger.debug(f"Discovered {len(found)} tools in {path}")
        return len(found)

    def get(self, name: str) -> Tool | None:
        return self._by_name.get(name)

    def get_tools(self) -> list[Tool]:
        return [*self._by_name.values()]

    def get_registered_names(self) -> list[str]:
        return [*self._by_name]

    def has_tool(self, name: str) -> bool:
        return name in self._by_name

    def __len__(self) -> int:
        return len(self._by_name)
