"""Tool definitions and registry."""

from agentflow.tools.registry import ToolRegistry
from agentflow.tools.tool import Tool, ToolProperty, ToolRejectionHandler, tool

__all__ = ["Tool", "ToolProperty", "ToolRegistry", "ToolRejectionHandler", "tool"]
