"""Agent loop: nodes, middleware and the Agent facade."""

from agentflow.agent.agent import Agent
from agentflow.agent.middleware import TodoPlanning, ToolApproval
from agentflow.agent.nodes import (
    AgentNode,
    ChatNode,
    ConcurrentToolNode,
    PrepareInferenceNode,
    RouterNode,
    StreamingNode,
    StructuredOutputNode,
    ToolNode,
)

__all__ = [
    "Agent",
    "AgentNode",
    "PrepareInferenceNode",
    "ChatNode",
    "StreamingNode",
    "StructuredOutputNode",
    "RouterNode",
    "ToolNode",
    "ConcurrentToolNode",
    "ToolApproval",
    "TodoPlanning",
]
