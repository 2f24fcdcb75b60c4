"""
agentflow - LLM agents as event-routed workflows.

A workflow is a graph of nodes connected by typed events. Runs can stream
chunks to the caller, suspend for a human decision and resume later from
persisted state.
"""

from agentflow.agent import (
    Agent,
    ChatNode,
    ConcurrentToolNode,
    PrepareInferenceNode,
    RouterNode,
    StreamingNode,
    StructuredOutputNode,
    TodoPlanning,
    ToolApproval,
    ToolNode,
)
from agentflow.chat import (
    AssistantMessage,
    ChatHistory,
    Message,
    ToolCallMessage,
    ToolResultMessage,
    UserMessage,
)
from agentflow.config import AgentConfig
from agentflow.graph import (
    Action,
    ActionDecision,
    AgentState,
    ApprovalRequest,
    InterruptRequest,
    Node,
    Workflow,
    WorkflowInterrupt,
    WorkflowMiddleware,
    WorkflowResult,
    WorkflowState,
)
from agentflow.runtime import EventBus, EventType
from agentflow.storage import FilePersistence, InMemoryPersistence
from agentflow.tools import Tool, ToolProperty, tool

__version__ = "0.1.0"

__all__ = [
    "Agent",
    "AgentConfig",
    # Nodes
    "Node",
    "PrepareInferenceNode",
    "ChatNode",
    "StreamingNode",
    "StructuredOutputNode",
    "RouterNode",
    "ToolNode",
    "ConcurrentToolNode",
    # Middleware
    "WorkflowMiddleware",
    "ToolApproval",
    "TodoPlanning",
    # Workflow
    "Workflow",
    "WorkflowResult",
    "WorkflowState",
    "AgentState",
    # Human in the loop
    "Action",
    "ActionDecision",
    "InterruptRequest",
    "ApprovalRequest",
    "WorkflowInterrupt",
    "FilePersistence",
    "InMemoryPersistence",
    # Chat
    "ChatHistory",
    "Message",
    "UserMessage",
    "AssistantMessage",
    "ToolCallMessage",
    "ToolResultMessage",
    # Tools
    "Tool",
    "ToolProperty",
    "tool",
    # Observability
    "EventBus",
    "EventType",
]
