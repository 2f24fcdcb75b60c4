"""Event-routed workflow graph: events, nodes, middleware and the executor."""

from agentflow.graph.events import (
    AIInferenceEvent,
    AIResponseEvent,
    Event,
    StartEvent,
    StopEvent,
    ToolCallEvent,
)
from agentflow.graph.executor import Workflow, WorkflowHandler, WorkflowResult, WorkflowStatus
from agentflow.graph.exporter import MermaidExporter
from agentflow.graph.hitl import (
    Action,
    ActionDecision,
    ApprovalRequest,
    InterruptRequest,
    WorkflowInterrupt,
)
from agentflow.graph.middleware import WorkflowMiddleware
from agentflow.graph.node import Completion, Node
from agentflow.graph.state import AgentState, WorkflowState

__all__ = [
    # Events
    "Event",
    "StartEvent",
    "StopEvent",
    "AIInferenceEvent",
    "ToolCallEvent",
    "AIResponseEvent",
    # Nodes and middleware
    "Node",
    "Completion",
    "WorkflowMiddleware",
    # State
    "WorkflowState",
    "AgentState",
    # Human in the loop
    "Action",
    "ActionDecision",
    "InterruptRequest",
    "ApprovalRequest",
    "WorkflowInterrupt",
    # Execution
    "Workflow",
    "WorkflowHandler",
    "WorkflowResult",
    "WorkflowStatus",
    "MermaidExporter",
]
