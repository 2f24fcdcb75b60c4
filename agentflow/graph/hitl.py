"""
Human-in-the-loop protocol.

A node (or a middleware) that needs a human decision builds an
``InterruptRequest`` listing the pending ``Action`` objects and calls
``node.interrupt(request)``. That raises ``WorkflowInterrupt``; the executor
persists it and hands it to the caller as a suspended result. The caller
decides each action and starts the workflow again with the same request as
the resume payload.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from agentflow.utils.imports import qualified_name

if TYPE_CHECKING:
    from agentflow.graph.events import Event
    from agentflow.graph.node import Node
    from agentflow.graph.state import WorkflowState


class ActionDecision(StrEnum):
    """Decision a human made about an action."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EDIT = "edit"  # Approved, with feedback describing changes


@dataclass
class Action:
    """One decision a human has to make."""

    id: str
    name: str
    description: str = ""
    decision: ActionDecision = ActionDecision.PENDING
    feedback: str | None = None

    def approve(self, feedback: str | None = None) -> Action:
        self.decision = ActionDecision.APPROVED
        self.feedback = feedback
        return self

    def reject(self, feedback: str | None = None) -> Action:
        self.decision = ActionDecision.REJECTED
        self.feedback = feedback
        return self

    def edit(self, feedback: str) -> Action:
        self.decision = ActionDecision.EDIT
        self.feedback = feedback
        return self

    @property
    def is_pending(self) -> bool:
        return self.decision == ActionDecision.PENDING

    @property
    def is_approved(self) -> bool:
        return self.decision in (ActionDecision.APPROVED, ActionDecision.EDIT)

    @property
    def is_rejected(self) -> bool:
        return self.decision == ActionDecision.REJECTED

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "decision": self.decision.value,
            "feedback": self.feedback,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Action:
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description", ""),
            decision=ActionDecision(data.get("decision", ActionDecision.PENDING)),
            feedback=data.get("feedback"),
        )


@dataclass
class InterruptRequest:
    """What the workflow needs from a human before it can continue."""

    kind = "interrupt"

    message: str
    actions: list[Action] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def get_action(self, action_id: str) -> Action | None:
        for action in self.actions:
            if action.id == action_id:
                return action
        return None

    def pending_actions(self) -> list[Action]:
        return [a for a in self.actions if a.is_pending]

    @property
    def is_resolved(self) -> bool:
        return not self.pending_actions()

    def approve_all(self) -> InterruptRequest:
        for action in self.actions:
            action.approve()
        return self

    def reject_all(self, feedback: str | None = None) -> InterruptRequest:
        for action in self.actions:
            action.reject(feedback)
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind,
            "message": self.message,
            "actions": [a.to_dict() for a in self.actions],
            "metadata": self.metadata,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> InterruptRequest:
        request_cls = _REQUEST_TYPES.get(data.get("type", "interrupt"), InterruptRequest)
        return request_cls(
            message=data.get("message", ""),
            actions=[Action.from_dict(a) for a in data.get("actions", [])],
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class ApprovalRequest(InterruptRequest):
    """Approve or reject a set of actions (typically tool calls)."""

    kind = "approval"


_REQUEST_TYPES: dict[str, type[InterruptRequest]] = {
    InterruptRequest.kind: InterruptRequest,
    ApprovalRequest.kind: ApprovalRequest,
}


class WorkflowInterrupt(Exception):
    """
    Control signal raised to suspend a workflow run.

    Not an error: it carries everything needed to resume the run at the
    same node with the same input event.

    Attributes:
        request: Decisions the caller must make.
        node_class: ``module:QualName`` of the node that was running.
        checkpoints: Values the node cached with ``Node.checkpoint``.
        state: The workflow state at suspension time.
        event: The event the node was invoked with.
    """

    def __init__(
        self,
        request: InterruptRequest,
        node_class: str,
        checkpoints: dict[str, Any],
        state: WorkflowState,
        event: Event,
    ):
        super().__init__(request.message)
        self.request = request
        self.node_class = node_class
        self.checkpoints = dict(checkpoints)
        self.state = state
        self.event = event

    @classmethod
    def from_node(
        cls,
        request: InterruptRequest,
        node: Node,
        state: WorkflowState,
        event: Event,
    ) -> WorkflowInterrupt:
        return cls(request, qualified_name(node), node.checkpoints, state, event)

    @property
    def node_name(self) -> str:
        return self.node_class.rpartition(":")[2]

    def __reduce__(self):
        return (
            type(self),
            (self.request, self.node_class, self.checkpoints, self.state, self.event),
        )
