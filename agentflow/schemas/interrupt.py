"""
Interrupt Snapshot - Persisted form of a suspended workflow run.

The workflow state and the human-facing request are stored as plain JSON so
they can be inspected (and edited by a UI) on disk. The triggering event and
the node checkpoints may hold arbitrary Python objects (messages, tools), so
they travel as base64-encoded pickles.
"""

import base64
import pickle
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from agentflow.exceptions import PersistenceError
from agentflow.graph.hitl import InterruptRequest, WorkflowInterrupt
from agentflow.graph.state import WorkflowState
from agentflow.utils.imports import import_qualified, qualified_name


class InterruptSnapshot(BaseModel):
    """Everything needed to resume a run at the node that suspended it."""

    # Identity
    workflow_id: str
    created_at: str  # ISO 8601 format

    # Resume position
    node_class: str  # module:QualName of the suspended node
    request: dict[str, Any] = Field(default_factory=dict)

    # State snapshot
    state_class: str
    state: dict[str, Any] = Field(default_factory=dict)

    # Opaque Python payloads
    event_blob: str
    checkpoints_blob: str

    model_config = {"extra": "allow"}

    @classmethod
    def from_interrupt(cls, workflow_id: str, interrupt: WorkflowInterrupt) -> "InterruptSnapshot":
        try:
            event_blob = _dumps(interrupt.event)
            checkpoints_blob = _dumps(interrupt.checkpoints)
        except (pickle.PicklingError, TypeError, AttributeError) as e:
            raise PersistenceError(
                f"Cannot serialize interrupt of workflow '{workflow_id}': {e}"
            ) from e

        return cls(
            workflow_id=workflow_id,
            created_at=datetime.now().isoformat(),
            node_class=interrupt.node_class,
            request=interrupt.request.to_dict(),
            state_class=qualified_name(interrupt.state),
            state=interrupt.state.to_dict(),
            event_blob=event_blob,
            checkpoints_blob=checkpoints_blob,
        )

    def to_interrupt(self) -> WorkflowInterrupt:
        try:
            state_cls = import_qualified(self.state_class)
            event = _loads(self.event_blob)
            checkpoints = _loads(self.checkpoints_blob)
        except (ImportError, AttributeError, pickle.UnpicklingError) as e:
            raise PersistenceError(
                f"Cannot restore interrupt of workflow '{self.workflow_id}': {e}"
            ) from e

        if not (isinstance(state_cls, type) and issubclass(state_cls, WorkflowState)):
            raise PersistenceError(f"{self.state_class} is not a WorkflowState")

        return WorkflowInterrupt(
            request=InterruptRequest.from_dict(self.request),
            node_class=self.node_class,
            checkpoints=checkpoints,
            state=state_cls.from_dict(self.state),
            event=event,
        )


def _dumps(value: Any) -> str:
    return base64.b64encode(pickle.dumps(value)).decode("ascii")


def _loads(blob: str) -> Any:
    return pickle.loads(base64.b64decode(blob))
