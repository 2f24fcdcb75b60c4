"""Middleware hooks wrapped around node execution."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from agentflow.graph.events import Event
    from agentflow.graph.node import Node
    from agentflow.graph.state import WorkflowState


class WorkflowMiddleware:
    """
    Intercepts node execution.

    ``before`` runs ahead of the node body and may mutate the event in place,
    suspend the run with ``node.interrupt(...)``, or raise to abort it. When a
    suspended node resumes, ``before`` runs again with ``node.is_resuming``
    set and the human's answer in ``node.resume_request``.

    ``after`` runs once the node produced its event, for side effects and
    observability. Both hooks default to no-ops.
    """

    async def before(self, node: Node, event: Event, state: WorkflowState) -> None:
        return None

    async def after(self, node: Node, event: Event, result: Event, state: WorkflowState) -> None:
        return None
