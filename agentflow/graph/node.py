"""
Node contract.

A node consumes one event and produces the next one, in one of two modes:

- direct: ``invoke`` returns the successor event (plainly or as a coroutine)
- streaming: ``invoke`` is an async generator; it yields chunks for the
  caller and finally yields ``Completion(event)`` with the successor event

The executor routes the successor event to whichever node ``handles`` its
type.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

from agentflow.graph.events import Event
from agentflow.graph.hitl import InterruptRequest, WorkflowInterrupt

if TYPE_CHECKING:
    from agentflow.graph.state import WorkflowState
    from agentflow.runtime.event_bus import EventBus, EventType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Completion:
    """Final item of a streaming node: the event to route next."""

    event: Event


NodeOutput = Event | Awaitable[Event] | AsyncIterator[Any]


class Node:
    """
    Base class for workflow nodes.

    Subclasses set ``handles`` to the event type(s) routed to them and may
    set ``emits`` to the event types they return (used for diagram export).
    """

    handles: ClassVar[type[Event] | tuple[type[Event], ...]] = ()
    emits: ClassVar[tuple[type[Event], ...]] = ()

    def __init__(self) -> None:
        self._checkpoints: dict[str, Any] = {}
        self._resume_request: InterruptRequest | None = None
        self._workflow_id = ""
        self._state: WorkflowState | None = None
        self._event: Event | None = None
        self._event_bus: EventBus | None = None

    @property
    def name(self) -> str:
        return type(self).__name__

    @classmethod
    def handled_events(cls) -> tuple[type[Event], ...]:
        return cls.handles if isinstance(cls.handles, tuple) else (cls.handles,)

    def invoke(self, event: Event, state: WorkflowState) -> NodeOutput:
        raise NotImplementedError(f"{self.name} must implement invoke()")

    # --- execution context (managed by the executor) ----------------------

    def bind(
        self,
        *,
        workflow_id: str,
        state: WorkflowState,
        event: Event,
        event_bus: EventBus | None = None,
        resume_request: InterruptRequest | None = None,
    ) -> None:
        self._workflow_id = workflow_id
        self._state = state
        self._event = event
        self._event_bus = event_bus
        self._resume_request = resume_request

    def release(self) -> None:
        """Forget per-execution context once the node has produced its event."""
        self._resume_request = None
        self._checkpoints = {}
        self._state = None
        self._event = None

    # --- checkpoints ------------------------------------------------------

    @property
    def checkpoints(self) -> dict[str, Any]:
        return dict(self._checkpoints)

    def restore_checkpoints(self, checkpoints: dict[str, Any]) -> None:
        self._checkpoints = dict(checkpoints)

    async def checkpoint(self, name: str, fn: Callable[[], Any]) -> Any:
        """
        Run ``fn`` once per node execution and cache its value.

        When the node resumes after an interrupt, the cached value is returned
        instead of running ``fn`` again, so work done before the interrupt
        (an LLM call, a side effect) is not repeated.
        """
        if name in self._checkpoints:
            return self._checkpoints[name]
        value = fn()
        if inspect.isawaitable(value):
            value = await value
        self._checkpoints[name] = value
        return value

    # --- interrupts -------------------------------------------------------

    @property
    def is_resuming(self) -> bool:
        return self._resume_request is not None

    @property
    def resume_request(self) -> InterruptRequest | None:
        return self._resume_request

    def consume_resume_request(self) -> InterruptRequest | None:
        request, self._resume_request = self._resume_request, None
        return request

    def interrupt(self, request: InterruptRequest) -> InterruptRequest:
        """
        Suspend the workflow until a human answers ``request``.

        On the resumed run the same call returns the answered request instead
        of raising, so code after it sees the decisions. An answer only
        resumes the interrupt it was given for (same kind and message); a
        different question suspends the run again.
        """
        pending = self._resume_request
        if pending is not None:
            if pending.kind == request.kind and pending.message == request.message:
                return self.consume_resume_request()
            logger.warning(
                f"{self.name}: resume answer for '{pending.message}' does not match "
                f"'{request.message}'"
            )
            self._resume_request = None
        if self._state is None or self._event is None:
            raise RuntimeError(f"{self.name}.interrupt() called outside of a workflow run")
        logger.info(f"⏸ {self.name} requested human input: {request.message}")
        raise WorkflowInterrupt.from_node(request, self, self._state, self._event)

    def interrupt_if(
        self,
        condition: bool | Callable[[], bool],
        request: InterruptRequest,
    ) -> InterruptRequest | None:
        """Interrupt only when ``condition`` holds; returns the answer or None.

        The condition is evaluated on resumed runs too, so a skipped gate never
        takes the answer meant for a later one.
        """
        triggered = condition() if callable(condition) else condition
        if not triggered:
            return None
        return self.interrupt(request)

    # --- observability ----------------------------------------------------

    async def emit(self, event_type: EventType, **data: Any) -> None:
        if self._event_bus is None:
            return
        await self._event_bus.emit(event_type, self._workflow_id, node=self.name, **data)
