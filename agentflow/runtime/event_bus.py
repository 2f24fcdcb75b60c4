"""
Event Bus - Pub/sub notifications emitted while a workflow runs.

Nodes publish what they are doing (inference started, tool called, message
saved, ...) and observers subscribe to the types they care about. Observers
are strictly passive: a failing handler is logged and never changes the
outcome of the workflow.
"""

import asyncio
import itertools
import logging
from collections import Counter, deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    """Notification names published on the bus."""

    # Inference
    INFERENCE_START = "inference-start"
    INFERENCE_STOP = "inference-stop"

    # Tools
    TOOL_CALLING = "tool-calling"
    TOOL_CALLED = "tool-called"

    # Chat history
    MESSAGE_SAVING = "message-saving"
    MESSAGE_SAVED = "message-saved"

    # Failures
    ERROR = "error"

    # Workflow lifecycle
    WORKFLOW_START = "workflow-start"
    WORKFLOW_END = "workflow-end"
    WORKFLOW_SUSPENDED = "workflow-suspended"
    WORKFLOW_RESUMED = "workflow-resumed"
    NODE_START = "node-start"
    NODE_END = "node-end"


@dataclass
class AgentEvent:
    """A notification published on the bus."""

    type: EventType
    workflow_id: str
    node: str | None = None  # Class name of the emitting node
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "workflow_id": self.workflow_id,
            "node": self.node,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


Handler = Callable[[AgentEvent], Awaitable[None]]


@dataclass(frozen=True)
class _Listener:
    types: frozenset[EventType]
    handler: Handler
    workflow_id: str | None = None
    node: str | None = None

    def wants(self, event: AgentEvent) -> bool:
        return (
            event.type in self.types
            and self.workflow_id in (None, event.workflow_id)
            and self.node in (None, event.node)
        )


class EventBus:
    """
    Async pub/sub bus for workflow notifications.

    Example:
        bus = EventBus()

        async def on_tool_called(event: AgentEvent):
            print(event.data["tool"], event.data["result"])

        bus.subscribe([EventType.TOOL_CALLED], on_tool_called)
        agent = Agent(provider, event_bus=bus)
    """

    def __init__(self, max_history: int = 1000, max_concurrent_handlers: int = 10):
        self._listeners: dict[str, _Listener] = {}
        self._history: deque[AgentEvent] = deque(maxlen=max_history)
        self._ids = itertools.count(1)
        self._delivery_slots = asyncio.Semaphore(max_concurrent_handlers)

    def subscribe(
        self,
        event_types: list[EventType],
        handler: Handler,
        filter_workflow: str | None = None,
        filter_node: str | None = None,
    ) -> str:
        """
        Register an async handler for the given event types.

        Args:
            event_types: Notifications the handler wants
            handler: Coroutine function called with each matching event
            filter_workflow: Only deliver events of this workflow id
            filter_node: Only deliver events emitted by this node class

        Returns:
            Id to pass to ``unsubscribe``
        """
        listener_id = f"sub_{next(self._ids)}"
        self._listeners[listener_id] = _Listener(
            types=frozenset(event_types),
            handler=handler,
            workflow_id=filter_workflow,
            node=filter_node,
        )
        logger.debug(f"{listener_id} listening for {', '.join(map(str, event_types))}")
        return listener_id

    def unsubscribe(self, subscription_id: str) -> bool:
        return self._listeners.pop(subscription_id, None) is not None

    async def publish(self, event: AgentEvent) -> None:
        """Record the event and deliver it to every matching subscriber."""
        self._history.append(event)
        targets = [listener for listener in self._listeners.values() if listener.wants(event)]
        if targets:
            await asyncio.gather(*(self._deliver(listener.handler, event) for listener in targets))

    async def emit(
        self,
        event_type: EventType,
        workflow_id: str,
        node: str | None = None,
        **data: Any,
    ) -> None:
        """Convenience publisher used by nodes and the executor."""
        await self.publish(
            AgentEvent(type=event_type, workflow_id=workflow_id, node=node, data=data)
        )

    async def _deliver(self, handler: Handler, event: AgentEvent) -> None:
        async with self._delivery_slots:
            try:
                await handler(event)
            except Exception as e:
                logger.error(f"Observer failed on {event.type}: {e}")

    # ---------------------------------------------------------------------------
    # Inspection
    # ---------------------------------------------------------------------------

    def get_history(
        self,
        event_type: EventType | None = None,
        workflow_id: str | None = None,
        limit: int = 100,
    ) -> list[AgentEvent]:
        """Return recorded events, most recent first."""
        matching = (
            e
            for e in reversed(self._history)
            if event_type in (None, e.type) and workflow_id in (None, e.workflow_id)
        )
        return list(itertools.islice(matching, limit))

    def get_stats(self) -> dict[str, Any]:
        counts = Counter(e.type.value for e in self._history)
        return {
            "total_events": len(self._history),
            "subscriptions": len(self._listeners),
            "events_by_type": dict(counts),
        }

    async def wait_for(
        self,
        event_type: EventType,
        workflow_id: str | None = None,
        timeout: float | None = None,
    ) -> AgentEvent | None:
        """Wait for the next event of a type; None on timeout."""
        arrived: asyncio.Future[AgentEvent] = asyncio.get_running_loop().create_future()

        async def capture(event: AgentEvent) -> None:
            if not arrived.done():
                arrived.set_result(event)

        listener_id = self.subscribe([event_type], capture, filter_workflow=workflow_id)
        try:
            return await asyncio.wait_for(arrived, timeout=timeout)
        except TimeoutError:
            return None
        finally:
            self.unsubscribe(listener_id)
