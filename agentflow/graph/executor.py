"""
Workflow Executor - Runs event-routed node graphs.

The executor:
1. Maps every event type to the node that handles it
2. Starts from the StartEvent (or from a persisted interrupt when resuming)
3. Wraps each node execution with its middleware
4. Streams node chunks to the caller and routes each returned event
5. Stops on StopEvent, or suspends when a node or middleware interrupts
"""

from __future__ import annotations

import inspect
import logging
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from agentflow.exceptions import WorkflowError
from agentflow.graph.events import Event, StartEvent, StopEvent
from agentflow.graph.hitl import InterruptRequest, WorkflowInterrupt
from agentflow.graph.middleware import WorkflowMiddleware
from agentflow.graph.node import Completion, Node
from agentflow.graph.state import WorkflowState
from agentflow.observability import set_trace_context
from agentflow.runtime.event_bus import EventBus, EventType
from agentflow.storage.persistence import InMemoryPersistence, Persistence
from agentflow.utils.imports import qualified_name


class WorkflowStatus(StrEnum):
    COMPLETED = "completed"
    SUSPENDED = "suspended"


@dataclass
class WorkflowResult:
    """Outcome of one run: completed, or suspended awaiting a human decision."""

    status: WorkflowStatus
    workflow_id: str
    state: WorkflowState
    final_event: Event | None = None
    interrupt: WorkflowInterrupt | None = None
    steps_executed: int = 0

    @property
    def is_suspended(self) -> bool:
        return self.status == WorkflowStatus.SUSPENDED

    @property
    def is_completed(self) -> bool:
        return self.status == WorkflowStatus.COMPLETED

    @property
    def request(self) -> InterruptRequest | None:
        return self.interrupt.request if self.interrupt is not None else None


class WorkflowHandler:
    """
    Handle on a started run.

    Iterate ``stream_events()`` to receive chunks as nodes produce them, then
    await ``result()``. Awaiting ``result()`` directly drains the stream.
    The underlying run is lazy: nothing executes until one of them is used.
    """

    def __init__(self, workflow: Workflow, run: AsyncIterator[Any]):
        self.workflow = workflow
        self._run = run
        self._result: WorkflowResult | None = None
        self._started = False

    async def stream_events(self) -> AsyncIterator[Any]:
        if self._started:
            raise WorkflowError("Workflow stream can only be consumed once")
        self._started = True
        async for item in self._run:
            if isinstance(item, WorkflowResult):
                self._result = item
                continue
            yield item

    async def result(self) -> WorkflowResult:
        if not self._started:
            async for _ in self.stream_events():
                pass
        if self._result is None:
            raise WorkflowError("Workflow stream was not fully consumed")
        return self._result


class Workflow:
    """
    Executes an event-routed graph of nodes.

    Example:
        workflow = Workflow([PrepareNode(), WorkNode()], persistence=FilePersistence(path))
        result = await workflow.run()
        while result.is_suspended:
            request = ask_human(result.request)
            result = await workflow.run(resume_request=request)
    """

    def __init__(
        self,
        nodes: list[Node] | None = None,
        *,
        state: WorkflowState | None = None,
        persistence: Persistence | None = None,
        workflow_id: str | None = None,
        event_bus: EventBus | None = None,
        start_event: Event | None = None,
    ):
        self._nodes: list[Node] = list(nodes or [])
        self.state = state if state is not None else WorkflowState()
        self.persistence = persistence or InMemoryPersistence()
        self.workflow_id = workflow_id or uuid.uuid4().hex
        self.event_bus = event_bus or EventBus()
        self.start_event = start_event or StartEvent()
        self._global_middleware: list[WorkflowMiddleware] = []
        self._node_middleware: dict[type[Node], list[WorkflowMiddleware]] = {}
        self.logger = logging.getLogger(__name__)

    # --- graph construction -----------------------------------------------

    @property
    def nodes(self) -> list[Node]:
        return list(self._nodes)

    def add_node(self, node: Node) -> Workflow:
        self._nodes.append(node)
        return self

    def add_nodes(self, nodes: list[Node]) -> Workflow:
        self._nodes.extend(nodes)
        return self

    def add_middleware(
        self,
        node_types: type[Node] | list[type[Node]],
        middleware: WorkflowMiddleware | list[WorkflowMiddleware],
    ) -> Workflow:
        """Register middleware for one or more concrete node classes, in order."""
        types = node_types if isinstance(node_types, list) else [node_types]
        items = middleware if isinstance(middleware, list) else [middleware]
        for node_type in types:
            self._node_middleware.setdefault(node_type, []).extend(items)
        return self

    def add_global_middleware(
        self, middleware: WorkflowMiddleware | list[WorkflowMiddleware]
    ) -> Workflow:
        items = middleware if isinstance(middleware, list) else [middleware]
        self._global_middleware.extend(items)
        return self

    def middleware_for(self, node: Node) -> list[WorkflowMiddleware]:
        """Global middleware first, then those registered for the node's class."""
        return [*self._global_middleware, *self._node_middleware.get(type(node), [])]

    def event_node_map(self) -> dict[type[Event], Node]:
        """Validate the graph and map each event type to the node that handles it."""
        mapping: dict[type[Event], Node] = {}
        for node in self._nodes:
            handled = node.handled_events()
            if not handled:
                raise WorkflowError(f"{node.name} does not declare the events it handles")
            for event_type in handled:
                if event_type in mapping:
                    raise WorkflowError(
                        f"{event_type.__name__} is handled by both "
                        f"{mapping[event_type].name} and {node.name}"
                    )
                mapping[event_type] = node
        start_type = type(self.start_event)
        if start_type not in mapping:
            raise WorkflowError(f"No node handles the start event {start_type.__name__}")
        return mapping

    @staticmethod
    def _resolve(mapping: dict[type[Event], Node], event: Event) -> Node:
        for event_type in type(event).__mro__:
            if event_type in mapping:
                return mapping[event_type]
        raise WorkflowError(f"No node handles {type(event).__name__}")

    def _node_by_class(self, node_class: str) -> Node:
        for node in self._nodes:
            if qualified_name(node) == node_class:
                return node
        raise WorkflowError(f"Interrupted node {node_class} is not part of this workflow")

    def export(self) -> str:
        """Render the event routing as a Mermaid diagram."""
        from agentflow.graph.exporter import MermaidExporter

        return MermaidExporter().export(self)

    # --- execution ----------------------------------------------------------

    def start(self, resume_request: InterruptRequest | None = None) -> WorkflowHandler:
        """Start (or resume) the run and return a handle to stream it."""
        return WorkflowHandler(self, self._execute(resume_request))

    async def run(self, resume_request: InterruptRequest | None = None) -> WorkflowResult:
        """Run to completion or suspension without streaming."""
        return await self.start(resume_request).result()

    async def _execute(self, resume_request: InterruptRequest | None) -> AsyncIterator[Any]:
        mapping = self.event_node_map()
        set_trace_context(workflow_id=self.workflow_id)

        if resume_request is not None:
            interrupt = await self.persistence.load(self.workflow_id)
            self.state = interrupt.state
            node = self._node_by_class(interrupt.node_class)
            node.restore_checkpoints(interrupt.checkpoints)
            event = interrupt.event
            self.logger.info(f"🔄 Resuming workflow {self.workflow_id} at {node.name}")
            await self.event_bus.emit(
                EventType.WORKFLOW_RESUMED, self.workflow_id, node=node.name
            )
        else:
            for stale in self._nodes:
                stale.restore_checkpoints({})
            event = self.start_event
            node = self._resolve(mapping, event)
            self.logger.info(f"🚀 Starting workflow {self.workflow_id}")
            await self.event_bus.emit(EventType.WORKFLOW_START, self.workflow_id)

        steps = 0
        try:
            while True:
                steps += 1
                result: Event | None = None
                async for item in self._execute_node(node, event, resume_request):
                    if isinstance(item, Completion):
                        result = item.event
                    else:
                        yield item
                resume_request = None

                if isinstance(result, StopEvent):
                    break
                node = self._resolve(mapping, result)
                event = result

        except WorkflowInterrupt as interrupt:
            await self.persistence.save(self.workflow_id, interrupt)
            self.logger.info(
                f"⏸ Workflow {self.workflow_id} suspended at {interrupt.node_name}: "
                f"{interrupt.request.message}"
            )
            await self.event_bus.emit(
                EventType.WORKFLOW_SUSPENDED,
                self.workflow_id,
                node=interrupt.node_name,
                request=interrupt.request.to_dict(),
            )
            yield WorkflowResult(
                status=WorkflowStatus.SUSPENDED,
                workflow_id=self.workflow_id,
                state=self.state,
                interrupt=interrupt,
                steps_executed=steps,
            )
            return

        except Exception as e:
            self.logger.error(f"❌ Workflow {self.workflow_id} failed at {node.name}: {e}")
            await self.event_bus.emit(
                EventType.ERROR,
                self.workflow_id,
                node=node.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        await self.persistence.delete(self.workflow_id)
        self.logger.info(f"✓ Workflow {self.workflow_id} completed in {steps} steps")
        await self.event_bus.emit(EventType.WORKFLOW_END, self.workflow_id, steps=steps)
        yield WorkflowResult(
            status=WorkflowStatus.COMPLETED,
            workflow_id=self.workflow_id,
            state=self.state,
            final_event=result,
            steps_executed=steps,
        )

    async def _execute_node(
        self,
        node: Node,
        event: Event,
        resume_request: InterruptRequest | None,
    ) -> AsyncIterator[Any]:
        """Run one node with its middleware; yields chunks, then Completion."""
        node.bind(
            workflow_id=self.workflow_id,
            state=self.state,
            event=event,
            event_bus=self.event_bus,
            resume_request=resume_request,
        )
        set_trace_context(node=node.name)
        self.logger.debug(f"▶ {node.name} <- {type(event).__name__}")
        await self.event_bus.emit(EventType.NODE_START, self.workflow_id, node=node.name)

        middleware = self.middleware_for(node)
        for mw in middleware:
            await mw.before(node, event, self.state)

        output = node.invoke(event, self.state)
        result: Event | None = None

        if inspect.isasyncgen(output):
            async for item in output:
                if isinstance(item, Completion):
                    result = item.event
                elif result is not None:
                    raise WorkflowError(f"{node.name} yielded {item!r} after its Completion")
                else:
                    yield item
            if result is None:
                raise WorkflowError(f"{node.name} finished streaming without a Completion")
        elif inspect.isawaitable(output):
            result = await output
        else:
            result = output

        if not isinstance(result, Event):
            raise WorkflowError(f"{node.name} returned {result!r} instead of an Event")

        for mw in middleware:
            await mw.after(node, event, result, self.state)

        node.release()
        self.logger.debug(f"✓ {node.name} -> {type(result).__name__}")
        await self.event_bus.emit(
            EventType.NODE_END, self.workflow_id, node=node.name, result=type(result).__name__
        )
        yield Completion(result)
