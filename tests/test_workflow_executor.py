"""
Tests for the workflow executor: event routing, streaming nodes, middleware
ordering, interrupts with checkpoints, graph validation and diagram export.
"""

from dataclasses import dataclass

import pytest

from agentflow.exceptions import WorkflowError, WorkflowNotFoundError
from agentflow.graph.events import Event, StartEvent, StopEvent
from agentflow.graph.executor import Workflow, WorkflowStatus
from agentflow.graph.hitl import Action, InterruptRequest
from agentflow.graph.middleware import WorkflowMiddleware
from agentflow.graph.node import Completion, Node
from agentflow.graph.state import WorkflowState
from agentflow.runtime.event_bus import EventBus, EventType


# ---- Events ----
@dataclass(frozen=True)
class CountEvent(Event):
    value: int


@dataclass(frozen=True)
class LoudCountEvent(CountEvent):
    """Subclass routed through its parent's handler."""


# ---- Nodes ----
class SeedNode(Node):
    handles = StartEvent
    emits = (CountEvent,)

    def __init__(self, start: int = 0, loud: bool = False):
        super().__init__()
        self.start = start
        self.loud = loud

    def invoke(self, event, state):
        state.set("path", ["seed"])
        if self.loud:
            return LoudCountEvent(self.start)
        return CountEvent(self.start)


class CountNode(Node):
    handles = CountEvent
    emits = (CountEvent, StopEvent)

    async def invoke(self, event, state):
        state.set("path", [*state.get("path"), f"count:{event.value}"])
        if event.value >= 2:
            return StopEvent()
        return CountEvent(event.value + 1)


class WordStreamNode(Node):
    handles = CountEvent

    async def invoke(self, event, state):
        for word in ("one", "two", "three"):
            yield word
        yield Completion(StopEvent())


class ForgetfulStreamNode(Node):
    handles = CountEvent

    async def invoke(self, event, state):
        yield "chunk"


class BrokenNode(Node):
    handles = CountEvent

    def invoke(self, event, state):
        return {"not": "an event"}


class FailingNode(Node):
    handles = CountEvent

    async def invoke(self, event, state):
        raise RuntimeError("node exploded")


class ApprovalNode(Node):
    """Does expensive work once, then asks a human before finishing."""

    handles = CountEvent
    emits = (StopEvent,)

    def __init__(self):
        super().__init__()
        self.work_runs = 0

    def expensive_work(self):
        self.work_runs += 1
        return "report-v1"

    async def invoke(self, event, state):
        report = await self.checkpoint("report", self.expensive_work)
        answer = self.interrupt(
            InterruptRequest(
                message="Publish the report?",
                actions=[Action(id="publish", name="Publish", description=report)],
            )
        )
        state.set("published", answer.get_action("publish").is_approved)
        state.set("report", report)
        return StopEvent()


class TwoGateNode(Node):
    """Asks for approval only at the gates whose condition holds."""

    handles = CountEvent
    emits = (StopEvent,)

    def __init__(self, first: bool, second: bool):
        super().__init__()
        self.first = first
        self.second = second

    def invoke(self, event, state):
        gates = [("first", self.first, "Open gate one?"), ("second", self.second, "Open gate two?")]
        for key, condition, question in gates:
            answer = self.interrupt_if(
                condition, InterruptRequest(message=question, actions=[Action(key, key)])
            )
            if answer is not None:
                state.set(key, answer.message)
        return StopEvent()


# ---- Middleware ----
class RecordingMiddleware(WorkflowMiddleware):
    def __init__(self, name: str, log: list[str]):
        self.name = name
        self.log = log

    async def before(self, node, event, state):
        self.log.append(f"{self.name}.before:{node.name}")

    async def after(self, node, event, result, state):
        self.log.append(f"{self.name}.after:{node.name}->{type(result).__name__}")


class GateMiddleware(WorkflowMiddleware):
    """Interrupts before the node body runs."""

    async def before(self, node, event, state):
        answer = node.interrupt(InterruptRequest(message="Continue?", actions=[Action("go", "Go")]))
        state.set("gate", answer.get_action("go").decision.value)


# ---- Routing ----


@pytest.mark.asyncio
async def test_events_are_routed_until_stop():
    state = WorkflowState()
    workflow = Workflow([SeedNode(), CountNode()], state=state)

    result = await workflow.run()

    assert result.status == WorkflowStatus.COMPLETED
    assert isinstance(result.final_event, StopEvent)
    assert result.steps_executed == 4
    assert state.get("path") == ["seed", "count:0", "count:1", "count:2"]


@pytest.mark.asyncio
async def test_event_subclass_routes_to_parent_handler():
    state = WorkflowState()
    workflow = Workflow([SeedNode(start=2, loud=True), CountNode()], state=state)

    result = await workflow.run()

    assert result.is_completed
    assert state.get("path") == ["seed", "count:2"]


@pytest.mark.asyncio
async def test_streaming_node_chunks_reach_the_caller():
    workflow = Workflow([SeedNode(), WordStreamNode()])

    handler = workflow.start()
    chunks = [chunk async for chunk in handler.stream_events()]
    result = await handler.result()

    assert chunks == ["one", "two", "three"]
    assert result.is_completed


@pytest.mark.asyncio
async def test_stream_can_only_be_consumed_once():
    handler = Workflow([SeedNode(), WordStreamNode()]).start()
    async for _ in handler.stream_events():
        pass

    with pytest.raises(WorkflowError, match="only be consumed once"):
        async for _ in handler.stream_events():
            pass


@pytest.mark.asyncio
async def test_streaming_node_without_completion_fails():
    with pytest.raises(WorkflowError, match="without a Completion"):
        await Workflow([SeedNode(), ForgetfulStreamNode()]).run()


@pytest.mark.asyncio
async def test_node_must_return_an_event():
    with pytest.raises(WorkflowError, match="instead of an Event"):
        await Workflow([SeedNode(), BrokenNode()]).run()


@pytest.mark.asyncio
async def test_node_failure_is_published_and_raised():
    bus = EventBus()
    workflow = Workflow([SeedNode(), FailingNode()], event_bus=bus, workflow_id="wf-fail")

    with pytest.raises(RuntimeError, match="node exploded"):
        await workflow.run()

    [error] = bus.get_history(EventType.ERROR)
    assert error.node == "FailingNode"
    assert error.data["error_type"] == "RuntimeError"


# ---- Graph validation ----


def test_duplicate_handler_is_rejected():
    workflow = Workflow([SeedNode(), CountNode(), WordStreamNode()])

    with pytest.raises(WorkflowError, match="handled by both CountNode and WordStreamNode"):
        workflow.event_node_map()


def test_missing_start_node_is_rejected():
    with pytest.raises(WorkflowError, match="No node handles the start event StartEvent"):
        Workflow([CountNode()]).event_node_map()


def test_node_without_handles_is_rejected():
    class Orphan(Node):
        pass

    with pytest.raises(WorkflowError, match="does not declare"):
        Workflow([SeedNode(), Orphan()]).event_node_map()


@pytest.mark.asyncio
async def test_unhandled_event_fails_the_run():
    with pytest.raises(WorkflowError, match="No node handles CountEvent"):
        await Workflow([SeedNode()]).run()


# ---- Middleware ----


@pytest.mark.asyncio
async def test_global_middleware_runs_before_node_middleware():
    log: list[str] = []
    workflow = Workflow([SeedNode(start=2), CountNode()])
    workflow.add_middleware(CountNode, RecordingMiddleware("node", log))
    workflow.add_global_middleware(RecordingMiddleware("global", log))

    await workflow.run()

    assert log == [
        "global.before:SeedNode",
        "global.after:SeedNode->CountEvent",
        "global.before:CountNode",
        "node.before:CountNode",
        "global.after:CountNode->StopEvent",
        "node.after:CountNode->StopEvent",
    ]


# ---- Interrupts ----


@pytest.mark.asyncio
async def test_interrupt_suspends_and_resume_reuses_checkpoint():
    node = ApprovalNode()
    bus = EventBus()
    workflow = Workflow([SeedNode(), node], workflow_id="wf-approve", event_bus=bus)

    suspended = await workflow.run()

    assert suspended.is_suspended
    assert suspended.request.message == "Publish the report?"
    assert suspended.interrupt.node_name == "ApprovalNode"
    assert suspended.interrupt.checkpoints == {"report": "report-v1"}
    assert await workflow.persistence.exists("wf-approve")
    assert len(bus.get_history(EventType.WORKFLOW_SUSPENDED)) == 1

    request = suspended.request
    request.get_action("publish").approve()
    resumed = await workflow.run(resume_request=request)

    assert resumed.is_completed
    assert resumed.state.get("published") is True
    assert resumed.state.get("report") == "report-v1"
    assert node.work_runs == 1
    assert not await workflow.persistence.exists("wf-approve")
    assert len(bus.get_history(EventType.WORKFLOW_RESUMED)) == 1


@pytest.mark.asyncio
async def test_middleware_can_interrupt_before_node():
    state = WorkflowState()
    workflow = Workflow([SeedNode(start=2), CountNode()], state=state)
    workflow.add_middleware(CountNode, GateMiddleware())

    suspended = await workflow.run()
    assert suspended.is_suspended
    assert suspended.interrupt.node_name == "CountNode"
    assert state.get("path") == ["seed"]

    request = suspended.request
    request.get_action("go").reject("not yet")
    resumed = await workflow.run(resume_request=request)

    assert resumed.is_completed
    assert resumed.state.get("gate") == "rejected"
    assert resumed.state.get("path") == ["seed", "count:2"]


@pytest.mark.asyncio
async def test_resume_without_saved_interrupt_fails():
    workflow = Workflow([SeedNode(), CountNode()], workflow_id="never-suspended")

    with pytest.raises(WorkflowNotFoundError):
        await workflow.run(resume_request=InterruptRequest(message="?"))


@pytest.mark.asyncio
async def test_skipped_gate_does_not_take_a_later_answer():
    workflow = Workflow([SeedNode(), TwoGateNode(first=False, second=True)])

    suspended = await workflow.run()
    assert suspended.request.message == "Open gate two?"

    resumed = await workflow.run(resume_request=suspended.request.approve_all())

    assert resumed.is_completed
    assert resumed.state.get("first") is None
    assert resumed.state.get("second") == "Open gate two?"


@pytest.mark.asyncio
async def test_interrupt_if_without_condition_runs_through():
    workflow = Workflow([SeedNode(), TwoGateNode(first=False, second=False)])

    result = await workflow.run()

    assert result.is_completed
    assert result.state.get("first") is None
    assert result.state.get("second") is None


@pytest.mark.asyncio
async def test_answer_to_another_question_suspends_again():
    workflow = Workflow([SeedNode(), TwoGateNode(first=True, second=False)])
    await workflow.run()

    unrelated = InterruptRequest(message="Something else?", actions=[Action("x", "x")])
    again = await workflow.run(resume_request=unrelated.approve_all())

    assert again.is_suspended
    assert again.request.message == "Open gate one?"
    assert again.state.get("first") is None


def test_interrupt_outside_a_run_is_an_error():
    with pytest.raises(RuntimeError, match="outside of a workflow run"):
        ApprovalNode().interrupt(InterruptRequest(message="?"))


# ---- Lifecycle notifications ----


@pytest.mark.asyncio
async def test_lifecycle_events_are_published():
    bus = EventBus()
    seen: list[str] = []

    async def record(event):
        seen.append(f"{event.type.value}:{event.node or '-'}")

    bus.subscribe(
        [
            EventType.WORKFLOW_START,
            EventType.NODE_START,
            EventType.NODE_END,
            EventType.WORKFLOW_END,
        ],
        record,
    )
    await Workflow([SeedNode(start=2), CountNode()], event_bus=bus).run()

    assert seen == [
        "workflow-start:-",
        "node-start:SeedNode",
        "node-end:SeedNode",
        "node-start:CountNode",
        "node-end:CountNode",
        "workflow-end:-",
    ]


# ---- Export ----


def test_mermaid_export_lists_routes_and_emitted_events():
    diagram = Workflow([SeedNode(), CountNode()]).export()

    assert diagram == (
        "graph TD\n"
        "    StartEvent --> SeedNode\n"
        "    SeedNode --> CountEvent\n"
        "    CountEvent --> CountNode\n"
        "    CountNode --> CountEvent\n"
        "    CountNode --> StopEvent\n"
    )
