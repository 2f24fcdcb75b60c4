"""
Tests for the EventBus pub/sub notifications.
"""

import asyncio

import pytest

from agentflow.runtime.event_bus import AgentEvent, EventBus, EventType


@pytest.mark.asyncio
async def test_subscriber_receives_matching_events():
    bus = EventBus()
    received: list[AgentEvent] = []

    async def handler(event: AgentEvent):
        received.append(event)

    bus.subscribe([EventType.TOOL_CALLED], handler)
    await bus.emit(EventType.TOOL_CALLING, "wf-1", node="ToolNode", tool="ping")
    await bus.emit(EventType.TOOL_CALLED, "wf-1", node="ToolNode", tool="ping")

    assert len(received) == 1
    assert received[0].type == EventType.TOOL_CALLED
    assert received[0].data == {"tool": "ping"}


@pytest.mark.asyncio
async def test_filters_by_workflow_and_node():
    bus = EventBus()
    received: list[AgentEvent] = []

    async def handler(event: AgentEvent):
        received.append(event)

    bus.subscribe([EventType.NODE_START], handler, filter_workflow="wf-1", filter_node="ChatNode")
    await bus.emit(EventType.NODE_START, "wf-2", node="ChatNode")
    await bus.emit(EventType.NODE_START, "wf-1", node="RouterNode")
    await bus.emit(EventType.NODE_START, "wf-1", node="ChatNode")

    assert [(e.workflow_id, e.node) for e in received] == [("wf-1", "ChatNode")]


@pytest.mark.asyncio
async def test_failing_handler_does_not_break_publishing():
    bus = EventBus()
    received: list[AgentEvent] = []

    async def broken(event: AgentEvent):
        raise RuntimeError("observer bug")

    async def working(event: AgentEvent):
        received.append(event)

    bus.subscribe([EventType.ERROR], broken)
    bus.subscribe([EventType.ERROR], working)
    await bus.emit(EventType.ERROR, "wf-1", error="boom")

    assert len(received) == 1


@pytest.mark.asyncio
async def test_unsubscribe():
    bus = EventBus()
    received: list[AgentEvent] = []

    async def handler(event: AgentEvent):
        received.append(event)

    sub_id = bus.subscribe([EventType.WORKFLOW_END], handler)
    assert bus.unsubscribe(sub_id)
    assert not bus.unsubscribe(sub_id)

    await bus.emit(EventType.WORKFLOW_END, "wf-1")
    assert received == []


@pytest.mark.asyncio
async def test_history_and_stats():
    bus = EventBus(max_history=3)
    for i in range(4):
        await bus.emit(EventType.NODE_END, f"wf-{i}")
    await bus.emit(EventType.WORKFLOW_END, "wf-3")

    history = bus.get_history()
    assert [e.workflow_id for e in history] == ["wf-3", "wf-3", "wf-2"]
    assert len(bus.get_history(event_type=EventType.NODE_END)) == 2
    assert bus.get_stats()["events_by_type"] == {"node-end": 2, "workflow-end": 1}


@pytest.mark.asyncio
async def test_wait_for_next_event():
    bus = EventBus()

    waiter = asyncio.create_task(bus.wait_for(EventType.WORKFLOW_SUSPENDED, timeout=1.0))
    await asyncio.sleep(0)
    await bus.emit(EventType.WORKFLOW_SUSPENDED, "wf-1", node="ToolNode")

    event = await waiter
    assert event is not None
    assert event.node == "ToolNode"


@pytest.mark.asyncio
async def test_wait_for_times_out():
    bus = EventBus()

    assert await bus.wait_for(EventType.WORKFLOW_END, timeout=0.01) is None


def test_event_to_dict():
    event = AgentEvent(type=EventType.MESSAGE_SAVED, workflow_id="wf-1", node="ChatNode")

    d = event.to_dict()

    assert d["type"] == "message-saved"
    assert d["node"] == "ChatNode"
    assert "timestamp" in d
