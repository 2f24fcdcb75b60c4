"""
Tests for the Agent facade: chat and streaming runs, conversation carry-over,
observability notifications and workflow wiring.
"""

import pytest

from agentflow.agent import Agent, ChatNode
from agentflow.chat.chunks import TextChunk
from agentflow.chat.history import ChatHistory
from agentflow.chat.messages import AssistantMessage, UserMessage
from agentflow.exceptions import ProviderError
from agentflow.graph.events import StopEvent
from agentflow.graph.middleware import WorkflowMiddleware
from agentflow.graph.state import AgentState
from agentflow.llm.mock import MockLLMProvider, MockResponse
from agentflow.llm.stream_events import (
    ContentBlockDeltaEvent,
    ContentBlockStartEvent,
    FinishEvent,
    MessageStartEvent,
    UsageEvent,
)
from agentflow.runtime.event_bus import EventBus, EventType


class NodeNameRecorder(WorkflowMiddleware):
    def __init__(self):
        self.seen: list[str] = []

    async def before(self, node, event, state):
        self.seen.append(node.name)


@pytest.mark.asyncio
async def test_chat_run_saves_the_exchange():
    provider = MockLLMProvider([MockResponse(text="Hi! How can I help?")])
    agent = Agent(provider, instructions="You are friendly.")

    result = await agent.chat(UserMessage("Hello")).result()

    assert result.is_completed
    assert isinstance(result.final_event, StopEvent)
    assert [(type(m), m.text) for m in agent.state.chat_history.messages] == [
        (UserMessage, "Hello"),
        (AssistantMessage, "Hi! How can I help?"),
    ]
    assert provider.requests[0].instructions == "You are friendly."


@pytest.mark.asyncio
async def test_conversation_carries_over_between_runs():
    provider = MockLLMProvider([MockResponse(text="Paris."), MockResponse(text="About 2 million.")])
    agent = Agent(provider)

    await agent.chat(UserMessage("Capital of France?")).result()
    await agent.chat(UserMessage("Population?")).result()

    assert [m.text for m in provider.requests[1].messages] == [
        "Capital of France?",
        "Paris.",
        "Population?",
    ]


@pytest.mark.asyncio
async def test_agent_uses_the_given_state():
    state = AgentState(chat_history=ChatHistory(context_window=1000))
    agent = Agent(MockLLMProvider([MockResponse(text="ok")]), state=state)

    assert agent.state is state
    await agent.chat(UserMessage("ping")).result()

    assert agent.state is state
    assert len(state.chat_history) == 2


@pytest.mark.asyncio
async def test_stream_yields_text_chunks_as_they_arrive():
    provider = MockLLMProvider(
        [
            [
                MessageStartEvent(message_id="msg_1"),
                ContentBlockStartEvent(index=0, block_type="text"),
                ContentBlockDeltaEvent(index=0, delta_type="text", content="Hel"),
                ContentBlockDeltaEvent(index=0, delta_type="text", content="lo"),
                UsageEvent(input_tokens=5, output_tokens=2),
                FinishEvent(stop_reason="end_turn"),
            ]
        ]
    )
    agent = Agent(provider)

    handler = agent.stream(UserMessage("Say hello"))
    chunks = [chunk async for chunk in handler.stream_events()]
    result = await handler.result()

    assert chunks == [
        TextChunk(content="Hel", message_id="msg_1"),
        TextChunk(content="lo", message_id="msg_1"),
    ]
    assert result.is_completed
    reply = agent.state.chat_history.last_message()
    assert reply.text == "Hello"
    assert reply.usage.output_tokens == 2


@pytest.mark.asyncio
async def test_inference_and_history_notifications():
    bus = EventBus()
    seen: list[str] = []

    async def record(event):
        seen.append(event.type.value)

    bus.subscribe(
        [
            EventType.INFERENCE_START,
            EventType.INFERENCE_STOP,
            EventType.MESSAGE_SAVING,
            EventType.MESSAGE_SAVED,
        ],
        record,
    )
    agent = Agent(MockLLMProvider([MockResponse(text="Hi")]), event_bus=bus)

    await agent.chat(UserMessage("Hello")).result()

    assert seen == [
        "message-saving",
        "message-saved",
        "inference-start",
        "inference-stop",
        "message-saving",
        "message-saved",
    ]
    [stop] = bus.get_history(EventType.INFERENCE_STOP)
    assert stop.node == "ChatNode"
    assert stop.data["response"].text == "Hi"


@pytest.mark.asyncio
async def test_provider_failure_fails_the_run():
    agent = Agent(MockLLMProvider([]))

    with pytest.raises(ProviderError, match="script exhausted"):
        await agent.chat(UserMessage("Hello")).result()


@pytest.mark.asyncio
async def test_global_middleware_sees_every_node():
    recorder = NodeNameRecorder()
    provider = MockLLMProvider([MockResponse(text="Hi")])
    agent = Agent(provider).add_global_middleware(recorder)

    await agent.chat(UserMessage("Hello")).result()

    assert recorder.seen == ["PrepareInferenceNode", "ChatNode", "RouterNode"]


def test_agent_workflow_diagram():
    agent = Agent(MockLLMProvider())
    diagram = agent.build_workflow(ChatNode(agent.provider), []).export()

    for edge in (
        "StartEvent --> PrepareInferenceNode",
        "AIInferenceEvent --> ChatNode",
        "AIResponseEvent --> RouterNode",
        "RouterNode --> ToolCallEvent",
        "RouterNode --> StopEvent",
        "ToolCallEvent --> ToolNode",
        "ToolNode --> AIInferenceEvent",
    ):
        assert f"    {edge}\n" in diagram


def test_parallel_agent_uses_concurrent_tool_node():
    agent = Agent(MockLLMProvider(), parallel_tool_calls=True)

    workflow = agent.build_workflow(ChatNode(agent.provider), [])

    assert [n.name for n in workflow.nodes][-1] == "ConcurrentToolNode"
