"""
Tests for the litellm adapter: request mapping, response and chunk mapping.
``litellm.acompletion`` is replaced by a fake; no network access happens.
"""

from types import SimpleNamespace

import litellm
import pytest

from agentflow.chat.messages import (
    AssistantMessage,
    ImageContent,
    TextContent,
    ToolCallMessage,
    ToolResultMessage,
    Usage,
    UserMessage,
)
from agentflow.exceptions import ProviderError
from agentflow.llm.litellm import (
    TEXT_INDEX,
    TOOL_INDEX_OFFSET,
    LiteLLMProvider,
    chunk_to_events,
    message_to_llm_dicts,
)
from agentflow.llm.stream_assembly import StreamAssembler
from agentflow.llm.stream_events import (
    ContentBlockDeltaEvent,
    ContentBlockStartEvent,
    FinishEvent,
    UsageEvent,
)
from agentflow.tools.tool import Tool


# ---- Fakes shaped like litellm objects ----
def tool_call(call_id, name, arguments, index=0):
    return SimpleNamespace(
        index=index,
        id=call_id,
        function=SimpleNamespace(name=name, arguments=arguments),
    )


def completion(content=None, tool_calls=None, finish_reason="stop", usage=(20, 5)):
    return SimpleNamespace(
        choices=[
            SimpleNamespace(
                message=SimpleNamespace(content=content, tool_calls=tool_calls),
                finish_reason=finish_reason,
            )
        ],
        usage=SimpleNamespace(prompt_tokens=usage[0], completion_tokens=usage[1]),
    )


def chunk(content=None, tool_calls=None, finish_reason=None, usage=None, reasoning=None):
    return SimpleNamespace(
        choices=[
            SimpleNamespace(
                delta=SimpleNamespace(
                    content=content, tool_calls=tool_calls, reasoning_content=reasoning
                ),
                finish_reason=finish_reason,
            )
        ],
        usage=usage,
        model="gpt-test",
    )


class FakeCompletion:
    """Records the request and returns a canned response."""

    def __init__(self, response=None, chunks=None, error=None):
        self.response = response
        self.chunks = chunks or []
        self.error = error
        self.kwargs = None

    async def __call__(self, **kwargs):
        self.kwargs = kwargs
        if self.error is not None:
            raise self.error
        if kwargs.get("stream"):
            return self._stream()
        return self.response

    async def _stream(self):
        for item in self.chunks:
            yield item


def weather_tool() -> Tool:
    return Tool.from_function(lambda city: f"sunny in {city}", name="get_weather")


# ---- Request mapping ----


def test_tool_round_maps_to_openai_messages():
    call = Tool("get_weather").bind_call("call_1", {"city": "Oslo"})
    result = Tool("get_weather").bind_call("call_1", {"city": "Oslo"})
    result.result = "sunny"

    assert message_to_llm_dicts(ToolCallMessage(tools=[call])) == [
        {
            "role": "assistant",
            "content": None,
            "tool_calls": [
                {
                    "id": "call_1",
                    "type": "function",
                    "function": {"name": "get_weather", "arguments": '{"city": "Oslo"}'},
                }
            ],
        }
    ]
    assert message_to_llm_dicts(ToolResultMessage(tools=[result])) == [
        {"role": "tool", "tool_call_id": "call_1", "content": "sunny"}
    ]


def test_user_message_with_image_uses_content_parts():
    message = UserMessage(
        [
            TextContent("What is this?"),
            ImageContent(source="aGVsbG8=", source_type="base64", media_type="image/jpeg"),
        ]
    )

    assert message_to_llm_dicts(message) == [
        {
            "role": "user",
            "content": [
                {"type": "text", "text": "What is this?"},
                {"type": "image_url", "image_url": {"url": "data:image/jpeg;base64,aGVsbG8="}},
            ],
        }
    ]


# ---- chat ----


@pytest.mark.asyncio
async def test_chat_sends_request_and_maps_text_reply(monkeypatch):
    fake = FakeCompletion(response=completion(content="Hello!"))
    monkeypatch.setattr(litellm, "acompletion", fake)
    provider = LiteLLMProvider(model="openai/gpt-test", api_key="sk-test", temperature=0)

    reply = await provider.system_prompt("Be brief.").set_tools([weather_tool()]).chat(
        [UserMessage("Hi")]
    )

    assert isinstance(reply, AssistantMessage)
    assert reply.text == "Hello!"
    assert reply.usage == Usage(input_tokens=20, output_tokens=5)
    assert reply.metadata == {"stop_reason": "stop"}

    assert fake.kwargs["model"] == "openai/gpt-test"
    assert fake.kwargs["api_key"] == "sk-test"
    assert fake.kwargs["temperature"] == 0
    assert fake.kwargs["messages"] == [
        {"role": "system", "content": "Be brief."},
        {"role": "user", "content": "Hi"},
    ]
    assert fake.kwargs["tools"][0]["function"]["name"] == "get_weather"


@pytest.mark.asyncio
async def test_chat_maps_tool_calls_to_bound_tools(monkeypatch):
    fake = FakeCompletion(
        response=completion(
            tool_calls=[tool_call("call_1", "get_weather", '{"city": "Oslo"}')],
            finish_reason="tool_calls",
        )
    )
    monkeypatch.setattr(litellm, "acompletion", fake)
    provider = LiteLLMProvider(model="openai/gpt-test").set_tools([weather_tool()])

    reply = await provider.chat([UserMessage("Weather in Oslo?")])

    assert isinstance(reply, ToolCallMessage)
    [bound] = reply.tools
    assert (bound.call_id, bound.inputs) == ("call_1", {"city": "Oslo"})
    await bound.aexecute()
    assert bound.result == "sunny in Oslo"


@pytest.mark.asyncio
async def test_transport_errors_become_provider_errors(monkeypatch):
    monkeypatch.setattr(litellm, "acompletion", FakeCompletion(error=TimeoutError("slow")))
    provider = LiteLLMProvider(model="openai/gpt-test")

    with pytest.raises(ProviderError, match="openai/gpt-test: slow"):
        await provider.chat([UserMessage("Hi")])


@pytest.mark.asyncio
async def test_structured_requests_json_schema(monkeypatch):
    fake = FakeCompletion(response=completion(content='{"city": "Oslo"}'))
    monkeypatch.setattr(litellm, "acompletion", fake)
    provider = LiteLLMProvider(model="openai/gpt-test")
    schema = {"type": "object", "properties": {"city": {"type": "string"}}}

    class City:
        pass

    reply = await provider.structured([UserMessage("Where?")], City, schema)

    assert reply.text == '{"city": "Oslo"}'
    assert fake.kwargs["response_format"] == {
        "type": "json_schema",
        "json_schema": {"name": "City", "schema": schema},
    }


# ---- stream ----


def test_chunk_to_events_maps_text_tools_usage_and_finish():
    events = chunk_to_events(
        chunk(
            content="Hi",
            tool_calls=[tool_call("call_1", "get_weather", '{"ci')],
            finish_reason="tool_calls",
            usage=SimpleNamespace(prompt_tokens=11, completion_tokens=3),
        )
    )

    assert events == [
        UsageEvent(input_tokens=11, output_tokens=3),
        ContentBlockDeltaEvent(index=TEXT_INDEX, delta_type="text", content="Hi"),
        ContentBlockStartEvent(
            index=TOOL_INDEX_OFFSET,
            block_type="tool_use",
            tool_use_id="call_1",
            tool_name="get_weather",
        ),
        ContentBlockDeltaEvent(index=TOOL_INDEX_OFFSET, delta_type="tool_input", content='{"ci'),
        FinishEvent(stop_reason="tool_calls", model="gpt-test"),
    ]


def test_usage_only_chunk():
    usage_chunk = SimpleNamespace(
        choices=[], usage=SimpleNamespace(prompt_tokens=9, completion_tokens=2)
    )

    assert chunk_to_events(usage_chunk) == [UsageEvent(input_tokens=9, output_tokens=2)]


@pytest.mark.asyncio
async def test_stream_assembles_into_tool_call(monkeypatch):
    fake = FakeCompletion(
        chunks=[
            chunk(reasoning="Need weather."),
            chunk(content="Checking"),
            chunk(content=" now."),
            chunk(tool_calls=[tool_call("call_1", "get_weather", "")]),
            chunk(tool_calls=[tool_call(None, None, '{"city": ')]),
            chunk(tool_calls=[tool_call(None, None, '"Oslo"}')]),
            chunk(finish_reason="tool_calls"),
            SimpleNamespace(
                choices=[], usage=SimpleNamespace(prompt_tokens=30, completion_tokens=12)
            ),
        ]
    )
    monkeypatch.setattr(litellm, "acompletion", fake)
    provider = LiteLLMProvider(model="openai/gpt-test").set_tools([weather_tool()])

    assembler = StreamAssembler(provider.bind_tool_call)
    texts = []
    async for event in provider.stream([UserMessage("Weather in Oslo?")]):
        piece = assembler.feed(event)
        if piece is not None:
            texts.append(piece.content)
    message = assembler.finish()

    assert fake.kwargs["stream"] is True
    assert fake.kwargs["stream_options"] == {"include_usage": True}
    assert texts == ["Need weather.", "Checking", " now."]
    assert isinstance(message, ToolCallMessage)
    assert message.reasoning == "Need weather."
    assert message.text == "Checking now."
    assert message.tools[0].inputs == {"city": "Oslo"}
    assert message.usage == Usage(input_tokens=30, output_tokens=12)
    assert message.metadata["stop_reason"] == "tool_calls"
