"""LiteLLM provider - one adapter for every vendor litellm supports.

litellm speaks the OpenAI chat format for all backends, so this module only
maps agentflow messages to OpenAI-style dicts and litellm responses/chunks
back to messages and stream events.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import litellm

from agentflow.chat.messages import (
    AssistantMessage,
    ContentBlock,
    ImageContent,
    Message,
    MessageRole,
    ReasoningContent,
    TextContent,
    ToolCallMessage,
    ToolResultMessage,
    Usage,
)
from agentflow.config import get_api_key, get_preferred_model
from agentflow.exceptions import ProviderError
from agentflow.llm.provider import LLMProvider
from agentflow.llm.stream_events import (
    ContentBlockDeltaEvent,
    ContentBlockStartEvent,
    FinishEvent,
    MessageStartEvent,
    StreamEvent,
    UsageEvent,
)
from agentflow.tools.tool import Tool

logger = logging.getLogger(__name__)

# Block indexes used when mapping OpenAI-style deltas, which carry no block
# index of their own. Tool calls are offset by their own index.
REASONING_INDEX = 0
TEXT_INDEX = 1
TOOL_INDEX_OFFSET = 2


# ---------------------------------------------------------------------------
# Request mapping
# ---------------------------------------------------------------------------


def _image_part(block: ImageContent) -> dict[str, Any]:
    url = block.source
    if block.source_type == "base64":
        url = f"data:{block.media_type or 'image/png'};base64,{block.source}"
    return {"type": "image_url", "image_url": {"url": url}}


def _user_content(blocks: list[ContentBlock]) -> str | list[dict[str, Any]]:
    if all(isinstance(b, TextContent) for b in blocks):
        return "".join(b.text for b in blocks)
    parts: list[dict[str, Any]] = []
    for block in blocks:
        if isinstance(block, TextContent):
            parts.append({"type": "text", "text": block.text})
        elif isinstance(block, ImageContent):
            parts.append(_image_part(block))
        else:
            logger.warning(f"Dropping unsupported {block.kind} content block for litellm")
    return parts


def message_to_llm_dicts(message: Message) -> list[dict[str, Any]]:
    """Convert one message to OpenAI-format dicts (tool results fan out to one per call)."""
    if isinstance(message, ToolResultMessage):
        return [
            {"role": "tool", "tool_call_id": t.call_id, "content": t.result or ""}
            for t in message.tools
        ]

    if isinstance(message, ToolCallMessage):
        return [
            {
                "role": "assistant",
                "content": message.text or None,
                "tool_calls": [
                    {
                        "id": t.call_id,
                        "type": "function",
                        "function": {"name": t.name, "arguments": json.dumps(t.inputs)},
                    }
                    for t in message.tools
                ],
            }
        ]

    if message.role == MessageRole.ASSISTANT:
        return [{"role": "assistant", "content": message.text}]

    return [{"role": message.role.value, "content": _user_content(message.content)}]


def tool_to_llm_dict(tool: Tool) -> dict[str, Any]:
    return {"type": "function", "function": tool.to_dict()}


# ---------------------------------------------------------------------------
# Stream mapping
# ---------------------------------------------------------------------------


def chunk_to_events(chunk: Any) -> list[StreamEvent]:
    """Translate one litellm streaming chunk into block events."""
    events: list[StreamEvent] = []

    usage = getattr(chunk, "usage", None)
    if usage is not None:
        events.append(
            UsageEvent(
                input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
                output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            )
        )

    choices = getattr(chunk, "choices", None) or []
    if not choices:
        return events
    choice = choices[0]
    delta = getattr(choice, "delta", None)

    if delta is not None:
        reasoning = getattr(delta, "reasoning_content", None)
        if reasoning:
            events.append(
                ContentBlockDeltaEvent(
                    index=REASONING_INDEX, delta_type="reasoning", content=reasoning
                )
            )

        text = getattr(delta, "content", None)
        if text:
            events.append(ContentBlockDeltaEvent(index=TEXT_INDEX, delta_type="text", content=text))

        for tc in getattr(delta, "tool_calls", None) or []:
            index = TOOL_INDEX_OFFSET + (getattr(tc, "index", 0) or 0)
            function = getattr(tc, "function", None)
            name = getattr(function, "name", None) if function is not None else None
            call_id = getattr(tc, "id", None)
            if call_id or name:
                events.append(
                    ContentBlockStartEvent(
                        index=index,
                        block_type="tool_use",
                        tool_use_id=call_id or "",
                        tool_name=name or "",
                    )
                )
            arguments = getattr(function, "arguments", None) if function is not None else None
            if arguments:
                events.append(
                    ContentBlockDeltaEvent(index=index, delta_type="tool_input", content=arguments)
                )

    finish_reason = getattr(choice, "finish_reason", None)
    if finish_reason:
        model = getattr(chunk, "model", "") or ""
        events.append(FinishEvent(stop_reason=finish_reason, model=model))

    return events


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------


class LiteLLMProvider(LLMProvider):
    """
    Provider backed by ``litellm.acompletion``.

    Args:
        model: litellm model string (defaults to the configured model)
        api_key: API key (defaults to the configured key env var)
        api_base: Optional custom endpoint
        max_tokens: Completion budget per call
        **extra: Passed through to litellm (temperature, timeout, ...)
    """

    def __init__(
        self,
        model: str | None = None,
        api_key: str | None = None,
        api_base: str | None = None,
        max_tokens: int = 4096,
        **extra: Any,
    ):
        super().__init__()
        self.model = model or get_preferred_model()
        self.api_key = api_key or get_api_key()
        self.api_base = api_base
        self.max_tokens = max_tokens
        self.extra = extra

    def _request(self, messages: list[Message], **overrides: Any) -> dict[str, Any]:
        llm_messages: list[dict[str, Any]] = []
        if self._system_prompt:
            llm_messages.append({"role": "system", "content": self._system_prompt})
        for message in messages:
            llm_messages.extend(message_to_llm_dicts(message))

        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": llm_messages,
            "max_tokens": self.max_tokens,
            **self.extra,
            **overrides,
        }
        if self._tools:
            kwargs["tools"] = [tool_to_llm_dict(t) for t in self._tools]
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base
        return kwargs

    async def _acompletion(self, **kwargs: Any) -> Any:
        try:
            return await litellm.acompletion(**kwargs)
        except Exception as e:
            raise ProviderError(f"{self.model}: {e}") from e

    def _response_to_message(self, response: Any) -> Message:
        choice = response.choices[0]
        msg = choice.message

        content: list[ContentBlock] = []
        reasoning = getattr(msg, "reasoning_content", None)
        if reasoning:
            content.append(ReasoningContent(text=reasoning))
        if msg.content:
            content.append(TextContent(text=msg.content))

        usage = None
        if getattr(response, "usage", None) is not None:
            usage = Usage(
                input_tokens=response.usage.prompt_tokens or 0,
                output_tokens=response.usage.completion_tokens or 0,
            )
        metadata = {"stop_reason": choice.finish_reason or ""}

        tool_calls = getattr(msg, "tool_calls", None) or []
        if tool_calls:
            tools = []
            for tc in tool_calls:
                try:
                    inputs = json.loads(tc.function.arguments or "{}")
                except json.JSONDecodeError as e:
                    raise ProviderError(
                        f"Invalid arguments for tool '{tc.function.name}': {e}"
                    ) from e
                tools.append(self.bind_tool_call(tc.function.name, tc.id, inputs))
            return ToolCallMessage(content=content, tools=tools, usage=usage, metadata=metadata)
        return AssistantMessage(content=content, usage=usage, metadata=metadata)

    async def chat(self, messages: list[Message]) -> Message:
        response = await self._acompletion(**self._request(messages))
        return self._response_to_message(response)

    async def stream(self, messages: list[Message]) -> AsyncIterator[StreamEvent]:
        response = await self._acompletion(
            **self._request(messages, stream=True, stream_options={"include_usage": True})
        )
        yield MessageStartEvent()
        try:
            async for chunk in response:
                for event in chunk_to_events(chunk):
                    yield event
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(f"{self.model}: stream interrupted: {e}") from e

    async def structured(
        self,
        messages: list[Message],
        output_type: type,
        schema: dict[str, Any],
    ) -> Message:
        response_format = {
            "type": "json_schema",
            "json_schema": {
                "name": getattr(output_type, "__name__", "output"),
                "schema": schema,
            },
        }
        response = await self._acompletion(
            **self._request(messages, response_format=response_format)
        )
        return self._response_to_message(response)
