"""LLM Provider abstraction for pluggable LLM backends."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterator
from typing import Any

from agentflow.chat.messages import Message, ReasoningContent, TextContent, ToolCallMessage
from agentflow.exceptions import ToolError
from agentflow.llm.stream_events import (
    ContentBlockDeltaEvent,
    ContentBlockStartEvent,
    ContentBlockStopEvent,
    FinishEvent,
    MessageStartEvent,
    StreamEvent,
    UsageEvent,
)
from agentflow.tools.tool import Tool


class LLMProvider(ABC):
    """
    Abstract LLM provider - plug in any LLM backend.

    Providers are configured fluently before each call:

        response = await provider.system_prompt(instructions).set_tools(tools).chat(messages)

    Implementations handle authentication, request formatting and mapping
    the vendor response back to ``Message`` objects (``chat``) or to
    ``StreamEvent`` objects (``stream``). Assembly of streamed events is not
    the provider's job.
    """

    def __init__(self) -> None:
        self._system_prompt: str = ""
        self._tools: list[Tool] = []

    # --- configuration --------------------------------------------------

    def system_prompt(self, prompt: str | None) -> LLMProvider:
        self._system_prompt = prompt or ""
        return self

    def set_tools(self, tools: list[Tool]) -> LLMProvider:
        self._tools = list(tools)
        return self

    @property
    def instructions(self) -> str:
        return self._system_prompt

    @property
    def tools(self) -> list[Tool]:
        return list(self._tools)

    def bind_tool_call(self, name: str, call_id: str, inputs: dict[str, Any]) -> Tool:
        """Clone the configured tool definition for one model invocation."""
        for tool in self._tools:
            if tool.name == name:
                return tool.bind_call(call_id, inputs)
        raise ToolError(f"Tool '{name}' requested by the model is not available", tool_name=name)

    # --- calls ----------------------------------------------------------

    @abstractmethod
    async def chat(self, messages: list[Message]) -> Message:
        """
        Send the conversation and return the model's reply.

        Returns:
            A ToolCallMessage when the model requested tools (tools bound via
            ``bind_tool_call``), otherwise an AssistantMessage.
        """
        pass

    async def stream(self, messages: list[Message]) -> AsyncIterator[StreamEvent]:
        """
        Stream a completion as an async iterator of StreamEvents.

        Default implementation wraps chat() with synthetic events.
        Subclasses SHOULD override for true streaming.
        """
        response = await self.chat(messages)
        for event in message_to_events(response):
            yield event

    async def structured(
        self,
        messages: list[Message],
        output_type: type,
        schema: dict[str, Any],
    ) -> Message:
        """
        Ask for a reply that conforms to ``schema``.

        The default appends the schema to the system prompt and relies on the
        model to answer with JSON; providers with a native structured output
        mode should override.
        """
        original = self._system_prompt
        self._system_prompt = (
            f"{original}\n\n" if original else ""
        ) + (
            f"Respond with a JSON object for {getattr(output_type, '__name__', 'the output')} "
            f"that validates against this JSON schema:\n{json.dumps(schema)}"
        )
        try:
            return await self.chat(messages)
        finally:
            self._system_prompt = original


def message_to_events(message: Message) -> Iterator[StreamEvent]:
    """Replay a complete message as the block events a stream would carry."""
    usage = message.usage
    yield MessageStartEvent(message_id=message.metadata.get("id", ""))

    index = 0
    for block in message.content:
        if isinstance(block, TextContent):
            yield ContentBlockStartEvent(index=index, block_type="text")
            yield ContentBlockDeltaEvent(index=index, delta_type="text", content=block.text)
        elif isinstance(block, ReasoningContent):
            yield ContentBlockStartEvent(index=index, block_type="reasoning")
            yield ContentBlockDeltaEvent(index=index, delta_type="reasoning", content=block.text)
            if block.signature:
                yield ContentBlockDeltaEvent(
                    index=index, delta_type="signature", content=block.signature
                )
        else:
            continue
        yield ContentBlockStopEvent(index=index)
        index += 1

    if isinstance(message, ToolCallMessage):
        for tool in message.tools:
            yield ContentBlockStartEvent(
                index=index,
                block_type="tool_use",
                tool_use_id=tool.call_id or "",
                tool_name=tool.name,
            )
            yield ContentBlockDeltaEvent(
                index=index, delta_type="tool_input", content=json.dumps(tool.inputs)
            )
            yield ContentBlockStopEvent(index=index)
            index += 1

    if usage is not None:
        yield UsageEvent(input_tokens=usage.input_tokens, output_tokens=usage.output_tokens)
    yield FinishEvent(stop_reason=message.metadata.get("stop_reason", ""))
