"""Scripted LLM provider for tests and offline demos."""

from __future__ import annotations

import copy
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from agentflow.chat.messages import (
    AssistantMessage,
    ContentBlock,
    Message,
    ReasoningContent,
    TextContent,
    ToolCallMessage,
    Usage,
)
from agentflow.exceptions import ProviderError
from agentflow.llm.provider import LLMProvider, message_to_events
from agentflow.llm.stream_assembly import StreamAssembler
from agentflow.llm.stream_events import StreamEvent

logger = logging.getLogger(__name__)


@dataclass
class MockResponse:
    """One scripted provider reply.

    - text only  -> AssistantMessage
    - tool_calls -> ToolCallMessage; each entry is {name, id, input}
    """

    text: str = ""
    tool_calls: list[dict[str, Any]] | None = None
    reasoning: str = ""
    input_tokens: int = 10
    output_tokens: int = 10


@dataclass
class RecordedRequest:
    """What the provider was asked, captured for assertions."""

    method: str
    instructions: str
    tool_names: list[str]
    messages: list[Message]
    schema: dict[str, Any] | None = None
    extra: dict[str, Any] = field(default_factory=dict)


ScriptEntry = MockResponse | Message | list[StreamEvent] | Exception


class MockLLMProvider(LLMProvider):
    """
    Plays back a flat list of scripted replies, one per call.

    Entries may be a MockResponse, a ready Message, a raw list of stream
    events, or an exception to raise. Tool calls are bound against the
    tools configured with ``set_tools`` so they carry their callables.
    """

    def __init__(self, script: list[ScriptEntry] | None = None):
        super().__init__()
        self._script: list[ScriptEntry] = list(script or [])
        self._call_index = 0
        self.requests: list[RecordedRequest] = []

    def add(self, *entries: ScriptEntry) -> MockLLMProvider:
        self._script.extend(entries)
        return self

    @property
    def call_count(self) -> int:
        return self._call_index

    def _next(self, method: str, messages: list[Message], schema: dict | None = None):
        self.requests.append(
            RecordedRequest(
                method=method,
                instructions=self._system_prompt,
                tool_names=[t.name for t in self._tools],
                messages=list(messages),
                schema=schema,
            )
        )
        if self._call_index >= len(self._script):
            raise ProviderError(f"MockLLMProvider script exhausted after {self._call_index} calls")
        entry = self._script[self._call_index]
        self._call_index += 1
        logger.debug(f"Mock provider {method} call #{self._call_index}")
        if isinstance(entry, Exception):
            raise entry
        return entry

    def _to_message(self, entry: ScriptEntry) -> Message:
        if isinstance(entry, list):
            assembler = StreamAssembler(self.bind_tool_call)
            for event in entry:
                assembler.feed(event)
            return assembler.finish()

        if isinstance(entry, Message):
            # Copy so history mutations (usage redistribution) never leak back into the script
            message = copy.deepcopy(entry)
            if isinstance(message, ToolCallMessage):
                message.tools = [
                    self.bind_tool_call(t.name, t.call_id, t.inputs) for t in message.tools
                ]
            return message

        content: list[ContentBlock] = []
        if entry.reasoning:
            content.append(ReasoningContent(text=entry.reasoning))
        if entry.text:
            content.append(TextContent(text=entry.text))
        usage = Usage(input_tokens=entry.input_tokens, output_tokens=entry.output_tokens)

        if entry.tool_calls:
            tools = [
                self.bind_tool_call(tc["name"], tc.get("id", f"call_{i}"), tc.get("input", {}))
                for i, tc in enumerate(entry.tool_calls)
            ]
            return ToolCallMessage(content=content, tools=tools, usage=usage)
        return AssistantMessage(content=content, usage=usage)

    async def chat(self, messages: list[Message]) -> Message:
        return self._to_message(self._next("chat", messages))

    async def stream(self, messages: list[Message]) -> AsyncIterator[StreamEvent]:
        entry = self._next("stream", messages)
        if isinstance(entry, list):
            for event in entry:
                yield event
            return
        for event in message_to_events(self._to_message(entry)):
            yield event

    async def structured(
        self,
        messages: list[Message],
        output_type: type,
        schema: dict[str, Any],
    ) -> Message:
        return self._to_message(self._next("structured", messages, schema=schema))
