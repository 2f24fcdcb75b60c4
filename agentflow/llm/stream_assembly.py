"""Assemble a streamed response into a single message.

The assembler is a small state machine fed one ``StreamEvent`` at a time:

    blocks:  index -> accumulator (text / reasoning / tool_use)
    usage:   running input/output token totals

Each event opens a block, appends to one, or updates usage. ``finish()``
produces a ``ToolCallMessage`` when any tool_use block was assembled and an
``AssistantMessage`` otherwise. Provider adapters only translate their wire
events; all assembly happens here.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from agentflow.chat.chunks import ReasoningChunk, TextChunk
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
from agentflow.llm.stream_events import (
    ContentBlockDeltaEvent,
    ContentBlockStartEvent,
    ContentBlockStopEvent,
    FinishEvent,
    MessageStartEvent,
    StreamErrorEvent,
    StreamEvent,
    UsageEvent,
)
from agentflow.tools.tool import Tool

logger = logging.getLogger(__name__)

ToolBinder = Callable[[str, str, dict[str, Any]], Tool]

_BLOCK_FOR_DELTA = {
    "text": "text",
    "reasoning": "reasoning",
    "signature": "reasoning",
    "tool_input": "tool_use",
}


@dataclass
class _BlockAccumulator:
    block_type: str
    parts: list[str] = field(default_factory=list)
    signature: list[str] = field(default_factory=list)
    tool_use_id: str = ""
    tool_name: str = ""
    closed: bool = False


class StreamAssembler:
    """
    Incrementally rebuild a provider response from stream events.

    Args:
        bind_tool: Turns (name, call_id, inputs) into a Tool bound to the
            call. Usually ``LLMProvider.bind_tool_call``.
    """

    def __init__(self, bind_tool: ToolBinder | None = None):
        self._bind_tool = bind_tool or _unregistered_tool
        self._blocks: dict[int, _BlockAccumulator] = {}
        self.message_id = ""
        self.input_tokens = 0
        self.output_tokens = 0
        self.stop_reason = ""

    def feed(self, event: StreamEvent) -> TextChunk | ReasoningChunk | None:
        """Apply one event; return the chunk to forward to the caller, if any."""
        if isinstance(event, ContentBlockDeltaEvent):
            return self._on_delta(event)

        if isinstance(event, ContentBlockStartEvent):
            block = self._blocks.get(event.index)
            if block is None:
                block = _BlockAccumulator(block_type=event.block_type)
                self._blocks[event.index] = block
            if event.tool_use_id:
                block.tool_use_id = event.tool_use_id
            if event.tool_name:
                block.tool_name = event.tool_name
            if event.text:
                return self._append(block, event.block_type, event.text)
            return None

        if isinstance(event, ContentBlockStopEvent):
            block = self._blocks.get(event.index)
            if block is not None:
                block.closed = True
            return None

        if isinstance(event, MessageStartEvent):
            self.message_id = event.message_id or self.message_id
            self._update_usage(event.input_tokens, event.output_tokens)
            return None

        if isinstance(event, UsageEvent):
            self._update_usage(event.input_tokens, event.output_tokens)
            return None

        if isinstance(event, FinishEvent):
            self.stop_reason = event.stop_reason
            return None

        if isinstance(event, StreamErrorEvent):
            raise ProviderError(f"Stream error: {event.error}")

        logger.debug(f"Ignoring unknown stream event {event!r}")
        return None

    def _on_delta(self, event: ContentBlockDeltaEvent) -> TextChunk | ReasoningChunk | None:
        block = self._blocks.get(event.index)
        if block is None:
            # Some providers send deltas without an explicit block start
            block = _BlockAccumulator(block_type=_BLOCK_FOR_DELTA[event.delta_type])
            self._blocks[event.index] = block
        if event.delta_type == "signature":
            block.signature.append(event.content)
            return None
        return self._append(block, event.delta_type, event.content)

    def _append(self, block: _BlockAccumulator, kind: str, content: str):
        block.parts.append(content)
        if kind == "text":
            return TextChunk(content=content, message_id=self.message_id)
        if kind == "reasoning":
            return ReasoningChunk(content=content, message_id=self.message_id)
        return None

    def _update_usage(self, input_tokens: int, output_tokens: int) -> None:
        if input_tokens:
            self.input_tokens = input_tokens
        if output_tokens:
            self.output_tokens = output_tokens

    # ------------------------------------------------------------------

    def finish(self) -> Message:
        """Build the final message from everything fed so far."""
        content: list[ContentBlock] = []
        tools: list[Tool] = []

        for index in sorted(self._blocks):
            block = self._blocks[index]
            text = "".join(block.parts)
            if block.block_type == "tool_use":
                inputs = _decode_args(block)
                tools.append(self._bind_tool(block.tool_name, block.tool_use_id, inputs))
            elif block.block_type == "reasoning":
                signature = "".join(block.signature) or None
                if text or signature:
                    content.append(ReasoningContent(text=text, signature=signature))
            elif text:
                content.append(TextContent(text=text))

        usage = None
        if self.input_tokens or self.output_tokens:
            usage = Usage(input_tokens=self.input_tokens, output_tokens=self.output_tokens)

        metadata: dict[str, Any] = {}
        if self.message_id:
            metadata["id"] = self.message_id
        if self.stop_reason:
            metadata["stop_reason"] = self.stop_reason

        if tools:
            return ToolCallMessage(content=content, tools=tools, usage=usage, metadata=metadata)
        return AssistantMessage(content=content, usage=usage, metadata=metadata)


def _unregistered_tool(name: str, call_id: str, inputs: dict[str, Any]) -> Tool:
    return Tool(name).bind_call(call_id, inputs)


def _decode_args(block: _BlockAccumulator) -> dict[str, Any]:
    raw = "".join(block.parts).strip()
    if not raw:
        return {}
    try:
        inputs = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ProviderError(f"Invalid arguments for tool '{block.tool_name}': {e}") from e
    if not isinstance(inputs, dict):
        raise ProviderError(f"Arguments for tool '{block.tool_name}' must be a JSON object")
    return inputs
