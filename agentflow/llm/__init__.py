"""LLM provider abstraction.

``LiteLLMProvider`` lives in ``agentflow.llm.litellm`` and is imported
explicitly so that litellm is only loaded when it is used.
"""

from agentflow.llm.mock import MockLLMProvider, MockResponse
from agentflow.llm.provider import LLMProvider, message_to_events
from agentflow.llm.stream_assembly import StreamAssembler
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

__all__ = [
    "LLMProvider",
    "MockLLMProvider",
    "MockResponse",
    "StreamAssembler",
    "StreamEvent",
    "MessageStartEvent",
    "ContentBlockStartEvent",
    "ContentBlockDeltaEvent",
    "ContentBlockStopEvent",
    "UsageEvent",
    "FinishEvent",
    "StreamErrorEvent",
    "message_to_events",
]
