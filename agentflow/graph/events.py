"""Events passed between workflow nodes.

The executor routes on the runtime type of each event, so every transition
point of the agent loop has its own event class.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from agentflow.chat.messages import Message, ToolCallMessage
from agentflow.tools.tool import Tool


class Event:
    """Base class for everything a node can receive or return."""


@dataclass(frozen=True)
class StartEvent(Event):
    """Entry point of every workflow run."""


@dataclass(frozen=True)
class StopEvent(Event):
    """Terminal event; the run completes when a node returns it."""


@dataclass
class AIInferenceEvent(Event):
    """
    Ask the model for the next reply.

    ``instructions`` and ``tools`` are deliberately mutable so middleware can
    inject extra guidance or capabilities before inference.
    """

    instructions: str = ""
    tools: list[Tool] = field(default_factory=list)


@dataclass(frozen=True)
class ToolCallEvent(Event):
    """The model requested tools; carries the inference to resume afterwards."""

    tool_call_message: ToolCallMessage
    inference_event: AIInferenceEvent


@dataclass(frozen=True)
class AIResponseEvent(Event):
    """The model replied; the router decides whether to call tools or stop."""

    message: Message
    inference_event: AIInferenceEvent | None = None
