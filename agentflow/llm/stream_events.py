"""Stream event types for LLM streaming responses.

Provider adapters translate their wire format into this discriminated union
of frozen dataclasses. Content arrives as blocks addressed by index: a block
is started, receives deltas, and is stopped. ``StreamAssembler`` turns the
sequence back into a single message, so adapters never assemble anything
themselves.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

BlockType = Literal["text", "reasoning", "tool_use"]
DeltaType = Literal["text", "reasoning", "signature", "tool_input"]


@dataclass(frozen=True)
class MessageStartEvent:
    """A new response message begins."""

    type: Literal["message_start"] = "message_start"
    message_id: str = ""
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass(frozen=True)
class ContentBlockStartEvent:
    """A content block opens at ``index``."""

    type: Literal["block_start"] = "block_start"
    index: int = 0
    block_type: BlockType = "text"
    text: str = ""  # initial content carried by the start event, if any
    tool_use_id: str = ""
    tool_name: str = ""


@dataclass(frozen=True)
class ContentBlockDeltaEvent:
    """A fragment for the block at ``index``."""

    type: Literal["block_delta"] = "block_delta"
    index: int = 0
    delta_type: DeltaType = "text"
    content: str = ""


@dataclass(frozen=True)
class ContentBlockStopEvent:
    """The block at ``index`` is complete."""

    type: Literal["block_stop"] = "block_stop"
    index: int = 0


@dataclass(frozen=True)
class UsageEvent:
    """Cumulative token usage reported mid-stream.

    Values are running totals; a zero leaves the previous value unchanged.
    """

    type: Literal["usage"] = "usage"
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass(frozen=True)
class FinishEvent:
    """The provider finished generating."""

    type: Literal["finish"] = "finish"
    stop_reason: str = ""
    model: str = ""


@dataclass(frozen=True)
class StreamErrorEvent:
    """An error occurred during streaming."""

    type: Literal["error"] = "error"
    error: str = ""
    recoverable: bool = False


# Discriminated union of all stream event types
StreamEvent = (
    MessageStartEvent
    | ContentBlockStartEvent
    | ContentBlockDeltaEvent
    | ContentBlockStopEvent
    | UsageEvent
    | FinishEvent
    | StreamErrorEvent
)
