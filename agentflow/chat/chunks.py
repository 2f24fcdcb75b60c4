"""Items streamed to the caller while a workflow runs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from agentflow.tools.tool import Tool


@dataclass(frozen=True)
class TextChunk:
    """A fragment of assistant text."""

    content: str
    message_id: str = ""
    type: Literal["text"] = "text"


@dataclass(frozen=True)
class ReasoningChunk:
    """A fragment of model reasoning."""

    content: str
    message_id: str = ""
    type: Literal["reasoning"] = "reasoning"


@dataclass(frozen=True)
class ToolCallChunk:
    """A tool is about to run."""

    tool: Tool
    type: Literal["tool_call"] = "tool_call"


@dataclass(frozen=True)
class ToolResultChunk:
    """A tool finished and its result is available."""

    tool: Tool
    type: Literal["tool_result"] = "tool_result"


Chunk = TextChunk | ReasoningChunk | ToolCallChunk | ToolResultChunk
