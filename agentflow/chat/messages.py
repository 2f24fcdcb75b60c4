"""Conversation messages exchanged with LLM providers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, ClassVar

from agentflow.exceptions import ChatHistoryError
from agentflow.tools.tool import Tool


class MessageRole(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


# ---------------------------------------------------------------------------
# Content blocks
# ---------------------------------------------------------------------------


@dataclass
class ContentBlock:
    """A typed fragment of message content."""

    kind: ClassVar[str] = ""

    def to_dict(self) -> dict[str, Any]:
        d = {"type": self.kind}
        d.update({k: v for k, v in self.__dict__.items() if v is not None})
        return d

    @staticmethod
    def from_dict(data: dict[str, Any]) -> ContentBlock:
        block_cls = _BLOCK_TYPES.get(data.get("type", ""))
        if block_cls is None:
            raise ChatHistoryError(f"Unknown content block type: {data.get('type')!r}")
        return block_cls(**{k: v for k, v in data.items() if k != "type"})


@dataclass
class TextContent(ContentBlock):
    kind: ClassVar[str] = "text"

    text: str = ""


@dataclass
class ReasoningContent(ContentBlock):
    """Model reasoning ("thinking"), with the provider signature when one is given."""

    kind: ClassVar[str] = "reasoning"

    text: str = ""
    signature: str | None = None


@dataclass
class _SourceContent(ContentBlock):
    source: str = ""
    source_type: str = "url"  # "url", "base64" or "id"
    media_type: str | None = None


@dataclass
class ImageContent(_SourceContent):
    kind: ClassVar[str] = "image"


@dataclass
class FileContent(_SourceContent):
    kind: ClassVar[str] = "file"

    filename: str | None = None


@dataclass
class AudioContent(_SourceContent):
    kind: ClassVar[str] = "audio"


@dataclass
class VideoContent(_SourceContent):
    kind: ClassVar[str] = "video"


_BLOCK_TYPES: dict[str, type[ContentBlock]] = {
    cls.kind: cls
    for cls in (
        TextContent,
        ReasoningContent,
        ImageContent,
        FileContent,
        AudioContent,
        VideoContent,
    )
}


# ---------------------------------------------------------------------------
# Usage
# ---------------------------------------------------------------------------


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> dict[str, int]:
        return {"input_tokens": self.input_tokens, "output_tokens": self.output_tokens}


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


@dataclass
class Message:
    """
    A conversation message.

    ``content`` accepts a plain string for convenience; it is normalised to
    a list of content blocks.
    """

    kind: ClassVar[str] = "message"

    content: list[ContentBlock] | str = field(default_factory=list)
    role: MessageRole = MessageRole.USER
    usage: Usage | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if isinstance(self.content, str):
            self.content = [TextContent(self.content)] if self.content else []
        self.role = MessageRole(self.role)

    @property
    def text(self) -> str:
        return "".join(b.text for b in self.content if isinstance(b, TextContent))

    @property
    def reasoning(self) -> str:
        return "".join(b.text for b in self.content if isinstance(b, ReasoningContent))

    @property
    def is_user_side(self) -> bool:
        """True for messages the provider counts as input (user role)."""
        return self.role == MessageRole.USER

    def add_content(self, block: ContentBlock) -> Message:
        self.content.append(block)
        return self

    def to_storage_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "type": self.kind,
            "role": self.role.value,
            "content": [b.to_dict() for b in self.content],
        }
        if self.usage is not None:
            d["usage"] = self.usage.to_dict()
        if self.metadata:
            d["metadata"] = self.metadata
        return d

    @staticmethod
    def from_storage_dict(data: dict[str, Any]) -> Message:
        message_cls = _MESSAGE_TYPES.get(data.get("type", "message"))
        if message_cls is None:
            raise ChatHistoryError(f"Unknown message type: {data.get('type')!r}")
        kwargs: dict[str, Any] = {
            "content": [ContentBlock.from_dict(b) for b in data.get("content", [])],
            "role": data.get("role", message_cls.__dataclass_fields__["role"].default),
            "metadata": dict(data.get("metadata") or {}),
        }
        if data.get("usage"):
            kwargs["usage"] = Usage(**data["usage"])
        if "tools" in data:
            kwargs["tools"] = [Tool.from_call_dict(t) for t in data["tools"]]
        return message_cls(**kwargs)


@dataclass
class UserMessage(Message):
    kind: ClassVar[str] = "user"


@dataclass
class AssistantMessage(Message):
    kind: ClassVar[str] = "assistant"

    role: MessageRole = MessageRole.ASSISTANT


@dataclass
class ToolCallMessage(AssistantMessage):
    """The model asked to invoke one or more tools."""

    kind: ClassVar[str] = "tool_call"

    tools: list[Tool] = field(default_factory=list)

    def to_storage_dict(self) -> dict[str, Any]:
        d = super().to_storage_dict()
        d["tools"] = [t.to_call_dict() for t in self.tools]
        return d


@dataclass
class ToolResultMessage(UserMessage):
    """Results of the tools requested by the preceding ToolCallMessage."""

    kind: ClassVar[str] = "tool_result"

    tools: list[Tool] = field(default_factory=list)

    def to_storage_dict(self) -> dict[str, Any]:
        d = super().to_storage_dict()
        d["tools"] = [t.to_call_dict() for t in self.tools]
        return d


_MESSAGE_TYPES: dict[str, type[Message]] = {
    cls.kind: cls
    for cls in (Message, UserMessage, AssistantMessage, ToolCallMessage, ToolResultMessage)
}
