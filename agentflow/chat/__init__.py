"""Messages, streamed chunks and chat history."""

from agentflow.chat.chunks import Chunk, ReasoningChunk, TextChunk, ToolCallChunk, ToolResultChunk
from agentflow.chat.history import ChatHistory, LLMSummarizer, Summarizer, find_trim_index
from agentflow.chat.messages import (
    AssistantMessage,
    AudioContent,
    ContentBlock,
    FileContent,
    ImageContent,
    Message,
    MessageRole,
    ReasoningContent,
    TextContent,
    ToolCallMessage,
    ToolResultMessage,
    Usage,
    UserMessage,
    VideoContent,
)
from agentflow.chat.token_counter import TokenCounter

__all__ = [
    "AssistantMessage",
    "AudioContent",
    "ChatHistory",
    "Chunk",
    "ContentBlock",
    "FileContent",
    "ImageContent",
    "LLMSummarizer",
    "Message",
    "MessageRole",
    "ReasoningChunk",
    "ReasoningContent",
    "Summarizer",
    "TextChunk",
    "TextContent",
    "TokenCounter",
    "ToolCallChunk",
    "ToolCallMessage",
    "ToolResultChunk",
    "ToolResultMessage",
    "Usage",
    "UserMessage",
    "VideoContent",
    "find_trim_index",
]
