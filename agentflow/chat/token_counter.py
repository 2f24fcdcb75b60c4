"""Character-based token estimation for chat messages."""

import json
import math
from collections.abc import Iterable

from agentflow.chat.messages import Message, ToolCallMessage, ToolResultMessage


class TokenCounter:
    """
    Estimate tokens as ceil(chars / chars_per_token) per message plus a
    fixed per-message overhead.

    Counted characters: the JSON of the content blocks, the role, and for
    tool messages the call ids plus either the inputs (calls) or the results.
    """

    def __init__(self, chars_per_token: float = 4.0, extra_tokens_per_message: float = 3.0):
        self.chars_per_token = chars_per_token
        self.extra_tokens_per_message = extra_tokens_per_message

    def count_message(self, message: Message) -> int:
        chars = len(json.dumps([b.to_dict() for b in message.content]))

        if isinstance(message, ToolCallMessage):
            for tool in message.tools:
                chars += len(json.dumps(tool.inputs))
                chars += len(tool.call_id or "")
        elif isinstance(message, ToolResultMessage):
            for tool in message.tools:
                chars += len(tool.result or "")
                chars += len(tool.call_id or "")

        chars += len(message.role.value)
        return math.ceil(chars / self.chars_per_token) + math.ceil(self.extra_tokens_per_message)

    def count(self, messages: Iterable[Message]) -> int:
        return sum(self.count_message(m) for m in messages)
