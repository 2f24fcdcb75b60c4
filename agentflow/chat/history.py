"""ChatHistory: bounded message log with usage accounting."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from agentflow.chat.messages import (
    Message,
    MessageRole,
    ToolCallMessage,
    ToolResultMessage,
    Usage,
    UserMessage,
)
from agentflow.chat.token_counter import TokenCounter
from agentflow.config import get_context_window

if TYPE_CHECKING:
    from agentflow.llm.provider import LLMProvider

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Trim index search
# ---------------------------------------------------------------------------


def is_valid_start(messages: Sequence[Message], k: int) -> bool:
    """Whether ``messages[k:]`` is a history a provider accepts.

    The kept suffix must open on a plain user turn: never on a tool call,
    never on a tool result whose call would be dropped.
    """
    if k == 0:
        return True
    if k >= len(messages):
        return False
    if isinstance(messages[k - 1], ToolCallMessage):
        return False
    first = messages[k]
    return isinstance(first, UserMessage) and not isinstance(first, ToolResultMessage)


def find_trim_index(
    messages: Sequence[Message],
    budget: int,
    cost: Callable[[Message], int],
) -> int:
    """
    Return how many leading messages to drop so the rest fits ``budget``.

    Binary search finds the smallest k whose suffix cost fits (suffix cost
    only shrinks as k grows), then k moves forward to the first boundary
    that keeps tool call/result pairs adjacent. 0 means no trim, either
    because everything fits or because no valid boundary exists.
    """
    n = len(messages)
    suffix = [0] * (n + 1)
    for i in range(n - 1, -1, -1):
        suffix[i] = suffix[i + 1] + cost(messages[i])

    if suffix[0] <= budget:
        return 0

    lo, hi = 0, n
    while lo < hi:
        mid = (lo + hi) // 2
        if suffix[mid] <= budget:
            hi = mid
        else:
            lo = mid + 1

    for k in range(lo, n):
        if is_valid_start(messages, k):
            return k
    return 0


# ---------------------------------------------------------------------------
# Summarization collaborator
# ---------------------------------------------------------------------------


@runtime_checkable
class Summarizer(Protocol):
    """Condenses messages dropped by a trim into a single summary text."""

    async def summarize(self, messages: list[Message]) -> str: ...


class LLMSummarizer:
    """Summarizer backed by an LLM provider.

    Give it a dedicated provider instance: the system prompt and tool list
    are set on the provider before each call.
    """

    SYSTEM_PROMPT = (
        "Summarize conversations concisely. Preserve decisions, facts the user "
        "shared and the outcome of every tool call."
    )

    def __init__(self, provider: LLMProvider, max_chars_per_message: int = 500):
        self._provider = provider
        self._max_chars = max_chars_per_message

    async def summarize(self, messages: list[Message]) -> str:
        lines = []
        for m in messages:
            if isinstance(m, ToolCallMessage):
                calls = ", ".join(f"{t.name}({t.inputs})" for t in m.tools)
                lines.append(f"[assistant called]: {calls}")
            elif isinstance(m, ToolResultMessage):
                for t in m.tools:
                    lines.append(f"[tool {t.name}]: {(t.result or '')[: self._max_chars]}")
            else:
                lines.append(f"[{m.role.value}]: {m.text[: self._max_chars]}")

        prompt = (
            "Summarize this conversation so far in a few sentences, "
            "preserving key decisions and results:\n\n" + "\n".join(lines)
        )
        response = (
            await self._provider.system_prompt(self.SYSTEM_PROMPT)
            .set_tools([])
            .chat([UserMessage(prompt)])
        )
        return response.text


# ---------------------------------------------------------------------------
# ChatHistory
# ---------------------------------------------------------------------------


class ChatHistory:
    """
    Ordered message log bounded by a context window.

    Every append redistributes provider usage and trims the oldest messages
    when the estimated token count exceeds the window. A trimmed prefix is
    optionally replaced by one summary message.
    """

    def __init__(
        self,
        context_window: int | None = None,
        token_counter: TokenCounter | None = None,
        summarizer: Summarizer | None = None,
    ) -> None:
        self.context_window = context_window if context_window is not None else get_context_window()
        self.token_counter = token_counter or TokenCounter()
        self.summarizer = summarizer
        self._messages: list[Message] = []

    # --- read ---------------------------------------------------------------

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    def last_message(self) -> Message | None:
        return self._messages[-1] if self._messages else None

    def __len__(self) -> int:
        return len(self._messages)

    def estimate_tokens(self) -> int:
        return self.token_counter.count(self._messages)

    def calculate_total_usage(self) -> Usage:
        total = Usage()
        for m in self._messages:
            if m.usage is not None:
                total.input_tokens += m.usage.input_tokens
                total.output_tokens += m.usage.output_tokens
        return total

    # --- write --------------------------------------------------------------

    async def add_message(self, message: Message) -> None:
        """Append a message, attribute its usage, then trim to the window."""
        if message.role == MessageRole.ASSISTANT and message.usage is not None:
            self._redistribute_usage(message)
        self._messages.append(message)
        await self._trim()

    async def flush(self) -> None:
        self._messages.clear()

    def _redistribute_usage(self, message: Message) -> None:
        """
        Providers report the whole prompt as input tokens on each assistant
        turn. Move the new part of that count onto the latest user-side
        message so user messages hold input tokens and assistant messages
        hold only output tokens.
        """
        target = None
        for m in reversed(self._messages):
            if m.role == MessageRole.ASSISTANT:
                break
            if m.is_user_side:
                target = m
                break
        if target is None:
            return

        attributed = sum(
            m.usage.input_tokens for m in self._messages if m.is_user_side and m.usage is not None
        )
        delta = max(0, message.usage.input_tokens - attributed)
        previous = target.usage.input_tokens if target.usage is not None else 0
        target.usage = Usage(input_tokens=previous + delta, output_tokens=0)
        message.usage = Usage(input_tokens=0, output_tokens=message.usage.output_tokens)

    async def _trim(self) -> None:
        cost = self.token_counter.count_message
        k = find_trim_index(self._messages, self.context_window, cost)
        if k == 0:
            return

        summary = None
        while self.summarizer is not None:
            text = await self.summarizer.summarize(self._messages[:k])
            if not text:
                break
            summary = UserMessage(text, metadata={"summary": True})
            # The summary counts against the window too
            budget = self.context_window - cost(summary)
            if self.token_counter.count(self._messages[k:]) <= budget:
                break
            k_next = find_trim_index(self._messages, budget, cost)
            if k_next <= k:
                # No boundary leaves room for the summary; trim without it
                summary = None
                break
            k = k_next

        dropped = self._messages[:k]
        self._messages = self._messages[k:]
        if summary is not None:
            self._messages.insert(0, summary)
        logger.debug(
            "Trimmed %d messages from chat history (%d tokens remain, window %d)",
            len(dropped),
            self.estimate_tokens(),
            self.context_window,
        )

    # --- storage ------------------------------------------------------------

    def to_storage_dict(self) -> dict[str, Any]:
        return {
            "context_window": self.context_window,
            "messages": [m.to_storage_dict() for m in self._messages],
        }

    @classmethod
    def from_storage_dict(cls, data: dict[str, Any], **kwargs: Any) -> ChatHistory:
        history = cls(context_window=data.get("context_window"), **kwargs)
        history._messages = [Message.from_storage_dict(m) for m in data.get("messages", [])]
        return history
