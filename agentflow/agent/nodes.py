"""
Agent nodes - the building blocks of the agent loop.

    StartEvent -> PrepareInferenceNode -> AIInferenceEvent
    AIInferenceEvent -> ChatNode | StreamingNode | StructuredOutputNode -> AIResponseEvent
    AIResponseEvent -> RouterNode -> ToolCallEvent | StopEvent
    ToolCallEvent -> ToolNode | ConcurrentToolNode -> AIInferenceEvent

All of them operate on an ``AgentState``, whose chat history is the
conversation sent to the provider.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import AsyncIterator
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from pydantic import TypeAdapter, ValidationError

from agentflow.chat.chunks import ToolCallChunk, ToolResultChunk
from agentflow.chat.messages import Message, ToolCallMessage, ToolResultMessage, UserMessage
from agentflow.config import (
    get_parallel_tool_workers,
    get_structured_max_retries,
    get_tool_max_tries,
)
from agentflow.exceptions import (
    ProviderError,
    StructuredOutputError,
    ToolError,
    ToolMaxTriesError,
    WorkflowError,
)
from agentflow.graph.events import (
    AIInferenceEvent,
    AIResponseEvent,
    StartEvent,
    StopEvent,
    ToolCallEvent,
)
from agentflow.graph.node import Completion, Node
from agentflow.graph.state import AgentState, WorkflowState
from agentflow.llm.provider import LLMProvider
from agentflow.llm.stream_assembly import StreamAssembler
from agentflow.runtime.event_bus import EventType
from agentflow.structured.json_extractor import extract_json
from agentflow.tools.tool import Tool
from agentflow.utils.imports import import_qualified, qualified_name

logger = logging.getLogger(__name__)

STRUCTURED_SCHEMA_KEY = "structured_schema"
STRUCTURED_OUTPUT_KEY = "structured_output"

CORRECTION_TEMPLATE = (
    "There was a problem in your previous response that generated the following errors"
    "\n\n- {error}\n\n"
    "Try to generate the correct JSON structure based on the provided schema."
)


class AgentNode(Node):
    """Base for nodes that work on an AgentState and its chat history."""

    def agent_state(self, state: WorkflowState) -> AgentState:
        if not isinstance(state, AgentState):
            raise WorkflowError(f"{self.name} requires an AgentState, got {type(state).__name__}")
        return state

    async def add_to_chat_history(self, state: AgentState, message: Message) -> None:
        await self.emit(EventType.MESSAGE_SAVING, message=message)
        await state.chat_history.add_message(message)
        await self.emit(EventType.MESSAGE_SAVED, message=message)


# ---------------------------------------------------------------------------
# Inference
# ---------------------------------------------------------------------------


class PrepareInferenceNode(AgentNode):
    """Seeds the run: saves the new user messages and builds the inference request."""

    handles = StartEvent
    emits = (AIInferenceEvent,)

    def __init__(
        self,
        instructions: str = "",
        tools: list[Tool] | None = None,
        messages: list[Message] | None = None,
    ):
        super().__init__()
        self.instructions = instructions
        self.tools = list(tools or [])
        self.messages = list(messages or [])

    async def invoke(self, event: StartEvent, state: WorkflowState) -> AIInferenceEvent:
        agent_state = self.agent_state(state)

        # Per-run bookkeeping starts fresh; the conversation does not
        agent_state.reset_tool_attempts()
        agent_state.delete(STRUCTURED_SCHEMA_KEY)
        agent_state.delete(STRUCTURED_OUTPUT_KEY)

        for message in self.messages:
            await self.add_to_chat_history(agent_state, message)

        return AIInferenceEvent(instructions=self.instructions, tools=list(self.tools))


class ChatNode(AgentNode):
    """One request/response round trip with the provider."""

    handles = AIInferenceEvent
    emits = (AIResponseEvent,)

    def __init__(self, provider: LLMProvider):
        super().__init__()
        self.provider = provider

    async def invoke(self, event: AIInferenceEvent, state: WorkflowState) -> AIResponseEvent:
        agent_state = self.agent_state(state)
        history = agent_state.chat_history
        last = history.last_message()

        await self.emit(EventType.INFERENCE_START, message=last)
        response = await (
            self.provider.system_prompt(event.instructions)
            .set_tools(event.tools)
            .chat(history.messages)
        )
        await self.emit(EventType.INFERENCE_STOP, message=last, response=response)

        # Tool calls are saved by the tool node, together with their results
        if not isinstance(response, ToolCallMessage):
            await self.add_to_chat_history(agent_state, response)

        return AIResponseEvent(message=response, inference_event=event)


class StreamingNode(AgentNode):
    """
    Streams the provider reply to the caller chunk by chunk.

    The provider yields raw stream events; ``StreamAssembler`` turns them
    into text/reasoning chunks as they arrive and into the final message.
    """

    handles = AIInferenceEvent
    emits = (AIResponseEvent,)

    def __init__(self, provider: LLMProvider):
        super().__init__()
        self.provider = provider

    async def invoke(self, event: AIInferenceEvent, state: WorkflowState) -> AsyncIterator[Any]:
        agent_state = self.agent_state(state)
        history = agent_state.chat_history
        last = history.last_message()

        await self.emit(EventType.INFERENCE_START, message=last)
        provider = self.provider.system_prompt(event.instructions).set_tools(event.tools)
        assembler = StreamAssembler(provider.bind_tool_call)

        async for stream_event in provider.stream(history.messages):
            chunk = assembler.feed(stream_event)
            if chunk is not None:
                yield chunk

        response = assembler.finish()
        await self.emit(EventType.INFERENCE_STOP, message=last, response=response)

        if not isinstance(response, ToolCallMessage):
            await self.add_to_chat_history(agent_state, response)

        yield Completion(AIResponseEvent(message=response, inference_event=event))


class StructuredOutputNode(AgentNode):
    """
    Asks for a reply matching ``output_type`` and validates it.

    The JSON schema is generated once per run and cached in the state. A
    reply that cannot be parsed or validated is answered with a correction
    message and retried, up to ``max_retries`` extra attempts. A tool call
    reply is routed to the tools instead of counting as a failure.
    """

    handles = AIInferenceEvent
    emits = (AIResponseEvent,)

    def __init__(self, provider: LLMProvider, output_type: type, max_retries: int | None = None):
        super().__init__()
        self.provider = provider
        self.output_type = output_type
        self.max_retries = max_retries if max_retries is not None else get_structured_max_retries()
        self._adapter = TypeAdapter(output_type)

    async def invoke(self, event: AIInferenceEvent, state: WorkflowState) -> AIResponseEvent:
        agent_state = self.agent_state(state)
        history = agent_state.chat_history

        if not agent_state.has(STRUCTURED_SCHEMA_KEY):
            agent_state.set(STRUCTURED_SCHEMA_KEY, self._adapter.json_schema())
        schema = agent_state.get(STRUCTURED_SCHEMA_KEY)

        retries_left = self.max_retries
        error = ""
        while True:
            try:
                if error:
                    correction = UserMessage(CORRECTION_TEMPLATE.format(error=error))
                    await self.add_to_chat_history(agent_state, correction)

                last = history.last_message()
                await self.emit(EventType.INFERENCE_START, message=last)
                response = await (
                    self.provider.system_prompt(event.instructions)
                    .set_tools(event.tools)
                    .structured(history.messages, self.output_type, schema)
                )
                await self.emit(EventType.INFERENCE_STOP, message=last, response=response)

                if isinstance(response, ToolCallMessage):
                    return AIResponseEvent(message=response, inference_event=event)

                await self.add_to_chat_history(agent_state, response)
                output = self.parse(response)
                agent_state.set(STRUCTURED_OUTPUT_KEY, output)
                return AIResponseEvent(message=response, inference_event=event)

            except (ProviderError, StructuredOutputError) as e:
                await self.emit(EventType.ERROR, error=str(e), error_type=type(e).__name__)
                if retries_left <= 0:
                    raise
                retries_left -= 1
                error = str(e)
                logger.warning(
                    f"{self.name}: invalid structured output, retrying "
                    f"({retries_left} retries left): {error}"
                )

    def parse(self, response: Message) -> Any:
        """Extract, deserialize and validate the reply."""
        data = extract_json(response.text)
        if data is None:
            raise StructuredOutputError("The response does not contain a valid JSON object.")
        try:
            return self._adapter.validate_python(data)
        except ValidationError as e:
            raise StructuredOutputError(_format_validation_error(e)) from e


def _format_validation_error(error: ValidationError) -> str:
    lines = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "(root)"
        lines.append(f"{location}: {item['msg']}")
    return "\n- ".join(lines)


class RouterNode(AgentNode):
    """Sends tool calls to the tool node and ends the run otherwise."""

    handles = AIResponseEvent
    emits = (ToolCallEvent, StopEvent)

    def invoke(self, event: AIResponseEvent, state: WorkflowState) -> ToolCallEvent | StopEvent:
        if isinstance(event.message, ToolCallMessage):
            if event.inference_event is None:
                raise WorkflowError("Tool call response without the inference that produced it")
            return ToolCallEvent(
                tool_call_message=event.message, inference_event=event.inference_event
            )
        return StopEvent()


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


class ToolNode(AgentNode):
    """
    Runs the requested tools one after another.

    Executes each tool (streaming a call chunk before and a result chunk
    after it), then saves the tool call message together with its results
    and hands the original inference request back so the model sees them.
    A failed round leaves the chat history untouched.

    Each tool name has an attempt budget of ``min(tool.max_tries,
    max_tries)``; exceeding it raises ``ToolMaxTriesError`` before the tool
    runs. Errors raised by a tool propagate unchanged.
    """

    handles = ToolCallEvent
    emits = (AIInferenceEvent,)

    def __init__(self, max_tries: int | None = None):
        super().__init__()
        self.max_tries = max_tries if max_tries is not None else get_tool_max_tries()

    async def invoke(self, event: ToolCallEvent, state: WorkflowState) -> AsyncIterator[Any]:
        agent_state = self.agent_state(state)
        message = event.tool_call_message

        async for chunk in self.execute_tools(message.tools, agent_state):
            yield chunk

        await self.add_to_chat_history(agent_state, message)
        await self.add_to_chat_history(agent_state, ToolResultMessage(tools=message.tools))
        yield Completion(event.inference_event)

    def tool_limit(self, tool: Tool) -> int:
        if tool.max_tries is None:
            return self.max_tries
        return min(tool.max_tries, self.max_tries)

    def check_attempts(self, tool: Tool, state: AgentState) -> None:
        attempts = state.increment_tool_attempts(tool.name)
        limit = self.tool_limit(tool)
        if attempts > limit:
            raise ToolMaxTriesError(
                f"Tool '{tool.name}' has been executed too many times: {limit}",
                tool_name=tool.name,
            )

    async def execute_tools(self, tools: list[Tool], state: AgentState) -> AsyncIterator[Any]:
        for tool in tools:
            yield ToolCallChunk(tool)
            await self.emit(EventType.TOOL_CALLING, tool=tool)
            try:
                self.check_attempts(tool, state)
                logger.debug(f"Executing tool {tool.name} ({tool.call_id})")
                await tool.aexecute()
            finally:
                await self.emit(EventType.TOOL_CALLED, tool=tool)
            yield ToolResultChunk(tool)


@dataclass(frozen=True)
class ToolErrorEnvelope:
    """Picklable description of an exception raised inside a worker."""

    exception_class: str
    message: str
    code: int | str | None
    tool_name: str

    @classmethod
    def capture(cls, error: Exception, tool_name: str) -> ToolErrorEnvelope:
        code = getattr(error, "code", None)
        return cls(
            exception_class=qualified_name(error),
            message=str(error),
            code=code if isinstance(code, int | str) else None,
            tool_name=tool_name,
        )

    def to_exception(self) -> Exception:
        """Rebuild the original exception, or a ToolError when that is not possible."""
        try:
            error_cls = import_qualified(self.exception_class)
        except (ImportError, AttributeError):
            error_cls = None

        error: Exception | None = None
        if isinstance(error_cls, type) and issubclass(error_cls, Exception):
            try:
                if issubclass(error_cls, ToolError):
                    error = error_cls(self.message, tool_name=self.tool_name, code=self.code)
                else:
                    error = error_cls(self.message)
            except TypeError:
                error = None

        if error is None:
            error = ToolError(self.message, tool_name=self.tool_name, code=self.code)
        error.add_note(f"Raised by tool '{self.tool_name}' ({self.exception_class})")
        return error


@dataclass(frozen=True)
class ToolOutcome:
    """What a worker sends back: the tool result or the error it raised."""

    tool_name: str
    result: str | None = None
    error: ToolErrorEnvelope | None = None


def execute_isolated(tool: Tool) -> ToolOutcome:
    """Worker entry point; never raises."""
    try:
        if inspect.iscoroutinefunction(tool.function):
            asyncio.run(tool.aexecute())
        else:
            tool.execute()
    except Exception as e:
        return ToolOutcome(tool_name=tool.name, error=ToolErrorEnvelope.capture(e, tool.name))
    return ToolOutcome(tool_name=tool.name, result=tool.result)


class ConcurrentToolNode(ToolNode):
    """
    Runs the tool calls of one turn in parallel workers.

    Workers are threads by default, or separate processes with
    ``use_processes=True`` (tools must then be picklable). Results come
    back in the original call order. The first failed call, in call order,
    is re-raised in the caller after all workers finished. A single tool
    call runs inline like in ``ToolNode``.
    """

    def __init__(
        self,
        max_tries: int | None = None,
        max_workers: int | None = None,
        use_processes: bool = False,
    ):
        super().__init__(max_tries)
        self.max_workers = max_workers if max_workers is not None else get_parallel_tool_workers()
        self.use_processes = use_processes

    def _make_executor(self, n_tools: int) -> Executor:
        workers = min(self.max_workers or n_tools, n_tools)
        if self.use_processes:
            return ProcessPoolExecutor(max_workers=workers)
        return ThreadPoolExecutor(max_workers=workers, thread_name_prefix="agentflow-tool")

    async def execute_tools(self, tools: list[Tool], state: AgentState) -> AsyncIterator[Any]:
        if len(tools) <= 1:
            async for chunk in super().execute_tools(tools, state):
                yield chunk
            return

        for tool in tools:
            self.check_attempts(tool, state)
            await self.emit(EventType.TOOL_CALLING, tool=tool)
            yield ToolCallChunk(tool)

        loop = asyncio.get_running_loop()
        logger.debug(f"Executing {len(tools)} tools concurrently")
        with self._make_executor(len(tools)) as pool:
            outcomes = await asyncio.gather(
                *(loop.run_in_executor(pool, execute_isolated, tool) for tool in tools)
            )

        for tool, outcome in zip(tools, outcomes, strict=True):
            if outcome.error is not None:
                error = outcome.error.to_exception()
                await self.emit(
                    EventType.ERROR,
                    tool=outcome.tool_name,
                    error=outcome.error.message,
                    error_type=outcome.error.exception_class,
                )
                raise error
            tool.result = outcome.result
            yield ToolResultChunk(tool)
            await self.emit(EventType.TOOL_CALLED, tool=tool)
