"""
Agent - wires the agent nodes into a workflow.

Each call to ``chat``, ``stream`` or ``structured`` builds a fresh workflow
over the agent's shared ``AgentState``, so the conversation carries over
from one call to the next:

    agent = Agent(provider, instructions="You are a file assistant.", tools=[read_file])
    result = await agent.chat(UserMessage("What is in notes.txt?")).result()
    print(result.final_event)  # StopEvent
    print(agent.state.chat_history.last_message().text)

A suspended run is resumed by passing the answered request back:

    while result.is_suspended:
        request = ask_human(result.request)
        result = await agent.chat(resume_request=request).result()
"""

from __future__ import annotations

import logging
import uuid

from agentflow.agent.nodes import (
    ChatNode,
    ConcurrentToolNode,
    PrepareInferenceNode,
    RouterNode,
    StreamingNode,
    StructuredOutputNode,
    ToolNode,
)
from agentflow.chat.history import ChatHistory
from agentflow.chat.messages import Message
from agentflow.config import AgentConfig
from agentflow.graph.executor import Workflow, WorkflowHandler
from agentflow.graph.hitl import InterruptRequest
from agentflow.graph.middleware import WorkflowMiddleware
from agentflow.graph.node import Node
from agentflow.graph.state import AgentState
from agentflow.llm.provider import LLMProvider
from agentflow.runtime.event_bus import EventBus
from agentflow.storage.persistence import InMemoryPersistence, Persistence
from agentflow.tools.tool import Tool

logger = logging.getLogger(__name__)


class Agent:
    """
    An LLM agent: instructions, tools and a provider, run as a workflow.

    Args:
        provider: LLM backend.
        instructions: System prompt.
        tools: Tools the model may call.
        state: Shared state; a new AgentState is created when omitted.
        persistence: Where suspended runs are kept (in memory by default).
        event_bus: Receives observability notifications.
        workflow_id: Id under which suspended runs are saved.
        config: Defaults for tool attempts, retries and the context window.
        parallel_tool_calls: Run the tool calls of one turn concurrently.
    """

    def __init__(
        self,
        provider: LLMProvider,
        instructions: str = "",
        tools: list[Tool] | None = None,
        *,
        state: AgentState | None = None,
        persistence: Persistence | None = None,
        event_bus: EventBus | None = None,
        workflow_id: str | None = None,
        config: AgentConfig | None = None,
        parallel_tool_calls: bool = False,
    ):
        self.provider = provider
        self.instructions = instructions
        self.tools: list[Tool] = list(tools or [])
        self.config = config or AgentConfig()
        self.persistence = persistence or InMemoryPersistence()
        self.event_bus = event_bus or EventBus()
        self.workflow_id = workflow_id or uuid.uuid4().hex
        self.parallel_tool_calls = parallel_tool_calls

        self._state = state or AgentState(
            chat_history=ChatHistory(context_window=self.config.context_window)
        )
        self._workflow: Workflow | None = None
        self._node_middleware: list[tuple[list[type[Node]], list[WorkflowMiddleware]]] = []
        self._global_middleware: list[WorkflowMiddleware] = []

    @property
    def state(self) -> AgentState:
        """State of the latest run (restored from persistence after a resume)."""
        if self._workflow is not None:
            return self._workflow.state
        return self._state

    def add_tool(self, tool: Tool | list[Tool]) -> Agent:
        self.tools.extend(tool if isinstance(tool, list) else [tool])
        return self

    def add_middleware(
        self,
        node_types: type[Node] | list[type[Node]],
        middleware: WorkflowMiddleware | list[WorkflowMiddleware],
    ) -> Agent:
        """
        Register middleware for agent nodes.

        Middleware registered for ``ToolNode`` also applies to
        ``ConcurrentToolNode`` when parallel tool calls are enabled.
        """
        types = node_types if isinstance(node_types, list) else [node_types]
        items = middleware if isinstance(middleware, list) else [middleware]
        self._node_middleware.append((types, items))
        return self

    def add_global_middleware(
        self, middleware: WorkflowMiddleware | list[WorkflowMiddleware]
    ) -> Agent:
        self._global_middleware.extend(middleware if isinstance(middleware, list) else [middleware])
        return self

    # --- runs -----------------------------------------------------------------

    def chat(
        self,
        messages: Message | list[Message] | None = None,
        resume_request: InterruptRequest | None = None,
    ) -> WorkflowHandler:
        """Run the agent loop with request/response inference."""
        return self._start(ChatNode(self.provider), messages, resume_request)

    def stream(
        self,
        messages: Message | list[Message] | None = None,
        resume_request: InterruptRequest | None = None,
    ) -> WorkflowHandler:
        """Run the agent loop streaming text and tool chunks to the caller."""
        return self._start(StreamingNode(self.provider), messages, resume_request)

    def structured(
        self,
        messages: Message | list[Message] | None,
        output_type: type,
        max_retries: int | None = None,
        resume_request: InterruptRequest | None = None,
    ) -> WorkflowHandler:
        """
        Run the agent loop until the model answers with ``output_type``.

        The validated object is stored in the run state under
        ``"structured_output"``.
        """
        retries = max_retries if max_retries is not None else self.config.structured_max_retries
        node = StructuredOutputNode(self.provider, output_type, max_retries=retries)
        return self._start(node, messages, resume_request)

    def _start(
        self,
        inference_node: Node,
        messages: Message | list[Message] | None,
        resume_request: InterruptRequest | None,
    ) -> WorkflowHandler:
        if isinstance(messages, Message):
            messages = [messages]
        self._workflow = self.build_workflow(inference_node, messages or [])
        return self._workflow.start(resume_request)

    def build_workflow(self, inference_node: Node, messages: list[Message]) -> Workflow:
        if self.parallel_tool_calls:
            tool_node: ToolNode = ConcurrentToolNode(
                max_tries=self.config.tool_max_tries,
                max_workers=self.config.parallel_tool_workers,
            )
        else:
            tool_node = ToolNode(max_tries=self.config.tool_max_tries)

        workflow = Workflow(
            [
                PrepareInferenceNode(self.instructions, self.tools, messages),
                inference_node,
                RouterNode(),
                tool_node,
            ],
            state=self.state,
            persistence=self.persistence,
            workflow_id=self.workflow_id,
            event_bus=self.event_bus,
        )

        workflow.add_global_middleware(self._global_middleware)
        for types, middleware in self._node_middleware:
            resolved = [
                type(tool_node) if node_type is ToolNode else node_type for node_type in types
            ]
            workflow.add_middleware(resolved, middleware)

        logger.debug(
            f"Built agent workflow {self.workflow_id} with {type(inference_node).__name__} "
            f"and {type(tool_node).__name__}"
        )
        return workflow
