"""
Agent middleware.

- ToolApproval: asks a human before the tool node runs guarded tools
- TodoPlanning: gives the model a todo list tool and guidance for using it
"""

from __future__ import annotations

import json
import logging
from typing import Any

from agentflow.graph.events import AIInferenceEvent, Event, ToolCallEvent
from agentflow.graph.hitl import Action, ActionDecision, ApprovalRequest, InterruptRequest
from agentflow.graph.middleware import WorkflowMiddleware
from agentflow.graph.node import Node
from agentflow.graph.state import WorkflowState
from agentflow.tools.tool import Tool, ToolProperty, ToolRejectionHandler

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tool approval
# ---------------------------------------------------------------------------


def approval_message(count: int) -> str:
    if count == 1:
        return "1 tool call requires human approval before execution"
    return f"{count} tool calls require human approval before execution"


class ToolApproval(WorkflowMiddleware):
    """
    Suspends the tool node until a human decides on each guarded tool call.

    Register it on the tool node. Every guarded call in the ToolCallEvent
    becomes one ``Action`` (keyed by call id) of a single ``ApprovalRequest``.
    On resume:

    - approved calls run unchanged
    - edited calls run with the inputs given as a JSON object in the feedback
    - rejected calls keep their slot, but answer with a rejection message

    Args:
        tools: Names of the tools that need approval. Empty means all tools.
    """

    def __init__(self, tools: list[str] | None = None):
        self.tools = list(tools or [])

    def requires_approval(self, tool: Tool) -> bool:
        return not self.tools or tool.name in self.tools

    async def before(self, node: Node, event: Event, state: WorkflowState) -> None:
        if not isinstance(event, ToolCallEvent):
            return

        guarded = [t for t in event.tool_call_message.tools if self.requires_approval(t)]
        if not guarded:
            return

        request = ApprovalRequest(
            message=approval_message(len(guarded)),
            actions=[self.create_action(t) for t in guarded],
        )
        answer = node.interrupt(request)
        if not answer.is_resolved:
            # Ask again for whatever is still undecided
            node.interrupt(answer)
        self.apply_decisions(answer, guarded)

    def create_action(self, tool: Tool) -> Action:
        inputs = json.dumps(tool.inputs, indent=2) if tool.inputs else "(no arguments)"
        return Action(
            id=tool.call_id or tool.name,
            name=tool.name,
            description=f"Description: {tool.description or 'No description'}\nInputs: {inputs}",
        )

    def apply_decisions(self, request: InterruptRequest, tools: list[Tool]) -> None:
        for tool in tools:
            action = request.get_action(tool.call_id or tool.name)
            if action is None:
                continue
            if action.is_rejected:
                logger.info(f"Tool call {tool.name} ({tool.call_id}) rejected")
                tool.set_callable(ToolRejectionHandler(tool.name, action.feedback))
            elif action.decision == ActionDecision.EDIT and action.feedback:
                tool.inputs = {**tool.inputs, **_edited_inputs(action.feedback)}


def _edited_inputs(feedback: str) -> dict[str, Any]:
    try:
        value = json.loads(feedback)
    except json.JSONDecodeError:
        return {}
    return value if isinstance(value, dict) else {}


# ---------------------------------------------------------------------------
# Todo planning
# ---------------------------------------------------------------------------

TODO_STATUSES = ["pending", "in_progress", "completed"]

TODO_SYSTEM_PROMPT = """# Todo Planning Capabilities

You have access to todo planning functionality to help organize complex tasks.

## When to Use Todos

Use todo planning for:
- Complex multi-step tasks requiring 3 or more distinct steps
- Non-trivial operations requiring careful planning
- Tasks that benefit from visible progress tracking

DO NOT use todos for:
- Single, straightforward operations
- Trivial tasks that can be completed in 1-2 simple steps

## Todo Management

Each todo has:
- `content`: Task description (what needs to be done)
- `status`: One of "pending", "in_progress", or "completed"

## Usage Pattern

1. Call write_todos with your initial task breakdown
2. Mark the first task as "in_progress" before starting
3. Complete the task, then immediately mark it "completed"
4. Move to the next task and repeat
"""


def write_todos(todos: list[dict[str, Any]]) -> str:
    """Validate a todo list and summarize its progress."""
    for index, todo in enumerate(todos):
        if not isinstance(todo, dict) or "content" not in todo or "status" not in todo:
            return f"Error: Todo at index {index} must have 'content' and 'status' fields."
        if todo["status"] not in TODO_STATUSES:
            return (
                f"Error: Todo at index {index} has invalid status '{todo['status']}'. "
                f"Must be one of: {', '.join(TODO_STATUSES)}."
            )

    counts = {status: 0 for status in TODO_STATUSES}
    for todo in todos:
        counts[todo["status"]] += 1
    return (
        f"Todo list updated: {len(todos)} total tasks ({counts['completed']} completed, "
        f"{counts['in_progress']} in progress, {counts['pending']} pending)"
    )


def write_todos_tool(name: str = "write_todos") -> Tool:
    return Tool(
        name=name,
        description=(
            "Update the todo list with current task status. Use this to track progress "
            "on complex multi-step operations."
        ),
        properties=[
            ToolProperty(
                name="todos",
                type="array",
                description=(
                    'Array of todo items. Each item must have "content" (task description) '
                    'and "status" (one of: pending, in_progress, completed)'
                ),
                required=True,
                items={
                    "type": "object",
                    "properties": {
                        "content": {"type": "string", "description": "Task description"},
                        "status": {
                            "type": "string",
                            "description": "Current status of the task",
                            "enum": TODO_STATUSES,
                        },
                    },
                    "required": ["content", "status"],
                },
            )
        ],
        function=write_todos,
    )


class TodoPlanning(WorkflowMiddleware):
    """Adds todo planning guidance and the todo tool to every inference request."""

    def __init__(self, system_prompt: str = TODO_SYSTEM_PROMPT, tool_name: str = "write_todos"):
        self.system_prompt = system_prompt
        self.tool_name = tool_name

    async def before(self, node: Node, event: Event, state: WorkflowState) -> None:
        if not isinstance(event, AIInferenceEvent):
            return

        # The same event comes back after every tool round
        if self.system_prompt not in event.instructions:
            event.instructions = f"{event.instructions}\n\n{self.system_prompt}".lstrip()
        if not any(t.name == self.tool_name for t in event.tools):
            event.tools.append(write_todos_tool(self.tool_name))
