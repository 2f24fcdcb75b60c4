"""Error taxonomy for agentflow."""


class AgentFlowError(Exception):
    """Base class for all agentflow errors."""

    pass


class WorkflowError(AgentFlowError):
    """The workflow graph is misconfigured or a node broke its contract."""

    pass


class ProviderError(AgentFlowError):
    """Transport or parse failure while talking to an LLM provider."""

    pass


class ToolError(AgentFlowError):
    """A tool failed while executing."""

    def __init__(self, message: str, tool_name: str | None = None, code: int | str | None = None):
        super().__init__(message)
        self.tool_name = tool_name
        self.code = code


class ToolMaxTriesError(ToolError):
    """A tool was invoked more times than its attempt budget allows."""

    pass


class StructuredOutputError(AgentFlowError):
    """The model response could not be turned into the requested structure."""

    pass


class ChatHistoryError(AgentFlowError):
    """Invalid chat history operation or storage payload."""

    pass


class PersistenceError(AgentFlowError):
    """Interrupt persistence failed."""

    pass


class WorkflowNotFoundError(PersistenceError):
    """No interrupt is stored for the requested workflow id."""

    def __init__(self, workflow_id: str):
        super().__init__(f"No saved interrupt found for workflow '{workflow_id}'")
        self.workflow_id = workflow_id
