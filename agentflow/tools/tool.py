"""Tool definitions: schema, per-call binding and execution."""

from __future__ import annotations

import dataclasses
import inspect
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from agentflow.exceptions import ToolError
from agentflow.utils.imports import import_qualified

logger = logging.getLogger(__name__)

_PY_TO_JSON_TYPE = {
    int: "integer",
    float: "number",
    bool: "boolean",
    dict: "object",
    list: "array",
    str: "string",
}
_JSON_TYPE_BY_NAME = {t.__name__: json_type for t, json_type in _PY_TO_JSON_TYPE.items()}


@dataclass
class ToolProperty:
    """One declared input argument of a tool."""

    name: str
    type: str = "string"
    description: str = ""
    required: bool = False
    enum: list[Any] | None = None
    items: dict[str, Any] | None = None  # JSON schema of array items

    def to_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"type": self.type}
        if self.description:
            schema["description"] = self.description
        if self.enum:
            schema["enum"] = list(self.enum)
        if self.items is not None:
            schema["items"] = self.items
        return schema


@dataclass
class Tool:
    """
    A capability the model can call.

    A Tool is defined once and handed to the provider. When the model asks
    for it, the provider clones the definition with ``bind_call`` so each
    invocation owns its own ``call_id``, ``inputs`` and ``result``.

    Attributes:
        name: Tool name sent to the model.
        description: What the tool does, sent to the model.
        properties: Declared input arguments.
        function: Callable invoked with the inputs as keyword arguments.
            May be a coroutine function.
        max_tries: Per-tool attempt budget; None defers to the tool node.
        call_id: Provider-issued id of this invocation.
        inputs: Arguments the model supplied.
        result: Stringified return value after execution.
    """

    name: str
    description: str = ""
    properties: list[ToolProperty] = field(default_factory=list)
    function: Callable[..., Any] | None = None
    max_tries: int | None = None
    call_id: str | None = None
    inputs: dict[str, Any] = field(default_factory=dict)
    result: str | None = None

    # --- definition -----------------------------------------------------

    @classmethod
    def from_function(
        cls,
        func: Callable[..., Any],
        name: str | None = None,
        description: str | None = None,
        max_tries: int | None = None,
    ) -> Tool:
        """Build a tool definition from a function signature."""
        tool_name = name or func.__name__
        tool_desc = description or inspect.getdoc(func) or f"Execute {tool_name}"

        properties = []
        for param_name, param in inspect.signature(func).parameters.items():
            if param_name in ("self", "cls"):
                continue
            if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
                continue
            annotation = param.annotation
            if isinstance(annotation, str):
                param_type = _JSON_TYPE_BY_NAME.get(annotation, "string")
            else:
                param_type = _PY_TO_JSON_TYPE.get(annotation, "string")
            properties.append(
                ToolProperty(
                    name=param_name,
                    type=param_type,
                    required=param.default is inspect.Parameter.empty,
                )
            )

        return cls(
            name=tool_name,
            description=tool_desc,
            properties=properties,
            function=func,
            max_tries=max_tries,
        )

    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {p.name: p.to_schema() for p in self.properties},
            "required": [p.name for p in self.properties if p.required],
        }

    def to_dict(self) -> dict[str, Any]:
        """Provider-facing definition (name, description, JSON schema)."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters_schema(),
        }

    # --- per-call binding -----------------------------------------------

    def bind_call(self, call_id: str | None, inputs: dict[str, Any] | None) -> Tool:
        """Return a copy of this definition bound to one model invocation."""
        return dataclasses.replace(
            self,
            properties=list(self.properties),
            call_id=call_id,
            inputs=dict(inputs or {}),
            result=None,
        )

    def set_callable(self, func: Callable[..., Any]) -> Tool:
        self.function = func
        return self

    # --- execution ------------------------------------------------------

    def execute(self) -> None:
        """Run the tool synchronously and store the stringified result."""
        if self.function is None:
            raise ToolError(f"Tool '{self.name}' has no callable attached", tool_name=self.name)
        if inspect.iscoroutinefunction(self.function):
            raise TypeError(f"Tool '{self.name}' is async; use aexecute()")
        self.result = _stringify(self.function(**self.inputs))

    async def aexecute(self) -> None:
        """Run the tool, awaiting it when the callable is a coroutine function."""
        if self.function is None:
            raise ToolError(f"Tool '{self.name}' has no callable attached", tool_name=self.name)
        value = self.function(**self.inputs)
        if inspect.isawaitable(value):
            value = await value
        self.result = _stringify(value)

    # --- storage --------------------------------------------------------

    def __getstate__(self) -> dict[str, Any]:
        # Plain module-level functions travel by reference, which also covers
        # functions whose module attribute was replaced by the @tool decorator.
        state = dict(self.__dict__)
        func = state.get("function")
        if inspect.isfunction(func):
            state["function"] = _FunctionRef.for_function(func) or func
        return state

    def __setstate__(self, state: dict[str, Any]) -> None:
        func = state.get("function")
        if isinstance(func, _FunctionRef):
            state["function"] = func.resolve()
        self.__dict__.update(state)

    def to_call_dict(self) -> dict[str, Any]:
        """Serialisable view of one invocation, used by chat history storage."""
        d: dict[str, Any] = {"name": self.name, "call_id": self.call_id, "inputs": self.inputs}
        if self.result is not None:
            d["result"] = self.result
        return d

    @classmethod
    def from_call_dict(cls, data: dict[str, Any]) -> Tool:
        return cls(
            name=data["name"],
            call_id=data.get("call_id"),
            inputs=data.get("inputs") or {},
            result=data.get("result"),
        )


@dataclass(frozen=True)
class _FunctionRef:
    path: str

    @classmethod
    def for_function(cls, func: Callable[..., Any]) -> _FunctionRef | None:
        if "<" in func.__qualname__:
            return None
        ref = cls(f"{func.__module__}:{func.__qualname__}")
        try:
            resolved = ref.resolve()
        except (ImportError, AttributeError):
            return None
        return ref if resolved is func else None

    def resolve(self) -> Callable[..., Any]:
        target = import_qualified(self.path)
        if isinstance(target, Tool):
            return target.function
        return target


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


class ToolRejectionHandler:
    """
    Stand-in callable for a tool a human rejected.

    Kept as a module-level class so the rejected tool stays picklable for
    concurrent execution.
    """

    def __init__(self, tool_name: str, feedback: str | None = None):
        self.tool_name = tool_name
        self.feedback = feedback

    def __call__(self, **_inputs: Any) -> str:
        return (
            f"The user rejected the tool '{self.tool_name}' execution. "
            f"Reason: {self.feedback or 'No reason provided'}"
        )


def tool(
    func: Callable[..., Any] | None = None,
    *,
    name: str | None = None,
    description: str | None = None,
    max_tries: int | None = None,
) -> Any:
    """
    Turn a function into a Tool.

    Usage:
        @tool
        def read_file(path: str) -> str:
            '''Read a file from the workspace.'''

        @tool(max_tries=2)
        def delete_file(path: str) -> str: ...
    """

    def decorator(f: Callable[..., Any]) -> Tool:
        return Tool.from_function(f, name=name, description=description, max_tries=max_tries)

    if func is not None:
        return decorator(func)
    return decorator
