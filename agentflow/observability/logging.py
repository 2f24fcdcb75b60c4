"""
Structured logging with workflow context propagation.

The executor stores the running workflow id and the current node in a
ContextVar; both formatters read it back, so a plain ``logger.info()`` inside
a node or a tool is correlated with its workflow without passing ids around.

    Workflow.start()      -> set_trace_context(workflow_id=..., run_id=...)
    node dispatch         -> set_trace_context(node="ChatNode")
    logger.info("...")    -> {"workflow_id": ..., "node": "ChatNode", ...}
"""

import json
import logging
import os
import re
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

trace_context: ContextVar[dict[str, Any] | None] = ContextVar("agentflow_trace", default=None)

_ANSI = re.compile(r"\x1b\[[0-9;]*m")

# Optional attributes callers may attach with ``extra={...}``
_EXTRA_FIELDS = ("event", "tool_name", "attempt", "tokens_used", "latency_ms", "model")


def strip_ansi_codes(text: str) -> str:
    return _ANSI.sub("", text)


class StructuredFormatter(logging.Formatter):
    """One JSON object per line: timestamp, level, logger, message, context, extras."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": strip_ansi_codes(record.getMessage()),
        }
        entry.update(trace_context.get() or {})

        for name in _EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = strip_ansi_codes(value) if isinstance(value, str) else value

        if record.exc_info:
            entry["exception"] = strip_ansi_codes(self.formatException(record.exc_info))

        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Colourised single-line output prefixed with the workflow/node context."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        context = trace_context.get() or {}
        parts = []
        if context.get("workflow_id"):
            parts.append(f"wf:{str(context['workflow_id'])[:8]}")
        if context.get("node"):
            parts.append(f"node:{context['node']}")
        prefix = f"[{' | '.join(parts)}] " if parts else ""

        color = self.COLORS.get(record.levelname, "")
        suffix = ""
        event = getattr(record, "event", None)
        if event is not None:
            suffix = f" [{event}]"

        line = f"{color}[{record.levelname:<8}]{self.RESET} {prefix}{record.getMessage()}{suffix}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(level: str = "INFO", format: str = "auto") -> None:
    """
    Install an agentflow formatter on the root logger.

    Call once at application startup. The library itself never configures
    handlers.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        format: "json", "human", or "auto" (JSON when LOG_FORMAT=json or
            ENV=production, human otherwise)
    """
    if format == "auto":
        wants_json = (
            os.getenv("LOG_FORMAT", "").lower() == "json"
            or os.getenv("ENV", "development").lower() == "production"
        )
        format = "json" if wants_json else "human"

    if format == "json":
        formatter: logging.Formatter = StructuredFormatter()
        _quiet_litellm()
    else:
        formatter = HumanReadableFormatter()

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())

    if format == "json":
        # Route third-party output through the JSON handler on the root logger
        for name in ("LiteLLM", "httpx", "httpcore", "openai"):
            third_party = logging.getLogger(name)
            third_party.handlers.clear()
            third_party.propagate = True


def _quiet_litellm() -> None:
    """Keep litellm's coloured banners out of JSON logs."""
    os.environ["NO_COLOR"] = "1"
    import litellm

    litellm.suppress_debug_info = True


def set_trace_context(**kwargs: Any) -> None:
    """Merge fields into the current trace context (workflow_id, node, run_id, ...)."""
    current = trace_context.get() or {}
    trace_context.set({**current, **kwargs})


def get_trace_context() -> dict:
    return dict(trace_context.get() or {})


def clear_trace_context() -> None:
    trace_context.set(None)
