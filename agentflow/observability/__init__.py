"""
Observability helpers: structured logging with workflow trace context.

Notifications about inference, tools and history live on the event bus
(``agentflow.runtime.event_bus``); this package only covers logging.
"""

from agentflow.observability.logging import (
    HumanReadableFormatter,
    StructuredFormatter,
    clear_trace_context,
    configure_logging,
    get_trace_context,
    set_trace_context,
)

__all__ = [
    "configure_logging",
    "get_trace_context",
    "set_trace_context",
    "clear_trace_context",
    "StructuredFormatter",
    "HumanReadableFormatter",
]
