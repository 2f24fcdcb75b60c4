"""Runtime services shared by running workflows."""

from agentflow.runtime.event_bus import AgentEvent, EventBus, EventType

__all__ = ["AgentEvent", "EventBus", "EventType"]
