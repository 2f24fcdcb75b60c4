"""Pydantic models for persisted data."""

from agentflow.schemas.interrupt import InterruptSnapshot

__all__ = ["InterruptSnapshot"]
