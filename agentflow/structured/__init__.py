"""Helpers for structured (schema-bound) model output."""

from agentflow.structured.json_extractor import extract_json

__all__ = ["extract_json"]
