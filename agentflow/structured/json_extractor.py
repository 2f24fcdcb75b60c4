"""
JSON Extractor - Pulls a JSON object out of a free-text model reply.

Models wrap structured answers in prose or Markdown fences. The extractor
tries, in order: the whole text, fenced code blocks, then every balanced
``{...}`` span, returning the first one that parses to an object.
"""

import json
import logging
import re
from collections.abc import Iterator
from typing import Any

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def _balanced_objects(text: str) -> Iterator[str]:
    """Yield every top-level ``{...}`` span, skipping braces inside strings."""
    depth = 0
    start = -1
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"' and depth > 0:
            in_string = True
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                yield text[start : i + 1]


def _repair(candidate: str) -> str:
    # Python literals are the most common slip
    candidate = re.sub(r"\bTrue\b", "true", candidate)
    candidate = re.sub(r"\bFalse\b", "false", candidate)
    return re.sub(r"\bNone\b", "null", candidate)


def _load_object(candidate: str) -> dict[str, Any] | None:
    for attempt in (candidate, _repair(candidate)):
        try:
            value = json.loads(attempt)
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict):
            return value
    return None


def extract_json(text: str) -> dict[str, Any] | None:
    """Return the first JSON object found in ``text``, or None."""
    if not isinstance(text, str) or not text.strip():
        return None

    candidates = [text.strip()]
    candidates.extend(m.group(1).strip() for m in _FENCE.finditer(text))
    candidates.extend(_balanced_objects(text))

    for candidate in candidates:
        value = _load_object(candidate)
        if value is not None:
            return value

    logger.debug(f"No JSON object found in {len(text)} characters of text")
    return None
