"""Helpers for recording classes by name and importing them back."""

import importlib
from typing import Any


def qualified_name(obj: Any) -> str:
    """Return ``module:QualName`` for a class (or the class of an instance)."""
    cls = obj if isinstance(obj, type) else type(obj)
    return f"{cls.__module__}:{cls.__qualname__}"


def import_qualified(path: str) -> Any:
    """Resolve a ``module:QualName`` string produced by ``qualified_name``."""
    module_name, _, qualname = path.partition(":")
    if not qualname:
        raise ImportError(f"Not a qualified name: {path!r}")
    target: Any = importlib.import_module(module_name)
    for part in qualname.split("."):
        target = getattr(target, part)
    return target
