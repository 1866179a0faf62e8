"""Helpers for reading values out of trigger payloads."""

from functools import reduce
from typing import Any


class _Missing:
    """Sentinel for a path that does not resolve to a value."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


def read_path(payload: Any, path: str) -> Any:
    """Resolve a dotted path such as ``lead.phone`` or ``leads.0.phone``.

    Numeric segments index into lists. Returns ``MISSING`` when a segment is
    absent, out of range, or the value is neither a mapping nor a list. Never raises.
    """
    segments = [segment for segment in str(path or "").split(".") if segment]

    def step(current: Any, key: str) -> Any:
        if isinstance(current, dict):
            return current.get(key, MISSING)
        if isinstance(current, list) and key.isascii() and key.isdigit() and int(key) < len(current):
            return current[int(key)]
        return MISSING

    return reduce(step, segments, payload)


def first_text(*candidates: Any) -> str:
    """Return the first truthy candidate as a stripped string, or ``""``."""
    for candidate in candidates:
        if candidate:
            return str(candidate).strip()
    return ""
