"""Shared utility functions used across Warmpath modules."""
from __future__ import annotations

import json
from typing import Any

_MISSING = object()


def json_parse(value: str | None, default: Any = _MISSING) -> Any:
    """Safely parse a JSON string, returning *default* on failure.

    If no default is given, returns ``{}`` on parse error.
    """
    try:
        return json.loads(value or "")
    except (json.JSONDecodeError, TypeError):
        return {} if default is _MISSING else default


def json_list(value: str | None) -> list[Any]:
    """Parse a JSON array column; anything that is not a list becomes ``[]``."""
    parsed = json_parse(value, [])
    return parsed if isinstance(parsed, list) else []


def clamp_score(value: float) -> int:
    """Round and clamp a score into the 0-100 range."""
    return int(max(0, min(100, round(value))))
