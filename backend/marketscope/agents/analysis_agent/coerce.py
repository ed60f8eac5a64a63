"""Coercion helpers for loosely-typed model output.

Model responses are parsed JSON of unknown quality: a field may be missing,
null, the wrong type, or a number encoded as a string. These helpers turn any
of that into a safe Python value or the supplied default.
"""

from __future__ import annotations

import json
import math
from typing import Any, Dict, List, Optional


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def as_str(value: Any, default: str = "") -> str:
    """Stripped string, or *default* when missing/blank/non-scalar."""
    if value is None or isinstance(value, (dict, list)):
        return default
    text = str(value).strip()
    return text or default


def as_float(value: Any, default: Optional[float] = None) -> Optional[float]:
    if isinstance(value, bool):
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(result):
        return default
    return result


def as_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    number = as_float(value)
    if number is None:
        return default
    return int(round(number))


def as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "yes", "paid"):
            return True
        if lowered in ("false", "no", "free"):
            return False
    return None


def as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def as_dicts(value: Any) -> List[Dict[str, Any]]:
    """Only the dict entries of a list."""
    return [item for item in as_list(value) if isinstance(item, dict)]


def as_str_list(value: Any) -> List[str]:
    """Non-empty strings of a list, stripped."""
    return [text for text in (as_str(item) for item in as_list(value)) if text]


def as_choice(value: Any, choices, default: str) -> str:
    """Case-insensitive membership test against *choices*."""
    text = as_str(value).lower()
    return text if text in choices else default


def dump_json(value: Any) -> str:
    return json.dumps(value)


def load_json(text: Optional[str], default: Any = None) -> Any:
    """Decode a stored ``*_json`` column; corrupt or empty columns yield *default*."""
    if not text:
        return default
    try:
        return json.loads(text)
    except ValueError:
        return default
