from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any


def sanitize_for_json(value: Any) -> Any:
    """
    Convert common non-JSON types to serializable forms.
    """
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.decode("utf-8", "replace")
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, dict):
        return {str(k): sanitize_for_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [sanitize_for_json(v) for v in value]
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        try:
            return sanitize_for_json(to_dict())
        except Exception:
            return str(value)
    if hasattr(value, "__dict__"):
        return sanitize_for_json(vars(value))
    return value
