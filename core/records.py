# ============================================================================
# RECORD HELPERS
# ============================================================================
# STATUS: Foundation - Dotted-path access on plain dict records
# PURPOSE: Shared by storage filters and transform nodes
# CREATED: 14 OCT 2026
# ============================================================================
"""
Records are plain JSON-compatible dicts. Nested fields are addressed with
dotted paths ("address.city").
"""

from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, Optional

_MISSING = object()


def get_path(record: Dict[str, Any], path: str, default: Any = None) -> Any:
    """Read a dotted path; a literal key containing dots wins over nesting."""
    if path in record:
        return record[path]
    current: Any = record
    for part in path.split("."):
        if not isinstance(current, dict):
            return default
        current = current.get(part, _MISSING)
        if current is _MISSING:
            return default
    return current


def has_path(record: Dict[str, Any], path: str) -> bool:
    return get_path(record, path, _MISSING) is not _MISSING


def set_path(record: Dict[str, Any], path: str, value: Any) -> None:
    """Write a dotted path, creating intermediate dicts."""
    parts = path.split(".")
    current = record
    for part in parts[:-1]:
        nxt = current.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            current[part] = nxt
        current = nxt
    current[parts[-1]] = value


def project(record: Dict[str, Any], keys: Iterable[str], skip_none: bool = True) -> Dict[str, Any]:
    """New record holding only the given (dotted) keys that are present (and not None, unless skip_none is off)."""
    result: Dict[str, Any] = {}
    for key in keys:
        value = get_path(record, key, _MISSING)
        if value is _MISSING or (skip_none and value is None):
            continue
        set_path(result, key, value)
    return result


def to_datetime(value: Any) -> Optional[datetime]:
    """
    Coerce a datetime, date, ISO-8601 string or unix timestamp to a datetime.

    Naive values are taken as UTC. Raises ValueError when the value cannot
    be read as a point in time.
    """
    if value is None or isinstance(value, datetime):
        return value if value is None or value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, bool):
        raise ValueError(f"Cannot convert {value!r} to a datetime")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str):
        # fromisoformat only accepts a trailing Z from 3.11 on
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return to_datetime(datetime.fromisoformat(text))
    raise ValueError(f"Cannot convert {type(value).__name__} to a datetime")


__all__ = ["get_path", "has_path", "set_path", "project", "to_datetime"]
