# ============================================================================
# FILTER LANGUAGE
# ============================================================================
# STATUS: Storage - JSON-compatible query filters
# PURPOSE: Validate and evaluate `where` filters shared by every backend
# CREATED: 14 OCT 2026
# ============================================================================
"""
Filter Language

    {"field": value}              equality (value list -> IN)
    {"field": {op: value, ...}}   op in "!=", "<", "<=", ">", ">="
                                  ("!=" with a list -> NOT IN)

All clauses are AND-ed. Backends that cannot push a filter down evaluate it
in Python with `matches`.
"""

from typing import Any, Dict, Optional

from core.errors import UnsupportedOperationError
from core.records import get_path

OPERATORS = ("!=", "<", "<=", ">", ">=")


def validate_filter(where: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Return the filter, raising UnsupportedOperationError on unknown operators."""
    where = where or {}
    for field, condition in where.items():
        if isinstance(condition, dict):
            for op in condition:
                if op not in OPERATORS:
                    raise UnsupportedOperationError(f"Unsupported filter operator '{op}' on '{field}'")
    return where


def _compare(op: str, left: Any, right: Any) -> bool:
    if op == "!=":
        if isinstance(right, (list, tuple, set)):
            return left not in right
        return left != right
    # Ordering comparisons never match missing values
    if left is None or right is None:
        return False
    try:
        if op == "<":
            return left < right
        if op == "<=":
            return left <= right
        if op == ">":
            return left > right
        return left >= right
    except TypeError:
        return False


def matches(record: Dict[str, Any], where: Optional[Dict[str, Any]]) -> bool:
    """Evaluate a filter against one record."""
    for field, condition in validate_filter(where).items():
        value = get_path(record, field)
        if isinstance(condition, dict):
            if not all(_compare(op, value, expected) for op, expected in condition.items()):
                return False
        elif isinstance(condition, (list, tuple, set)):
            if value not in condition:
                return False
        elif value != condition:
            return False
    return True


__all__ = ["OPERATORS", "validate_filter", "matches"]
