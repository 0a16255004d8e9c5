# ============================================================================
# WHERE NODE
# ============================================================================
# STATUS: Nodes - Built-in filter transform
# PURPOSE: Keep the source records whose key compares true against a value
# CREATED: 15 OCT 2026
# ============================================================================
"""
Where Node

    properties = {"key": "age", "op": "ge", "value": 18}

Ordering comparisons never match records missing the key.
"""

import operator
from typing import Any

from core.errors import ConfigurationError
from core.records import get_path

from ..compute_node import ComputeNode, DependencyConstraint, Records
from ..properties import PropertySpec
from ..registry import register_node_type

VALID_OPS = {
    "eq": operator.eq,
    "ne": operator.ne,
    "le": operator.le,
    "lt": operator.lt,
    "ge": operator.ge,
    "gt": operator.gt,
}


@register_node_type("WhereNode")
class WhereNode(ComputeNode):
    """Filters its single dependency on `key <op> value`."""

    PROPERTIES = (
        PropertySpec("key", "string", required_for_computing=True),
        PropertySpec("op", "string", required_for_computing=True, values=tuple(VALID_OPS)),
        PropertySpec("value", "any", required_for_computing=True),
    )
    DEPENDENCIES = DependencyConstraint(exactly=1)
    REQUIRES_DATA_NODE = True

    def _matches(self, record, key: str, compare, value: Any) -> bool:
        field = get_path(record, key)
        if compare not in (operator.eq, operator.ne) and field is None:
            return False
        try:
            return compare(field, value)
        except TypeError:
            return False

    def compute_batch(self, records: Records) -> Records:
        op = str(self.prop("op") or "").lower()
        compare = VALID_OPS.get(op)
        if compare is None:
            raise ConfigurationError([f"Invalid op key: {self.prop('op')}"], node_name=self.name)

        key, value = self.prop("key"), self.prop("value")
        return [r for r in records if self._matches(r, key, compare, value)]


__all__ = ["WhereNode", "VALID_OPS"]
