# ============================================================================
# TO TIME NODE
# ============================================================================
# STATUS: Nodes - Built-in type conversion transform
# PURPOSE: Convert the values of a set of keys to datetimes
# CREATED: 18 OCT 2026
# ============================================================================
"""
To Time Node

    properties = {"keys": ["created_at", "meta.seen_at"]}
"""

from typing import List

from core.records import get_path, set_path, to_datetime

from ..compute_node import ComputeNode, DependencyConstraint, Records
from ..properties import PropertySpec
from ..registry import register_node_type


@register_node_type("ToTimeNode")
class ToTimeNode(ComputeNode):
    """Parses ISO-8601 strings and unix timestamps under `keys` into datetimes."""

    PROPERTIES = (PropertySpec("keys", "array", required_for_computing=True, default=()),)
    DEPENDENCIES = DependencyConstraint(exactly=1)
    REQUIRES_DATA_NODE = True

    @property
    def keys(self) -> List[str]:
        return list(self.prop("keys") or [])

    async def validation_errors(self) -> List[str]:
        errors = await super().validation_errors()
        if not self.keys:
            errors.append(f"{type(self).__name__} keys must contain at least 1 value")
        return errors

    async def required_schema(self):
        schema = await super().required_schema()
        schema.update({key: {"type": "datetime"} for key in self.keys})
        return schema

    def compute_batch(self, records: Records) -> Records:
        keys = self.keys
        for record in records:
            for key in keys:
                value = get_path(record, key)
                if value is None or value == "":
                    continue
                set_path(record, key, to_datetime(value))
        return records


__all__ = ["ToTimeNode"]
