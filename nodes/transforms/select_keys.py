# ============================================================================
# SELECT KEYS NODE
# ============================================================================
# STATUS: Nodes - Built-in projection transform
# PURPOSE: Keep only a set of (dotted) keys from every source record
# CREATED: 15 OCT 2026
# ============================================================================
"""
Select Keys Node

    properties = {"keys": ["id", "address.city"]}

Records left empty after the projection are dropped.
"""

from typing import Any, Dict, List

from core.records import project

from ..compute_node import ComputeNode, DependencyConstraint, Records
from ..properties import PropertySpec
from ..registry import register_node_type


@register_node_type("SelectKeysNode")
class SelectKeysNode(ComputeNode):
    """Projects its single dependency onto `keys`."""

    PROPERTIES = (PropertySpec("keys", "array", required_for_computing=True),)
    DEPENDENCIES = DependencyConstraint(exactly=1)
    REQUIRES_DATA_NODE = True

    @property
    def keys(self) -> List[str]:
        return list(self.prop("keys") or [])

    async def required_schema(self) -> Dict[str, Dict[str, Any]]:
        source_schema = await super().required_schema()
        return {k: source_schema.get(k, {"type": "string"}) for k in self.keys}

    def compute_batch(self, records: Records) -> Records:
        keys = self.keys
        projected = (project(record, keys) for record in records)
        return [r for r in projected if r]

    async def export(self, sink, where=None):
        """Export the output dataset restricted to the selected keys."""
        data_node = await self.data_node()
        return await data_node.export(sink, where=where, keys=self.keys)


__all__ = ["SelectKeysNode"]
