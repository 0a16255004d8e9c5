# ============================================================================
# MAP NODE
# ============================================================================
# STATUS: Nodes - Built-in value mapping transform
# PURPOSE: Rewrite keys/values of source records from a mapping dataset
# CREATED: 18 OCT 2026
# ============================================================================
"""
Map Node

The second dependency holds the mapping table, one rule per record:

    {"key": "country", "values": {"NO": "Norway", "SE": "Sweden"},
     "default": "Other", "mapped_key": "country_name"}

For each source record and each rule, the value under `key` is looked up
in `values`; a miss falls back to `default`, then to the original value.
The result is written under `mapped_key` (or back under `key`).
"""

from typing import Any, Dict, List

from core.records import get_path, set_path

from ..compute_node import ComputeNode, DependencyConstraint, Records
from ..registry import register_node_type


@register_node_type("MapNode")
class MapNode(ComputeNode):
    """Maps its first dependency through the rules held by its second."""

    DEPENDENCIES = DependencyConstraint(exactly=2)
    REQUIRES_DATA_NODE = True

    async def mapping_table(self) -> List[Dict[str, Any]]:
        sources = await self.source_data_nodes()
        mapping_node = sources[1] if len(sources) > 1 else None
        return await mapping_node.all() if mapping_node is not None else []

    async def compute_batch(self, records: Records) -> Records:
        rules = await self.mapping_table()
        for record in records:
            for rule in rules:
                self.map_record(record, rule)
        return records

    @staticmethod
    def map_record(record: Dict[str, Any], rule: Dict[str, Any]) -> None:
        key = rule.get("key")
        if not key:
            return
        original = get_path(record, key)
        values = rule.get("values")

        mapped = None
        if isinstance(values, dict):
            # Mapping tables round-trip through JSON, so their keys are strings
            mapped = values.get(original if isinstance(original, str) else str(original))
            if mapped is None:
                mapped = rule.get("default")

        set_path(record, rule.get("mapped_key") or key, mapped if mapped is not None else original)


__all__ = ["MapNode"]
