# ============================================================================
# MERGE NODE
# ============================================================================
# STATUS: Nodes - Built-in union transform
# PURPOSE: Append both dependencies into one output, optionally tagging origin
# CREATED: 15 OCT 2026
# ============================================================================
"""
Merge Node

    properties = {"merge_key": "origin", "merge_values": ["web", "store"]}

When `merge_key` is set, records from the first dependency get
`merge_values[0]` under that key and records from the second get
`merge_values[1]`.
"""

import functools
from typing import Any, Dict, List, Optional

from ..compute_node import ComputeNode, DependencyConstraint, Records
from ..properties import PropertySpec
from ..registry import register_node_type


@register_node_type("MergeNode")
class MergeNode(ComputeNode):
    """Union of two dependencies."""

    PROPERTIES = (
        PropertySpec("merge_key", "string", default=""),
        PropertySpec("merge_values", "array", default=()),
    )
    DEPENDENCIES = DependencyConstraint(exactly=2)
    REQUIRES_DATA_NODE = True

    def merge_records(self, records: Records, index: int) -> Records:
        merge_key = self.prop("merge_key")
        if merge_key:
            values = self.prop("merge_values") or []
            tag = values[index] if index < len(values) else None
            for record in records:
                record[merge_key] = tag
        return records

    async def required_schema(self) -> Dict[str, Dict[str, Any]]:
        schema: Dict[str, Dict[str, Any]] = {}
        for source in await self.source_data_nodes():
            if source is not None:
                schema.update(source.dataset_schema)
        merge_key = self.prop("merge_key")
        if merge_key:
            schema.setdefault(merge_key, {"type": "string"})
        return schema

    async def execute_local_computation(self) -> None:
        for index, source in enumerate(await self.source_data_nodes()):
            if source is not None:
                await self.process_parallel(source, functools.partial(self.merge_records, index=index))

    async def make_batch_params(self) -> List[Dict[str, Any]]:
        params = []
        for index, source in enumerate(await self.source_data_nodes()):
            if source is not None:
                params.extend({"where": q, "source": index} for q in await self._shard_queries(source))
        return params

    async def execute_local_batch_computation(self, params: Dict[str, Any]) -> Optional[Records]:
        index = int(params.get("source", 0))
        source = (await self.source_data_nodes())[index]
        if source is None:
            return None
        records = await source.all(where=params.get("where") or {})
        output = self.merge_records(records, index)
        data_node = await self.data_node()
        if output:
            await data_node.add(output)
        return None


__all__ = ["MergeNode"]
