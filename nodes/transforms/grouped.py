# ============================================================================
# ID-GROUPED COMPUTE NODES
# ============================================================================
# STATUS: Nodes - Shared sharding for per-id group transforms
# PURPOSE: Shard the source by distinct id instead of by record range
# CREATED: 18 OCT 2026
# ============================================================================
"""
Transforms that look at every record sharing an id (newest per id, drop
while per id) cannot use record-range shards: one id's records could land
in two shards. These nodes shard on slices of distinct `id_key` values
instead, so each batch holds complete groups.
"""

import asyncio
import logging
import math
from typing import Any, Dict, List, Optional

from core.logging import log_context
from core.records import get_path

from ..compute_node import ComputeNode, DependencyConstraint, Records
from ..data_node import DataNode
from ..properties import PropertySpec

logger = logging.getLogger(__name__)


class IdGroupedComputeNode(ComputeNode):
    """Base class; subclasses implement `process_ids`."""

    PROPERTIES = (PropertySpec("id_key", "string", required_for_computing=True),)
    DEPENDENCIES = DependencyConstraint(exactly=1)
    REQUIRES_DATA_NODE = True

    @property
    def id_key(self) -> str:
        return self.prop("id_key")

    async def distinct_ids(self, source: DataNode) -> List[Any]:
        rows = await source.all(fields=[self.id_key])
        return list(dict.fromkeys(v for v in (get_path(r, self.id_key) for r in rows) if v is not None))

    async def make_batch_params(self) -> List[Dict[str, Any]]:
        source = await self.source_data_node()
        if source is None:
            return []
        ids = await self.distinct_ids(source)
        if not ids:
            return []

        slice_size = math.ceil(len(ids) / max(1, self.defaults.execution.parallelism))
        if self.record.limit_per_process > 0:
            slice_size = min(self.record.limit_per_process, slice_size)
        return [{"ids": ids[i:i + slice_size]} for i in range(0, len(ids), slice_size)]

    async def execute_local_computation(self) -> None:
        batches = await self.make_batch_params()
        semaphore = asyncio.Semaphore(max(1, self.defaults.execution.parallelism))

        async def run(idx: int, params: Dict[str, Any]) -> None:
            async with semaphore:
                with log_context(msg_id=idx):
                    await self.send_heartbeat()
                    await self.execute_local_batch_computation(params)

        await asyncio.gather(*(run(i, p) for i, p in enumerate(batches)))
        logger.debug(f"{self.name}: processed {len(batches)} id slices")

    async def execute_local_batch_computation(self, params: Dict[str, Any]) -> Optional[Records]:
        source = await self.source_data_node()
        ids = params.get("ids") or []
        if source is None or not ids:
            return None
        output = await self.process_ids(source, ids)
        data_node = await self.data_node()
        if data_node is not None and output:
            await data_node.add(output)
        return None

    async def process_ids(self, source: DataNode, ids: List[Any]) -> Records:
        raise NotImplementedError


__all__ = ["IdGroupedComputeNode"]
