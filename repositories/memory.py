# ============================================================================
# IN-MEMORY NODE REPOSITORY
# ============================================================================
# STATUS: Infrastructure - Process-local node persistence
# PURPOSE: NodeRepository for tests and local development
# CREATED: 14 OCT 2026
# ============================================================================
"""
In-Memory Node Repository

Rows are stored as deep copies so callers never share mutable state with
the store. An asyncio.Lock makes each lease transition a compare-and-set.
"""

import asyncio
from datetime import datetime
from typing import Dict, List, Optional

from core.contracts import ComputingState
from core.errors import NodeNotFoundError
from core.models import ComputeNodeRecord, DataNodeRecord

from .base import NodeRepository

LEASE_FIELDS = (
    "computing_state",
    "computing_started_at",
    "last_heartbeat_time",
    "execution_uuid",
    "last_compute_starting_time",
)

# Written only by swap_slots / touch_data_node
DATA_STATE_FIELDS = ("read_slot", "write_slot", "updated_at")


class InMemoryNodeRepository(NodeRepository):
    """NodeRepository backed by dicts."""

    def __init__(self):
        super().__init__()
        self._data_nodes: Dict[str, DataNodeRecord] = {}
        self._compute_nodes: Dict[str, ComputeNodeRecord] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def _copy(record):
        return record.model_copy(deep=True) if record is not None else None

    def _compute(self, node_id: str) -> ComputeNodeRecord:
        record = self._compute_nodes.get(node_id)
        if record is None:
            raise NodeNotFoundError(node_id, "compute")
        return record

    def _data(self, node_id: str) -> DataNodeRecord:
        record = self._data_nodes.get(node_id)
        if record is None:
            raise NodeNotFoundError(node_id, "data")
        return record

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    async def get_data_node(self, node_id: str) -> Optional[DataNodeRecord]:
        return self._copy(self._data_nodes.get(node_id))

    async def get_compute_node(self, node_id: str) -> Optional[ComputeNodeRecord]:
        return self._copy(self._compute_nodes.get(node_id))

    async def find_data_node_by_name(self, name: str) -> Optional[DataNodeRecord]:
        for record in self._data_nodes.values():
            if record.name == name:
                return self._copy(record)
        return None

    async def find_compute_node_by_name(self, name: str) -> Optional[ComputeNodeRecord]:
        for record in self._compute_nodes.values():
            if record.name == name:
                return self._copy(record)
        return None

    async def list_compute_nodes(self) -> List[ComputeNodeRecord]:
        return [self._copy(r) for r in self._compute_nodes.values()]

    async def compute_nodes_depending_on(self, node_id: str) -> List[ComputeNodeRecord]:
        return [self._copy(r) for r in self._compute_nodes.values() if node_id in r.dependency_ids]

    async def compute_nodes_writing_to(self, data_node_id: str) -> List[ComputeNodeRecord]:
        return [self._copy(r) for r in self._compute_nodes.values() if r.data_node_id == data_node_id]

    # =========================================================================
    # WRITES
    # =========================================================================

    async def save_data_node(self, record: DataNodeRecord) -> DataNodeRecord:
        async with self._lock:
            stored = self._copy(record)
            existing = self._data_nodes.get(record.id)
            if existing is not None:
                for field in DATA_STATE_FIELDS:
                    setattr(stored, field, getattr(existing, field))
            self._data_nodes[record.id] = stored
        self._log_operation(True, "Saved data node", record.id, {"name": record.name})
        return self._copy(stored)

    async def save_compute_node(self, record: ComputeNodeRecord) -> ComputeNodeRecord:
        async with self._lock:
            stored = self._copy(record)
            existing = self._compute_nodes.get(record.id)
            if existing is not None:
                for field in LEASE_FIELDS:
                    setattr(stored, field, getattr(existing, field))
            self._compute_nodes[record.id] = stored
        self._log_operation(True, "Saved compute node", record.id, {"name": record.name})
        return record

    async def delete_data_node(self, node_id: str) -> bool:
        async with self._lock:
            return self._data_nodes.pop(node_id, None) is not None

    async def delete_compute_node(self, node_id: str) -> bool:
        async with self._lock:
            return self._compute_nodes.pop(node_id, None) is not None

    # =========================================================================
    # COMPUTING LEASE
    # =========================================================================

    async def try_acquire_lease(self, node_id: str, now: datetime) -> bool:
        async with self._lock:
            record = self._compute(node_id)
            if record.computing_state == ComputingState.COMPUTING:
                return False
            record.computing_state = ComputingState.COMPUTING
            record.computing_started_at = now
            return True

    async def release_lease(self, node_id: str) -> None:
        async with self._lock:
            record = self._compute(node_id)
            record.computing_state = ComputingState.IDLE
            record.computing_started_at = None
            record.execution_uuid = None

    async def update_heartbeat(self, node_id: str, now: datetime) -> None:
        async with self._lock:
            self._compute(node_id).last_heartbeat_time = now

    async def mark_computed(self, node_id: str, started_at: datetime) -> None:
        async with self._lock:
            self._compute(node_id).last_compute_starting_time = started_at

    async def set_execution_uuid(self, node_id: str, execution_uuid: Optional[str]) -> None:
        async with self._lock:
            self._compute(node_id).execution_uuid = execution_uuid

    # =========================================================================
    # DATA NODE STATE
    # =========================================================================

    async def swap_slots(self, node_id: str) -> DataNodeRecord:
        async with self._lock:
            record = self._data(node_id)
            swapped = record.model_copy(
                update={"read_slot": record.write_slot, "write_slot": record.read_slot}
            )
            self._data_nodes[node_id] = swapped
            return self._copy(swapped)

    async def touch_data_node(self, node_id: str, updated_at: datetime) -> None:
        async with self._lock:
            self._data(node_id).updated_at = updated_at


__all__ = ["InMemoryNodeRepository"]
