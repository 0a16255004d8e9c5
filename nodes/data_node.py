# ============================================================================
# DATA NODE
# ============================================================================
# STATUS: Nodes - Dataset descriptor and storage delegate
# PURPOSE: Dataset reads/writes, indexes and double-buffered visibility
# CREATED: 14 OCT 2026
# ============================================================================
"""
Data Node

Describes one logical dataset and delegates every storage operation to the
backend selected by its `backend` kind.

Double buffering:
    Reads go to the read slot, writes to the write slot. A compute cycle
    that clears its output recreates and fills only the write slot, then
    swaps the slots in a single persisted update, so readers see either the
    complete old dataset or the complete new one.
"""

import asyncio
import logging
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from core.contracts import DatasetSlot, IndexKind, NodeKind, utcnow
from core.errors import ConfigurationError, UnsupportedOperationError
from core.logging import log_checkpoint
from core.models import DataNodeRecord
from storage import StorageBackend, create_backend

from .node import Node
from .properties import PropertySpec
from .registry import register_node_type

logger = logging.getLogger(__name__)

RecordSink = Callable[[List[Dict[str, Any]]], Union[None, Awaitable[None]]]


def _type_of(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "numeric"
    if isinstance(value, datetime):
        return "datetime"
    if isinstance(value, date):
        return "date"
    if isinstance(value, dict):
        return "hash"
    if isinstance(value, (list, tuple)):
        return "array"
    return "string"


@register_node_type("DataNode", fallback_for=NodeKind.DATA)
class DataNode(Node):
    """A dataset descriptor backed by a storage backend."""

    KIND = NodeKind.DATA
    EVENTS = (
        "schema_inference_started",
        "schema_inference_progressed",
        "schema_inference_finished",
        "export_started",
        "export_finished",
    )
    PROPERTIES = (
        PropertySpec("name", "string"),
        PropertySpec("db_name", "string"),
        PropertySpec("backend", "string", values=("postgresql", "memory")),
        PropertySpec("use_double_buffering", "boolean", default=False),
        PropertySpec("indexes", "array"),
        PropertySpec("update_expected_within", "integer", default=0),
    )

    record: DataNodeRecord

    def __init__(self, record: DataNodeRecord, catalog):
        super().__init__(record, catalog)
        self._backend: Optional[StorageBackend] = None

    @property
    def backend(self) -> StorageBackend:
        if self._backend is None:
            self._backend = create_backend(self.record)
        return self._backend

    def _set_record(self, record: DataNodeRecord) -> None:
        self.record = record
        if self._backend is not None:
            self._backend.update_settings(record)

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def updated_at(self) -> Optional[datetime]:
        return self.record.updated_at

    @property
    def read_dataset_name(self) -> str:
        return self.record.read_dataset_name

    @property
    def write_dataset_name(self) -> str:
        return self.record.write_dataset_name

    @property
    def dataset_schema(self) -> Dict[str, Dict[str, Any]]:
        return self.record.dataset_schema

    async def is_updated(self) -> bool:
        return True

    async def recompute(self, force: bool = False, depth: int = 0) -> None:
        """Data nodes hold data, there is nothing to recompute."""
        return None

    def explain_update(self, depth: int = 0) -> str:
        """Log (and return) one line of a recompute trace for this dataset."""
        line = f"{'>' * (depth + 1)} {self.name} [Dataset] | UPDATED = {self.updated_at}"
        logger.info(line)
        return line

    async def reload(self) -> "DataNode":
        record = await self.catalog.repository.get_data_node(self.id)
        if record is not None:
            self._set_record(record)
        return self

    async def save(self) -> "DataNode":
        """Persist configuration; slots and updated_at are refreshed from the store."""
        self._set_record(await self.catalog.repository.save_data_node(self.record))
        return self

    async def handle_dataset_settings_changed(self) -> None:
        """Prepare the dataset for new settings (double-buffered nodes wait for the next cycle)."""
        if self.record.use_double_buffering:
            return
        if await self.backend.count() == 0:
            await self.backend.recreate_dataset(dataset=self.read_dataset_name)
        await self.backend.create_indexes(dataset=self.read_dataset_name)

    # =========================================================================
    # READS
    # =========================================================================

    async def find(self, where: Optional[Dict[str, Any]] = None, **kwargs) -> Optional[Dict[str, Any]]:
        return await self.backend.find(where=where, **kwargs)

    async def all(self, where: Optional[Dict[str, Any]] = None, **kwargs) -> List[Dict[str, Any]]:
        return await self.backend.all(where=where, **kwargs)

    async def paged_all(self, where: Optional[Dict[str, Any]] = None, fields=None, cursor=None) -> Dict[str, Any]:
        return await self.backend.paged_all(where=where, fields=fields, cursor=cursor)

    async def ordered_id_range_queries(self, batch_size: int, where: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        return await self.backend.ordered_id_range_queries(batch_size, where=where)

    async def count(self, where: Optional[Dict[str, Any]] = None) -> int:
        return await self.backend.count(where=where)

    async def usage(self, write_dataset: bool = False) -> Dict[str, Any]:
        dataset = self.write_dataset_name if write_dataset else self.read_dataset_name
        return await self.backend.usage(dataset=dataset)

    async def info(self, write_dataset: bool = False) -> Dict[str, Any]:
        """Summary of this node and its dataset usage."""
        usage = await self.usage(write_dataset=write_dataset)
        return {
            "name": self.name,
            "type": type(self).__name__,
            "dataset": self.write_dataset_name if write_dataset else self.read_dataset_name,
            "backend": self.record.backend.value,
            "updated_at": self.updated_at,
            "record_count": await self.count(),
            "indexes": [i.model_dump() for i in self.record.indexes],
            "effective_indexes": usage["effective_indexes"],
            "mem_usage": usage["memory_bytes"],
            "storage_usage": usage["storage_bytes"],
        }

    # =========================================================================
    # WRITES
    # =========================================================================

    async def add(self, records: Sequence[Dict[str, Any]], upsert_keys: Optional[Sequence[str]] = None) -> None:
        """Append records to the write dataset and bump updated_at."""
        if not isinstance(records, (list, tuple)):
            raise TypeError(f"records must be a list of records. Received: '{type(records).__name__}'.")
        records = [r for r in records if r is not None]
        if not records:
            return

        await self.backend.save(records, upsert_keys=upsert_keys)
        self.record.updated_at = utcnow()
        await self.catalog.repository.touch_data_node(self.id, self.record.updated_at)

    async def clear(self, where: Optional[Dict[str, Any]] = None) -> int:
        """Delete matching records (from the read dataset)."""
        return await self.backend.delete(where=where)

    async def update_schema(self, schema: Dict[str, Dict[str, Any]]) -> None:
        """Merge fields into the dataset schema and persist."""
        if not schema:
            return
        merged = dict(self.record.dataset_schema)
        merged.update(schema)
        if merged != self.record.dataset_schema:
            self.record.dataset_schema = merged
            await self.save()

    def _dataset_for(self, slot: Union[DatasetSlot, str]) -> str:
        """Dataset name of a slot; anything but "read" or "write" raises ValueError."""
        slot = DatasetSlot(slot)
        return self.write_dataset_name if slot is DatasetSlot.WRITE else self.read_dataset_name

    async def recreate_dataset(self, slot: Union[DatasetSlot, str] = DatasetSlot.READ) -> None:
        await self.backend.recreate_dataset(dataset=self._dataset_for(slot))

    async def create_unique_indexes(self, slot: Union[DatasetSlot, str] = DatasetSlot.READ) -> None:
        """Unique indexes, applied before loading data to enforce constraints early."""
        await self.backend.create_indexes(dataset=self._dataset_for(slot), kind=IndexKind.UNIQUE_ONLY)

    async def create_non_unique_indexes(self, slot: Union[DatasetSlot, str] = DatasetSlot.READ) -> None:
        """Non-unique indexes, applied after bulk loading."""
        await self.backend.create_indexes(dataset=self._dataset_for(slot), kind=IndexKind.NON_UNIQUE_ONLY)

    async def swap_read_write_datasets(self) -> None:
        if not self.record.use_double_buffering:
            raise ConfigurationError(
                ["swap_read_write_datasets called but use_double_buffering is not activated"],
                node_name=self.name,
            )
        record = await self.catalog.repository.swap_slots(self.id)
        self._set_record(record)
        log_checkpoint("buffers_swapped", {"node": self.name, "read_slot": record.read_slot})
        logger.debug(f"{self.name}: read dataset is now {self.read_dataset_name}")

    async def safely_clear_write_dataset(self) -> None:
        """Drop the write slot unless a writer currently holds its computing lease."""
        if not self.record.use_double_buffering:
            return
        writers = [r["node"] for r in await self.required_by() if r["type"] == "dataset"]
        for writer in writers:
            if await writer.is_locked():
                return

        logger.info(f"Dropping {self.record.db_name}.{self.write_dataset_name} on {self.record.backend.value}.")
        await self.backend.drop_dataset(self.write_dataset_name)

    async def drop_dataset(self) -> None:
        await self.backend.drop_dataset(self.write_dataset_name)
        if self.record.use_double_buffering:
            await self.backend.drop_dataset(self.read_dataset_name)

    # =========================================================================
    # SCHEMA INFERENCE AND EXPORT
    # =========================================================================

    async def infer_schema(self, where: Optional[Dict[str, Any]] = None) -> Dict[str, Dict[str, Any]]:
        """Infer field types from the read dataset (most frequent type wins)."""
        self.fire("schema_inference_started")
        total = await self.count(where=where)
        seen: Dict[str, Dict[str, Any]] = {}
        processed = 0
        cursor = None

        while True:
            page = await self.paged_all(where=where, cursor=cursor)
            for record in page["data"]:
                for key, value in record.items():
                    kind = _type_of(value)
                    if kind is None:
                        continue
                    entry = seen.setdefault(key, {"types": {}, "max": None})
                    entry["types"][kind] = entry["types"].get(kind, 0) + 1
                    size = len(value) if isinstance(value, str) else value if kind == "integer" else None
                    if size is not None and (entry["max"] is None or size > entry["max"]):
                        entry["max"] = size
            processed += len(page["data"])
            if total:
                self.fire("schema_inference_progressed", min(100, processed * 100 // total))
            cursor = page["next_cursor"]
            if cursor is None:
                break

        schema = {}
        for key, entry in seen.items():
            kind = max(entry["types"], key=entry["types"].get)
            schema[key] = {"type": kind}
            if entry["max"] is not None and kind in ("string", "integer"):
                schema[key]["max"] = entry["max"]

        self.record.inferred_schema = schema
        self.record.inferred_schema_at = utcnow()
        await self.save()
        self.fire("schema_inference_finished")
        return schema

    async def export(self, sink: RecordSink, where: Optional[Dict[str, Any]] = None, keys: Optional[List[str]] = None) -> int:
        """Stream the read dataset page by page into a sink; returns the record count."""
        self.fire("export_started", keys=keys or [])
        exported = 0
        cursor = None
        while True:
            page = await self.paged_all(where=where, fields=keys or None, cursor=cursor)
            if page["data"]:
                result = sink(page["data"])
                if asyncio.iscoroutine(result):
                    await result
                exported += len(page["data"])
            cursor = page["next_cursor"]
            if cursor is None:
                break
        self.fire("export_finished")
        return exported


@register_node_type("ReadOnlyDataNode")
class ReadOnlyDataNode(DataNode):
    """Data node over an externally owned dataset; all mutations are rejected."""

    PROPERTIES = (PropertySpec("dataset_name", "string"),)

    def __init__(self, record: DataNodeRecord, catalog):
        record.use_double_buffering = False
        super().__init__(record, catalog)

    async def handle_dataset_settings_changed(self) -> None:
        return None

    def _read_only(self, *args, **kwargs):
        raise UnsupportedOperationError(f"{self.name} is read only")

    async def add(self, *args, **kwargs):
        self._read_only()

    async def clear(self, *args, **kwargs):
        self._read_only()

    async def recreate_dataset(self, *args, **kwargs):
        self._read_only()

    async def create_unique_indexes(self, *args, **kwargs):
        self._read_only()

    async def create_non_unique_indexes(self, *args, **kwargs):
        self._read_only()

    async def swap_read_write_datasets(self):
        self._read_only()

    async def safely_clear_write_dataset(self):
        self._read_only()

    async def drop_dataset(self):
        self._read_only()


__all__ = ["DataNode", "ReadOnlyDataNode"]
