# ============================================================================
# KEYED DATA NODES
# ============================================================================
# STATUS: Nodes - Data nodes with key-driven write semantics
# PURPOSE: Upsert by unique key; snapshot history of changing records
# CREATED: 18 OCT 2026
# ============================================================================
"""
Keyed Data Nodes

UpsertNode
    properties = {"index_key": "id"}           (or "region,id" / ["region", "id"])

    A unique index on index_key is added to the node's indexes. Adding a
    record whose key already exists replaces the stored record.

SnapshotNode
    properties = {"index_key": "id", "updated_at_key": "modified"}

    Keeps every version of a record. A record is skipped when the newest
    stored version for its index_key differs only in updated_at_key (and
    the internal timestamp). updated_at_key values are stored as datetimes.

Both stamp every added record with the time it was written under
`internal_timestamp_key` while `use_internal_timestamp` is on, and rename
top-level keys containing dots (dots become underscores) so stored fields
never collide with dotted-path addressing.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from core.contracts import utcnow
from core.models import DataNodeRecord, IndexDefinition
from core.records import to_datetime

from .data_node import DataNode
from .properties import PropertySpec
from .registry import register_node_type

logger = logging.getLogger(__name__)

INTERNAL_TIMESTAMP_KEY = "_dataflow_updated_at"


class _KeyedDataNode(DataNode):

    PROPERTIES = (
        PropertySpec("index_key", "string", required_for_computing=True),
        PropertySpec("use_internal_timestamp", "boolean", default=True),
        PropertySpec("internal_timestamp_key", "string", default=INTERNAL_TIMESTAMP_KEY),
    )

    def __init__(self, record: DataNodeRecord, catalog):
        super().__init__(record, catalog)
        self._add_default_indexes()

    def _default_indexes(self) -> List[IndexDefinition]:
        return []

    def _add_default_indexes(self) -> None:
        indexes = list(self.record.indexes)
        for index in self._default_indexes():
            if index not in indexes:
                indexes.append(index)
        self.record.indexes = indexes

    @property
    def index_keys(self) -> List[str]:
        """index_key as a list; a comma separated string names a compound key."""
        value = self.prop("index_key")
        if not value:
            return []
        if isinstance(value, str):
            return [k.strip() for k in value.split(",") if k.strip()]
        return list(value)

    def _prepare(self, records: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not isinstance(records, (list, tuple)):
            raise TypeError(f"records must be a list of records. Received: '{type(records).__name__}'.")
        prepared = []
        stamp = utcnow()
        timestamp_key = self.prop("internal_timestamp_key")
        for record in records:
            if record is None:
                continue
            record = {k.replace(".", "_"): v for k, v in record.items()}
            if self.prop("use_internal_timestamp") and timestamp_key:
                record[timestamp_key] = stamp
            prepared.append(record)
        return prepared


@register_node_type("UpsertNode")
class UpsertNode(_KeyedDataNode):
    """Data node that replaces records matching its unique index_key."""

    def _default_indexes(self) -> List[IndexDefinition]:
        keys = self.index_keys
        if not keys:
            # Fall back to the first unique index
            unique = next((i for i in self.record.indexes if i.unique), None)
            if unique is None:
                return []
            self.record.properties["index_key"] = ",".join(unique.keys)
            keys = unique.keys
        indexes = [IndexDefinition(keys=keys, unique=True)]
        if len(keys) > 1:
            indexes.extend(IndexDefinition(keys=[k]) for k in keys)
        return indexes

    async def add(self, records: Sequence[Dict[str, Any]], upsert_keys: Optional[Sequence[str]] = None) -> None:
        await super().add(self._prepare(records), upsert_keys=upsert_keys or self.index_keys)


@register_node_type("SnapshotNode")
class SnapshotNode(_KeyedDataNode):
    """Data node keeping each distinct version of a record over time."""

    PROPERTIES = (PropertySpec("updated_at_key", "string", required_for_computing=True),)

    def _default_indexes(self) -> List[IndexDefinition]:
        index_key, updated_at_key = self.prop("index_key"), self.prop("updated_at_key")
        indexes = []
        if index_key:
            indexes.append(IndexDefinition(keys=[index_key]))
        if updated_at_key:
            indexes.append(IndexDefinition(keys=[updated_at_key]))
        if index_key and updated_at_key:
            indexes.append(IndexDefinition(keys=[index_key, updated_at_key], unique=True))
        return indexes

    async def is_redundant(self, record: Dict[str, Any]) -> bool:
        """True when the newest stored version only differs in its timestamps."""
        index_key, updated_at_key = self.prop("index_key"), self.prop("updated_at_key")
        previous = await self.find(where={index_key: record.get(index_key)}, sort={updated_at_key: -1})
        if not previous:
            return False

        ignored = {updated_at_key, self.prop("internal_timestamp_key")}
        if set(previous) != set(record):
            return False
        return all(record[k] == previous[k] for k in record if k not in ignored)

    async def add(self, records: Sequence[Dict[str, Any]], upsert_keys: Optional[Sequence[str]] = None) -> None:
        updated_at_key = self.prop("updated_at_key")
        prepared = self._prepare(records)
        kept = []
        for record in prepared:
            record[updated_at_key] = to_datetime(record.get(updated_at_key))
            if await self.is_redundant(record):
                continue
            kept.append(record)
        if len(kept) < len(prepared):
            logger.debug(f"{self.name}: skipped {len(prepared) - len(kept)} unchanged records")
        await super().add(kept, upsert_keys=upsert_keys)


__all__ = ["UpsertNode", "SnapshotNode", "INTERNAL_TIMESTAMP_KEY"]
