# ============================================================================
# STORAGE BACKEND CONTRACT
# ============================================================================
# STATUS: Storage - Abstract dataset operations
# PURPOSE: Interface consumed by data nodes for every dataset operation
# CREATED: 14 OCT 2026
# EXPORTS: StorageBackend
# ============================================================================
"""
Storage Backend Contract

A backend is bound to one DataNodeRecord. Reads go to the read dataset,
writes (save, recreate, create_indexes) to the write dataset; with double
buffering off both are the same dataset.

Every stored record carries a system id column `_id` (ascending, unique),
which backs keyset pagination and ordered id-range sharding.
"""

import logging
import math
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from core.contracts import SYSTEM_ID, IndexKind
from core.models import DataNodeRecord, IndexDefinition

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
Filter = Dict[str, Any]


class StorageBackend(ABC):
    """Dataset operations for one data node."""

    def __init__(self, record: DataNodeRecord):
        self.settings = record

    def update_settings(self, record: DataNodeRecord) -> None:
        """Rebind to a reloaded record (e.g. after a buffer swap)."""
        self.settings = record

    @property
    def read_dataset_name(self) -> str:
        return self.settings.read_dataset_name

    @property
    def write_dataset_name(self) -> str:
        return self.settings.write_dataset_name

    def _indexes(self, kind: IndexKind) -> List[IndexDefinition]:
        indexes = list(self.settings.indexes)
        if kind == IndexKind.UNIQUE_ONLY:
            return [i for i in indexes if i.unique]
        if kind == IndexKind.NON_UNIQUE_ONLY:
            return [i for i in indexes if not i.unique]
        return indexes

    # =========================================================================
    # READS
    # =========================================================================

    async def find(
        self,
        where: Optional[Filter] = None,
        fields: Optional[Sequence[str]] = None,
        sort: Optional[Dict[str, int]] = None,
        offset: int = 0,
    ) -> Optional[Record]:
        records = await self.all(where=where, fields=fields, sort=sort, offset=offset, limit=1)
        return records[0] if records else None

    @abstractmethod
    async def all(
        self,
        where: Optional[Filter] = None,
        fields: Optional[Sequence[str]] = None,
        sort: Optional[Dict[str, int]] = None,
        offset: int = 0,
        limit: int = 0,
        include_system_id: bool = False,
    ) -> List[Record]:
        """Records of the read dataset; sort values are 1 (asc) or -1 (desc)."""

    async def paged_all(
        self,
        where: Optional[Filter] = None,
        fields: Optional[Sequence[str]] = None,
        cursor: Optional[Any] = None,
        page_size: int = 1000,
    ) -> Dict[str, Any]:
        """
        Keyset pagination on the system id.

        Returns:
            {"data": [record], "next_cursor": last _id of the page, or None when done}
        """
        query = dict(where or {})
        if cursor is not None:
            query[SYSTEM_ID] = {">": cursor}

        wanted = list(fields or [])
        selected = wanted + [SYSTEM_ID] if wanted and SYSTEM_ID not in wanted else wanted
        page = await self.all(
            where=query,
            fields=selected or None,
            sort={SYSTEM_ID: 1},
            limit=page_size,
            include_system_id=True,
        )

        next_cursor = page[-1][SYSTEM_ID] if len(page) == page_size else None
        if SYSTEM_ID not in wanted:
            page = [{k: v for k, v in r.items() if k != SYSTEM_ID} for r in page]
        return {"data": page, "next_cursor": next_cursor}

    async def ordered_id_range_queries(
        self,
        batch_size: int,
        where: Optional[Filter] = None,
    ) -> List[Filter]:
        """
        Partition the dataset into contiguous, non-overlapping id ranges.

        For chunk i: {_id: {">=": start_i, "<": start_(i+1)}}; the last chunk
        uses "<=" on the last id. Returns ceil(N / batch_size) filters.
        """
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")

        rows = await self.all(
            where=where, fields=[SYSTEM_ID], sort={SYSTEM_ID: 1}, include_system_id=True
        )
        ids = [row[SYSTEM_ID] for row in rows]
        count = math.ceil(len(ids) / batch_size)

        queries = []
        for i in range(count):
            start = ids[i * batch_size]
            is_last = i == count - 1
            end = ids[-1] if is_last else ids[(i + 1) * batch_size]
            query = dict(where or {})
            query[SYSTEM_ID] = {">=": start, "<=" if is_last else "<": end}
            queries.append(query)
        return queries

    @abstractmethod
    async def count(self, where: Optional[Filter] = None) -> int:
        ...

    # =========================================================================
    # WRITES
    # =========================================================================

    @abstractmethod
    async def save(self, records: Sequence[Record], upsert_keys: Optional[Sequence[str]] = None) -> None:
        """
        Append records to the write dataset.

        Without upsert_keys, records conflicting with a unique index are
        ignored. With upsert_keys (which must back a unique index), matching
        records are replaced.
        """

    @abstractmethod
    async def delete(self, where: Optional[Filter] = None) -> int:
        """Delete matching records from the read dataset."""

    @abstractmethod
    async def recreate_dataset(self, dataset: Optional[str] = None) -> None:
        """Drop and recreate a dataset (default: the write dataset)."""

    @abstractmethod
    async def drop_dataset(self, dataset: str) -> None:
        ...

    @abstractmethod
    async def create_indexes(self, dataset: Optional[str] = None, kind: IndexKind = IndexKind.ALL) -> None:
        ...

    @abstractmethod
    async def usage(self, dataset: Optional[str] = None) -> Dict[str, Any]:
        """{"memory_bytes", "storage_bytes", "effective_indexes"} for a dataset."""


__all__ = ["StorageBackend", "Record", "Filter"]
