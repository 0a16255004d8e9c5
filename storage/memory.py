# ============================================================================
# IN-MEMORY STORAGE BACKEND
# ============================================================================
# STATUS: Storage - Process-local datasets
# PURPOSE: Backend for tests, local runs and single-process pipelines
# CREATED: 14 OCT 2026
# ============================================================================
"""
In-Memory Storage Backend

Datasets live in a module-level registry keyed by (db_name, dataset name),
so every node (and every backend instance) in the process sees the same
data. Unique indexes are enforced on save once created.
"""

import copy
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from core.contracts import SYSTEM_ID, IndexKind
from core.models import IndexDefinition
from core.records import get_path, project

from .base import Filter, Record, StorageBackend
from .filters import matches, validate_filter


@dataclass
class _Dataset:
    records: List[Record] = field(default_factory=list)
    next_id: int = 1
    indexes: List[IndexDefinition] = field(default_factory=list)

    def unique_keysets(self) -> List[List[str]]:
        return [i.keys for i in self.indexes if i.unique]


_DATASETS: Dict[Tuple[str, str], _Dataset] = {}


def reset_memory_storage() -> None:
    """Drop every in-memory dataset."""
    _DATASETS.clear()


def _key_of(record: Record, keys: Sequence[str]) -> tuple:
    return tuple(json.dumps(get_path(record, k), sort_keys=True, default=str) for k in keys)


def _sort_key(field_name: str):
    def key(record: Record):
        value = get_path(record, field_name)
        return (value is None, value if value is not None else 0)
    return key


class MemoryStorage(StorageBackend):
    """StorageBackend over process-local lists of dicts."""

    def _dataset(self, name: str, create: bool = True) -> Optional[_Dataset]:
        key = (self.settings.db_name, name)
        if key not in _DATASETS and create:
            _DATASETS[key] = _Dataset()
        return _DATASETS.get(key)

    # =========================================================================
    # READS
    # =========================================================================

    async def all(
        self,
        where: Optional[Filter] = None,
        fields: Optional[Sequence[str]] = None,
        sort: Optional[Dict[str, int]] = None,
        offset: int = 0,
        limit: int = 0,
        include_system_id: bool = False,
    ) -> List[Record]:
        validate_filter(where)
        dataset = self._dataset(self.read_dataset_name, create=False)
        if dataset is None:
            return []

        rows = [r for r in dataset.records if matches(r, where)]
        # Stable multi-key sort: apply keys from last to first
        for field_name, direction in reversed(list((sort or {}).items())):
            rows.sort(key=_sort_key(field_name), reverse=direction == -1)

        if offset > 0:
            rows = rows[offset:]
        if limit > 0:
            rows = rows[:limit]

        result = []
        for row in rows:
            out = project(row, fields, skip_none=False) if fields else copy.deepcopy(row)
            if not include_system_id and SYSTEM_ID not in (fields or []):
                out.pop(SYSTEM_ID, None)
            result.append(out)
        return result

    async def count(self, where: Optional[Filter] = None) -> int:
        validate_filter(where)
        dataset = self._dataset(self.read_dataset_name, create=False)
        if dataset is None:
            return 0
        return sum(1 for r in dataset.records if matches(r, where))

    # =========================================================================
    # WRITES
    # =========================================================================

    async def save(self, records: Sequence[Record], upsert_keys: Optional[Sequence[str]] = None) -> None:
        dataset = self._dataset(self.write_dataset_name)
        keys = list(upsert_keys or [])

        for incoming in records:
            record = {k: copy.deepcopy(v) for k, v in incoming.items() if k != SYSTEM_ID}

            if keys:
                target = _key_of(record, keys)
                existing = next((r for r in dataset.records if _key_of(r, keys) == target), None)
                if existing is not None:
                    system_id = existing[SYSTEM_ID]
                    existing.clear()
                    existing.update(record)
                    existing[SYSTEM_ID] = system_id
                    continue
            elif self._violates_unique(dataset, record):
                continue

            record[SYSTEM_ID] = dataset.next_id
            dataset.next_id += 1
            dataset.records.append(record)

    @staticmethod
    def _violates_unique(dataset: _Dataset, record: Record) -> bool:
        for keyset in dataset.unique_keysets():
            target = _key_of(record, keyset)
            if any(_key_of(r, keyset) == target for r in dataset.records):
                return True
        return False

    async def delete(self, where: Optional[Filter] = None) -> int:
        validate_filter(where)
        dataset = self._dataset(self.read_dataset_name, create=False)
        if dataset is None:
            return 0
        kept = [r for r in dataset.records if not matches(r, where)]
        removed = len(dataset.records) - len(kept)
        dataset.records = kept
        return removed

    async def recreate_dataset(self, dataset: Optional[str] = None) -> None:
        name = dataset or self.write_dataset_name
        _DATASETS[(self.settings.db_name, name)] = _Dataset()

    async def drop_dataset(self, dataset: str) -> None:
        _DATASETS.pop((self.settings.db_name, dataset), None)

    async def create_indexes(self, dataset: Optional[str] = None, kind: IndexKind = IndexKind.ALL) -> None:
        target = self._dataset(dataset or self.write_dataset_name)
        for index in self._indexes(kind):
            if index not in target.indexes:
                target.indexes.append(index)

    async def usage(self, dataset: Optional[str] = None) -> Dict[str, Any]:
        target = self._dataset(dataset or self.read_dataset_name, create=False)
        if target is None:
            return {"memory_bytes": 0, "storage_bytes": 0, "effective_indexes": []}
        size = len(json.dumps(target.records, default=str).encode("utf-8"))
        return {
            "memory_bytes": size,
            "storage_bytes": size,
            "effective_indexes": [i.model_dump() for i in target.indexes],
        }


__all__ = ["MemoryStorage", "reset_memory_storage"]
