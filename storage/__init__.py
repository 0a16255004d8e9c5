# ============================================================================
# STORAGE MODULE
# ============================================================================
# STATUS: Storage - Backends for data node datasets
# PURPOSE: Select a StorageBackend by a data node's backend kind
# CREATED: 14 OCT 2026
# ============================================================================
"""
Storage Module

Usage:
    from storage import create_backend

    backend = create_backend(data_node_record)
    records = await backend.all(where={"country": "NZ"})
"""

from core.contracts import StorageBackendKind
from core.errors import UnsupportedOperationError
from core.models import DataNodeRecord

from .base import StorageBackend
from .filters import matches, validate_filter
from .memory import MemoryStorage, reset_memory_storage
from .postgresql import PostgresStorage

BACKENDS = {
    StorageBackendKind.MEMORY: MemoryStorage,
    StorageBackendKind.POSTGRESQL: PostgresStorage,
}


def create_backend(record: DataNodeRecord) -> StorageBackend:
    """Instantiate the storage backend for a data node."""
    backend_cls = BACKENDS.get(record.backend)
    if backend_cls is None:
        raise UnsupportedOperationError(f"Storage backend '{record.backend}' is not supported")
    return backend_cls(record)


__all__ = [
    "StorageBackend",
    "MemoryStorage",
    "PostgresStorage",
    "create_backend",
    "reset_memory_storage",
    "matches",
    "validate_filter",
]
