# ============================================================================
# BASE CONTRACTS & ENUMS
# ============================================================================
# STATUS: Foundation - Core enums and base contracts
# PURPOSE: Define state enums and base data contracts for the compute graph
# LAST_REVIEWED: 14 OCT 2026
# EXPORTS: NodeKind, ComputingState, StorageBackendKind, ExecutionModel,
#          IndexKind, DatasetSlot, ComputeOutcome, NodeData, SYSTEM_ID
# DEPENDENCIES: enum, pydantic
# ============================================================================
"""
Base contracts for the dataflow engine.

These define the minimal identity fields that cross boundaries:
- SQL (PostgreSQL node tables)
- Queue (execution and completion messages)
- Python (internal processing)

Boundary-specific models inherit from these contracts.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


# System identifier column present on every stored record.
SYSTEM_ID = "_id"


# ============================================================================
# ENUMS
# ============================================================================

class NodeKind(str, Enum):
    """The two node variants of the graph."""
    DATA = "data"
    COMPUTE = "compute"


class ComputingState(str, Enum):
    """
    Computing lease states of a compute node.

    State transitions:
        IDLE -> COMPUTING   (atomic conditional update, one winner)
        COMPUTING -> IDLE   (unconditional release)
    """
    IDLE = "idle"
    COMPUTING = "computing"


class StorageBackendKind(str, Enum):
    """Closed set of storage backends a data node can use."""
    POSTGRESQL = "postgresql"
    MEMORY = "memory"


class ExecutionModel(str, Enum):
    """Where the computation body of a compute node runs."""
    LOCAL = "local"                # In-process
    REMOTE = "remote"              # One message, whole body on a worker
    REMOTE_BATCH = "remote_batch"  # One message per shard

    def is_remote(self) -> bool:
        return self in (ExecutionModel.REMOTE, ExecutionModel.REMOTE_BATCH)


class IndexKind(str, Enum):
    """Which indexes to create on a dataset."""
    ALL = "all"
    UNIQUE_ONLY = "unique_only"
    NON_UNIQUE_ONLY = "non_unique_only"


class DatasetSlot(str, Enum):
    """Side of a (possibly double-buffered) data node."""
    READ = "read"
    WRITE = "write"


class ComputeOutcome(str, Enum):
    """State reported by the computing_finished event."""
    COMPUTED = "computed"
    ERROR = "error"


# ============================================================================
# BASE DATA CONTRACTS
# ============================================================================

def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def new_node_id() -> str:
    """Generate a node identifier."""
    return uuid.uuid4().hex


class NodeData(BaseModel):
    """
    Essential node identity - shared by data and compute nodes.
    """
    id: str = Field(default_factory=new_node_id, max_length=64)
    name: str = Field(..., min_length=1, max_length=255)
    node_type: str = Field(
        default="",
        max_length=128,
        description="Type tag used to hydrate the concrete node class"
    )
    created_at: datetime = Field(default_factory=utcnow)

    model_config = {"frozen": False}


__all__ = [
    "SYSTEM_ID",
    "NodeKind",
    "ComputingState",
    "StorageBackendKind",
    "ExecutionModel",
    "IndexKind",
    "DatasetSlot",
    "ComputeOutcome",
    "NodeData",
    "new_node_id",
    "utcnow",
]
