# ============================================================================
# CORE MODULE
# ============================================================================
# STATUS: Core module initialization
# PURPOSE: Export core contracts, errors, models, and schema utilities
# LAST_REVIEWED: 14 OCT 2026
# ============================================================================

from core.contracts import (
    SYSTEM_ID,
    ComputingState,
    ComputeOutcome,
    DatasetSlot,
    ExecutionModel,
    IndexKind,
    NodeKind,
    StorageBackendKind,
)
from core.errors import (
    DataflowError,
    ConfigurationError,
    RemoteExecutionError,
    UnsupportedOperationError,
    LeaseTimeoutError,
    NodeNotFoundError,
)
from core.models import (
    DataNodeRecord,
    IndexDefinition,
    ComputeNodeRecord,
    ExecutionMessage,
    CompletionMessage,
    ErrorPayload,
)
from core.schema import PydanticToSQL

__all__ = [
    # Enums
    "SYSTEM_ID",
    "ComputingState",
    "ComputeOutcome",
    "DatasetSlot",
    "ExecutionModel",
    "IndexKind",
    "NodeKind",
    "StorageBackendKind",
    # Errors
    "DataflowError",
    "ConfigurationError",
    "RemoteExecutionError",
    "UnsupportedOperationError",
    "LeaseTimeoutError",
    "NodeNotFoundError",
    # Models
    "DataNodeRecord",
    "IndexDefinition",
    "ComputeNodeRecord",
    "ExecutionMessage",
    "CompletionMessage",
    "ErrorPayload",
    # Schema
    "PydanticToSQL",
]
