# ============================================================================
# CONFIGURATION DEFAULTS
# ============================================================================
# STATUS: Core - Default configuration values
# PURPOSE: Centralized defaults for leasing, execution, and storage
# CREATED: 14 OCT 2026
# ============================================================================
"""
Configuration Defaults

Provides defaults for the compute lease, batch fan-out, distributed
execution, and storage. Each can be overridden via environment variables.

Design:
- Immutable dataclasses for defaults
- Environment variable overrides
- Type-safe access
"""

import os
from dataclasses import dataclass, field
from typing import Optional


def _cpu_count() -> int:
    return os.cpu_count() or 1


@dataclass(frozen=True)
class LeaseDefaults:
    """
    Defaults for the computing lease.

    Controls how long a caller waits for another process's lease and
    how often the lease holder records a heartbeat.
    """
    # Await polling
    poll_interval_seconds: float = 2.0
    await_timeout_seconds: float = 15 * 60  # 15 minutes

    # Heartbeat while holding the lease
    heartbeat_interval_seconds: float = 30.0

    @classmethod
    def from_env(cls) -> "LeaseDefaults":
        """Create from environment variables."""
        return cls(
            poll_interval_seconds=float(os.getenv("DATAFLOW_LEASE_POLL_SEC", 2.0)),
            await_timeout_seconds=float(os.getenv("DATAFLOW_LEASE_TIMEOUT_SEC", 15 * 60)),
            heartbeat_interval_seconds=float(os.getenv("DATAFLOW_HEARTBEAT_SEC", 30.0)),
        )


@dataclass(frozen=True)
class ExecutionDefaults:
    """
    Defaults for batch fan-out and distributed execution.
    """
    # Concurrent shards per compute cycle
    parallelism: int = field(default_factory=_cpu_count)

    # Work queue used when a node does not name one
    work_queue: str = "dataflow.python"

    # Completion wait (0 = wait indefinitely)
    completion_timeout_seconds: float = 0.0

    # Worker receive wait per poll
    receive_wait_seconds: float = 5.0

    @classmethod
    def from_env(cls) -> "ExecutionDefaults":
        """Create from environment variables."""
        return cls(
            parallelism=max(1, int(os.getenv("DATAFLOW_PARALLELISM", _cpu_count()))),
            work_queue=os.getenv("DATAFLOW_WORK_QUEUE", "dataflow.python"),
            completion_timeout_seconds=float(os.getenv("DATAFLOW_COMPLETION_TIMEOUT_SEC", 0)),
            receive_wait_seconds=float(os.getenv("DATAFLOW_RECEIVE_WAIT_SEC", 5.0)),
        )


@dataclass(frozen=True)
class StorageDefaults:
    """
    Defaults for node persistence and datasets.
    """
    # Schema holding the node descriptor tables
    metadata_schema: str = "dataflow"

    # Backend used when a data node does not name one
    default_backend: str = "postgresql"

    # Records per INSERT batch
    insert_batch_size: int = 1000

    @classmethod
    def from_env(cls) -> "StorageDefaults":
        """Create from environment variables."""
        return cls(
            metadata_schema=os.getenv("DATAFLOW_METADATA_SCHEMA", "dataflow"),
            default_backend=os.getenv("DATAFLOW_DEFAULT_BACKEND", "postgresql"),
            insert_batch_size=int(os.getenv("DATAFLOW_INSERT_BATCH_SIZE", 1000)),
        )


# ============================================================================
# GLOBAL DEFAULTS INSTANCE
# ============================================================================

@dataclass
class Defaults:
    """Container for all default configurations."""
    lease: LeaseDefaults = field(default_factory=LeaseDefaults)
    execution: ExecutionDefaults = field(default_factory=ExecutionDefaults)
    storage: StorageDefaults = field(default_factory=StorageDefaults)

    @classmethod
    def from_env(cls) -> "Defaults":
        """Create all defaults from environment variables."""
        return cls(
            lease=LeaseDefaults.from_env(),
            execution=ExecutionDefaults.from_env(),
            storage=StorageDefaults.from_env(),
        )


_defaults: Optional[Defaults] = None


def get_defaults() -> Defaults:
    """Get global defaults instance."""
    global _defaults
    if _defaults is None:
        _defaults = Defaults.from_env()
    return _defaults


def set_defaults(defaults: Defaults) -> None:
    """Replace the global defaults (for embedding and tests)."""
    global _defaults
    _defaults = defaults


def reset_defaults() -> None:
    """Reset defaults (for testing)."""
    global _defaults
    _defaults = None


__all__ = [
    "LeaseDefaults",
    "ExecutionDefaults",
    "StorageDefaults",
    "Defaults",
    "get_defaults",
    "set_defaults",
    "reset_defaults",
]
