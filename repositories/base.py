# ============================================================================
# BASE REPOSITORY - ERROR HANDLING AND NODE REPOSITORY CONTRACT
# ============================================================================
# STATUS: Infrastructure - Base repository patterns
# PURPOSE: Error context, logging, and the node-descriptor persistence contract
# CREATED: 14 OCT 2026
# ============================================================================
"""
Base Repository Patterns

NodeRepository is the persistence contract for node descriptors. It is the
store of record for the computing lease: try_acquire_lease is the single
atomic conditional update that decides which process computes a node.

Lease fields (computing_state, computing_started_at, last_heartbeat_time,
execution_uuid, last_compute_starting_time) are only written through the
dedicated lease methods; save_compute_node never overwrites them on an
existing row.

Implementations:
    PostgresNodeRepository  (repositories.node_repo)
    InMemoryNodeRepository  (repositories.memory)
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

from core.errors import DataflowError
from core.models import ComputeNodeRecord, DataNodeRecord

logger = logging.getLogger(__name__)


class RepositoryError(DataflowError):
    """Base exception for repository operations."""

    def __init__(self, message: str, operation: str = None, entity_id: str = None):
        self.operation = operation
        self.entity_id = entity_id
        super().__init__(message)


class BaseRepository(ABC):
    """
    Abstract base repository with common patterns.

    Provides:
    - Error context manager for consistent error handling
    - Standardized logging
    """

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    @contextmanager
    def _error_context(self, operation: str, entity_id: Optional[str] = None):
        """
        Wrap driver errors in RepositoryError with operation context.

        Example:
            with self._error_context("lease acquisition", node_id):
                await conn.execute(...)
        """
        try:
            yield
        except DataflowError:
            raise
        except Exception as e:
            error_msg = f"{operation} failed"
            if entity_id:
                error_msg += f" for {entity_id}"
            error_msg += f": {e}"
            self.logger.error(error_msg)
            raise RepositoryError(error_msg, operation=operation, entity_id=entity_id) from e

    def _log_operation(
        self,
        success: bool,
        operation: str,
        entity_id: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Log operation result with consistent formatting.

        Format:
            Success: "operation: entity_id | details"
            Failure: "operation failed: entity_id | details"
        """
        short_id = entity_id[:16] + "..." if len(entity_id) > 16 else entity_id
        msg = f"{operation}: {short_id}" if success else f"{operation} failed: {short_id}"
        if details:
            msg += f" | {details}"

        if success:
            self.logger.debug(msg)
        else:
            self.logger.warning(msg)


class NodeRepository(BaseRepository):
    """Persistence contract for data and compute node descriptors."""

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    @abstractmethod
    async def get_data_node(self, node_id: str) -> Optional[DataNodeRecord]:
        ...

    @abstractmethod
    async def get_compute_node(self, node_id: str) -> Optional[ComputeNodeRecord]:
        ...

    @abstractmethod
    async def find_data_node_by_name(self, name: str) -> Optional[DataNodeRecord]:
        ...

    @abstractmethod
    async def find_compute_node_by_name(self, name: str) -> Optional[ComputeNodeRecord]:
        ...

    @abstractmethod
    async def list_compute_nodes(self) -> List[ComputeNodeRecord]:
        ...

    @abstractmethod
    async def compute_nodes_depending_on(self, node_id: str) -> List[ComputeNodeRecord]:
        """Compute nodes whose dependency_ids include node_id."""

    @abstractmethod
    async def compute_nodes_writing_to(self, data_node_id: str) -> List[ComputeNodeRecord]:
        """Compute nodes whose output is data_node_id."""

    # =========================================================================
    # WRITES
    # =========================================================================

    @abstractmethod
    async def save_data_node(self, record: DataNodeRecord) -> DataNodeRecord:
        """
        Insert, or update configuration leaving the buffer slots and
        updated_at as stored. Returns the stored record.
        """

    @abstractmethod
    async def save_compute_node(self, record: ComputeNodeRecord) -> ComputeNodeRecord:
        """Insert, or update static configuration leaving lease fields untouched."""

    @abstractmethod
    async def delete_data_node(self, node_id: str) -> bool:
        ...

    @abstractmethod
    async def delete_compute_node(self, node_id: str) -> bool:
        ...

    # =========================================================================
    # COMPUTING LEASE
    # =========================================================================

    @abstractmethod
    async def try_acquire_lease(self, node_id: str, now: datetime) -> bool:
        """
        Atomically set computing_state=computing, computing_started_at=now
        only if the node is not already computing.

        Returns:
            True if this caller now holds the lease
        """

    @abstractmethod
    async def release_lease(self, node_id: str) -> None:
        """Unconditionally clear computing_state, computing_started_at, execution_uuid."""

    @abstractmethod
    async def update_heartbeat(self, node_id: str, now: datetime) -> None:
        ...

    @abstractmethod
    async def mark_computed(self, node_id: str, started_at: datetime) -> None:
        """Record started_at as the new last_compute_starting_time."""

    @abstractmethod
    async def set_execution_uuid(self, node_id: str, execution_uuid: Optional[str]) -> None:
        ...

    # =========================================================================
    # DATA NODE STATE
    # =========================================================================

    @abstractmethod
    async def swap_slots(self, node_id: str) -> DataNodeRecord:
        """Exchange read_slot and write_slot in a single update."""

    @abstractmethod
    async def touch_data_node(self, node_id: str, updated_at: datetime) -> None:
        ...


__all__ = ["RepositoryError", "BaseRepository", "NodeRepository"]
