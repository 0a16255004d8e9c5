# ============================================================================
# NODE REPOSITORY
# ============================================================================
# STATUS: Core - Node descriptor persistence
# PURPOSE: Database access for data_nodes and compute_nodes tables
# CREATED: 14 OCT 2026
# ============================================================================
"""
PostgreSQL Node Repository

CRUD for node descriptors plus the computing lease.

Lease acquisition is a single conditional UPDATE; the RETURNING row (or its
absence) is the lock result:

    UPDATE compute_nodes
       SET computing_state = 'computing', computing_started_at = %s
     WHERE id = %s AND computing_state <> 'computing'
    RETURNING id
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Type, TypeVar

from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Json
from psycopg_pool import AsyncConnectionPool
from pydantic import BaseModel

from core.contracts import ComputingState
from core.errors import NodeNotFoundError
from core.models import ComputeNodeRecord, DataNodeRecord
from core.schema import PydanticToSQL

from .base import NodeRepository
from .database import SCHEMA, TABLE_COMPUTE_NODES, TABLE_DATA_NODES

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

LEASE_COLUMNS = {
    "computing_state",
    "computing_started_at",
    "last_heartbeat_time",
    "execution_uuid",
    "last_compute_starting_time",
}

# Written only by swap_slots / touch_data_node
DATA_STATE_COLUMNS = {"read_slot", "write_slot", "updated_at"}


def _to_params(record: BaseModel) -> Dict[str, Any]:
    """Model fields -> psycopg parameters (JSONB wrapped, enums as values)."""
    params = {}
    for key, value in record.model_dump(mode="python").items():
        if isinstance(value, (dict, list)):
            params[key] = Json(value)
        elif isinstance(value, Enum):
            params[key] = value.value
        else:
            params[key] = value
    return params


class PostgresNodeRepository(NodeRepository):
    """NodeRepository backed by PostgreSQL."""

    def __init__(self, pool: AsyncConnectionPool):
        super().__init__()
        self.pool = pool

    async def initialize_schema(self) -> None:
        """Create schema, node tables and indexes if missing."""
        statements = PydanticToSQL(schema_name=SCHEMA).generate_all()
        with self._error_context("schema initialization"):
            async with self.pool.connection() as conn:
                for stmt in statements:
                    await conn.execute(stmt)
        logger.info(f"Node tables ready in schema {SCHEMA}")

    # =========================================================================
    # INTERNAL HELPERS
    # =========================================================================

    async def _fetch_one(self, model: Type[ModelT], query: sql.Composable, params) -> Optional[ModelT]:
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(query, params)
            row = await result.fetchone()
        return model.model_validate(row) if row else None

    async def _fetch_all(self, model: Type[ModelT], query: sql.Composable, params=None) -> List[ModelT]:
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(query, params)
            rows = await result.fetchall()
        return [model.model_validate(row) for row in rows]

    async def _execute(self, query: sql.Composable, params) -> int:
        async with self.pool.connection() as conn:
            result = await conn.execute(query, params)
            return result.rowcount

    async def _upsert(self, table: sql.Identifier, record: ModelT, keep: set) -> ModelT:
        """Insert a row, or update it leaving `keep` columns as stored; returns the stored row."""
        params = _to_params(record)
        columns = list(params.keys())
        updates = [c for c in columns if c != "id" and c not in keep]
        query = sql.SQL(
            "INSERT INTO {} ({}) VALUES ({}) ON CONFLICT (id) DO UPDATE SET {} RETURNING *"
        ).format(
            table,
            sql.SQL(", ").join(sql.Identifier(c) for c in columns),
            sql.SQL(", ").join(sql.Placeholder(c) for c in columns),
            sql.SQL(", ").join(
                sql.SQL("{} = EXCLUDED.{}").format(sql.Identifier(c), sql.Identifier(c))
                for c in updates
            ),
        )
        return await self._fetch_one(type(record), query, params)

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    async def get_data_node(self, node_id: str) -> Optional[DataNodeRecord]:
        with self._error_context("get data node", node_id):
            return await self._fetch_one(
                DataNodeRecord,
                sql.SQL("SELECT * FROM {} WHERE id = %s").format(TABLE_DATA_NODES),
                (node_id,),
            )

    async def get_compute_node(self, node_id: str) -> Optional[ComputeNodeRecord]:
        with self._error_context("get compute node", node_id):
            return await self._fetch_one(
                ComputeNodeRecord,
                sql.SQL("SELECT * FROM {} WHERE id = %s").format(TABLE_COMPUTE_NODES),
                (node_id,),
            )

    async def find_data_node_by_name(self, name: str) -> Optional[DataNodeRecord]:
        with self._error_context("find data node", name):
            return await self._fetch_one(
                DataNodeRecord,
                sql.SQL("SELECT * FROM {} WHERE name = %s LIMIT 1").format(TABLE_DATA_NODES),
                (name,),
            )

    async def find_compute_node_by_name(self, name: str) -> Optional[ComputeNodeRecord]:
        with self._error_context("find compute node", name):
            return await self._fetch_one(
                ComputeNodeRecord,
                sql.SQL("SELECT * FROM {} WHERE name = %s LIMIT 1").format(TABLE_COMPUTE_NODES),
                (name,),
            )

    async def list_compute_nodes(self) -> List[ComputeNodeRecord]:
        with self._error_context("list compute nodes"):
            return await self._fetch_all(
                ComputeNodeRecord,
                sql.SQL("SELECT * FROM {} ORDER BY created_at").format(TABLE_COMPUTE_NODES),
            )

    async def compute_nodes_depending_on(self, node_id: str) -> List[ComputeNodeRecord]:
        with self._error_context("reverse dependency lookup", node_id):
            return await self._fetch_all(
                ComputeNodeRecord,
                sql.SQL("SELECT * FROM {} WHERE dependency_ids ? %s ORDER BY created_at").format(
                    TABLE_COMPUTE_NODES
                ),
                (node_id,),
            )

    async def compute_nodes_writing_to(self, data_node_id: str) -> List[ComputeNodeRecord]:
        with self._error_context("writer lookup", data_node_id):
            return await self._fetch_all(
                ComputeNodeRecord,
                sql.SQL("SELECT * FROM {} WHERE data_node_id = %s ORDER BY created_at").format(
                    TABLE_COMPUTE_NODES
                ),
                (data_node_id,),
            )

    # =========================================================================
    # WRITES
    # =========================================================================

    async def save_data_node(self, record: DataNodeRecord) -> DataNodeRecord:
        with self._error_context("save data node", record.id):
            stored = await self._upsert(TABLE_DATA_NODES, record, keep=DATA_STATE_COLUMNS)
        self._log_operation(True, "Saved data node", record.id, {"name": record.name})
        return stored

    async def save_compute_node(self, record: ComputeNodeRecord) -> ComputeNodeRecord:
        with self._error_context("save compute node", record.id):
            await self._upsert(TABLE_COMPUTE_NODES, record, keep=LEASE_COLUMNS)
        self._log_operation(True, "Saved compute node", record.id, {"name": record.name})
        return record

    async def delete_data_node(self, node_id: str) -> bool:
        with self._error_context("delete data node", node_id):
            count = await self._execute(
                sql.SQL("DELETE FROM {} WHERE id = %s").format(TABLE_DATA_NODES), (node_id,)
            )
        return count > 0

    async def delete_compute_node(self, node_id: str) -> bool:
        with self._error_context("delete compute node", node_id):
            count = await self._execute(
                sql.SQL("DELETE FROM {} WHERE id = %s").format(TABLE_COMPUTE_NODES), (node_id,)
            )
        return count > 0

    # =========================================================================
    # COMPUTING LEASE
    # =========================================================================

    async def try_acquire_lease(self, node_id: str, now: datetime) -> bool:
        with self._error_context("lease acquisition", node_id):
            async with self.pool.connection() as conn:
                result = await conn.execute(
                    sql.SQL("""
                    UPDATE {}
                       SET computing_state = %s, computing_started_at = %s
                     WHERE id = %s AND computing_state <> %s
                    RETURNING id
                    """).format(TABLE_COMPUTE_NODES),
                    (ComputingState.COMPUTING.value, now, node_id, ComputingState.COMPUTING.value),
                )
                row = await result.fetchone()

        acquired = row is not None
        self._log_operation(acquired, "Lease acquired", node_id)
        return acquired

    async def release_lease(self, node_id: str) -> None:
        with self._error_context("lease release", node_id):
            await self._execute(
                sql.SQL("""
                UPDATE {}
                   SET computing_state = %s, computing_started_at = NULL, execution_uuid = NULL
                 WHERE id = %s
                """).format(TABLE_COMPUTE_NODES),
                (ComputingState.IDLE.value, node_id),
            )

    async def update_heartbeat(self, node_id: str, now: datetime) -> None:
        with self._error_context("heartbeat", node_id):
            await self._execute(
                sql.SQL("UPDATE {} SET last_heartbeat_time = %s WHERE id = %s").format(
                    TABLE_COMPUTE_NODES
                ),
                (now, node_id),
            )

    async def mark_computed(self, node_id: str, started_at: datetime) -> None:
        with self._error_context("mark computed", node_id):
            await self._execute(
                sql.SQL("UPDATE {} SET last_compute_starting_time = %s WHERE id = %s").format(
                    TABLE_COMPUTE_NODES
                ),
                (started_at, node_id),
            )

    async def set_execution_uuid(self, node_id: str, execution_uuid: Optional[str]) -> None:
        with self._error_context("set execution uuid", node_id):
            await self._execute(
                sql.SQL("UPDATE {} SET execution_uuid = %s WHERE id = %s").format(TABLE_COMPUTE_NODES),
                (execution_uuid, node_id),
            )

    # =========================================================================
    # DATA NODE STATE
    # =========================================================================

    async def swap_slots(self, node_id: str) -> DataNodeRecord:
        with self._error_context("buffer swap", node_id):
            record = await self._fetch_one(
                DataNodeRecord,
                sql.SQL("""
                UPDATE {}
                   SET read_slot = write_slot, write_slot = read_slot
                 WHERE id = %s
                RETURNING *
                """).format(TABLE_DATA_NODES),
                (node_id,),
            )
        if record is None:
            raise NodeNotFoundError(node_id, "data")
        return record

    async def touch_data_node(self, node_id: str, updated_at: datetime) -> None:
        with self._error_context("touch data node", node_id):
            await self._execute(
                sql.SQL("UPDATE {} SET updated_at = %s WHERE id = %s").format(TABLE_DATA_NODES),
                (updated_at, node_id),
            )


__all__ = ["PostgresNodeRepository"]
