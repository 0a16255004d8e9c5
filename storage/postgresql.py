# ============================================================================
# POSTGRESQL STORAGE BACKEND
# ============================================================================
# STATUS: Storage - Relational datasets
# PURPOSE: StorageBackend over PostgreSQL tables (one schema per db_name)
# CREATED: 14 OCT 2026
# ============================================================================
"""
PostgreSQL Storage Backend

Each dataset is a table `<db_name>.<dataset name>` with a BIGSERIAL `_id`
primary key plus one column per field of the data node's schema.

Every operation checks out its own pooled connection, so concurrently
processed shards never share a connection.

Schema type descriptor -> column type:
    string / object (max <= 255) -> VARCHAR(max), otherwise TEXT
    integer (max <= 2^31-1)      -> INTEGER, otherwise BIGINT
    numeric                      -> DOUBLE PRECISION
    boolean                      -> BOOLEAN
    datetime                     -> TIMESTAMPTZ
    time                         -> TIMESTAMP
    date                         -> DATE
    array / hash                 -> JSONB
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from psycopg import errors as pg_errors
from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Json
from psycopg_pool import AsyncConnectionPool

from core.config import get_defaults
from core.contracts import SYSTEM_ID, IndexKind

from .base import Filter, Record, StorageBackend
from .filters import validate_filter

logger = logging.getLogger(__name__)

MAX_INT = 2_147_483_647
MAX_VARCHAR = 255


def column_type(info: Dict[str, Any]) -> str:
    """Map a schema type descriptor to a PostgreSQL column type."""
    kind = info.get("type", "string")
    max_size = info.get("max")

    if kind in ("string", "object"):
        if max_size is not None and max_size <= MAX_VARCHAR:
            return f"VARCHAR({max_size})"
        return "TEXT"
    if kind == "integer":
        if max_size is not None and max_size > MAX_INT:
            return "BIGINT"
        return "INTEGER"
    return {
        "numeric": "DOUBLE PRECISION",
        "boolean": "BOOLEAN",
        "datetime": "TIMESTAMPTZ",
        "time": "TIMESTAMP",
        "date": "DATE",
        "array": "JSONB",
        "hash": "JSONB",
    }.get(kind, "TEXT")


def where_clause(where: Optional[Filter]) -> Tuple[sql.Composable, List[Any]]:
    """Translate a filter into an AND-ed WHERE clause and its parameters."""
    clauses: List[sql.Composable] = []
    params: List[Any] = []

    for field, condition in validate_filter(where).items():
        column = sql.Identifier(field)
        if isinstance(condition, dict):
            for op, value in condition.items():
                if op == "!=" and isinstance(value, (list, tuple, set)):
                    clauses.append(sql.SQL("{} <> ALL(%s)").format(column))
                    params.append(list(value))
                elif op == "!=" and value is None:
                    clauses.append(sql.SQL("{} IS NOT NULL").format(column))
                else:
                    clauses.append(sql.SQL("{} " + ("<>" if op == "!=" else op) + " %s").format(column))
                    params.append(value)
        elif isinstance(condition, (list, tuple, set)):
            clauses.append(sql.SQL("{} = ANY(%s)").format(column))
            params.append(list(condition))
        elif condition is None:
            clauses.append(sql.SQL("{} IS NULL").format(column))
        else:
            clauses.append(sql.SQL("{} = %s").format(column))
            params.append(condition)

    if not clauses:
        return sql.SQL(""), params
    return sql.SQL(" WHERE ") + sql.SQL(" AND ").join(clauses), params


def _adapt(value: Any) -> Any:
    return Json(value) if isinstance(value, (dict, list)) else value


class PostgresStorage(StorageBackend):
    """StorageBackend over PostgreSQL tables."""

    def __init__(self, record, pool: Optional[AsyncConnectionPool] = None):
        super().__init__(record)
        self._pool = pool

    async def _get_pool(self) -> AsyncConnectionPool:
        if self._pool is None:
            from repositories.database import get_pool
            self._pool = await get_pool()
        return self._pool

    def _table(self, dataset: str) -> sql.Identifier:
        return sql.Identifier(self.settings.db_name, dataset)

    async def _columns(self, conn, dataset: str) -> List[str]:
        result = await conn.execute(
            "SELECT column_name FROM information_schema.columns "
            "WHERE table_schema = %s AND table_name = %s ORDER BY ordinal_position",
            (self.settings.db_name, dataset),
        )
        return [row[0] for row in await result.fetchall()]

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
        condition, params = where_clause(where)
        pool = await self._get_pool()

        async with pool.connection() as conn:
            if fields:
                selected = list(fields)
            else:
                selected = await self._columns(conn, self.read_dataset_name)
                if not selected:
                    return []
                if not include_system_id:
                    selected = [c for c in selected if c != SYSTEM_ID]

            query = sql.SQL("SELECT {} FROM {}").format(
                sql.SQL(", ").join(sql.Identifier(c) for c in selected),
                self._table(self.read_dataset_name),
            ) + condition

            if sort:
                query += sql.SQL(" ORDER BY ") + sql.SQL(", ").join(
                    sql.SQL("{} " + ("DESC" if direction == -1 else "ASC")).format(sql.Identifier(k))
                    for k, direction in sort.items()
                )
            if limit > 0:
                query += sql.SQL(" LIMIT {}").format(sql.Literal(limit))
            if offset > 0:
                query += sql.SQL(" OFFSET {}").format(sql.Literal(offset))

            async with conn.cursor(row_factory=dict_row) as cur:
                try:
                    await cur.execute(query, params)
                except pg_errors.UndefinedTable:
                    return []
                return await cur.fetchall()

    async def count(self, where: Optional[Filter] = None) -> int:
        condition, params = where_clause(where)
        pool = await self._get_pool()
        query = sql.SQL("SELECT COUNT(*) FROM {}").format(self._table(self.read_dataset_name)) + condition
        async with pool.connection() as conn:
            try:
                result = await conn.execute(query, params)
            except pg_errors.UndefinedTable:
                return 0
            row = await result.fetchone()
        return row[0]

    # =========================================================================
    # WRITES
    # =========================================================================

    async def save(self, records: Sequence[Record], upsert_keys: Optional[Sequence[str]] = None) -> None:
        if not records:
            return

        pool = await self._get_pool()
        dataset = self.write_dataset_name
        batch_size = get_defaults().storage.insert_batch_size

        async with pool.connection() as conn:
            columns = {c for c in await self._columns(conn, dataset) if c != SYSTEM_ID}
            used_keys = set()
            for record in records:
                used_keys.update(record.keys())
            used = sorted(columns & used_keys)
            if not used:
                logger.warning(f"save on {dataset}: no record field matches a column")
                return

            query = sql.SQL("INSERT INTO {} ({}) VALUES ({})").format(
                self._table(dataset),
                sql.SQL(", ").join(sql.Identifier(c) for c in used),
                sql.SQL(", ").join(sql.Placeholder() for _ in used),
            )
            if upsert_keys:
                query += sql.SQL(" ON CONFLICT ({}) DO UPDATE SET {}").format(
                    sql.SQL(", ").join(sql.Identifier(k) for k in dict.fromkeys(upsert_keys)),
                    sql.SQL(", ").join(
                        sql.SQL("{} = EXCLUDED.{}").format(sql.Identifier(c), sql.Identifier(c))
                        for c in used
                    ),
                )
            else:
                query += sql.SQL(" ON CONFLICT DO NOTHING")

            rows = [tuple(_adapt(record.get(c)) for c in used) for record in records]
            async with conn.cursor() as cur:
                for start in range(0, len(rows), batch_size):
                    await cur.executemany(query, rows[start:start + batch_size])

        logger.debug(f"Saved {len(records)} records into {self.settings.db_name}.{dataset}")

    async def delete(self, where: Optional[Filter] = None) -> int:
        condition, params = where_clause(where)
        pool = await self._get_pool()
        query = sql.SQL("DELETE FROM {}").format(self._table(self.read_dataset_name)) + condition
        async with pool.connection() as conn:
            result = await conn.execute(query, params)
            return result.rowcount

    async def recreate_dataset(self, dataset: Optional[str] = None) -> None:
        dataset = dataset or self.write_dataset_name
        columns = [sql.SQL("{} BIGSERIAL PRIMARY KEY").format(sql.Identifier(SYSTEM_ID))]
        for name, info in self.settings.dataset_schema.items():
            if name == SYSTEM_ID:
                continue
            columns.append(sql.SQL("{} " + column_type(info)).format(sql.Identifier(name)))

        pool = await self._get_pool()
        async with pool.connection() as conn:
            await conn.execute(
                sql.SQL("CREATE SCHEMA IF NOT EXISTS {}").format(sql.Identifier(self.settings.db_name))
            )
            await conn.execute(sql.SQL("DROP TABLE IF EXISTS {}").format(self._table(dataset)))
            await conn.execute(
                sql.SQL("CREATE TABLE {} ({})").format(self._table(dataset), sql.SQL(", ").join(columns))
            )
        logger.info(f"Recreated dataset {self.settings.db_name}.{dataset} ({len(columns) - 1} columns)")

    async def drop_dataset(self, dataset: str) -> None:
        pool = await self._get_pool()
        async with pool.connection() as conn:
            await conn.execute(sql.SQL("DROP TABLE IF EXISTS {}").format(self._table(dataset)))

    async def create_indexes(self, dataset: Optional[str] = None, kind: IndexKind = IndexKind.ALL) -> None:
        dataset = dataset or self.write_dataset_name
        pool = await self._get_pool()

        for index in self._indexes(kind):
            name = f"{dataset}_{'_'.join(index.keys)}_{'uidx' if index.unique else 'idx'}"[:63]
            stmt = sql.SQL("CREATE {}INDEX IF NOT EXISTS {} ON {} ({})").format(
                sql.SQL("UNIQUE " if index.unique else ""),
                sql.Identifier(name),
                self._table(dataset),
                sql.SQL(", ").join(sql.Identifier(k) for k in index.keys),
            )
            async with pool.connection() as conn:
                try:
                    await conn.execute(stmt)
                except pg_errors.UndefinedColumn as e:
                    # Missing columns are logged, not fatal
                    logger.error(f"create index on {dataset} failed: {e}")

    async def usage(self, dataset: Optional[str] = None) -> Dict[str, Any]:
        dataset = dataset or self.read_dataset_name
        qualified = f'"{self.settings.db_name}"."{dataset}"'
        pool = await self._get_pool()

        async with pool.connection() as conn:
            result = await conn.execute(
                "SELECT pg_relation_size(to_regclass(%s)), pg_total_relation_size(to_regclass(%s))",
                (qualified, qualified),
            )
            memory, storage = await result.fetchone()
            result = await conn.execute(
                """
                SELECT i.indisunique, array_agg(a.attname ORDER BY k.ord)
                  FROM pg_index i
                  JOIN LATERAL unnest(i.indkey) WITH ORDINALITY AS k(attnum, ord) ON true
                  JOIN pg_attribute a ON a.attrelid = i.indrelid AND a.attnum = k.attnum
                 WHERE i.indrelid = to_regclass(%s) AND NOT i.indisprimary
                 GROUP BY i.indexrelid, i.indisunique
                """,
                (qualified,),
            )
            indexes = [{"keys": list(keys), "unique": unique} for unique, keys in await result.fetchall()]

        return {
            "memory_bytes": memory or 0,
            "storage_bytes": storage or 0,
            "effective_indexes": indexes,
        }


__all__ = ["PostgresStorage", "column_type", "where_clause"]
