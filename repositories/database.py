# ============================================================================
# DATABASE CONNECTION POOL
# ============================================================================
# STATUS: Core - Async PostgreSQL connection management
# PURPOSE: One pooled psycopg3 connection source per process
# CREATED: 14 OCT 2026
# ============================================================================
"""
Database Connection Pool

The node repository and the postgresql storage backend share one
AsyncConnectionPool. Callers never hold a connection across awaits of
other work: each operation runs inside its own `async with pool.connection()`,
so parallel shards and dependency branches each check out a separate
connection and hand it back when done.

Settings come from the environment:
    DATABASE_URL                      full conninfo, wins over the parts below
    POSTGRES_HOST/PORT/DB/USER/PASSWORD/SSLMODE
    USE_MANAGED_IDENTITY=true         Entra token as password
    POSTGRES_IDENTITY_NAME            database role mapped to the identity
    AZURE_CLIENT_ID                   user-assigned identity (optional)
    DATAFLOW_POOL_MIN / DATAFLOW_POOL_MAX

The pool is sized to at least parallelism + 1 so a full fan-out plus the
lease heartbeat never starve each other.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from psycopg import sql
from psycopg_pool import AsyncConnectionPool

from core.config import get_defaults

logger = logging.getLogger(__name__)

POSTGRES_SCOPE = "https://ossrdbms-aad.database.windows.net/.default"

_pool: Optional[AsyncConnectionPool] = None


@dataclass(frozen=True)
class DatabaseSettings:
    """Where and how to connect."""
    host: str = "localhost"
    port: int = 5432
    dbname: str = "postgres"
    user: str = "postgres"
    password: str = ""
    sslmode: str = "require"
    url: Optional[str] = None
    use_managed_identity: bool = False
    identity_client_id: Optional[str] = None
    min_size: int = 2
    max_size: int = 10

    @classmethod
    def from_env(cls) -> "DatabaseSettings":
        managed = os.getenv("USE_MANAGED_IDENTITY", "false").lower() == "true"
        return cls(
            host=os.getenv("POSTGRES_HOST", "localhost"),
            port=int(os.getenv("POSTGRES_PORT", 5432)),
            dbname=os.getenv("POSTGRES_DB", "postgres"),
            user=os.getenv("POSTGRES_IDENTITY_NAME" if managed else "POSTGRES_USER", "postgres"),
            password=os.getenv("POSTGRES_PASSWORD", ""),
            sslmode=os.getenv("POSTGRES_SSLMODE", "require"),
            url=os.getenv("DATABASE_URL") or None,
            use_managed_identity=managed,
            identity_client_id=os.getenv("AZURE_CLIENT_ID") or None,
            min_size=int(os.getenv("DATAFLOW_POOL_MIN", 2)),
            max_size=int(os.getenv("DATAFLOW_POOL_MAX", 10)),
        )

    def conninfo(self) -> str:
        if self.use_managed_identity:
            password = self._identity_token()
        elif self.url:
            return self.url
        else:
            password = self.password
        return (
            f"host={self.host} port={self.port} dbname={self.dbname} "
            f"user={self.user} password={password} sslmode={self.sslmode}"
        )

    def describe(self) -> str:
        """Connection target without credentials, for logs."""
        if self.url and not self.use_managed_identity:
            return self.url.rsplit("@", 1)[-1]
        return f"{self.host}:{self.port}/{self.dbname} as {self.user}"

    def _identity_token(self) -> str:
        from azure.identity import DefaultAzureCredential, ManagedIdentityCredential

        if self.identity_client_id:
            logger.info(f"PostgreSQL auth via user-assigned identity {self.identity_client_id[:8]}...")
            credential = ManagedIdentityCredential(client_id=self.identity_client_id)
        else:
            logger.info("PostgreSQL auth via DefaultAzureCredential")
            credential = DefaultAzureCredential()
        return credential.get_token(POSTGRES_SCOPE).token


async def init_pool(settings: Optional[DatabaseSettings] = None) -> AsyncConnectionPool:
    """Open the process pool (a second call returns the open one)."""
    global _pool

    if _pool is not None:
        return _pool

    settings = settings or DatabaseSettings.from_env()
    max_size = max(settings.max_size, get_defaults().execution.parallelism + 1)

    _pool = AsyncConnectionPool(
        conninfo=settings.conninfo(),
        min_size=min(settings.min_size, max_size),
        max_size=max_size,
        open=False,
    )
    await _pool.open()
    logger.info(f"Connection pool open on {settings.describe()} (max={max_size})")
    return _pool


async def get_pool() -> AsyncConnectionPool:
    if _pool is None:
        await init_pool()
    return _pool


async def close_pool() -> None:
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("Connection pool closed")


class DatabasePool:
    """
    Pool lifecycle as an async context manager.

    Usage:
        async with DatabasePool() as pool:
            repo = PostgresNodeRepository(pool)
    """

    def __init__(self, settings: Optional[DatabaseSettings] = None):
        self.settings = settings

    async def __aenter__(self) -> AsyncConnectionPool:
        return await init_pool(self.settings)

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await close_pool()


# ============================================================================
# NODE TABLES
# ============================================================================

SCHEMA = get_defaults().storage.metadata_schema

TABLE_DATA_NODES = sql.Identifier(SCHEMA, "data_nodes")
TABLE_COMPUTE_NODES = sql.Identifier(SCHEMA, "compute_nodes")
