# ============================================================================
# REPOSITORIES MODULE
# ============================================================================
# STATUS: Core - Node descriptor persistence
# PURPOSE: Store of record for node configuration and the computing lease
# CREATED: 14 OCT 2026
# ============================================================================
"""
Repositories Module

Uses psycopg3 async with connection pooling, or process-local dicts.

Usage:
    from repositories import DatabasePool, PostgresNodeRepository

    async with DatabasePool() as pool:
        repo = PostgresNodeRepository(pool)
        record = await repo.get_compute_node(node_id)
"""

from .base import BaseRepository, NodeRepository, RepositoryError
from .database import DatabasePool, DatabaseSettings, close_pool, get_pool
from .memory import InMemoryNodeRepository
from .node_repo import PostgresNodeRepository

__all__ = [
    "BaseRepository",
    "NodeRepository",
    "RepositoryError",
    "get_pool",
    "close_pool",
    "DatabasePool",
    "DatabaseSettings",
    "InMemoryNodeRepository",
    "PostgresNodeRepository",
]
