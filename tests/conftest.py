# ============================================================================
# SHARED TEST FIXTURES
# ============================================================================
# STATUS: Tests - In-memory catalog, storage and broker
# PURPOSE: Run node graphs without PostgreSQL or Service Bus
# CREATED: 15 OCT 2026
# ============================================================================
"""
Shared fixtures.

Every fixture is in-memory. Lease polling and heartbeats are shortened so
waiting paths finish in milliseconds. Each test drives its scenario with a
single asyncio.run(...) call.
"""

import pytest

from core.config import Defaults, ExecutionDefaults, LeaseDefaults, StorageDefaults
from messaging import InMemoryBroker
from nodes import NodeCatalog, event_registry
from repositories import InMemoryNodeRepository
from storage.memory import reset_memory_storage


@pytest.fixture(autouse=True)
def clean_state():
    """Fresh datasets and class-level event handlers per test."""
    reset_memory_storage()
    event_registry.clear()
    yield
    reset_memory_storage()
    event_registry.clear()


@pytest.fixture
def defaults():
    return Defaults(
        lease=LeaseDefaults(
            poll_interval_seconds=0.01,
            await_timeout_seconds=2.0,
            heartbeat_interval_seconds=0.05,
        ),
        execution=ExecutionDefaults(parallelism=4, receive_wait_seconds=0.05),
        storage=StorageDefaults(default_backend="memory"),
    )


@pytest.fixture
def repository():
    return InMemoryNodeRepository()


@pytest.fixture
def catalog(repository, defaults):
    return NodeCatalog(repository, defaults=defaults)


@pytest.fixture
def broker():
    return InMemoryBroker()


@pytest.fixture
def make_data_node(catalog):
    """Factory: async make_data_node(name, records=None, **fields) -> DataNode."""
    async def factory(name, records=None, **fields):
        fields.setdefault("db_name", "test")
        fields.setdefault("backend", "memory")
        node = await catalog.create_data_node(name=name, **fields)
        if records:
            await node.add(records)
        return node
    return factory


def people(count):
    """Sample records: id, name, age, nested address."""
    return [
        {"id": i, "name": f"person-{i}", "age": 20 + i, "address": {"city": f"city-{i % 3}"}}
        for i in range(count)
    ]


@pytest.fixture
def sample_people():
    return people
