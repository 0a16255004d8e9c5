# ============================================================================
# COMPUTE NODE
# ============================================================================
# STATUS: Nodes - Scheduler for one computation step
# PURPOSE: Validation, computing lease, recompute/compute, batch fan-out
# CREATED: 14 OCT 2026
# ============================================================================
"""
Compute Node

Control flow of `recompute`:

    1. stale dependencies are recomputed concurrently (depth-first per branch)
    2. dependency metadata is reloaded
    3. `compute`:
         validate -> skip if up to date -> acquire lease
           acquired:  started event, schema push, pre_compute,
                      [recreate write slot + unique indexes],
                      heartbeat, body, [non-unique indexes + swap],
                      last_compute_starting_time = start, finished event
           not acquired: poll until the holder releases (or timeout)
         the lease is always released once acquired

The body runs through the catalog's executor: in-process for the local
execution model, dispatched to remote workers otherwise.

Subclass hooks:
    DEPENDENCIES        DependencyConstraint (default: at least 1)
    REQUIRES_DATA_NODE  refuse to compute without an output data node
    compute_batch       per-shard transform (sync or async)
    pre_compute         setup before the body runs
    required_schema     fields pushed onto the output data node
    execute_local_computation  replace the default batch fan-out
"""

import asyncio
import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from core.contracts import ComputeOutcome, ComputingState, DatasetSlot, ExecutionModel, NodeKind, utcnow
from core.errors import ConfigurationError, LeaseTimeoutError, NodeNotFoundError
from core.logging import log_checkpoint, log_context
from core.models import ComputeNodeRecord

from .data_node import DataNode
from .node import Node
from .properties import PropertySpec
from .registry import register_node_type

logger = logging.getLogger(__name__)

Records = List[Dict[str, Any]]
BatchTransform = Callable[[Records], Union[Records, Awaitable[Records]]]


@dataclass(frozen=True)
class DependencyConstraint:
    """Dependency-count rule declared by a compute node type."""
    exactly: Optional[int] = None
    min: Optional[int] = None
    max: Optional[int] = None

    def __post_init__(self):
        if self.exactly is None and self.min is None and self.max is None:
            raise ConfigurationError(
                ["dependency constraint must set at least one of 'min', 'max' or 'exactly'"]
            )

    def violations(self, count: int) -> List[str]:
        if self.exactly is not None:
            if count != self.exactly:
                return [f"Expecting exactly {self.exactly} dependencies. Has {count} dependencies."]
        elif self.max is not None:
            if count > self.max:
                return [f"Expecting at most {self.max} dependencies. Has {count} dependencies."]
        else:
            minimum = self.min if self.min is not None else 1
            if count < minimum:
                return [f"Expecting at least {minimum} dependencies. Has {count} dependencies."]
        return []


@register_node_type("ComputeNode", fallback_for=NodeKind.COMPUTE)
class ComputeNode(Node):
    """A computation step producing into an optional output data node."""

    KIND = NodeKind.COMPUTE
    EVENTS = ("computing_started", "computing_progressed", "computing_finished")
    PROPERTIES = (
        PropertySpec("dependency_ids", "array"),
        PropertySpec("data_node_id", "string"),
        PropertySpec("clear_data_on_compute", "boolean", default=True),
        PropertySpec("limit_per_process", "integer", default=0),
        PropertySpec("recompute_interval", "integer", default=0),
        PropertySpec("execution_model", "string", values=tuple(m.value for m in ExecutionModel)),
        PropertySpec("execution_queue", "string"),
    )
    DEPENDENCIES = DependencyConstraint(min=1)
    REQUIRES_DATA_NODE = False

    record: ComputeNodeRecord

    def __init__(self, record: ComputeNodeRecord, catalog):
        super().__init__(record, catalog)
        self._dependencies: Optional[List[Node]] = None
        self._data_node: Optional[DataNode] = None

    @property
    def repository(self):
        return self.catalog.repository

    @property
    def defaults(self):
        return self.catalog.defaults

    @property
    def updated_at(self) -> Optional[datetime]:
        return self.record.last_compute_starting_time

    @property
    def execution_queue(self) -> str:
        return self.record.execution_queue or self.defaults.execution.work_queue

    # =========================================================================
    # GRAPH
    # =========================================================================

    async def data_node(self, reload: bool = False) -> Optional[DataNode]:
        if not self.record.data_node_id:
            return None
        if self._data_node is None or reload:
            self._data_node = await self.catalog.data_node(self.record.data_node_id)
        return self._data_node

    async def dependencies(self, reload: bool = False) -> List[Node]:
        if self._dependencies is None or reload:
            self._dependencies = list(
                await asyncio.gather(*(self.catalog.node(i) for i in self.record.dependency_ids))
            )
        return self._dependencies

    async def reload(self) -> "ComputeNode":
        record = await self.repository.get_compute_node(self.id)
        if record is None:
            raise NodeNotFoundError(self.id, "compute")
        self.record = record
        self._dependencies = None
        self._data_node = None
        return self

    async def save(self) -> "ComputeNode":
        await self.catalog.save_compute_node(self)
        return self

    # =========================================================================
    # STALENESS
    # =========================================================================

    async def is_updated(self) -> bool:
        """
        True iff this node has computed since every dependency last changed.

        A node's "updated at" is the time its last successful compute
        started, so a dependency changing mid-compute leaves it stale.
        """
        if self.updated_at is None:
            return False

        for dependency in await self.dependencies():
            if not await dependency.is_updated():
                return False
            if dependency.updated_at is not None and dependency.updated_at > self.updated_at:
                return False
        return True

    async def needs_automatic_recomputing(self, now: Optional[datetime] = None) -> bool:
        interval = self.record.recompute_interval
        if interval <= 0:
            return False
        if await self.is_updated():
            return False
        if await self.is_locked():
            return False
        if self.updated_at is None:
            return True
        return self.updated_at + timedelta(seconds=interval) < (now or utcnow())

    # =========================================================================
    # VALIDATION
    # =========================================================================

    async def cyclic_dependency_errors(self) -> List[str]:
        """
        Flag every declared dependency reachable again from itself.

        Builds a map of all compute nodes by id (this node's in-memory edges
        replace its persisted ones) and walks each dependency's own edges.
        """
        records = {r.id: r for r in await self.repository.list_compute_nodes()}
        edges = {node_id: list(r.dependency_ids) for node_id, r in records.items()}
        edges[self.id] = list(self.record.dependency_ids)
        names = {node_id: r.name for node_id, r in records.items()}
        names[self.id] = self.name

        errors = []
        for dependency_id in dict.fromkeys(self.record.dependency_ids):
            stack = list(edges.get(dependency_id, []))
            visited = set()
            while stack:
                current = stack.pop()
                if current == dependency_id:
                    errors.append(
                        f"Dependency to node {dependency_id} ('{names.get(dependency_id, '?')}') is cyclic."
                    )
                    break
                if current in visited:
                    continue
                visited.add(current)
                stack.extend(edges.get(current, []))
        return errors

    async def validation_errors(self) -> List[str]:
        """Every reason this node cannot compute (empty when valid)."""
        dependency_ids = self.record.dependency_ids
        errors = list(self.DEPENDENCIES.violations(len(dependency_ids)))

        duplicates = sorted({i for i in dependency_ids if dependency_ids.count(i) > 1})
        if duplicates:
            errors.append(f"Duplicate dependencies: {', '.join(duplicates)}.")

        errors.extend(await self.cyclic_dependency_errors())

        for dependency_id in dict.fromkeys(dependency_ids):
            if not await self.catalog.exists(dependency_id):
                errors.append(f"No node was found for dependency Id: '{dependency_id}'.")

        errors.extend(self.property_violations())

        if self.REQUIRES_DATA_NODE and not self.record.data_node_id:
            errors.append("Expecting a data node to be set.")
        elif self.record.data_node_id and await self.repository.get_data_node(self.record.data_node_id) is None:
            errors.append(f"No data node was found for Id: '{self.record.data_node_id}'.")

        return errors

    async def validate(self) -> None:
        errors = await self.validation_errors()
        if errors:
            raise ConfigurationError(errors, node_name=self.name)

    # =========================================================================
    # COMPUTING LEASE
    # =========================================================================

    async def acquire_lease(self) -> bool:
        now = utcnow()
        acquired = await self.repository.try_acquire_lease(self.id, now)
        if acquired:
            self.record.computing_state = ComputingState.COMPUTING
            self.record.computing_started_at = now
            log_checkpoint("lease_acquired", {"node": self.name})
        return acquired

    async def release_lease(self) -> None:
        await self.repository.release_lease(self.id)
        self.record.computing_state = ComputingState.IDLE
        self.record.computing_started_at = None
        self.record.execution_uuid = None
        log_checkpoint("lease_released", {"node": self.name})

    async def force_release_lease(self) -> None:
        """Manual escape hatch for a node whose lease holder died."""
        logger.warning(f"Forcing lease release on {self.name}")
        await self.release_lease()

    async def is_locked(self) -> bool:
        record = await self.repository.get_compute_node(self.id)
        return record is not None and record.is_computing

    async def send_heartbeat(self) -> None:
        now = utcnow()
        await self.repository.update_heartbeat(self.id, now)
        self.record.last_heartbeat_time = now

    async def _heartbeat_loop(self, stop_event: asyncio.Event) -> None:
        interval = self.defaults.lease.heartbeat_interval_seconds
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                try:
                    await self.send_heartbeat()
                except Exception as e:
                    logger.warning(f"Heartbeat failed for {self.name}: {e}")

    async def await_lease_release(self) -> None:
        """Poll the store until the lease holder releases, or time out."""
        lease = self.defaults.lease
        loop = asyncio.get_running_loop()
        started = loop.time()

        while loop.time() - started < lease.await_timeout_seconds:
            await asyncio.sleep(lease.poll_interval_seconds)
            record = await self.repository.get_compute_node(self.id)
            if record is None or not record.is_computing:
                if record is not None:
                    self.record = record
                return

        raise LeaseTimeoutError(self.name, loop.time() - started)

    # =========================================================================
    # RECOMPUTE / COMPUTE
    # =========================================================================

    async def recompute(self, force: bool = False, depth: int = 0) -> None:
        """Recompute stale dependencies concurrently, then compute this node."""
        prefix = ">" * (depth + 1)
        logger.info(f"{prefix} {self.name} started recomputing...")
        started = utcnow()

        async def refresh(dependency: Node) -> None:
            if force or not await dependency.is_updated():
                await dependency.recompute(force=force, depth=depth + 1)

        await asyncio.gather(*(refresh(d) for d in await self.dependencies()))

        # Dependencies may have been recomputed elsewhere meanwhile
        await self.dependencies(reload=True)

        await self.compute(force=force, depth=depth)
        elapsed = (utcnow() - started).total_seconds()
        logger.info(f"{prefix} {self.name} took {elapsed:.2f} seconds to recompute.")

    async def compute(self, force: bool = False, depth: int = 0) -> None:
        """Compute this node under its lease, or wait for the current holder."""
        prefix = ">" * (depth + 1)
        await self.validate()

        if not force and await self.is_updated():
            logger.info(f"{prefix} {self.name} is up-to-date.")
            return

        if not await self.acquire_lease():
            logger.info(f"{prefix} [IS AWAITING] {self.name}.")
            await self.await_lease_release()
            logger.info(f"{prefix} [IS DONE AWAITING] {self.name}.")
            return

        stop_event = asyncio.Event()
        heartbeat = asyncio.create_task(self._heartbeat_loop(stop_event))
        try:
            with log_context(node_id=self.id, node_name=self.name, operation="compute"):
                await self._compute_with_lease(force, prefix)
        finally:
            stop_event.set()
            await heartbeat
            await self.release_lease()

    async def _compute_with_lease(self, force: bool, prefix: str) -> None:
        start = utcnow()
        logger.info(f"{prefix} {self.name} started computing.")
        try:
            self.fire("computing_started")

            # Slots may have been swapped by another holder since this node was loaded
            data_node = await self.data_node(reload=True)
            if data_node is not None:
                await data_node.update_schema(await self.required_schema())

            await self.pre_compute(force=force)

            clear = self.record.clear_data_on_compute and data_node is not None
            if clear:
                await data_node.recreate_dataset(slot=DatasetSlot.WRITE)
                await data_node.create_unique_indexes(slot=DatasetSlot.WRITE)

            await self.send_heartbeat()
            await self.compute_impl()

            if clear:
                await data_node.create_non_unique_indexes(slot=DatasetSlot.WRITE)
                await data_node.swap_read_write_datasets()

            await self.repository.mark_computed(self.id, start)
            self.record.last_compute_starting_time = start

            duration = (utcnow() - start).total_seconds()
            logger.info(f"{prefix} {self.name} took {duration:.2f} seconds to compute.")
            self.fire("computing_finished", ComputeOutcome.COMPUTED)
        except Exception as e:
            logger.error(f"{prefix} [ERROR] {self.name} failed computing: {e}")
            self.fire("computing_finished", ComputeOutcome.ERROR, error=e)
            raise

    # =========================================================================
    # HOOKS
    # =========================================================================

    async def pre_compute(self, force: bool = False) -> None:
        """Setup before the body runs."""

    async def required_schema(self) -> Dict[str, Dict[str, Any]]:
        """Fields the output data node must have; by default the source's schema."""
        dependencies = await self.dependencies()
        if not dependencies:
            return {}
        source = dependencies[0]
        if isinstance(source, ComputeNode):
            source = await source.data_node()
        return dict(source.dataset_schema) if source is not None else {}

    def compute_batch(self, records: Records) -> Records:
        """Per-shard transform; identity by default."""
        return records

    async def compute_impl(self) -> None:
        await self.catalog.executor.execute(self)

    # =========================================================================
    # LOCAL EXECUTION
    # =========================================================================

    async def source_data_nodes(self) -> List[Optional[DataNode]]:
        """Data read from each dependency, in dependency order."""
        sources = []
        for dependency in await self.dependencies():
            if isinstance(dependency, ComputeNode):
                sources.append(await dependency.data_node())
            else:
                sources.append(dependency)
        return sources

    async def source_data_node(self) -> Optional[DataNode]:
        """Dataset read by the default body: the first dependency's data."""
        sources = await self.source_data_nodes()
        return sources[0] if sources else None

    async def execute_local_computation(self) -> None:
        source = await self.source_data_node()
        if source is not None:
            await self.process_parallel(source)

    async def _shard_queries(self, source: DataNode) -> List[Dict[str, Any]]:
        count = await source.count()
        if count == 0:
            return []
        parallelism = max(1, self.defaults.execution.parallelism)
        shard_size = math.ceil(count / parallelism)
        if self.record.limit_per_process > 0:
            shard_size = min(self.record.limit_per_process, shard_size)
        return await source.ordered_id_range_queries(shard_size)

    async def _apply_transform(self, transform: BatchTransform, records: Records) -> Records:
        if asyncio.iscoroutinefunction(transform):
            return await transform(records)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, transform, records)

    async def process_parallel(self, source: DataNode, transform: Optional[BatchTransform] = None) -> None:
        """
        Process the source in id-range shards, concurrently up to the
        configured parallelism, appending each shard's output to the
        output data node.
        """
        queries = await self._shard_queries(source)
        if not queries:
            return

        transform = transform or self.compute_batch
        data_node = await self.data_node()
        semaphore = asyncio.Semaphore(max(1, self.defaults.execution.parallelism))
        total = len(queries)

        async def run_shard(idx: int, query: Dict[str, Any]) -> None:
            async with semaphore:
                with log_context(msg_id=idx):
                    await self.send_heartbeat()
                    self.fire("computing_progressed", math.ceil(idx / total * 100))
                    records = await source.all(where=query)
                    output = await self._apply_transform(transform, records)
                    if data_node is not None and output:
                        await data_node.add(list(output))

        await asyncio.gather(*(run_shard(i, q) for i, q in enumerate(queries)))
        logger.debug(f"{self.name}: processed {total} shards from {source.name}")

    async def make_batch_params(self) -> List[Dict[str, Any]]:
        """One parameter set per shard, for the remote_batch execution model."""
        source = await self.source_data_node()
        if source is None:
            return []
        return [{"where": query} for query in await self._shard_queries(source)]

    async def execute_local_batch_computation(self, params: Dict[str, Any]) -> Optional[Records]:
        """Run one shard described by batch params; output goes to the data node."""
        source = await self.source_data_node()
        if source is None:
            return None
        records = await source.all(where=params.get("where") or {})
        output = await self._apply_transform(self.compute_batch, records)
        data_node = await self.data_node()
        if data_node is not None and output:
            await data_node.add(list(output))
        return None

    # =========================================================================
    # DISTRIBUTED EXECUTION
    # =========================================================================

    async def start_execution(self) -> str:
        """Generate and persist a fresh execution uuid."""
        execution_uuid = uuid.uuid4().hex
        await self.repository.set_execution_uuid(self.id, execution_uuid)
        self.record.execution_uuid = execution_uuid
        return execution_uuid

    def execution_valid(self, execution_uuid: Optional[str]) -> bool:
        return bool(execution_uuid) and self.record.execution_uuid == execution_uuid


__all__ = ["ComputeNode", "DependencyConstraint"]
