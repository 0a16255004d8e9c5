# ============================================================================
# NODE CATALOG
# ============================================================================
# STATUS: Nodes - Id -> node arena over the node repository
# PURPOSE: Node lookup, hydration, creation and reverse-dependency search
# CREATED: 14 OCT 2026
# ============================================================================
"""
Node Catalog

All edges between nodes are ids; the catalog turns ids (or names) into
node objects of their registered type, freshly loaded from the repository.

Usage:
    catalog = NodeCatalog(InMemoryNodeRepository())
    raw = await catalog.create_data_node(name="raw", db_name="demo", backend="memory")
    clean = await catalog.create_compute_node(
        SelectKeysNode, name="clean", dependency_ids=[raw.id],
        data_node_id=out.id, properties={"keys": ["id", "email"]},
    )
    await clean.recompute()
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Type, Union

from core.config import Defaults, get_defaults
from core.contracts import NodeKind
from core.errors import ConfigurationError, NodeNotFoundError
from core.models import ComputeNodeRecord, DataNodeRecord
from repositories.base import NodeRepository

from .compute_node import ComputeNode
from .data_node import DataNode
from .node import Node
from .registry import resolve_node_type

if TYPE_CHECKING:
    from orchestrator.dispatcher import Executor

logger = logging.getLogger(__name__)


class NodeCatalog:
    """Arena of nodes backed by a NodeRepository."""

    def __init__(
        self,
        repository: NodeRepository,
        executor: Optional["Executor"] = None,
        defaults: Optional[Defaults] = None,
    ):
        self.repository = repository
        self.defaults = defaults or get_defaults()
        self._executor = executor

    @property
    def executor(self) -> "Executor":
        """Executor used by compute nodes to run their body (local-only by default)."""
        if self._executor is None:
            from orchestrator.dispatcher import Executor
            self._executor = Executor(self)
        return self._executor

    @executor.setter
    def executor(self, executor: "Executor") -> None:
        self._executor = executor

    # =========================================================================
    # HYDRATION
    # =========================================================================

    def hydrate(self, record: Union[DataNodeRecord, ComputeNodeRecord]) -> Node:
        """Wrap a record in the class registered for its type tag."""
        kind = NodeKind.COMPUTE if isinstance(record, ComputeNodeRecord) else NodeKind.DATA
        cls = resolve_node_type(record.node_type, kind)
        return cls(record, self)

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    async def data_node(self, node_id: str) -> DataNode:
        record = await self.repository.get_data_node(node_id)
        if record is None:
            raise NodeNotFoundError(node_id, "data")
        return self.hydrate(record)

    async def compute_node(self, node_id: str) -> ComputeNode:
        record = await self.repository.get_compute_node(node_id)
        if record is None:
            raise NodeNotFoundError(node_id, "compute")
        return self.hydrate(record)

    async def node(self, node_id: str) -> Node:
        """Node of either kind by id."""
        record = await self.repository.get_compute_node(node_id)
        if record is None:
            record = await self.repository.get_data_node(node_id)
        if record is None:
            raise NodeNotFoundError(node_id)
        return self.hydrate(record)

    async def find(self, id_or_name: str) -> Node:
        """Node of either kind by id, then by name."""
        repo = self.repository
        for lookup in (
            repo.get_compute_node,
            repo.get_data_node,
            repo.find_compute_node_by_name,
            repo.find_data_node_by_name,
        ):
            record = await lookup(id_or_name)
            if record is not None:
                return self.hydrate(record)
        raise NodeNotFoundError(id_or_name)

    async def exists(self, node_id: str) -> bool:
        return (
            await self.repository.get_compute_node(node_id) is not None
            or await self.repository.get_data_node(node_id) is not None
        )

    async def required_by(self, node: Node) -> List[Dict[str, Any]]:
        """
        Reverse dependencies:
            compute nodes listing the node as a dependency -> type "dependency"
            compute nodes writing into a data node         -> type "dataset"
        """
        result = [
            {"node": self.hydrate(r), "type": "dependency"}
            for r in await self.repository.compute_nodes_depending_on(node.id)
        ]
        if isinstance(node, DataNode):
            result.extend(
                {"node": self.hydrate(r), "type": "dataset"}
                for r in await self.repository.compute_nodes_writing_to(node.id)
            )
        return result

    # =========================================================================
    # CREATION AND SAVE
    # =========================================================================

    async def create_data_node(self, node_cls: Type[DataNode] = DataNode, **fields: Any) -> DataNode:
        record = DataNodeRecord(node_type=node_cls.TYPE_TAG, **fields)
        node = node_cls(record, self)
        await node.save()
        await node.handle_dataset_settings_changed()
        logger.info(f"Created data node {node.name} ({node.id})")
        return node

    async def create_compute_node(self, node_cls: Type[ComputeNode] = ComputeNode, **fields: Any) -> ComputeNode:
        record = ComputeNodeRecord(node_type=node_cls.TYPE_TAG, **fields)
        node = node_cls(record, self)
        await self.save_compute_node(node)
        logger.info(f"Created compute node {node.name} ({node.id})")
        return node

    async def save_compute_node(self, node: ComputeNode) -> None:
        """
        Persist a compute node after checking for cycles.

        The output data node's double buffering is aligned with
        clear_data_on_compute and its schema receives the node's
        required schema.
        """
        cycles = await node.cyclic_dependency_errors()
        if cycles:
            raise ConfigurationError(cycles, node_name=node.name)

        await self.repository.save_compute_node(node.record)
        if not node.record.data_node_id:
            return

        # Missing nodes are reported by validation before computing
        try:
            data_node = await node.data_node(reload=True)
            if data_node.record.use_double_buffering != node.record.clear_data_on_compute:
                data_node.record.use_double_buffering = node.record.clear_data_on_compute
                await data_node.save()
            await data_node.update_schema(await node.required_schema())
        except NodeNotFoundError as e:
            logger.warning(f"Saved {node.name} with unresolved references: {e}")


__all__ = ["NodeCatalog"]
