# ============================================================================
# NODE BASE
# ============================================================================
# STATUS: Nodes - Shared node identity and behaviour
# PURPOSE: Identity, events, properties and dependency traversal
# CREATED: 14 OCT 2026
# ============================================================================
"""
Node Base

A node wraps its persisted record and the catalog it was loaded from.
Edges between nodes are ids; related nodes are always looked up through
the catalog.
"""

from collections import defaultdict
from datetime import datetime
from typing import TYPE_CHECKING, Any, ClassVar, Dict, List, Mapping, Optional, Tuple

from core.contracts import NodeKind

from .events import EventHandler, event_registry
from .properties import PropertySpec, property_table

if TYPE_CHECKING:
    from .catalog import NodeCatalog


class Node:
    """Base class of data and compute nodes."""

    KIND: ClassVar[NodeKind]
    TYPE_TAG: ClassVar[str] = ""
    EVENTS: ClassVar[Tuple[str, ...]] = ()
    PROPERTIES: ClassVar[Tuple[PropertySpec, ...]] = ()

    def __init__(self, record, catalog: "NodeCatalog"):
        if not record.node_type:
            record.node_type = self.TYPE_TAG
        self.record = record
        self.catalog = catalog
        self._event_handlers: Dict[str, List[EventHandler]] = defaultdict(list)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r} id={self.id}>"

    def __eq__(self, other: Any) -> bool:
        return isinstance(other, Node) and other.id == self.id

    def __hash__(self) -> int:
        return hash(self.id)

    # =========================================================================
    # IDENTITY
    # =========================================================================

    @property
    def id(self) -> str:
        return self.record.id

    @property
    def name(self) -> str:
        return self.record.name

    @property
    def node_type(self) -> str:
        return self.record.node_type

    @property
    def updated_at(self) -> Optional[datetime]:
        raise NotImplementedError

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @classmethod
    def properties(cls) -> Mapping[str, PropertySpec]:
        return property_table(cls)

    def prop(self, name: str) -> Any:
        """Value of a declared property (record field or properties dict)."""
        spec = self.properties().get(name)
        if name in type(self.record).model_fields:
            return getattr(self.record, name)
        values = getattr(self.record, "properties", {})
        if name in values:
            return values[name]
        return spec.default if spec else None

    def property_violations(self) -> List[str]:
        errors = []
        for spec in self.properties().values():
            errors.extend(spec.violations(type(self).__name__, self.prop(spec.name)))
        return errors

    # =========================================================================
    # EVENTS
    # =========================================================================

    def on(self, event: str, handler: EventHandler) -> EventHandler:
        """Register an instance-level handler."""
        if event not in {e for k in type(self).__mro__ for e in vars(k).get("EVENTS", ())}:
            raise ValueError(f"{type(self).__name__} does not declare event '{event}'")
        self._event_handlers[event].append(handler)
        return handler

    def fire(self, event: str, *args: Any, **kwargs: Any) -> None:
        event_registry.fire(self, event, *args, **kwargs)

    # =========================================================================
    # GRAPH
    # =========================================================================

    async def dependencies(self, reload: bool = False) -> List["Node"]:
        return []

    async def all_dependencies(self) -> List["Node"]:
        """Transitive closure of dependencies, deduplicated, order-preserving."""
        direct = await self.dependencies()
        candidates = list(direct)
        for dependency in direct:
            candidates.extend(await dependency.all_dependencies())

        result: List[Node] = []
        seen = set()
        for node in candidates:
            if node.id not in seen:
                seen.add(node.id)
                result.append(node)
        return result

    async def required_by(self) -> List[Dict[str, Any]]:
        """Nodes that depend on this one: [{"node": node, "type": ...}]."""
        return await self.catalog.required_by(self)

    async def is_updated(self) -> bool:
        raise NotImplementedError

    async def recompute(self, force: bool = False, depth: int = 0) -> None:
        raise NotImplementedError

    async def reload(self) -> "Node":
        raise NotImplementedError


__all__ = ["Node"]
