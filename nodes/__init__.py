"""
Node graph: data nodes, compute nodes and the catalog that hydrates them.

Importing the package registers every built-in node type.
"""

from .catalog import NodeCatalog
from .compute_node import ComputeNode, DependencyConstraint
from .data_node import DataNode, ReadOnlyDataNode
from .events import EventRegistry, event_registry, on_event
from .keyed_data_nodes import SnapshotNode, UpsertNode
from .node import Node
from .properties import PropertySpec, property_table
from .registry import DuplicateNodeTypeError, list_node_types, register_node_type, resolve_node_type
from .transforms import (
    DropWhileNode,
    JoinNode,
    MapNode,
    MergeNode,
    NewestNode,
    SelectKeysNode,
    ToTimeNode,
    WhereNode,
)

__all__ = [
    "NodeCatalog",
    "Node",
    "DataNode",
    "ReadOnlyDataNode",
    "UpsertNode",
    "SnapshotNode",
    "ComputeNode",
    "DependencyConstraint",
    "SelectKeysNode",
    "WhereNode",
    "MergeNode",
    "JoinNode",
    "MapNode",
    "NewestNode",
    "DropWhileNode",
    "ToTimeNode",
    "EventRegistry",
    "event_registry",
    "on_event",
    "PropertySpec",
    "property_table",
    "register_node_type",
    "resolve_node_type",
    "list_node_types",
    "DuplicateNodeTypeError",
]
