# ============================================================================
# NODE TYPE REGISTRY
# ============================================================================
# STATUS: Nodes - Type tag -> class lookup
# PURPOSE: Hydrate persisted node records into their concrete classes
# CREATED: 14 OCT 2026
# ============================================================================
"""
Node Type Registry

Node classes register under a type tag at import time. Records persist the
tag in `node_type`; an unknown tag falls back to the generic class of the
node kind and logs a warning.

Example:
    @register_node_type("SelectKeysNode")
    class SelectKeysNode(ComputeNode):
        ...
"""

import logging
from typing import Callable, Dict, List, Optional, Type

from core.contracts import NodeKind

logger = logging.getLogger(__name__)

# Global registry
_node_types: Dict[str, type] = {}
_fallbacks: Dict[NodeKind, type] = {}


class DuplicateNodeTypeError(ValueError):
    """Raised when a type tag is already registered to another class."""

    def __init__(self, tag: str):
        self.tag = tag
        super().__init__(f"Node type already registered: {tag}")


def register_node_type(tag: Optional[str] = None, *, fallback_for: Optional[NodeKind] = None) -> Callable[[type], type]:
    """
    Decorator registering a node class under a type tag (default: class name).

    Args:
        tag: Persisted type tag
        fallback_for: Make this class the generic type of a node kind
    """
    def decorator(cls: type) -> type:
        name = tag or cls.__name__
        existing = _node_types.get(name)
        if existing is not None and existing is not cls:
            raise DuplicateNodeTypeError(name)

        _node_types[name] = cls
        cls.TYPE_TAG = name
        if fallback_for is not None:
            _fallbacks[fallback_for] = cls

        logger.debug(f"Registered node type: {name} ({cls.__module__}.{cls.__name__})")
        return cls

    return decorator


def resolve_node_type(tag: str, kind: NodeKind) -> Type:
    """Class registered for a tag, or the kind's generic class with a warning."""
    cls = _node_types.get(tag)
    fallback = _fallbacks[kind]
    if cls is not None and issubclass(cls, fallback):
        return cls

    if tag:
        logger.warning(f"Unknown node type '{tag}' for a {kind.value} node, using {fallback.__name__}")
    return fallback


def list_node_types() -> List[str]:
    return sorted(_node_types)


__all__ = ["register_node_type", "resolve_node_type", "list_node_types", "DuplicateNodeTypeError"]
