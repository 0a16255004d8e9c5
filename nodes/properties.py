# ============================================================================
# PROPERTY REGISTRY
# ============================================================================
# STATUS: Nodes - Declarative node configuration metadata
# PURPOSE: Describe configurable fields per node type
# CREATED: 14 OCT 2026
# ============================================================================
"""
Property Registry

Each node class lists PropertySpec entries in a PROPERTIES tuple. The
effective table of a class merges the tuples of its bases along the MRO;
a subclass entry replaces a base entry with the same name.
"""

from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple


@dataclass(frozen=True)
class PropertySpec:
    """Metadata for one configurable node property."""
    name: str
    type: str = "string"
    required_for_computing: bool = False
    values: Optional[Tuple[Any, ...]] = None
    default: Any = None
    description: str = ""

    def violations(self, owner: str, value: Any) -> list:
        """Validation messages for a value of this property."""
        errors = []
        if self.required_for_computing and value is None:
            errors.append(f"{owner}.{self.name} must be set for computing.")
        if self.required_for_computing and self.values is not None and value not in self.values:
            allowed = ", ".join(str(v) for v in self.values)
            errors.append(f"{owner}.{self.name} must be set to one of {allowed}. Given: {value}")
        return errors


@lru_cache(maxsize=None)
def property_table(cls: type) -> Mapping[str, PropertySpec]:
    """Read-only merged property table of a node class."""
    table = {}
    for klass in reversed(cls.__mro__):
        for spec in vars(klass).get("PROPERTIES", ()):
            table[spec.name] = spec
    return MappingProxyType(table)


__all__ = ["PropertySpec", "property_table"]
