# ============================================================================
# JOIN NODE
# ============================================================================
# STATUS: Nodes - Built-in join transform
# PURPOSE: Join the records of two dependencies on one or more key pairs
# CREATED: 18 OCT 2026
# ============================================================================
"""
Join Node

    properties = {
        "join_type": "left",
        "key1": "customer_id", "key2": "id",
        "other_keys1": ["region"], "other_keys2": ["region"],
        "prefix1": "", "prefix2": "customer_",
    }

The first dependency drives the join and is sharded like any other
source. Each shard loads only the second dependency's records whose key2
is among the shard's key1 values.

Records without a key1 value are dropped. A left join keeps unmatched
records as they are; an inner join drops them. On key collisions the
first dependency's value wins. Prefixes apply to top-level keys.
"""

from typing import Any, Dict, List, Optional, Sequence

from core.records import get_path

from ..compute_node import ComputeNode, DependencyConstraint, Records
from ..properties import PropertySpec
from ..registry import register_node_type

VALID_TYPES = ("inner", "left")


@register_node_type("JoinNode")
class JoinNode(ComputeNode):
    """Joins its first dependency with its second."""

    PROPERTIES = (
        PropertySpec("join_type", "string", required_for_computing=True, values=VALID_TYPES, default="inner"),
        PropertySpec("key1", "string", required_for_computing=True),
        PropertySpec("key2", "string", required_for_computing=True),
        PropertySpec("other_keys1", "array", default=()),
        PropertySpec("other_keys2", "array", default=()),
        PropertySpec("prefix1", "string", default=""),
        PropertySpec("prefix2", "string", default=""),
    )
    DEPENDENCIES = DependencyConstraint(exactly=2)
    REQUIRES_DATA_NODE = True

    @property
    def other_keys(self):
        return list(self.prop("other_keys1") or []), list(self.prop("other_keys2") or [])

    @property
    def has_multiple_keys(self) -> bool:
        keys1, keys2 = self.other_keys
        return bool(keys1) and bool(keys2)

    async def validation_errors(self) -> List[str]:
        errors = await super().validation_errors()
        keys1, keys2 = self.other_keys
        if len(keys1) != len(keys2):
            errors.append(f"{type(self).__name__} other_keys2 must match other_keys1's length")
        return errors

    async def required_schema(self) -> Dict[str, Dict[str, Any]]:
        sources = await self.source_data_nodes()
        if len(sources) != 2:
            return {}
        schema: Dict[str, Dict[str, Any]] = {}
        # Second first so the first dependency's fields win, as in the records
        for source, prefix in reversed(list(zip(sources, (self.prop("prefix1"), self.prop("prefix2"))))):
            if source is not None:
                schema.update({f"{prefix or ''}{k}": v for k, v in source.dataset_schema.items()})
        return schema

    async def compute_batch(self, records: Records) -> Records:
        sources = await self.source_data_nodes()
        return await self.join(records, sources[1])

    async def join(self, records: Records, lookup_node) -> Records:
        """Join one shard of first-dependency records against the lookup node."""
        key1, key2 = self.prop("key1"), self.prop("key2")
        join_type = self.prop("join_type")
        prefix1, prefix2 = self.prop("prefix1") or "", self.prop("prefix2") or ""
        other_keys1, other_keys2 = self.other_keys
        multiple = self.has_multiple_keys

        lookup_values = list(dict.fromkeys(
            v for v in (get_path(r, key1) for r in records) if v is not None
        ))
        candidates = []
        if lookup_values and lookup_node is not None:
            candidates = await lookup_node.all(where={key2: lookup_values})

        mapped: Dict[Any, Any] = {}
        for candidate in candidates:
            value = get_path(candidate, key2)
            if multiple:
                mapped.setdefault(value, []).append(candidate)
            else:
                mapped[value] = candidate

        joined = []
        for left in records:
            value = get_path(left, key1)
            if value is None:
                continue

            right = mapped.get(value)
            if multiple and right is not None:
                right = self.find_matching_record(left, right, other_keys1, other_keys2)

            if not right and join_type == "inner":
                continue
            right = right or {}

            if prefix1:
                left = {f"{prefix1}{k}": v for k, v in left.items()}
            if prefix2:
                right = {f"{prefix2}{k}": v for k, v in right.items()}

            merged = dict(right)
            merged.update(left)
            joined.append(merged)
        return joined

    @staticmethod
    def find_matching_record(
        left: Dict[str, Any],
        candidates: Sequence[Dict[str, Any]],
        other_keys1: Sequence[str],
        other_keys2: Sequence[str],
    ) -> Optional[Dict[str, Any]]:
        """First candidate equal to `left` on every other_keys pair."""
        values = [get_path(left, key) for key in other_keys1]
        for candidate in candidates:
            if all(value == get_path(candidate, key) for value, key in zip(values, other_keys2)):
                return candidate
        return None


__all__ = ["JoinNode", "VALID_TYPES"]
