# ============================================================================
# DROP WHILE NODE
# ============================================================================
# STATUS: Nodes - Built-in sequence trimming filter
# PURPOSE: Per id, sort records and drop leading/trailing runs matching a test
# CREATED: 18 OCT 2026
# ============================================================================
"""
Drop While Node

    properties = {
        "id_key": "device", "sort_by": "ts", "sort_asc": True,
        "field": "reading", "op": "eq", "value": 0, "drop_mode": "both",
    }

Records are grouped by `id_key` and ordered by `sort_by`. From the left
(drop_mode "left"), the right ("right") or both ends, records are dropped
while `field <op> value` holds. Ordering ops treat a missing field as a
match, so leading records without a value are dropped too.
"""

import itertools
import operator
from collections import defaultdict
from typing import Any, Dict, List

from core.errors import ConfigurationError
from core.records import get_path

from ..compute_node import Records
from ..properties import PropertySpec
from ..registry import register_node_type
from .grouped import IdGroupedComputeNode
from .where import VALID_OPS

VALID_MODES = ("both", "left", "right")


@register_node_type("DropWhileNode")
class DropWhileNode(IdGroupedComputeNode):
    """Trims each id's ordered sequence of records."""

    PROPERTIES = (
        PropertySpec("sort_by", "string", required_for_computing=True),
        PropertySpec("sort_asc", "boolean", required_for_computing=True, default=True),
        PropertySpec("field", "string", required_for_computing=True),
        PropertySpec("op", "string", required_for_computing=True, values=tuple(VALID_OPS)),
        PropertySpec("value", "any", required_for_computing=True),
        PropertySpec("drop_mode", "string", required_for_computing=True, values=VALID_MODES, default="both"),
    )

    def _predicate(self):
        op = str(self.prop("op") or "").lower()
        compare = VALID_OPS.get(op)
        if compare is None:
            raise ConfigurationError([f"Invalid op key: {self.prop('op')}"], node_name=self.name)
        field, value = self.prop("field"), self.prop("value")

        def predicate(record: Dict[str, Any]) -> bool:
            current = get_path(record, field)
            if compare in (operator.eq, operator.ne):
                return compare(current, value)
            if current is None:
                return True
            try:
                return compare(current, value)
            except TypeError:
                return False
        return predicate

    def process_group(self, group: Records) -> Records:
        sort_by = self.prop("sort_by")
        # None sorts first
        group = sorted(group, key=lambda r: (get_path(r, sort_by) is not None, get_path(r, sort_by)))
        if not self.prop("sort_asc"):
            group.reverse()

        predicate = self._predicate()
        mode = self.prop("drop_mode")
        if mode in ("both", "left"):
            group = list(itertools.dropwhile(predicate, group))
        if mode in ("both", "right"):
            group = list(itertools.dropwhile(predicate, reversed(group)))[::-1]
        return group

    async def process_ids(self, source, ids: List[Any]) -> Records:
        groups: Dict[Any, Records] = defaultdict(list)
        for record in await source.all(where={self.id_key: ids}):
            groups[get_path(record, self.id_key)].append(record)
        return [r for group in groups.values() for r in self.process_group(group)]


__all__ = ["DropWhileNode", "VALID_MODES"]
