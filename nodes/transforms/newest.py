# ============================================================================
# NEWEST NODE
# ============================================================================
# STATUS: Nodes - Built-in latest-version filter
# PURPOSE: Keep only the newest record of each id
# CREATED: 18 OCT 2026
# ============================================================================
"""
Newest Node

    properties = {"id_key": "account_id", "date_key": "updated_at"}

Dates may be datetimes, ISO-8601 strings or unix timestamps.
"""

from collections import defaultdict
from typing import Any, Dict, List

from core.records import get_path, to_datetime

from ..compute_node import Records
from ..properties import PropertySpec
from ..registry import register_node_type
from .grouped import IdGroupedComputeNode


@register_node_type("NewestNode")
class NewestNode(IdGroupedComputeNode):
    """Selects the newest record among records with the same id."""

    PROPERTIES = (PropertySpec("date_key", "string", required_for_computing=True),)

    async def process_ids(self, source, ids: List[Any]) -> Records:
        id_key, date_key = self.id_key, self.prop("date_key")
        metadata = await source.all(where={id_key: ids}, fields=[id_key, date_key])

        groups: Dict[Any, List[Dict[str, Any]]] = defaultdict(list)
        for entry in metadata:
            if get_path(entry, date_key) is not None:
                groups[get_path(entry, id_key)].append(entry)

        newest = []
        for entries in groups.values():
            latest = max(entries, key=lambda e: to_datetime(get_path(e, date_key)))
            record = await source.find(where={id_key: get_path(latest, id_key), date_key: get_path(latest, date_key)})
            if record is not None:
                newest.append(record)
        return newest


__all__ = ["NewestNode"]
