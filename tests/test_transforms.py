# ============================================================================
# TRANSFORM NODE TESTS
# ============================================================================
# STATUS: Tests - Built-in transform node types
# PURPOSE: Verify the built-in compute node types and read-only data nodes
# CREATED: 15 OCT 2026
# ============================================================================
"""
Transform Node Tests

Covers:
1. SelectKeysNode projects dotted keys and drops empty records
2. WhereNode comparison operators and missing keys
3. MergeNode unions two dependencies with optional origin tags
4. ReadOnlyDataNode rejects mutations and reads external datasets
5. Export streams pages to a sink
6. JoinNode inner/left joins, multi-key matching and prefixes
7. MapNode rewrites values from a mapping dataset
8. NewestNode and DropWhileNode shard by id and process whole groups
9. ToTimeNode converts strings and timestamps to datetimes

Run with:
    pytest tests/test_transforms.py -v
"""

import asyncio
from datetime import datetime, timezone

import pytest

from core.errors import UnsupportedOperationError
from core.models import ComputeNodeRecord
from nodes import (
    DropWhileNode,
    JoinNode,
    MapNode,
    MergeNode,
    NewestNode,
    ReadOnlyDataNode,
    SelectKeysNode,
    ToTimeNode,
    WhereNode,
)


# ============================================================================
# SELECT KEYS
# ============================================================================

class TestSelectKeys:
    """Projection onto a key list."""

    def _node(self, keys):
        return SelectKeysNode(ComputeNodeRecord(name="select", properties={"keys": keys}), None)

    def test_projects_nested_keys(self, sample_people):
        output = self._node(["id", "address.city"]).compute_batch(sample_people(2))
        assert output == [
            {"id": 0, "address": {"city": "city-0"}},
            {"id": 1, "address": {"city": "city-1"}},
        ]

    def test_drops_empty_records(self):
        output = self._node(["missing"]).compute_batch([{"id": 1}, {"missing": 0}])
        assert output == [{"missing": 0}]

    def test_skips_none_values(self):
        output = self._node(["id", "name"]).compute_batch([{"id": 1, "name": None}, {"name": None}])
        assert output == [{"id": 1}]

    def test_required_schema_restricted_to_keys(self, catalog, make_data_node):
        async def scenario():
            raw = await make_data_node("raw", dataset_schema={"id": {"type": "integer"}, "name": {"type": "string"}})
            out = await make_data_node("out")
            node = await catalog.create_compute_node(
                SelectKeysNode, name="select", dependency_ids=[raw.id],
                data_node_id=out.id, properties={"keys": ["id", "extra"]},
            )
            await out.reload()
            return await node.required_schema(), out.dataset_schema

        required, pushed = asyncio.run(scenario())
        assert required == {"id": {"type": "integer"}, "extra": {"type": "string"}}
        assert pushed == required

    def test_export_selected_keys(self, catalog, make_data_node, sample_people):
        async def scenario():
            raw = await make_data_node("raw", sample_people(3))
            out = await make_data_node("out")
            node = await catalog.create_compute_node(
                SelectKeysNode, name="select", dependency_ids=[raw.id],
                data_node_id=out.id, properties={"keys": ["id", "name"]},
            )
            await node.compute()
            pages = []
            count = await node.export(pages.append)
            return count, pages

        count, pages = asyncio.run(scenario())
        assert count == 3
        assert sorted(r["id"] for r in pages[0]) == [0, 1, 2]
        assert all(set(r) == {"id", "name"} for r in pages[0])


# ============================================================================
# WHERE
# ============================================================================

class TestWhere:
    """Comparison filters."""

    RECORDS = [{"age": 18}, {"age": 30}, {"age": None}, {"name": "no age"}]

    @pytest.mark.parametrize(
        "op, value, expected",
        [
            ("eq", 30, [{"age": 30}]),
            ("ne", 30, [{"age": 18}, {"age": None}, {"name": "no age"}]),
            ("lt", 30, [{"age": 18}]),
            ("le", 30, [{"age": 18}, {"age": 30}]),
            ("gt", 18, [{"age": 30}]),
            ("ge", 18, [{"age": 18}, {"age": 30}]),
        ],
    )
    def test_operators(self, op, value, expected):
        node = WhereNode(ComputeNodeRecord(name="where", properties={"key": "age", "op": op, "value": value}), None)
        assert node.compute_batch(self.RECORDS) == expected

    def test_nested_key(self, sample_people):
        node = WhereNode(
            ComputeNodeRecord(name="where", properties={"key": "address.city", "op": "eq", "value": "city-1"}),
            None,
        )
        assert [r["id"] for r in node.compute_batch(sample_people(6))] == [1, 4]


# ============================================================================
# MERGE
# ============================================================================

class TestMerge:
    """Union of two dependencies."""

    def test_merge_with_origin_tags(self, catalog, make_data_node):
        async def scenario():
            web = await make_data_node("web", [{"order": 1}, {"order": 2}])
            store = await make_data_node("store", [{"order": 3}])
            out = await make_data_node("orders")
            node = await catalog.create_compute_node(
                MergeNode, name="merge", dependency_ids=[web.id, store.id], data_node_id=out.id,
                properties={"merge_key": "origin", "merge_values": ["web", "store"]},
            )
            await node.recompute()
            return await (await node.data_node()).all(sort={"order": 1})

        assert asyncio.run(scenario()) == [
            {"order": 1, "origin": "web"},
            {"order": 2, "origin": "web"},
            {"order": 3, "origin": "store"},
        ]

    def test_merge_without_key(self, catalog, make_data_node):
        async def scenario():
            a = await make_data_node("a", [{"v": 1}])
            b = await make_data_node("b", [{"v": 2}])
            out = await make_data_node("out")
            node = await catalog.create_compute_node(
                MergeNode, name="merge", dependency_ids=[a.id, b.id], data_node_id=out.id,
            )
            await node.compute()
            return await (await node.data_node()).all(sort={"v": 1})

        assert asyncio.run(scenario()) == [{"v": 1}, {"v": 2}]

    def test_batch_params_cover_both_sources(self, catalog, make_data_node, sample_people):
        async def scenario():
            a = await make_data_node("a", sample_people(4))
            b = await make_data_node("b", sample_people(2))
            out = await make_data_node("out")
            node = await catalog.create_compute_node(
                MergeNode, name="merge", dependency_ids=[a.id, b.id], data_node_id=out.id,
            )
            return await node.make_batch_params()

        params = asyncio.run(scenario())
        assert sorted({p["source"] for p in params}) == [0, 1]


# ============================================================================
# READ-ONLY DATA NODE
# ============================================================================

class TestReadOnlyDataNode:
    """Externally owned datasets."""

    def test_reads_external_dataset(self, catalog, make_data_node):
        async def scenario():
            await make_data_node("external_table", [{"id": 1}, {"id": 2}])
            node = await catalog.create_data_node(
                ReadOnlyDataNode, name="view", db_name="test", backend="memory",
                dataset_name="external_table", use_double_buffering=True,
            )
            return node.record.use_double_buffering, await node.count()

        assert asyncio.run(scenario()) == (False, 2)

    def test_mutations_rejected(self, catalog):
        async def scenario():
            node = await catalog.create_data_node(ReadOnlyDataNode, name="view", db_name="test", backend="memory")
            for call in (node.add([{"id": 1}]), node.clear(), node.drop_dataset(), node.swap_read_write_datasets()):
                with pytest.raises(UnsupportedOperationError):
                    await call

        asyncio.run(scenario())


# ============================================================================
# JOIN
# ============================================================================

CUSTOMERS = [
    {"id": 1, "name": "ada", "region": "north"},
    {"id": 2, "name": "bob", "region": "south"},
]
ORDERS = [
    {"order": 10, "customer_id": 1},
    {"order": 11, "customer_id": 3},
    {"order": 12},
]


class TestJoin:
    """Joins of two dependencies."""

    def _node(self, **properties):
        return JoinNode(ComputeNodeRecord(name="join", properties=properties), None)

    def _join(self, make_data_node, node, lookup_records, records):
        async def scenario():
            lookup = await make_data_node("lookup", lookup_records)
            return await node.join(records, lookup)
        return asyncio.run(scenario())

    def test_inner_join(self, catalog, make_data_node):
        async def scenario():
            orders = await make_data_node("orders", ORDERS)
            customers = await make_data_node("customers", CUSTOMERS)
            out = await make_data_node("joined")
            node = await catalog.create_compute_node(
                JoinNode, name="join", dependency_ids=[orders.id, customers.id], data_node_id=out.id,
                properties={"key1": "customer_id", "key2": "id"},
            )
            await node.compute()
            return await (await node.data_node()).all(sort={"order": 1})

        assert asyncio.run(scenario()) == [
            {"order": 10, "customer_id": 1, "id": 1, "name": "ada", "region": "north"},
        ]

    def test_left_join_with_prefix(self, make_data_node):
        node = self._node(join_type="left", key1="customer_id", key2="id", prefix2="c_")
        output = self._join(make_data_node, node, CUSTOMERS, [dict(r) for r in ORDERS])
        assert output == [
            {"order": 10, "customer_id": 1, "c_id": 1, "c_name": "ada", "c_region": "north"},
            {"order": 11, "customer_id": 3},
        ]

    def test_first_dependency_wins_collisions(self, make_data_node):
        node = self._node(key1="id", key2="id")
        output = self._join(make_data_node, node, [{"id": 1, "name": "right"}], [{"id": 1, "name": "left"}])
        assert output == [{"id": 1, "name": "left"}]

    def test_multiple_keys(self, make_data_node):
        node = self._node(key1="customer_id", key2="id", other_keys1=["region"], other_keys2=["region"])
        lookup = [
            {"id": 1, "region": "north", "name": "ada north"},
            {"id": 1, "region": "south", "name": "ada south"},
        ]
        records = [
            {"order": 1, "customer_id": 1, "region": "south"},
            {"order": 2, "customer_id": 1, "region": "east"},
        ]
        output = self._join(make_data_node, node, lookup, records)
        assert output == [{"order": 1, "customer_id": 1, "region": "south", "id": 1, "name": "ada south"}]

    def test_other_keys_must_pair_up(self, catalog, make_data_node):
        async def scenario():
            a = await make_data_node("a")
            b = await make_data_node("b")
            out = await make_data_node("out")
            node = await catalog.create_compute_node(
                JoinNode, name="join", dependency_ids=[a.id, b.id], data_node_id=out.id,
                properties={"key1": "id", "key2": "id", "other_keys1": ["x", "y"], "other_keys2": ["x"]},
            )
            return await node.validation_errors()

        errors = asyncio.run(scenario())
        assert "JoinNode other_keys2 must match other_keys1's length" in errors

    def test_invalid_join_type(self, catalog, make_data_node):
        async def scenario():
            a = await make_data_node("a")
            b = await make_data_node("b")
            out = await make_data_node("out")
            node = await catalog.create_compute_node(
                JoinNode, name="join", dependency_ids=[a.id, b.id], data_node_id=out.id,
                properties={"key1": "id", "key2": "id", "join_type": "outer"},
            )
            return await node.validation_errors()

        assert any("join_type must be set to one of inner, left" in e for e in asyncio.run(scenario()))

    def test_required_schema_applies_prefixes(self, catalog, make_data_node):
        async def scenario():
            a = await make_data_node("a", dataset_schema={"id": {"type": "integer"}})
            b = await make_data_node("b", dataset_schema={"id": {"type": "string"}, "name": {"type": "string"}})
            out = await make_data_node("out")
            node = await catalog.create_compute_node(
                JoinNode, name="join", dependency_ids=[a.id, b.id], data_node_id=out.id,
                properties={"key1": "id", "key2": "id", "prefix2": "b_"},
            )
            return await node.required_schema()

        assert asyncio.run(scenario()) == {
            "id": {"type": "integer"},
            "b_id": {"type": "string"},
            "b_name": {"type": "string"},
        }


# ============================================================================
# MAP
# ============================================================================

class TestMap:
    """Value rewriting from a mapping dataset."""

    def test_map_from_table(self, catalog, make_data_node):
        async def scenario():
            people = await make_data_node("people", [
                {"id": 1, "country": "NO", "code": 7},
                {"id": 2, "country": "DK", "code": 8},
            ])
            rules = await make_data_node("rules", [
                {"key": "country", "values": {"NO": "Norway"}, "default": "Other", "mapped_key": "country_name"},
                {"key": "code", "values": {"7": "seven"}},
            ])
            out = await make_data_node("mapped")
            node = await catalog.create_compute_node(
                MapNode, name="map", dependency_ids=[people.id, rules.id], data_node_id=out.id,
            )
            await node.compute()
            return await (await node.data_node()).all(sort={"id": 1})

        assert asyncio.run(scenario()) == [
            {"id": 1, "country": "NO", "country_name": "Norway", "code": "seven"},
            {"id": 2, "country": "DK", "country_name": "Other", "code": 8},
        ]

    def test_rule_without_values_copies_key(self):
        record = {"a": {"b": 1}}
        MapNode.map_record(record, {"key": "a.b", "mapped_key": "copy"})
        assert record == {"a": {"b": 1}, "copy": 1}


# ============================================================================
# ID-GROUPED FILTERS
# ============================================================================

class TestNewest:
    """Latest record per id."""

    def test_keeps_newest_per_id(self, catalog, make_data_node):
        async def scenario():
            raw = await make_data_node("raw", [
                {"acct": 1, "ts": "2024-01-01T00:00:00Z", "v": "old"},
                {"acct": 1, "ts": "2024-03-01T00:00:00Z", "v": "new"},
                {"acct": 1, "ts": "2024-02-01T00:00:00+00:00", "v": "mid"},
                {"acct": 2, "ts": 1700000000, "v": "only"},
            ])
            out = await make_data_node("latest")
            node = await catalog.create_compute_node(
                NewestNode, name="newest", dependency_ids=[raw.id], data_node_id=out.id,
                properties={"id_key": "acct", "date_key": "ts"},
            )
            await node.compute()
            return await (await node.data_node()).all(sort={"acct": 1})

        assert [(r["acct"], r["v"]) for r in asyncio.run(scenario())] == [(1, "new"), (2, "only")]

    def test_batches_are_id_slices(self, catalog, make_data_node):
        async def scenario(limit):
            raw = await make_data_node(f"raw{limit}", [{"acct": i % 6, "ts": i} for i in range(12)])
            out = await make_data_node(f"out{limit}")
            node = await catalog.create_compute_node(
                NewestNode, name=f"newest{limit}", dependency_ids=[raw.id], data_node_id=out.id,
                limit_per_process=limit, properties={"id_key": "acct", "date_key": "ts"},
            )
            return await node.make_batch_params()

        params = asyncio.run(scenario(0))
        assert [p["ids"] for p in params] == [[0, 1], [2, 3], [4, 5]]
        assert len(asyncio.run(scenario(1))) == 6


class TestDropWhile:
    """Trimming ordered runs per id."""

    GROUP = [
        {"ts": 4, "r": 0},
        {"ts": 1, "r": 0},
        {"ts": 3, "r": 5},
        {"ts": 2, "r": 0},
        {"ts": 5, "r": 7},
        {"ts": 6, "r": 0},
    ]

    def _node(self, **properties):
        base = {"id_key": "dev", "sort_by": "ts", "field": "r", "op": "eq", "value": 0}
        base.update(properties)
        return DropWhileNode(ComputeNodeRecord(name="drop", properties=base), None)

    @pytest.mark.parametrize(
        "mode, expected",
        [
            ("left", [3, 4, 5, 6]),
            ("right", [1, 2, 3, 4, 5]),
            ("both", [3, 4, 5]),
        ],
    )
    def test_drop_modes(self, mode, expected):
        output = self._node(drop_mode=mode).process_group(self.GROUP)
        assert [r["ts"] for r in output] == expected

    def test_descending_order(self):
        output = self._node(drop_mode="left", sort_asc=False).process_group(self.GROUP)
        assert [r["ts"] for r in output] == [5, 4, 3, 2, 1]

    def test_ordering_op_drops_missing_values(self):
        output = self._node(drop_mode="left", op="lt", value=3).process_group(
            [{"ts": 1}, {"ts": 2, "r": 1}, {"ts": 3, "r": 4}, {"ts": 4, "r": 1}]
        )
        assert [r["ts"] for r in output] == [3, 4]

    def test_compute_per_device(self, catalog, make_data_node):
        async def scenario():
            raw = await make_data_node("readings", [
                {"dev": "a", "ts": 1, "r": 0},
                {"dev": "a", "ts": 2, "r": 3},
                {"dev": "b", "ts": 1, "r": 0},
                {"dev": "b", "ts": 2, "r": 0},
                {"dev": "b", "ts": 3, "r": 9},
            ])
            out = await make_data_node("trimmed")
            node = await catalog.create_compute_node(
                DropWhileNode, name="drop", dependency_ids=[raw.id], data_node_id=out.id,
                properties={"id_key": "dev", "sort_by": "ts", "field": "r", "op": "eq", "value": 0},
            )
            await node.compute()
            return await (await node.data_node()).all(sort={"dev": 1, "ts": 1})

        assert [(r["dev"], r["ts"]) for r in asyncio.run(scenario())] == [("a", 2), ("b", 3)]


# ============================================================================
# TO TIME
# ============================================================================

class TestToTime:
    """String and timestamp conversion."""

    def test_converts_values(self):
        node = ToTimeNode(ComputeNodeRecord(name="to_time", properties={"keys": ["a", "b", "c", "d.e", "missing"]}), None)
        output = node.compute_batch([{"a": "2024-01-02T03:04:05Z", "b": 0, "c": "", "d": {"e": "2024-05-06"}}])
        assert output == [{
            "a": datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
            "b": datetime(1970, 1, 1, tzinfo=timezone.utc),
            "c": "",
            "d": {"e": datetime(2024, 5, 6, tzinfo=timezone.utc)},
        }]

    def test_unparseable_value_raises(self):
        node = ToTimeNode(ComputeNodeRecord(name="to_time", properties={"keys": ["a"]}), None)
        with pytest.raises(ValueError):
            node.compute_batch([{"a": "not a date"}])

    def test_requires_keys(self, catalog, make_data_node):
        async def scenario():
            raw = await make_data_node("raw")
            out = await make_data_node("out")
            node = await catalog.create_compute_node(
                ToTimeNode, name="to_time", dependency_ids=[raw.id], data_node_id=out.id,
            )
            return await node.validation_errors()

        assert "ToTimeNode keys must contain at least 1 value" in asyncio.run(scenario())
