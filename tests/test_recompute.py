# ============================================================================
# RECOMPUTE TESTS
# ============================================================================
# STATUS: Tests - Staleness tracking and recursive recompute
# PURPOSE: Verify stale chains are recomputed and fresh nodes are skipped
# CREATED: 15 OCT 2026
# ============================================================================
"""
Recompute Tests

Covers:
1. A never-computed node is stale
2. recompute() computes stale dependencies first
3. Up-to-date nodes are skipped unless forced
4. New source data makes the whole chain stale
5. Lifecycle events fire in order with the outcome
6. Catalog lookups hydrate the registered node classes

Run with:
    pytest tests/test_recompute.py -v
"""

import asyncio

from core.contracts import ComputeOutcome
from nodes import ComputeNode, SelectKeysNode, WhereNode, on_event


async def _chain(catalog, make_data_node, sample_people):
    """raw -> select(id, age) -> where(age >= 25)"""
    raw = await make_data_node("raw", sample_people(10))
    selected = await make_data_node("selected")
    adults = await make_data_node("adults")
    select = await catalog.create_compute_node(
        SelectKeysNode, name="select", dependency_ids=[raw.id],
        data_node_id=selected.id, properties={"keys": ["id", "age"]},
    )
    where = await catalog.create_compute_node(
        WhereNode, name="where", dependency_ids=[select.id],
        data_node_id=adults.id, properties={"key": "age", "op": "ge", "value": 25},
    )
    return raw, select, where


class TestStaleness:
    """is_updated() compares compute start times with dependency changes."""

    def test_never_computed_is_stale(self, catalog, make_data_node, sample_people):
        async def scenario():
            _, select, _ = await _chain(catalog, make_data_node, sample_people)
            return await select.is_updated()

        assert asyncio.run(scenario()) is False

    def test_data_nodes_are_always_updated(self, make_data_node):
        async def scenario():
            raw = await make_data_node("raw")
            return await raw.is_updated()

        assert asyncio.run(scenario()) is True

    def test_new_source_data_makes_chain_stale(self, catalog, make_data_node, sample_people):
        async def scenario():
            raw, select, where = await _chain(catalog, make_data_node, sample_people)
            await where.recompute()

            async def states():
                fresh_select = await catalog.compute_node(select.id)
                fresh_where = await catalog.compute_node(where.id)
                return await fresh_select.is_updated(), await fresh_where.is_updated()

            before = await states()
            await raw.add([{"id": 100, "age": 80}])
            return before, await states()

        before, after = asyncio.run(scenario())
        assert before == (True, True)
        assert after == (False, False)


class TestRecompute:
    """recompute() walks the dependency graph depth-first."""

    def test_recompute_computes_dependencies(self, catalog, make_data_node, sample_people):
        async def scenario():
            _, select, where = await _chain(catalog, make_data_node, sample_people)
            await where.recompute()

            selected = await (await catalog.compute_node(select.id)).data_node()
            adults = await (await catalog.compute_node(where.id)).data_node()
            return await selected.all(), await adults.all()

        selected, adults = asyncio.run(scenario())
        assert len(selected) == 10
        assert all(set(r) == {"id", "age"} for r in selected)
        assert sorted(r["age"] for r in adults) == list(range(25, 30))

    def test_up_to_date_node_is_skipped(self, catalog, make_data_node, sample_people):
        async def scenario():
            _, select, _ = await _chain(catalog, make_data_node, sample_people)
            await select.recompute()
            first = select.updated_at
            await select.recompute()
            return first, select.updated_at

        first, second = asyncio.run(scenario())
        assert first is not None
        assert first == second

    def test_force_recomputes(self, catalog, make_data_node, sample_people):
        async def scenario():
            _, select, where = await _chain(catalog, make_data_node, sample_people)
            await where.recompute()
            first = (await catalog.compute_node(select.id)).updated_at
            await where.recompute(force=True)
            return first, (await catalog.compute_node(select.id)).updated_at

        first, second = asyncio.run(scenario())
        assert second > first

    def test_recompute_after_new_data_replaces_output(self, catalog, make_data_node, sample_people):
        async def scenario():
            raw, _, where = await _chain(catalog, make_data_node, sample_people)
            await where.recompute()
            await raw.add([{"id": 100, "age": 80}])

            where = await catalog.compute_node(where.id)
            await where.recompute()
            return await (await where.data_node()).count()

        # 5 original adults + the new record, no duplicates from the first cycle
        assert asyncio.run(scenario()) == 6


class TestComputeEvents:
    """computing_* events fire around the body."""

    def test_events_in_order(self, catalog, make_data_node, sample_people):
        seen = []

        @on_event(ComputeNode, "computing_started")
        def started(node):
            seen.append(("started", node.name))

        @on_event(ComputeNode, "computing_finished")
        def finished(node, outcome, error=None):
            seen.append(("finished", node.name, outcome))

        async def scenario():
            _, select, _ = await _chain(catalog, make_data_node, sample_people)
            await select.recompute()

        asyncio.run(scenario())
        assert seen == [("started", "select"), ("finished", "select", ComputeOutcome.COMPUTED)]

    def test_progress_events(self, catalog, make_data_node, sample_people):
        async def scenario():
            _, select, _ = await _chain(catalog, make_data_node, sample_people)
            progress = []
            select.on("computing_progressed", lambda node, pct: progress.append(pct))
            await select.compute()
            return progress

        # 10 records over parallelism 4 -> shards of 3 -> 4 shards
        assert sorted(asyncio.run(scenario())) == [0, 25, 50, 75]


class TestCatalogLookups:
    """Type tags hydrate the concrete classes."""

    def test_find_by_name_and_id(self, catalog, make_data_node, sample_people):
        async def scenario():
            raw, select, where = await _chain(catalog, make_data_node, sample_people)
            return (
                await catalog.find("select"),
                await catalog.find(where.id),
                await catalog.find("raw"),
                await catalog.required_by(raw),
            )

        select, where, raw, required_by = asyncio.run(scenario())
        assert isinstance(select, SelectKeysNode)
        assert isinstance(where, WhereNode)
        assert raw.name == "raw"
        assert [(r["node"].name, r["type"]) for r in required_by] == [("select", "dependency")]

    def test_output_data_node_reports_writer(self, catalog, make_data_node, sample_people):
        async def scenario():
            _, select, _ = await _chain(catalog, make_data_node, sample_people)
            data_node = await select.data_node()
            return await data_node.required_by()

        required_by = asyncio.run(scenario())
        assert [(r["node"].name, r["type"]) for r in required_by] == [("select", "dataset")]
