# ============================================================================
# DOUBLE BUFFERING TESTS
# ============================================================================
# STATUS: Tests - Read/write slot swapping
# PURPOSE: Verify readers never see a partially written dataset
# CREATED: 15 OCT 2026
# ============================================================================
"""
Double Buffering Tests

Covers:
1. Dataset names per slot; unknown slot names are rejected
2. Compute nodes align their output's buffering with clear_data_on_compute
3. A compute cycle writes the write slot and swaps on success
4. A failed cycle leaves the read slot untouched
5. Swap is rejected when buffering is off
6. safely_clear_write_dataset respects a running writer
7. Appending output (clear_data_on_compute=False)
8. Node objects loaded before a swap elsewhere use the current slots

Run with:
    pytest tests/test_double_buffering.py -v
"""

import asyncio

import pytest

from core.contracts import DatasetSlot
from core.errors import ConfigurationError
from core.models import DataNodeRecord
from nodes import ComputeNode


class TestDatasetNames:
    """Slot-based dataset naming."""

    def test_single_buffer(self):
        record = DataNodeRecord(name="sales", db_name="test")
        assert record.read_dataset_name == record.write_dataset_name == "sales"
        assert record.valid_dataset_names == ["sales"]

    def test_double_buffer(self):
        record = DataNodeRecord(name="sales", db_name="test", use_double_buffering=True)
        assert record.read_dataset_name == "sales_buffer1"
        assert record.write_dataset_name == "sales_buffer2"

    def test_slots_must_differ(self):
        with pytest.raises(ValueError):
            DataNodeRecord(name="sales", db_name="test", read_slot=2, write_slot=2)

    def test_slot_arguments(self, make_data_node):
        async def scenario():
            node = await make_data_node("sales", use_double_buffering=True)
            names = (node._dataset_for(DatasetSlot.READ), node._dataset_for("write"))
            with pytest.raises(ValueError):
                await node.recreate_dataset(slot="wirte")
            with pytest.raises(ValueError):
                await node.create_non_unique_indexes(slot="buffer2")
            return names

        assert asyncio.run(scenario()) == ("sales_buffer1", "sales_buffer2")


class ExplodingNode(ComputeNode):
    def compute_batch(self, records):
        raise ValueError("bad batch")


class ObservedCopyNode(ComputeNode):
    """Copies records and records what readers of the output see meanwhile."""

    def __init__(self, record, catalog):
        super().__init__(record, catalog)
        self.visible_counts = []

    async def compute_batch(self, records):
        reader = await self.catalog.data_node(self.record.data_node_id)
        self.visible_counts.append(await reader.count())
        return records


class TestSwap:
    """Swapping after a successful compute cycle."""

    def test_buffering_follows_clear_data_on_compute(self, catalog, make_data_node):
        async def scenario():
            raw = await make_data_node("raw")
            out = await make_data_node("out")
            append = await make_data_node("append")
            await catalog.create_compute_node(name="a", dependency_ids=[raw.id], data_node_id=out.id)
            await catalog.create_compute_node(
                name="b", dependency_ids=[raw.id], data_node_id=append.id, clear_data_on_compute=False,
            )
            await out.reload()
            await append.reload()
            return out.record.use_double_buffering, append.record.use_double_buffering

        assert asyncio.run(scenario()) == (True, False)

    def test_compute_swaps_slots(self, catalog, make_data_node, sample_people):
        async def scenario():
            raw = await make_data_node("raw", sample_people(4))
            out = await make_data_node("out")
            node = await catalog.create_compute_node(name="copy", dependency_ids=[raw.id], data_node_id=out.id)

            await node.compute()
            await out.reload()
            first = (out.record.read_slot, out.read_dataset_name, await out.count())

            await raw.add(sample_people(6)[4:])
            await node.compute(force=True)
            await out.reload()
            second = (out.record.read_slot, out.read_dataset_name, await out.count())
            return first, second

        first, second = asyncio.run(scenario())
        assert first == (2, "out_buffer2", 4)
        assert second == (1, "out_buffer1", 6)

    def test_failed_cycle_keeps_read_slot(self, catalog, make_data_node, sample_people):
        async def scenario():
            raw = await make_data_node("raw", sample_people(4))
            out = await make_data_node("out")
            created = await catalog.create_compute_node(name="copy", dependency_ids=[raw.id], data_node_id=out.id)
            await created.compute()

            failing = ExplodingNode(created.record, catalog)
            with pytest.raises(ValueError):
                await failing.compute(force=True)

            await out.reload()
            return out.record.read_slot, await out.count()

        assert asyncio.run(scenario()) == (2, 4)

    def test_swap_requires_double_buffering(self, make_data_node):
        async def scenario():
            raw = await make_data_node("raw")
            await raw.swap_read_write_datasets()

        with pytest.raises(ConfigurationError):
            asyncio.run(scenario())

    def test_appending_output(self, catalog, make_data_node, sample_people):
        async def scenario():
            raw = await make_data_node("raw", sample_people(3))
            out = await make_data_node("out")
            node = await catalog.create_compute_node(
                name="append", dependency_ids=[raw.id], data_node_id=out.id, clear_data_on_compute=False,
            )
            await node.compute()
            await node.compute(force=True)
            await out.reload()
            return await out.count()

        assert asyncio.run(scenario()) == 6


class TestWriteDatasetCleanup:
    """Dropping the write slot between cycles."""

    def test_skipped_while_writer_holds_lease(self, catalog, make_data_node, sample_people):
        async def scenario():
            raw = await make_data_node("raw", sample_people(3))
            out = await make_data_node("out")
            node = await catalog.create_compute_node(name="copy", dependency_ids=[raw.id], data_node_id=out.id)
            await node.compute()
            await out.reload()
            await out.recreate_dataset(slot=DatasetSlot.WRITE)
            await out.backend.save([{"id": 1}])

            await node.acquire_lease()
            await out.safely_clear_write_dataset()
            kept = await out.backend.usage(dataset=out.write_dataset_name)

            await node.release_lease()
            await out.safely_clear_write_dataset()
            dropped = await out.backend.usage(dataset=out.write_dataset_name)
            return kept["memory_bytes"], dropped["memory_bytes"]

        kept, dropped = asyncio.run(scenario())
        assert kept > 0
        assert dropped == 0

    def test_drop_dataset_drops_both_slots(self, catalog, make_data_node, sample_people):
        async def scenario():
            raw = await make_data_node("raw", sample_people(3))
            out = await make_data_node("out")
            node = await catalog.create_compute_node(name="copy", dependency_ids=[raw.id], data_node_id=out.id)
            await node.compute()
            await out.reload()
            await out.drop_dataset()
            return await out.count()

        assert asyncio.run(scenario()) == 0


class TestStaleHandles:
    """Node objects loaded before another holder swapped the buffers."""

    def test_compute_after_swap_elsewhere(self, catalog, make_data_node, sample_people):
        async def scenario():
            raw = await make_data_node("raw", sample_people(3))
            out = await make_data_node("out")
            creator = await catalog.create_compute_node(
                ObservedCopyNode, name="copy", dependency_ids=[raw.id], data_node_id=out.id,
            )

            other = await catalog.compute_node(creator.id)
            await other.compute()
            await raw.add(sample_people(5)[3:])

            await creator.compute()
            reader = await catalog.data_node(out.id)
            return creator.visible_counts, reader.record.read_slot, await reader.count()

        visible, read_slot, count = asyncio.run(scenario())
        assert visible and set(visible) == {3}
        assert read_slot == 1
        assert count == 5

    def test_save_keeps_swapped_slots(self, catalog, make_data_node):
        async def scenario():
            out = await make_data_node("out", use_double_buffering=True)
            stale = await catalog.data_node(out.id)
            await out.swap_read_write_datasets()

            stale.record.update_expected_within = 60
            await stale.save()
            stored = await catalog.data_node(out.id)
            return (
                stale.record.read_slot,
                stored.record.read_slot,
                stored.record.update_expected_within,
            )

        assert asyncio.run(scenario()) == (2, 2, 60)
