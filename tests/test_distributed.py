# ============================================================================
# DISTRIBUTED EXECUTION TESTS
# ============================================================================
# STATUS: Tests - Dispatcher and remote worker over the in-memory broker
# PURPOSE: Verify the work/completion message protocol end to end
# CREATED: 15 OCT 2026
# ============================================================================
"""
Distributed Execution Tests

Covers:
1. remote_batch: one message per shard, worker output lands in the data node
2. remote: a single message running the whole body
3. Remote errors surface as RemoteExecutionError with the remote backtrace
4. Completion data is appended to the output data node
5. Messages with an expired execution uuid are acked without a reply
6. Unknown nodes produce an error completion
7. Unparseable messages are dead-lettered
8. Completion queues are always deleted; zero messages dispatch nothing
   (including when the first error arrives before the other shards answer)
9. Remote execution without a broker is a configuration error

Run with:
    pytest tests/test_distributed.py -v
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from core.contracts import ExecutionModel
from core.errors import ConfigurationError, RemoteExecutionError
from core.models import CompletionMessage, ErrorPayload, ExecutionMessage
from messaging import Delivery
from nodes import ComputeNode, register_node_type
from orchestrator import Executor
from worker import RemoteWorker


@register_node_type("TestRemoteFailingNode")
class RemoteFailingNode(ComputeNode):
    def compute_batch(self, records):
        raise ValueError("boom")


@register_node_type("TestRemoteReplyNode")
class RemoteReplyNode(ComputeNode):
    """Returns its shard output in the completion instead of writing it."""

    async def execute_local_batch_computation(self, params):
        source = await self.source_data_node()
        return [{"id": r["id"], "remote": True} for r in await source.all(where=params["where"])]


async def _remote_node(catalog, make_data_node, records, node_cls=ComputeNode, **fields):
    raw = await make_data_node("raw", records)
    out = await make_data_node("out")
    return await catalog.create_compute_node(
        node_cls, name="remote", dependency_ids=[raw.id], data_node_id=out.id, **fields
    )


async def _with_worker(catalog, broker, body):
    """Run body() while a RemoteWorker consumes the default work queue."""
    worker = RemoteWorker(catalog, broker, worker_id="worker-test")
    stop_event = asyncio.Event()
    task = asyncio.create_task(worker.work(stop_event))
    try:
        return await body(), worker
    finally:
        stop_event.set()
        await asyncio.wait_for(task, timeout=1)


# ============================================================================
# END TO END
# ============================================================================

class TestRemoteExecution:
    """Dispatcher and worker sharing one catalog and broker."""

    def test_remote_batch(self, catalog, broker, make_data_node, sample_people):
        catalog.executor = Executor(catalog, broker=broker)

        async def scenario():
            node = await _remote_node(
                catalog, make_data_node, sample_people(10), execution_model=ExecutionModel.REMOTE_BATCH,
            )

            async def body():
                await node.compute()
                return await (await node.data_node()).all(sort={"id": 1})

            return await _with_worker(catalog, broker, body)

        (output, worker) = asyncio.run(scenario())
        assert [r["id"] for r in output] == list(range(10))
        assert worker.messages_completed == 4

        work = [json.loads(body) for queue, body in broker.published if queue == "dataflow.python"]
        assert [m["msg_id"] for m in work] == [0, 1, 2, 3]
        assert all(m["is_batch"] for m in work)
        assert len({m["execution_uuid"] for m in work}) == 1
        assert broker.deleted_queues == [work[0]["completion_queue_name"]]

    def test_remote_single_message(self, catalog, broker, make_data_node, sample_people):
        catalog.executor = Executor(catalog, broker=broker)

        async def scenario():
            node = await _remote_node(
                catalog, make_data_node, sample_people(5),
                execution_model=ExecutionModel.REMOTE, execution_queue="custom.queue",
            )
            worker = RemoteWorker(catalog, broker, queue_name="custom.queue")
            stop_event = asyncio.Event()
            task = asyncio.create_task(worker.work(stop_event))
            await node.compute()
            stop_event.set()
            await task
            return await (await node.data_node()).count()

        assert asyncio.run(scenario()) == 5
        work = [json.loads(body) for queue, body in broker.published if queue == "custom.queue"]
        assert len(work) == 1
        assert work[0]["params"] == {}
        assert work[0]["is_batch"] is False

    def test_remote_error(self, catalog, broker, repository, make_data_node, sample_people):
        catalog.executor = Executor(catalog, broker=broker)

        async def scenario():
            node = await _remote_node(
                catalog, make_data_node, sample_people(4), RemoteFailingNode,
                execution_model=ExecutionModel.REMOTE_BATCH,
            )

            async def body():
                with pytest.raises(RemoteExecutionError) as exc_info:
                    await node.compute()
                return exc_info.value

            error, _ = await _with_worker(catalog, broker, body)
            return error, await repository.get_compute_node(node.id)

        error, record = asyncio.run(scenario())
        assert error.remote_message == "ValueError: boom"
        assert any("compute_batch" in line for line in error.backtrace)
        assert not record.is_computing
        assert record.execution_uuid is None
        assert broker.deleted_queues

    def test_completion_data_is_appended(self, catalog, broker, make_data_node, sample_people):
        catalog.executor = Executor(catalog, broker=broker)

        async def scenario():
            node = await _remote_node(
                catalog, make_data_node, sample_people(6), RemoteReplyNode,
                execution_model=ExecutionModel.REMOTE_BATCH,
            )

            async def body():
                await node.compute()
                return await (await node.data_node()).all(sort={"id": 1})

            output, _ = await _with_worker(catalog, broker, body)
            return output

        output = asyncio.run(scenario())
        assert output == [{"id": i, "remote": True} for i in range(6)]

    def test_zero_messages(self, catalog, broker, make_data_node):
        catalog.executor = Executor(catalog, broker=broker)

        async def scenario():
            node = await _remote_node(catalog, make_data_node, [], execution_model=ExecutionModel.REMOTE_BATCH)
            await node.compute()

        asyncio.run(scenario())
        assert broker.published == []
        assert broker.queue_names() == []

    def test_remote_without_broker(self, catalog, make_data_node, sample_people):
        async def scenario():
            node = await _remote_node(
                catalog, make_data_node, sample_people(2), execution_model=ExecutionModel.REMOTE,
            )
            await node.compute()

        with pytest.raises(ConfigurationError, match="requires a message broker"):
            asyncio.run(scenario())

    def test_completion_timeout(self, catalog, broker, make_data_node, sample_people):
        catalog.executor = Executor(catalog, broker=broker)
        catalog.defaults.execution = type(catalog.defaults.execution)(
            parallelism=2, completion_timeout_seconds=0.05,
        )

        async def scenario():
            node = await _remote_node(
                catalog, make_data_node, sample_people(2), execution_model=ExecutionModel.REMOTE,
            )
            # No worker consumes the queue
            await node.compute()

        with pytest.raises(TimeoutError):
            asyncio.run(scenario())
        assert len(broker.deleted_queues) == 1

    def test_first_error_ends_wait_without_timeout(self, catalog, broker, repository, make_data_node, sample_people):
        """One shard reports an error; the other shards never answer."""
        catalog.executor = Executor(catalog, broker=broker)
        assert catalog.defaults.execution.completion_timeout_seconds == 0

        async def reply_with_one_error():
            while not any(queue == "dataflow.python" for queue, _ in broker.published):
                await asyncio.sleep(0.01)
            work = [json.loads(body) for queue, body in broker.published if queue == "dataflow.python"]
            error = ErrorPayload(message="KeyError: 'city'", backtrace=["worker.py:12 in compute_batch"])
            await broker.publish(work[0]["completion_queue_name"], CompletionMessage(msg_id=2, error=error).to_json())
            return work

        async def scenario():
            node = await _remote_node(
                catalog, make_data_node, sample_people(4), execution_model=ExecutionModel.REMOTE_BATCH,
            )
            responder = asyncio.create_task(reply_with_one_error())
            with pytest.raises(RemoteExecutionError) as exc_info:
                await asyncio.wait_for(node.compute(), timeout=2)
            return exc_info.value, await responder, await repository.get_compute_node(node.id)

        error, work, record = asyncio.run(scenario())
        assert len(work) == 4
        assert error.remote_message == "KeyError: 'city'"
        assert error.backtrace == ["worker.py:12 in compute_batch"]
        assert broker.deleted_queues == [work[0]["completion_queue_name"]]
        assert broker.pending("dataflow.python") == 4
        assert not record.is_computing


# ============================================================================
# WORKER MESSAGE HANDLING
# ============================================================================

class TestWorkerHandling:
    """Settlement and replies for individual deliveries."""

    def _message(self, node_id, execution_uuid="stale", **fields):
        return ExecutionMessage(
            msg_id=fields.pop("msg_id", 0),
            node_id=node_id,
            execution_uuid=execution_uuid,
            completion_queue_name="completions",
            **fields,
        )

    def test_expired_execution_is_skipped(self, catalog, broker, make_data_node, sample_people):
        async def scenario():
            node = await _remote_node(catalog, make_data_node, sample_people(2))
            await node.start_execution()
            worker = RemoteWorker(catalog, broker)
            delivery = Delivery(queue="dataflow.python", body=self._message(node.id).to_json())
            await worker.handle(delivery)
            return worker

        worker = asyncio.run(scenario())
        assert len(broker.acked) == 1
        assert broker.published == []
        assert worker.messages_skipped == 1

    def test_unknown_node_replies_with_error(self, catalog, broker):
        async def scenario():
            worker = RemoteWorker(catalog, broker)
            delivery = Delivery(queue="dataflow.python", body=self._message("missing").to_json())
            await worker.handle(delivery)
            queue, body = broker.published[0]
            return queue, CompletionMessage.from_json(body)

        queue, completion = asyncio.run(scenario())
        assert queue == "completions"
        assert completion.is_error
        assert completion.msg_id is None
        assert "missing" in completion.error.message
        assert len(broker.acked) == 1

    def test_unparseable_message_is_dead_lettered(self, catalog, broker):
        async def scenario():
            worker = RemoteWorker(catalog, broker)
            await worker.handle(Delivery(queue="dataflow.python", body="not json", message_id="m-1"))
            return worker

        worker = asyncio.run(scenario())
        assert [(d.message_id, reason) for d, reason in broker.dead_lettered] == [("m-1", "ParseError")]
        assert broker.acked == []
        assert worker.messages_failed == 1

    def test_reply_is_published_before_ack(self, catalog, make_data_node, sample_people):
        calls = []
        broker = AsyncMock()
        broker.publish.side_effect = lambda *a, **kw: calls.append("publish")
        broker.ack.side_effect = lambda *a, **kw: calls.append("ack")

        async def scenario():
            node = await _remote_node(catalog, make_data_node, sample_people(2))
            execution_uuid = await node.start_execution()
            worker = RemoteWorker(catalog, broker)
            message = self._message(node.id, execution_uuid=execution_uuid, is_batch=True,
                                    params={"where": {}})
            await worker.handle(Delivery(queue="dataflow.python", body=message.to_json()))

        asyncio.run(scenario())
        assert calls == ["publish", "ack"]

    def test_failed_publish_abandons(self, catalog):
        broker = AsyncMock()
        broker.publish.side_effect = ConnectionError("bus down")

        async def scenario():
            worker = RemoteWorker(catalog, broker)
            await worker.handle(Delivery(queue="dataflow.python", body=self._message("missing").to_json()))

        asyncio.run(scenario())
        broker.abandon.assert_awaited_once()
        broker.ack.assert_not_called()
