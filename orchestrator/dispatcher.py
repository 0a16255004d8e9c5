# ============================================================================
# EXECUTOR / DISPATCHER
# ============================================================================
# STATUS: Orchestrator - Runs compute node bodies locally or remotely
# PURPOSE: Dispatch work messages and await completions
# CREATED: 15 OCT 2026
# ============================================================================
"""
Executor

    local         -> node.execute_local_computation()
    remote        -> one message with {} params
    remote_batch  -> one message per node.make_batch_params() entry

Remote flow:
    1. fresh execution uuid persisted on the node
    2. temporary completion queue declared
    3. messages published to the node's work queue
    4. completions read until one success per message or the first error
       (`data` in a success is appended to the output data node)
    5. completion queue deleted (always)

Workers discard messages whose execution uuid no longer matches the node,
so messages outliving a finished execution are harmless.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, List, Optional

from core.contracts import ExecutionModel
from core.errors import ConfigurationError, RemoteExecutionError
from core.logging import log_checkpoint, log_context
from core.models import CompletionMessage, ExecutionMessage
from messaging import MessageBroker

if TYPE_CHECKING:
    from nodes.catalog import NodeCatalog
    from nodes.compute_node import ComputeNode

logger = logging.getLogger(__name__)


class Executor:
    """Runs a compute node's body according to its execution model."""

    def __init__(self, catalog: "NodeCatalog", broker: Optional[MessageBroker] = None):
        self.catalog = catalog
        self.broker = broker

    async def execute(self, node: "ComputeNode") -> None:
        model = node.record.execution_model
        if not model.is_remote():
            await node.execute_local_computation()
            return

        if self.broker is None:
            raise ConfigurationError(
                [f"execution model '{model.value}' requires a message broker"],
                node_name=node.name,
            )
        await self.execute_remote_computation(node, is_batch=model == ExecutionModel.REMOTE_BATCH)

    # =========================================================================
    # REMOTE EXECUTION
    # =========================================================================

    async def make_execution_messages(
        self,
        node: "ComputeNode",
        is_batch: bool,
        completion_queue_name: str,
    ) -> List[ExecutionMessage]:
        params_list = await node.make_batch_params() if is_batch else [{}]
        return [
            ExecutionMessage(
                msg_id=idx,
                node_id=node.id,
                is_batch=is_batch,
                params=params,
                execution_uuid=node.record.execution_uuid,
                completion_queue_name=completion_queue_name,
            )
            for idx, params in enumerate(params_list)
        ]

    async def execute_remote_computation(self, node: "ComputeNode", is_batch: bool) -> None:
        execution_uuid = await node.start_execution()
        completion_queue = f"{node.execution_queue}.completion.{execution_uuid}"

        with log_context(node_id=node.id, node_name=node.name, execution_uuid=execution_uuid):
            messages = await self.make_execution_messages(node, is_batch, completion_queue)
            if not messages:
                logger.info(f"No work to dispatch for '{node.name}'")
                return

            logger.info(f"Started processing '{node.name}'")
            await self.broker.declare_queue(completion_queue, temporary=True)
            logger.info(f"Opened a completion queue for '{node.name}': {completion_queue}")
            try:
                await self.broker.declare_queue(node.execution_queue)
                await self.broker.publish_many(node.execution_queue, messages)
                logger.info(f"Dispatched {len(messages)} messages to {node.execution_queue}")

                timeout = self.catalog.defaults.execution.completion_timeout_seconds
                awaiting = self.await_execution_completion(node, completion_queue, len(messages))
                if timeout > 0:
                    try:
                        await asyncio.wait_for(awaiting, timeout=timeout)
                    except asyncio.TimeoutError:
                        raise TimeoutError(
                            f"No completion for '{node.name}' within {timeout}s"
                        ) from None
                else:
                    await awaiting
            finally:
                await self.broker.delete_queue(completion_queue)

            log_checkpoint("dispatch_complete", {"node": node.name, "messages": len(messages)})
            logger.info(f"Finished processing '{node.name}'")

    async def await_execution_completion(
        self,
        node: "ComputeNode",
        completion_queue: str,
        expected_completion_count: int,
    ) -> None:
        """Consume completions; raise RemoteExecutionError on the first error."""
        completed = 0
        while completed < expected_completion_count:
            delivery = await self.broker.receive(completion_queue)
            if delivery is None:
                continue
            await self.broker.ack(delivery)

            completion = CompletionMessage.from_json(delivery.body)
            if completion.is_error:
                logger.error(f"Remote execution of '{node.name}' failed: {completion.error.message}")
                raise RemoteExecutionError(completion.error.message, completion.error.backtrace)

            if completion.data:
                data_node = await node.data_node()
                if data_node is not None:
                    await data_node.add(completion.data)

            completed += 1
            await node.send_heartbeat()
            logger.debug(f"[{completion.msg_id}] completed ({completed}/{expected_completion_count})")


__all__ = ["Executor"]
