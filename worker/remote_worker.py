# ============================================================================
# REMOTE WORKER
# ============================================================================
# STATUS: Worker - Executes dispatched compute work
# PURPOSE: Consume work messages, run node bodies, publish completions
# CREATED: 15 OCT 2026
# ============================================================================
"""
Remote Worker

Per message:
    1. parse (unparseable -> dead-lettered)
    2. hydrate the compute node fresh from the repository
       (unknown node -> error completion)
    3. execution uuid no longer current -> ack without reply
    4. run the batch or the whole body, exceptions become error payloads
    5. publish the completion, then ack

The broker delivers one message at a time, so a slow worker never
holds work another worker could take.
"""

import asyncio
import logging
import uuid
from typing import TYPE_CHECKING, Any, Dict, Optional

from pydantic import ValidationError

from core.errors import NodeNotFoundError
from core.logging import log_context
from core.models import CompletionMessage, ExecutionMessage
from messaging import Delivery, MessageBroker

if TYPE_CHECKING:
    from nodes.catalog import NodeCatalog
    from nodes.compute_node import ComputeNode

logger = logging.getLogger(__name__)


class RemoteWorker:
    """Consumes a work queue and executes compute nodes on behalf of dispatchers."""

    def __init__(
        self,
        catalog: "NodeCatalog",
        broker: MessageBroker,
        queue_name: Optional[str] = None,
        worker_id: Optional[str] = None,
    ):
        self.catalog = catalog
        self.broker = broker
        self.queue_name = queue_name or catalog.defaults.execution.work_queue
        self.worker_id = worker_id or f"worker-{uuid.uuid4().hex[:8]}"

        # Stats
        self.messages_received = 0
        self.messages_completed = 0
        self.messages_failed = 0
        self.messages_skipped = 0

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "worker_id": self.worker_id,
            "queue": self.queue_name,
            "received": self.messages_received,
            "completed": self.messages_completed,
            "failed": self.messages_failed,
            "skipped": self.messages_skipped,
        }

    async def work(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Consume the work queue until stop_event is set."""
        stop_event = stop_event or asyncio.Event()
        wait = self.catalog.defaults.execution.receive_wait_seconds

        await self.broker.declare_queue(self.queue_name)
        logger.info(f"Accepting work on {self.queue_name}...")

        with log_context(worker_id=self.worker_id, component="worker"):
            while not stop_event.is_set():
                try:
                    delivery = await self.broker.receive(self.queue_name, max_wait_time=wait)
                    if delivery is None:
                        continue
                    await self.handle(delivery)
                except asyncio.CancelledError:
                    break
                except Exception as e:
                    logger.exception(f"Error in receive loop: {e}")
                    await asyncio.sleep(1)

        logger.info(f"Stopped accepting work. Stats: {self.stats}")

    async def handle(self, delivery: Delivery) -> None:
        """Process one delivery and settle it."""
        self.messages_received += 1
        try:
            message = ExecutionMessage.from_json(delivery.body)
        except ValidationError as e:
            logger.error(f"Invalid work message {delivery.message_id}: {e}")
            await self.broker.dead_letter(delivery, reason="ParseError", description=str(e))
            self.messages_failed += 1
            return

        try:
            response = await self.process(message)
            if response is not None:
                await self.broker.publish(message.completion_queue_name, response)
        except Exception as e:
            logger.exception(f"[{message.msg_id}] failed handling work message: {e}")
            await self.broker.abandon(delivery)
            self.messages_failed += 1
            return

        await self.broker.ack(delivery)

        if response is None:
            self.messages_skipped += 1
        elif response.is_error:
            self.messages_failed += 1
        else:
            self.messages_completed += 1

    async def process(self, message: ExecutionMessage) -> Optional[CompletionMessage]:
        """Completion for a work message, or None when the work has expired."""
        try:
            node = await self.catalog.compute_node(message.node_id)
        except NodeNotFoundError as e:
            logger.error(f"[{message.msg_id}] {e}")
            return CompletionMessage.failure(e)

        if not node.execution_valid(message.execution_uuid):
            logger.info(f"[{message.msg_id}] work on '{node.name}' has expired. Skipping.")
            return None

        with log_context(node_id=node.id, node_name=node.name, msg_id=message.msg_id,
                         execution_uuid=message.execution_uuid):
            return await self.execute(node, message)

    async def execute(self, node: "ComputeNode", message: ExecutionMessage) -> CompletionMessage:
        logger.info(f"[{message.msg_id}] working on '{node.name}'...")
        try:
            if message.is_batch:
                data = await node.execute_local_batch_computation(message.params)
            else:
                await node.execute_local_computation()
                data = None
        except Exception as e:
            logger.error(f"[{message.msg_id}] '{node.name}' failed: {e}")
            return CompletionMessage.failure(e, msg_id=message.msg_id)

        logger.info(f"[{message.msg_id}] done working on '{node.name}'.")
        return CompletionMessage.success(message.msg_id, data=data or None)


__all__ = ["RemoteWorker"]
