# ============================================================================
# IN-MEMORY BROKER
# ============================================================================
# STATUS: Messaging - Process-local queues
# PURPOSE: Broker for tests and single-process distributed execution
# CREATED: 15 OCT 2026
# ============================================================================
"""
In-memory broker on asyncio queues.

Settled messages are kept in `acked`, `abandoned` and `dead_lettered` so
tests can assert on delivery outcomes.
"""

import asyncio
import itertools
import logging
from typing import Dict, List, Optional, Tuple

from .broker import Body, Delivery, MessageBroker, encode_body

logger = logging.getLogger(__name__)


class InMemoryBroker(MessageBroker):
    """Broker whose queues live in this process."""

    def __init__(self):
        self._queues: Dict[str, asyncio.Queue] = {}
        self._temporary: set = set()
        self._ids = itertools.count(1)
        self.published: List[Tuple[str, str]] = []
        self.acked: List[Delivery] = []
        self.abandoned: List[Delivery] = []
        self.dead_lettered: List[Tuple[Delivery, str]] = []
        self.deleted_queues: List[str] = []

    def _queue(self, name: str) -> asyncio.Queue:
        if name not in self._queues:
            self._queues[name] = asyncio.Queue()
        return self._queues[name]

    def queue_names(self) -> List[str]:
        return sorted(self._queues)

    def pending(self, name: str) -> int:
        queue = self._queues.get(name)
        return queue.qsize() if queue is not None else 0

    async def declare_queue(self, name: str, temporary: bool = False) -> None:
        self._queue(name)
        if temporary:
            self._temporary.add(name)

    async def delete_queue(self, name: str) -> None:
        if self._queues.pop(name, None) is not None:
            self.deleted_queues.append(name)
        self._temporary.discard(name)

    async def publish(self, queue: str, body: Body, message_id: Optional[str] = None) -> None:
        text = encode_body(body)
        self.published.append((queue, text))
        await self._queue(queue).put((message_id or str(next(self._ids)), text))

    async def receive(self, queue: str, max_wait_time: Optional[float] = None) -> Optional[Delivery]:
        source = self._queue(queue)
        try:
            if max_wait_time is None:
                message_id, body = await source.get()
            else:
                message_id, body = await asyncio.wait_for(source.get(), timeout=max_wait_time)
        except asyncio.TimeoutError:
            return None
        return Delivery(queue=queue, body=body, message_id=message_id)

    async def ack(self, delivery: Delivery) -> None:
        self.acked.append(delivery)

    async def abandon(self, delivery: Delivery) -> None:
        self.abandoned.append(delivery)
        if delivery.queue in self._queues:
            await self._queues[delivery.queue].put((delivery.message_id, delivery.body))

    async def dead_letter(self, delivery: Delivery, reason: str, description: str = "") -> None:
        logger.warning(f"Dead-lettered message {delivery.message_id}: {reason}")
        self.dead_lettered.append((delivery, reason))


__all__ = ["InMemoryBroker"]
