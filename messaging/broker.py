# ============================================================================
# MESSAGE BROKER CONTRACT
# ============================================================================
# STATUS: Messaging - Queue operations used by dispatcher and workers
# PURPOSE: Abstract broker so dispatch logic is transport independent
# CREATED: 15 OCT 2026
# ============================================================================
"""
Message Broker

Delivery semantics:
    - a received message stays invisible to other consumers until it is
      acked, abandoned (redelivered) or dead-lettered
    - temporary queues belong to one execution and are deleted afterwards
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Union

from pydantic import BaseModel

Body = Union[str, BaseModel]


@dataclass
class Delivery:
    """A received message awaiting settlement."""
    queue: str
    body: str
    message_id: Optional[str] = None
    raw: Any = None


def encode_body(body: Body) -> str:
    if isinstance(body, BaseModel):
        to_json = getattr(body, "to_json", None)
        return to_json() if callable(to_json) else body.model_dump_json()
    return body


class MessageBroker(ABC):
    """Queue transport."""

    async def connect(self) -> None:
        """Open connections (no-op by default)."""

    async def close(self) -> None:
        """Release connections (no-op by default)."""

    @abstractmethod
    async def declare_queue(self, name: str, temporary: bool = False) -> None:
        """Create a queue if missing; temporary queues expire when idle."""

    @abstractmethod
    async def delete_queue(self, name: str) -> None:
        """Delete a queue; deleting a missing queue is not an error."""

    @abstractmethod
    async def publish(self, queue: str, body: Body, message_id: Optional[str] = None) -> None:
        ...

    async def publish_many(self, queue: str, bodies: Iterable[Body]) -> int:
        count = 0
        for body in bodies:
            await self.publish(queue, body)
            count += 1
        return count

    @abstractmethod
    async def receive(self, queue: str, max_wait_time: Optional[float] = None) -> Optional[Delivery]:
        """One message, or None when nothing arrived within max_wait_time."""

    @abstractmethod
    async def ack(self, delivery: Delivery) -> None:
        ...

    @abstractmethod
    async def abandon(self, delivery: Delivery) -> None:
        ...

    @abstractmethod
    async def dead_letter(self, delivery: Delivery, reason: str, description: str = "") -> None:
        ...

    async def __aenter__(self) -> "MessageBroker":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


__all__ = ["MessageBroker", "Delivery", "Body", "encode_body"]
