# ============================================================================
# SERVICE BUS BROKER
# ============================================================================
# STATUS: Messaging - Azure Service Bus transport
# PURPOSE: Work and completion queues on Azure Service Bus
# CREATED: 15 OCT 2026
# ============================================================================
"""
Service Bus Broker

Key Design Decisions:
    - Dual auth: connection string OR managed identity
    - Senders and receivers cached per queue
    - Receivers prefetch a single message, so a busy worker never holds
      messages another worker could take
    - Temporary completion queues use auto_delete_on_idle, so a crashed
      dispatcher does not leak queues

Usage:
    async with ServiceBusBroker(ServiceBusConfig.from_env()) as broker:
        await broker.publish("dataflow.python", message)
"""

import logging
from typing import Dict, Optional

from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError
from azure.identity.aio import DefaultAzureCredential, ManagedIdentityCredential
from azure.servicebus import ServiceBusMessage
from azure.servicebus.aio import ServiceBusClient, ServiceBusReceiver, ServiceBusSender
from azure.servicebus.aio.management import ServiceBusAdministrationClient

from .broker import Body, Delivery, MessageBroker, encode_body
from .config import ServiceBusConfig

logger = logging.getLogger(__name__)


class ServiceBusBroker(MessageBroker):
    """MessageBroker backed by Azure Service Bus queues."""

    def __init__(self, config: Optional[ServiceBusConfig] = None):
        """
        Initialize broker.

        Args:
            config: Messaging configuration (defaults to from_env())
        """
        self.config = config or ServiceBusConfig.from_env()
        self._client: Optional[ServiceBusClient] = None
        self._admin: Optional[ServiceBusAdministrationClient] = None
        self._credential = None
        self._senders: Dict[str, ServiceBusSender] = {}
        self._receivers: Dict[str, ServiceBusReceiver] = {}

    async def connect(self) -> None:
        """Establish connection to Service Bus."""
        if self._client is not None:
            return

        retry = dict(
            retry_total=self.config.retry_total,
            retry_backoff_factor=self.config.retry_backoff_factor,
            retry_backoff_max=self.config.retry_backoff_max,
            retry_mode="exponential",
        )

        if self.config.use_connection_string:
            logger.info("Connecting to Service Bus via connection string")
            self._client = ServiceBusClient.from_connection_string(self.config.connection_string, **retry)
            self._admin = ServiceBusAdministrationClient.from_connection_string(self.config.connection_string)
        else:
            if self.config.managed_identity_client_id:
                self._credential = ManagedIdentityCredential(client_id=self.config.managed_identity_client_id)
            else:
                self._credential = DefaultAzureCredential()
            logger.info(
                f"Connecting to Service Bus via managed identity: "
                f"{self.config.fully_qualified_namespace}"
            )
            self._client = ServiceBusClient(
                fully_qualified_namespace=self.config.fully_qualified_namespace,
                credential=self._credential,
                **retry,
            )
            self._admin = ServiceBusAdministrationClient(
                fully_qualified_namespace=self.config.fully_qualified_namespace,
                credential=self._credential,
            )

    async def close(self) -> None:
        """Close senders, receivers and clients."""
        for sender in self._senders.values():
            try:
                await sender.close()
            except Exception as e:
                logger.warning(f"Error closing sender: {e}")
        self._senders.clear()

        for receiver in self._receivers.values():
            try:
                await receiver.close()
            except Exception as e:
                logger.warning(f"Error closing receiver: {e}")
        self._receivers.clear()

        if self._admin:
            await self._admin.close()
            self._admin = None
        if self._client:
            await self._client.close()
            self._client = None
        if self._credential:
            await self._credential.close()
            self._credential = None

        logger.info("Service Bus connection closed")

    async def _sender(self, queue: str) -> ServiceBusSender:
        await self.connect()
        if queue not in self._senders:
            self._senders[queue] = self._client.get_queue_sender(queue_name=queue)
        return self._senders[queue]

    async def _receiver(self, queue: str) -> ServiceBusReceiver:
        await self.connect()
        if queue not in self._receivers:
            self._receivers[queue] = self._client.get_queue_receiver(queue_name=queue, prefetch_count=1)
            logger.info(f"Receiver connected to queue: {queue}")
        return self._receivers[queue]

    # =========================================================================
    # QUEUES
    # =========================================================================

    async def declare_queue(self, name: str, temporary: bool = False) -> None:
        await self.connect()
        options = {"auto_delete_on_idle": self.config.temporary_queue_idle} if temporary else {}
        try:
            await self._admin.create_queue(name, **options)
            logger.info(f"Created queue: {name}")
        except ResourceExistsError:
            logger.debug(f"Queue already exists: {name}")

    async def delete_queue(self, name: str) -> None:
        await self.connect()
        sender = self._senders.pop(name, None)
        if sender is not None:
            await sender.close()
        receiver = self._receivers.pop(name, None)
        if receiver is not None:
            await receiver.close()

        try:
            await self._admin.delete_queue(name)
            logger.info(f"Deleted queue: {name}")
        except ResourceNotFoundError:
            logger.debug(f"Queue already gone: {name}")

    # =========================================================================
    # PUBLISH / RECEIVE
    # =========================================================================

    async def publish(self, queue: str, body: Body, message_id: Optional[str] = None) -> None:
        sender = await self._sender(queue)
        await sender.send_messages(ServiceBusMessage(body=encode_body(body), message_id=message_id))
        logger.debug(f"Published message to {queue}")

    async def receive(self, queue: str, max_wait_time: Optional[float] = None) -> Optional[Delivery]:
        receiver = await self._receiver(queue)
        while True:
            messages = await receiver.receive_messages(max_message_count=1, max_wait_time=max_wait_time or 5.0)
            if messages:
                break
            if max_wait_time is not None:
                return None

        raw = messages[0]
        return Delivery(queue=queue, body=str(raw), message_id=raw.message_id, raw=raw)

    # =========================================================================
    # SETTLEMENT
    # =========================================================================

    async def ack(self, delivery: Delivery) -> None:
        """Complete (acknowledge) a message after successful processing."""
        await self._receivers[delivery.queue].complete_message(delivery.raw)
        logger.debug(f"Completed message: {delivery.message_id}")

    async def abandon(self, delivery: Delivery) -> None:
        """Abandon a message (return to queue for retry)."""
        await self._receivers[delivery.queue].abandon_message(delivery.raw)
        logger.debug(f"Abandoned message: {delivery.message_id}")

    async def dead_letter(self, delivery: Delivery, reason: str, description: str = "") -> None:
        """Dead-letter a message (permanent failure)."""
        await self._receivers[delivery.queue].dead_letter_message(
            delivery.raw,
            reason=reason,
            error_description=description,
        )
        logger.warning(f"Dead-lettered message {delivery.message_id}: {reason}")


__all__ = ["ServiceBusBroker"]
