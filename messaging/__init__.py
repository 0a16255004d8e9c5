# ============================================================================
# MESSAGING MODULE
# ============================================================================
# STATUS: Messaging - Queue transports for distributed execution
# PURPOSE: Dispatch work to remote workers, receive completions
# CREATED: 15 OCT 2026
# ============================================================================
"""
Messaging Module

Usage:
    from messaging import InMemoryBroker, ServiceBusBroker, ServiceBusConfig

    broker = ServiceBusBroker(ServiceBusConfig.from_env())
    await broker.publish("dataflow.python", message)

ServiceBusBroker is imported lazily so the in-memory broker works without
the Azure SDK configured.
"""

from .broker import Delivery, MessageBroker
from .config import ServiceBusConfig
from .memory import InMemoryBroker


def __getattr__(name):
    if name == "ServiceBusBroker":
        from .service_bus import ServiceBusBroker
        return ServiceBusBroker
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "MessageBroker",
    "Delivery",
    "InMemoryBroker",
    "ServiceBusConfig",
    "ServiceBusBroker",
]
