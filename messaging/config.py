# ============================================================================
# MESSAGING CONFIGURATION
# ============================================================================
# STATUS: Messaging - Service Bus configuration
# PURPOSE: Centralize broker connection settings
# CREATED: 15 OCT 2026
# ============================================================================
"""
Messaging Configuration

Configuration for Azure Service Bus connections. Supports both connection
string and managed identity authentication.
"""

import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional


@dataclass
class ServiceBusConfig:
    """
    Configuration for Azure Service Bus messaging.

    Loaded from environment variables.
    """
    # Connection - either connection_string OR fully_qualified_namespace
    connection_string: Optional[str] = None
    fully_qualified_namespace: Optional[str] = None

    # Managed identity settings
    managed_identity_client_id: Optional[str] = None

    # Temporary completion queues are deleted by the service once idle
    temporary_queue_idle_minutes: int = 5

    # Retry configuration
    retry_total: int = 5
    retry_backoff_factor: float = 0.5
    retry_backoff_max: float = 60

    @classmethod
    def from_env(cls) -> "ServiceBusConfig":
        """
        Load configuration from environment variables.

        For connection string auth:
            SERVICE_BUS_CONNECTION_STRING: Service Bus connection string

        For managed identity auth:
            SERVICE_BUS_NAMESPACE: Fully qualified namespace (e.g., myns.servicebus.windows.net)
            AZURE_CLIENT_ID: Optional client ID for user-assigned managed identity
        """
        connection_string = os.environ.get("SERVICE_BUS_CONNECTION_STRING")
        namespace = os.environ.get("SERVICE_BUS_NAMESPACE", os.environ.get("SERVICE_BUS_FQDN"))
        if not connection_string and not namespace:
            raise ValueError(
                "SERVICE_BUS_CONNECTION_STRING or SERVICE_BUS_NAMESPACE environment variable is required"
            )

        return cls(
            connection_string=connection_string,
            fully_qualified_namespace=namespace,
            managed_identity_client_id=os.environ.get("AZURE_CLIENT_ID"),
            temporary_queue_idle_minutes=int(os.environ.get("SERVICE_BUS_TEMP_QUEUE_IDLE_MIN", "5")),
        )

    @property
    def use_connection_string(self) -> bool:
        """Check if connection string auth should be used."""
        return bool(self.connection_string)

    @property
    def temporary_queue_idle(self) -> timedelta:
        return timedelta(minutes=self.temporary_queue_idle_minutes)
