# ============================================================================
# WORKER MAIN ENTRY POINT
# ============================================================================
# STATUS: Worker - Process entry point
# PURPOSE: Start a remote worker in standalone mode
# CREATED: 15 OCT 2026
# ============================================================================
"""
Worker Main Entry Point

Starts a worker process that:
1. Loads node type modules
2. Opens the database pool and node repository
3. Connects to Service Bus
4. Processes work messages until SIGINT/SIGTERM

Usage:
    python -m worker.main --queue dataflow.python

Environment Variables:
    DATAFLOW_WORK_QUEUE: Queue name to listen on (when --queue is omitted)
    DATAFLOW_LOG_LEVEL: Log level (default INFO)
    DATAFLOW_LOG_FORMAT: "json" for structured output
    NODE_MODULES: Comma-separated modules defining custom node types
    SERVICE_BUS_CONNECTION_STRING / SERVICE_BUS_NAMESPACE: Service Bus connection
    DATABASE_URL / POSTGRES_*: PostgreSQL connection
"""

import argparse
import asyncio
import importlib
import logging
import os
import signal
from typing import List, Optional

from core.config import get_defaults
from core.logging import configure_logging

logger = logging.getLogger(__name__)


# ============================================================================
# NODE TYPE LOADING
# ============================================================================

def load_node_modules(modules: Optional[List[str]] = None) -> int:
    """
    Import modules so their node types register.

    Args:
        modules: Module names to import (defaults to NODE_MODULES)

    Returns:
        Number of modules loaded
    """
    import nodes  # noqa: F401  built-in node types

    if modules is None:
        extra = os.getenv("NODE_MODULES", "")
        modules = [m.strip() for m in extra.split(",") if m.strip()]

    loaded = 0
    for module_name in modules:
        try:
            importlib.import_module(module_name)
            logger.info(f"Loaded node module: {module_name}")
            loaded += 1
        except ImportError as e:
            logger.warning(f"Failed to load node module {module_name}: {e}")

    from nodes import list_node_types
    logger.info(f"Registered node types: {list_node_types()}")
    return loaded


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Execute dispatched compute node work.")
    parser.add_argument("--queue", default=get_defaults().execution.work_queue, help="Work queue to consume")
    parser.add_argument("--module", action="append", dest="modules", help="Extra node type module (repeatable)")
    parser.add_argument("--log-level", default=os.getenv("DATAFLOW_LOG_LEVEL", "INFO"))
    return parser.parse_args(argv)


# ============================================================================
# MAIN
# ============================================================================

async def main(args: argparse.Namespace) -> None:
    """Main entry point."""
    from messaging.service_bus import ServiceBusBroker
    from nodes import NodeCatalog
    from repositories import DatabasePool, PostgresNodeRepository
    from worker.remote_worker import RemoteWorker

    load_node_modules(args.modules)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def shutdown_handler():
        logger.info("Shutdown signal received")
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, shutdown_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    async with DatabasePool() as pool:
        catalog = NodeCatalog(PostgresNodeRepository(pool))
        async with ServiceBusBroker() as broker:
            worker = RemoteWorker(catalog, broker, queue_name=args.queue)
            logger.info(f"Worker {worker.worker_id} starting on {args.queue}")
            await worker.work(stop_event)

    logger.info("Worker stopped")


def run(argv: Optional[List[str]] = None) -> None:
    """Synchronous entry point."""
    args = parse_args(argv)
    configure_logging(level=args.log_level)
    asyncio.run(main(args))


if __name__ == "__main__":
    run()
