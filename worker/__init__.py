# ============================================================================
# WORKER MODULE
# ============================================================================
# STATUS: Worker - Remote execution components
# PURPOSE: Execute compute node work dispatched over a message broker
# CREATED: 15 OCT 2026
# ============================================================================
"""
Worker Module

- remote_worker: consumes a work queue and publishes completions
- main: worker process entry point
"""

from worker.remote_worker import RemoteWorker

__all__ = ["RemoteWorker"]
