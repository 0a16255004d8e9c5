# ============================================================================
# ORCHESTRATOR MODULE
# ============================================================================
# STATUS: Orchestrator - Compute body execution
# PURPOSE: Run compute nodes locally or dispatch them to remote workers
# CREATED: 15 OCT 2026
# ============================================================================
"""
Orchestrator Module

Usage:
    from orchestrator import Executor

    catalog.executor = Executor(catalog, broker=ServiceBusBroker())
    await node.recompute()
"""

from .dispatcher import Executor

__all__ = ["Executor"]
