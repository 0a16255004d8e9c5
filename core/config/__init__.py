# ============================================================================
# CONFIGURATION MODULE
# ============================================================================
# STATUS: Core - Configuration and defaults
# PURPOSE: Centralized configuration management
# CREATED: 14 OCT 2026
# ============================================================================
"""
Configuration Module

Provides centralized configuration and defaults for the dataflow engine.
"""

from core.config.defaults import (
    LeaseDefaults,
    ExecutionDefaults,
    StorageDefaults,
    Defaults,
    get_defaults,
    set_defaults,
    reset_defaults,
)

__all__ = [
    "LeaseDefaults",
    "ExecutionDefaults",
    "StorageDefaults",
    "Defaults",
    "get_defaults",
    "set_defaults",
    "reset_defaults",
]
