# ============================================================================
# MODELS MODULE
# ============================================================================
# STATUS: Model exports
# PURPOSE: Central export point for all Pydantic models
# LAST_REVIEWED: 14 OCT 2026
# ============================================================================
"""
Models Module - Central Export Point

Models define SQL metadata via __sql_* ClassVar attributes for DDL generation.

Single Source of Truth Pattern:
    - Pydantic models define structure
    - PydanticToSQL reads __sql_* metadata
    - PostgreSQL schema generated from models
"""

from core.models.data_node import DataNodeRecord, IndexDefinition
from core.models.compute_node import ComputeNodeRecord
from core.models.execution import ExecutionMessage, CompletionMessage, ErrorPayload

__all__ = [
    # Nodes
    "DataNodeRecord",
    "IndexDefinition",
    "ComputeNodeRecord",
    # Messages
    "ExecutionMessage",
    "CompletionMessage",
    "ErrorPayload",
]
