# ============================================================================
# COMPUTE NODE MODEL
# ============================================================================
# STATUS: Core model - Computation descriptor and lease state
# PURPOSE: Persisted state of one computation step in the graph
# LAST_REVIEWED: 14 OCT 2026
# EXPORTS: ComputeNodeRecord
# DEPENDENCIES: pydantic
# ============================================================================
"""
Compute Node Model

ComputeNodeRecord holds the static configuration of a computation step
(dependencies, output data node, execution model) together with its
computing lease fields.

Lease fields are written only through the node repository:
    try_acquire_lease  -> computing_state=computing, computing_started_at=now
    release_lease      -> computing_state=idle, computing_started_at=None,
                          execution_uuid=None
    update_heartbeat   -> last_heartbeat_time=now
"""

from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional

from pydantic import Field, model_validator

from core.contracts import ComputingState, ExecutionModel, NodeData


class ComputeNodeRecord(NodeData):
    """
    Persisted state of a compute node.

    Maps to: dataflow.compute_nodes table
    Primary Key: id
    """

    # =========================================================================
    # SQL DDL METADATA (Used by PydanticToSQL generator)
    # =========================================================================
    __sql_table__: ClassVar[str] = "compute_nodes"
    __sql_schema__: ClassVar[str] = "dataflow"
    __sql_primary_key__: ClassVar[List[str]] = ["id"]
    __sql_indexes__: ClassVar[List[tuple]] = [
        ("idx_compute_nodes_name", ["name"], None, True),
        ("idx_compute_nodes_data_node", ["data_node_id"], None, False),
        ("idx_compute_nodes_computing", ["computing_state"], "computing_state = 'computing'", False),
    ]

    # Graph edges (ids only)
    dependency_ids: List[str] = Field(default_factory=list)
    data_node_id: Optional[str] = Field(default=None, max_length=64)

    # Static configuration
    clear_data_on_compute: bool = True
    limit_per_process: int = Field(default=0, ge=0)
    recompute_interval: int = Field(default=0, ge=0, description="Seconds; 0 = never")
    execution_model: ExecutionModel = Field(default=ExecutionModel.LOCAL)
    execution_queue: Optional[str] = Field(default=None, max_length=255)
    properties: Dict[str, Any] = Field(default_factory=dict)

    # Lease state
    computing_state: ComputingState = Field(default=ComputingState.IDLE)
    computing_started_at: Optional[datetime] = None
    last_heartbeat_time: Optional[datetime] = None
    execution_uuid: Optional[str] = Field(default=None, max_length=64)

    # Serves as this node's logical "updated at"
    last_compute_starting_time: Optional[datetime] = None

    @model_validator(mode="after")
    def _lease_consistent(self) -> "ComputeNodeRecord":
        if self.computing_state == ComputingState.COMPUTING and self.computing_started_at is None:
            raise ValueError("computing_started_at must be set while computing")
        return self

    @property
    def updated_at(self) -> Optional[datetime]:
        return self.last_compute_starting_time

    @property
    def is_computing(self) -> bool:
        return self.computing_state == ComputingState.COMPUTING


__all__ = ["ComputeNodeRecord"]
