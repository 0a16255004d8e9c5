# ============================================================================
# DATA NODE MODEL
# ============================================================================
# STATUS: Core model - Dataset descriptor
# PURPOSE: Persisted description of one logical dataset
# LAST_REVIEWED: 14 OCT 2026
# EXPORTS: DataNodeRecord, IndexDefinition
# DEPENDENCIES: pydantic
# ============================================================================
"""
Data Node Model

DataNodeRecord describes one logical dataset: which backend stores it,
its schema and indexes, and the double-buffering slots.

Double buffering:
    use_double_buffering=False -> read and write dataset are both `name`
    use_double_buffering=True  -> read is `name_buffer{read_slot}`,
                                  write is `name_buffer{write_slot}`,
                                  read_slot != write_slot at all times
"""

from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from core.contracts import NodeData, StorageBackendKind, utcnow


class IndexDefinition(BaseModel):
    """One index on a dataset."""

    keys: List[str] = Field(..., min_length=1)
    unique: bool = False

    @field_validator("keys", mode="before")
    @classmethod
    def _coerce_keys(cls, value: Any) -> Any:
        # Accept a single key as a plain string
        if isinstance(value, str):
            return [value]
        return value


class DataNodeRecord(NodeData):
    """
    Persisted state of a data node.

    Maps to: dataflow.data_nodes table
    Primary Key: id
    """

    # =========================================================================
    # SQL DDL METADATA (Used by PydanticToSQL generator)
    # =========================================================================
    __sql_table__: ClassVar[str] = "data_nodes"
    __sql_schema__: ClassVar[str] = "dataflow"
    __sql_primary_key__: ClassVar[List[str]] = ["id"]
    __sql_indexes__: ClassVar[List[tuple]] = [
        ("idx_data_nodes_db_name", ["db_name", "name"], None, True),
    ]

    db_name: str = Field(..., min_length=1, max_length=255)
    backend: StorageBackendKind = Field(default=StorageBackendKind.POSTGRESQL)

    # Schema: ordered mapping of field path -> type descriptor
    dataset_schema: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    inferred_schema: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    inferred_schema_at: Optional[datetime] = None

    indexes: List[IndexDefinition] = Field(default_factory=list)

    # Double buffering
    use_double_buffering: bool = False
    read_slot: int = Field(default=1, ge=1, le=2)
    write_slot: int = Field(default=2, ge=1, le=2)

    # Read-only nodes may point at an externally named dataset
    dataset_name: Optional[str] = Field(default=None, max_length=255)

    # Seconds within which an update is expected (informational)
    update_expected_within: int = Field(default=0, ge=0)

    # Type-specific settings (e.g. UpsertNode.index_key)
    properties: Dict[str, Any] = Field(default_factory=dict)

    updated_at: Optional[datetime] = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _slots_distinct(self) -> "DataNodeRecord":
        if self.read_slot == self.write_slot:
            raise ValueError("read_slot and write_slot must differ")
        return self

    @property
    def read_dataset_name(self) -> str:
        if self.dataset_name:
            return self.dataset_name
        if self.use_double_buffering:
            return f"{self.name}_buffer{self.read_slot}"
        return self.name

    @property
    def write_dataset_name(self) -> str:
        if self.use_double_buffering:
            return f"{self.name}_buffer{self.write_slot}"
        return self.name

    @property
    def valid_dataset_names(self) -> List[str]:
        if self.use_double_buffering:
            return [f"{self.name}_buffer1", f"{self.name}_buffer2"]
        return [self.name]


__all__ = ["DataNodeRecord", "IndexDefinition"]
