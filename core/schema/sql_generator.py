# ============================================================================
# PYDANTIC TO SQL GENERATOR
# ============================================================================
# STATUS: Core - DDL generation from Pydantic models
# PURPOSE: Generate PostgreSQL CREATE statements for the node tables
# LAST_REVIEWED: 14 OCT 2026
# EXPORTS: PydanticToSQL
# DEPENDENCIES: pydantic, psycopg
# ============================================================================
"""
Pydantic to PostgreSQL Schema Generator.

Pydantic models are the SINGLE SOURCE OF TRUTH for the node tables.

Model Metadata Convention:
    - __sql_table__: Table name
    - __sql_schema__: Schema name
    - __sql_primary_key__: Primary key column(s) - string or list
    - __sql_indexes__: List of (name, columns, partial_where, unique) tuples

Enums are stored as VARCHAR holding the enum value.

Usage:
    generator = PydanticToSQL(schema_name="dataflow")
    for stmt in generator.generate_all():
        await conn.execute(stmt)
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Type, Union, get_args, get_origin

from annotated_types import MaxLen
from psycopg import sql
from pydantic import BaseModel
from pydantic.fields import FieldInfo

from core.models import ComputeNodeRecord, DataNodeRecord

logger = logging.getLogger(__name__)


class PydanticToSQL:
    """
    Convert Pydantic models to PostgreSQL DDL statements.
    """

    TYPE_MAP = {
        str: "VARCHAR",
        int: "INTEGER",
        float: "DOUBLE PRECISION",
        bool: "BOOLEAN",
        datetime: "TIMESTAMPTZ",
        dict: "JSONB",
        list: "JSONB",
    }

    MODELS: Sequence[Type[BaseModel]] = (DataNodeRecord, ComputeNodeRecord)

    def __init__(self, schema_name: Optional[str] = None):
        """
        Args:
            schema_name: Overrides the models' __sql_schema__ when given
        """
        self.schema_name = schema_name

    # =========================================================================
    # METADATA EXTRACTION
    # =========================================================================

    def get_model_metadata(self, model: Type[BaseModel]) -> Dict[str, Any]:
        """Extract __sql_* metadata from a model."""
        primary_key = getattr(model, "__sql_primary_key__", [])
        if isinstance(primary_key, str):
            primary_key = [primary_key]
        return {
            "table": getattr(model, "__sql_table__", None),
            "schema": self.schema_name or getattr(model, "__sql_schema__", "dataflow"),
            "primary_key": list(primary_key),
            "indexes": list(getattr(model, "__sql_indexes__", [])),
        }

    # =========================================================================
    # TYPE CONVERSION
    # =========================================================================

    def python_type_to_sql(self, field_type: Any, field_info: FieldInfo) -> str:
        """Convert a (possibly Optional) Python annotation to a PostgreSQL type."""
        actual_type = field_type
        origin = get_origin(field_type)

        if origin is Union:
            args = [a for a in get_args(field_type) if a is not type(None)]
            actual_type = args[0] if args else str
            origin = get_origin(actual_type)

        if origin in (dict, list, Dict, List):
            return "JSONB"

        if isinstance(actual_type, type) and issubclass(actual_type, Enum):
            return "VARCHAR(32)"

        if actual_type is str:
            for constraint in field_info.metadata or []:
                if isinstance(constraint, MaxLen):
                    return f"VARCHAR({constraint.max_length})"
            return "VARCHAR"

        return self.TYPE_MAP.get(actual_type, "JSONB")

    @staticmethod
    def _is_optional(field_type: Any) -> bool:
        return get_origin(field_type) is Union and type(None) in get_args(field_type)

    # =========================================================================
    # TABLE GENERATION
    # =========================================================================

    def generate_table(self, model: Type[BaseModel]) -> sql.Composed:
        """Generate CREATE TABLE IF NOT EXISTS for a model."""
        meta = self.get_model_metadata(model)
        if not meta["table"]:
            raise ValueError(f"Model {model.__name__} missing __sql_table__ attribute")

        logger.debug(f"Generating table {meta['schema']}.{meta['table']} from {model.__name__}")

        columns = []
        for field_name, field_info in model.model_fields.items():
            sql_type = self.python_type_to_sql(field_info.annotation, field_info)
            parts = [sql.Identifier(field_name), sql.SQL(" " + sql_type)]

            if not self._is_optional(field_info.annotation) and field_name not in meta["primary_key"]:
                parts.append(sql.SQL(" NOT NULL"))

            default = field_info.default
            if isinstance(default, Enum):
                parts.extend([sql.SQL(" DEFAULT "), sql.Literal(default.value)])
            elif isinstance(default, bool):
                parts.append(sql.SQL(" DEFAULT true" if default else " DEFAULT false"))
            elif isinstance(default, (str, int, float)):
                parts.extend([sql.SQL(" DEFAULT "), sql.Literal(default)])
            elif field_info.default_factory is not None:
                if field_name in ("created_at", "updated_at"):
                    parts.append(sql.SQL(" DEFAULT NOW()"))
                elif sql_type == "JSONB":
                    empty = "'[]'" if field_info.default_factory is list else "'{}'"
                    parts.append(sql.SQL(f" DEFAULT {empty}"))

            columns.append(sql.Composed(parts))

        if meta["primary_key"]:
            columns.append(
                sql.SQL("PRIMARY KEY ({})").format(
                    sql.SQL(", ").join(sql.Identifier(c) for c in meta["primary_key"])
                )
            )

        return sql.SQL("CREATE TABLE IF NOT EXISTS {}.{} ({})").format(
            sql.Identifier(meta["schema"]),
            sql.Identifier(meta["table"]),
            sql.SQL(", ").join(columns),
        )

    # =========================================================================
    # INDEX GENERATION
    # =========================================================================

    def generate_indexes(self, model: Type[BaseModel]) -> List[sql.Composed]:
        """Generate CREATE INDEX IF NOT EXISTS statements from __sql_indexes__."""
        meta = self.get_model_metadata(model)
        result = []

        for idx_def in meta["indexes"]:
            name = idx_def[0]
            columns = idx_def[1] if len(idx_def) > 1 else []
            partial_where = idx_def[2] if len(idx_def) > 2 else None
            unique = idx_def[3] if len(idx_def) > 3 else False
            if isinstance(columns, str):
                columns = [columns]
            if not name or not columns:
                continue

            stmt = sql.SQL("CREATE {}INDEX IF NOT EXISTS {} ON {}.{} ({})").format(
                sql.SQL("UNIQUE " if unique else ""),
                sql.Identifier(name),
                sql.Identifier(meta["schema"]),
                sql.Identifier(meta["table"]),
                sql.SQL(", ").join(sql.Identifier(c) for c in columns),
            )
            if partial_where:
                stmt = sql.Composed([stmt, sql.SQL(" WHERE " + partial_where)])
            result.append(stmt)

        return result

    # =========================================================================
    # FULL SCHEMA
    # =========================================================================

    def generate_all(self) -> List[sql.Composable]:
        """Generate schema, tables and indexes for all node models."""
        schemas = {self.get_model_metadata(m)["schema"] for m in self.MODELS}
        statements: List[sql.Composable] = [
            sql.SQL("CREATE SCHEMA IF NOT EXISTS {}").format(sql.Identifier(s))
            for s in sorted(schemas)
        ]
        for model in self.MODELS:
            statements.append(self.generate_table(model))
            statements.extend(self.generate_indexes(model))

        logger.info(f"Generated {len(statements)} DDL statements for {len(self.MODELS)} tables")
        return statements


__all__ = ["PydanticToSQL"]
