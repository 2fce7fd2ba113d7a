"""dbml-canvas: turn DBML schema text into a live, editable ER diagram model."""

from __future__ import annotations

from .types import (
    DEFAULT_SCHEMA,
    Column,
    DefaultValue,
    ForeignKey,
    Relationship,
    RelationshipEndpoint,
    Table,
    TransformLimits,
    TransformResult,
    TransformWarning,
)
from .errors import LimitExceeded, ParseDiagnostic, SchemaError, TransformInProgress
from .dbml import parse_document, validate_dbml
from .transformer import transform_dbml
from .sql_export import export_sql, format_default_value
from .graph import GraphOptions, GraphStatus, Position, SchemaGraph

__all__ = [
    "DEFAULT_SCHEMA",
    "Column",
    "DefaultValue",
    "ForeignKey",
    "Relationship",
    "RelationshipEndpoint",
    "Table",
    "TransformLimits",
    "TransformResult",
    "TransformWarning",
    "LimitExceeded",
    "ParseDiagnostic",
    "SchemaError",
    "TransformInProgress",
    "parse_document",
    "validate_dbml",
    "transform_dbml",
    "export_sql",
    "format_default_value",
    "GraphOptions",
    "GraphStatus",
    "Position",
    "SchemaGraph",
]
