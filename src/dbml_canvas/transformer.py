from __future__ import annotations

import logging
import re
from typing import Any

from .dbml.adapter import parse_document
from .dbml.types import DefaultLiteral, Document, DocumentTable, Field
from .errors import LimitExceeded
from .resolver import ColumnKey, ReferenceResolver, TableKey, normalize_schema_name
from .sql_export import export_sql
from .types import (
    DEFAULT_SCHEMA,
    INDEX_TYPES,
    Column,
    DefaultValue,
    Table,
    TransformLimits,
    TransformResult,
    TransformWarning,
)

logger = logging.getLogger(__name__)

# ============================================================================
# Schema transformer
#
# DBML text -> normalized tables, resolved relationships, warnings and an
# SQL rendering. Every registry lives inside one transform_dbml() call.
#
# Fatal: empty or unparseable text, and the three size ceilings.
# Everything else degrades to a TransformWarning.
# ============================================================================

TYPE_SHORTHANDS: dict[str, str] = {
    "integer": "int",
    "int4": "int",
    "bigint": "bigint",
    "bigserial": "bigserial",
    "serial": "serial",
    "smallint": "smallint",
    "varchar": "varchar",
    "character varying": "varchar",
    "text": "text",
    "timestamp": "timestamp",
    "timestamptz": "timestamptz",
    "datetime": "datetime",
    "bool": "bool",
    "boolean": "bool",
    "numeric": "numeric",
    "decimal": "decimal",
    "double": "double",
}

_TYPE_RE = re.compile(r"^([A-Za-z0-9_.\s]+?)\s*(?:\((.*)\))?$")
_EXPRESSION_HINT_RE = re.compile(r"\(|\)|now|current|uuid|gen_random", re.IGNORECASE)


def transform_dbml(text: str, limits: TransformLimits | None = None) -> TransformResult:
    """Transform DBML text into tables, relationships, warnings and SQL.

    Raises:
        ParseDiagnostic: empty or unparseable text.
        LimitExceeded: a table, column or relationship ceiling was crossed.
    """
    if limits is None:
        limits = TransformLimits()

    document = parse_document(text)

    total_tables = document.table_count
    if total_tables > limits.max_tables:
        raise LimitExceeded(
            f"Schema exceeds maximum table limit of {limits.max_tables}. "
            f"Found {total_tables} tables.",
            limit="tables",
            maximum=limits.max_tables,
            found=total_tables,
        )

    warnings: list[TransformWarning] = []
    enum_registry = build_enum_registry(document)

    tables: list[Table] = []
    table_registry: dict[TableKey, Table] = {}
    column_registry: dict[ColumnKey, Column] = {}
    declared: set[TableKey] = set()

    for schema in document.schemas:
        schema_name = normalize_schema_name(schema.name)
        for doc_table in schema.tables:
            table = _build_table(doc_table, schema_name, enum_registry, limits, warnings)
            if table is None:
                continue
            if (schema_name, table.name) in declared:
                warnings.append(
                    TransformWarning(
                        message=f'Duplicate table "{table.name}"',
                        context=table.display_label,
                    )
                )
                continue
            declared.add((schema_name, table.name))
            tables.append(table)

    # Declared names first so an alias can never shadow a real table
    for table in tables:
        _register_table(table, table.name, table_registry, column_registry)
    for table in tables:
        if not table.alias or table.alias == table.name:
            continue
        taken = table_registry.get((table.schema, table.alias))
        if taken is not None:
            warnings.append(
                TransformWarning(
                    message=f'Alias "{table.alias}" of table "{table.name}" '
                    f'collides with table "{taken.name}"; alias ignored',
                    context=table.display_label,
                )
            )
            table.alias = None
            continue
        _register_table(table, table.alias, table_registry, column_registry)

    resolver = ReferenceResolver(table_registry, column_registry, limits, warnings)
    for schema_index, schema in enumerate(document.schemas):
        fallback = normalize_schema_name(schema.name)
        for ref_index, ref in enumerate(schema.refs):
            resolver.resolve(ref, schema_index, ref_index, fallback)

    relationships = resolver.relationships
    sql = export_sql(tables, relationships, _qualified_enums(enum_registry))

    logger.debug(
        "transformed %d tables, %d relationships, %d warnings",
        len(tables),
        len(relationships),
        len(warnings),
    )

    return TransformResult(
        tables=tuple(tables),
        relationships=tuple(relationships),
        warnings=tuple(warnings),
        exported_text=sql,
    )


# ============================================================================
# Enums
# ============================================================================


def build_enum_registry(document: Document) -> dict[str, list[str]]:
    """Map "schema.enum" (and bare "enum" in the default schema) to its values."""
    registry: dict[str, list[str]] = {}
    for schema in document.schemas:
        schema_name = normalize_schema_name(schema.name)
        for enum in schema.enums:
            if not enum.name:
                continue
            values = [v.name for v in enum.values]
            registry[f"{schema_name}.{enum.name}"] = values
            if schema_name == DEFAULT_SCHEMA:
                registry[enum.name] = values
    return registry


def _qualified_enums(registry: dict[str, list[str]]) -> dict[str, list[str]]:
    return {k: v for k, v in registry.items() if "." in k}


# ============================================================================
# Tables and columns
# ============================================================================


def _build_table(
    doc_table: DocumentTable,
    schema_name: str,
    enum_registry: dict[str, list[str]],
    limits: TransformLimits,
    warnings: list[TransformWarning],
) -> Table | None:
    if not doc_table.name:
        warnings.append(TransformWarning("Table missing name", f"schema {schema_name}"))
        return None

    if not doc_table.fields:
        warnings.append(
            TransformWarning(f'Table "{doc_table.name}" has no columns', schema_name)
        )
        return None

    if len(doc_table.fields) > limits.max_columns_per_table:
        raise LimitExceeded(
            f'Table "{doc_table.name}" exceeds maximum column limit of '
            f"{limits.max_columns_per_table}. Found {len(doc_table.fields)} columns.",
            limit="columns",
            maximum=limits.max_columns_per_table,
            found=len(doc_table.fields),
        )

    table = Table(
        schema=schema_name,
        name=doc_table.name,
        alias=doc_table.alias or None,
        note=doc_table.note,
        columns=[_build_column(f, schema_name, enum_registry) for f in doc_table.fields],
    )
    _apply_indexes(doc_table, table, warnings)
    return table


def _build_column(field: Field, schema_name: str, enum_registry: dict[str, list[str]]) -> Column:
    type_name, detail = format_column_type(field.type_name)

    column = Column(
        name=field.name,
        type=type_name,
        type_detail=detail,
        nullable=not field.not_null,
        primary_key=field.pk,
        unique=field.unique,
        auto_increment=field.increment,
        note=field.note or None,
    )

    if field.default is not None:
        column.default = parse_default_value(field.default)

    if detail:
        args = [a.strip() for a in detail.split(",")]
        if len(args) == 1 and args[0].isdigit():
            column.length = int(args[0])
        elif len(args) == 2 and all(a.isdigit() for a in args):
            column.precision = int(args[0])
            column.scale = int(args[1])

    if field.enum_values:
        column.enum_values = list(field.enum_values)
    else:
        enum_schema = schema_name
        values = enum_registry.get(f"{schema_name}.{field.type_name}")
        if values is None:
            values = enum_registry.get(field.type_name)
            enum_schema, _, _ = field.type_name.rpartition(".")
            enum_schema = enum_schema or DEFAULT_SCHEMA
        if values is not None:
            column.enum_values = list(values)
            column.type_schema = enum_schema

    return column


def format_column_type(raw_type: str) -> tuple[str, str | None]:
    """Split "varchar(255)" into ("varchar", "255"), normalizing the name."""
    if not raw_type:
        return "unknown", None

    m = _TYPE_RE.match(raw_type)
    base_raw = m.group(1) if m else raw_type
    detail = m.group(2) if m else None

    base = base_raw.split(".")[-1] or base_raw
    normalized = TYPE_SHORTHANDS.get(" ".join(base.lower().split()), base)
    return normalized, detail or None


def parse_default_value(raw: Any) -> DefaultValue:
    """Normalize a default into a tagged DefaultValue.

    Tagged literals keep their kind; raw strings are sniffed for call-like
    syntax or well-known time/uuid functions.
    """
    if raw is None:
        return DefaultValue(value=None, kind="null")

    if isinstance(raw, DefaultLiteral):
        if raw.kind == "number":
            return DefaultValue(value=raw.value, kind="number")
        if raw.kind == "boolean":
            return DefaultValue(value=bool(raw.value), kind="boolean")
        if raw.kind == "expression":
            return DefaultValue(value=str(raw.value), kind="expression")
        if raw.kind == "null":
            return DefaultValue(value=None, kind="null")
        return DefaultValue(value=str(raw.value), kind="string")

    # bool before int: bool is an int subclass
    if isinstance(raw, bool):
        return DefaultValue(value=raw, kind="boolean")
    if isinstance(raw, (int, float)):
        return DefaultValue(value=raw, kind="number")
    if isinstance(raw, str):
        kind = "expression" if _EXPRESSION_HINT_RE.search(raw) else "string"
        return DefaultValue(value=raw, kind=kind)

    return DefaultValue(value=str(raw), kind="string")


def _apply_indexes(doc_table: DocumentTable, table: Table, warnings: list[TransformWarning]) -> None:
    for index in doc_table.indexes:
        for column_name in index.columns:
            if not column_name:
                warnings.append(
                    TransformWarning("Index column missing name", f"{table.display_label} index")
                )
                continue
            if column_name.startswith("`"):
                # Expression index: nothing to mark
                continue

            column = table.column(column_name)
            if column is None:
                warnings.append(
                    TransformWarning(
                        f'Index references unknown column "{column_name}"',
                        table.display_label,
                    )
                )
                continue

            column.indexed = True
            if index.type in INDEX_TYPES:
                column.index_type = index.type  # type: ignore[assignment]
            if index.pk:
                column.mark_primary_key()
            if index.unique:
                column.unique = True


def _register_table(
    table: Table,
    name: str,
    tables: dict[TableKey, Table],
    columns: dict[ColumnKey, Column],
) -> None:
    """Register `table` and its columns under (schema, name)."""
    tables[(table.schema, name)] = table
    for column in table.columns:
        columns[(table.schema, name, column.name)] = column