from __future__ import annotations

from collections.abc import Iterable, Sequence

from .types import DEFAULT_SCHEMA, Column, Relationship, Table

# ============================================================================
# SQL export
#
# Renders the resolved model as PostgreSQL-flavoured DDL. The output is a
# derived artifact for copy/paste; nothing reads it back.
#
# Order of statements:
#   1. CREATE SCHEMA for non-default namespaces
#   2. CREATE TYPE ... AS ENUM
#   3. CREATE TABLE (columns, primary key)
#   4. COMMENT ON COLUMN for notes
#   5. CREATE INDEX for indexed columns
#   6. ALTER TABLE ... ADD FOREIGN KEY, one per declared reference
# ============================================================================

# Types that carry an auto-increment on their own
_SERIAL_TYPES = {"int": "serial", "bigint": "bigserial", "smallint": "smallserial"}


def export_sql(
    tables: Sequence[Table],
    relationships: Sequence[Relationship],
    enums: dict[str, list[str]] | None = None,
) -> str:
    """Render tables, relationships and enums as SQL DDL.

    Args:
        tables: Transformed tables, in declaration order.
        relationships: Resolved single-column relationships. Pairs that share
            a declaration are grouped back into one composite constraint.
        enums: Namespace-qualified enum name -> values.
    """
    statements: list[str] = []

    schemas = sorted({t.schema for t in tables if t.schema != DEFAULT_SCHEMA})
    for schema in schemas:
        statements.append(f"CREATE SCHEMA IF NOT EXISTS {_quote(schema)};")

    for qualified, values in (enums or {}).items():
        if "." not in qualified:
            # Unqualified alias of a default-namespace enum
            continue
        schema, name = qualified.split(".", 1)
        rendered = ", ".join(_string_literal(v) for v in values)
        statements.append(f"CREATE TYPE {_qualified(schema, name)} AS ENUM ({rendered});")

    for table in tables:
        statements.append(_create_table(table))

    for table in tables:
        for column in table.columns:
            if column.note:
                statements.append(
                    f"COMMENT ON COLUMN {_qualified(table.schema, table.name)}.{_quote(column.name)} "
                    f"IS {_string_literal(column.note)};"
                )

    for table in tables:
        for column in table.columns:
            if column.indexed and not column.primary_key:
                statements.append(_create_index(table, column))

    for group in _group_by_declaration(relationships):
        statements.append(_add_foreign_key(group))

    return "\n\n".join(statements) + ("\n" if statements else "")


def format_default_value(column: Column) -> str:
    """Render a column default the way it reads in SQL."""
    default = column.default
    if default is None or default.value is None:
        return "NULL"

    if default.kind == "expression":
        return str(default.value)
    if default.kind == "string":
        return _string_literal(str(default.value))
    if default.kind == "boolean":
        return "TRUE" if default.value else "FALSE"
    if default.kind == "null":
        return "NULL"
    return str(default.value)


def format_column_type(column: Column) -> str:
    if column.enum_values and column.type == "enum":
        values = ", ".join(_string_literal(v) for v in column.enum_values)
        return f"ENUM({values})"
    if column.type_schema:
        # Must name the same type CREATE TYPE declared
        return _qualified(column.type_schema, column.type)
    if column.type_detail:
        return f"{column.type}({column.type_detail})"
    return column.type


# ============================================================================
# Statement builders
# ============================================================================


def _create_table(table: Table) -> str:
    key_columns = [c.name for c in table.columns if c.primary_key]
    lines: list[str] = []

    for column in table.columns:
        lines.append("  " + _column_definition(column, inline_pk=len(key_columns) == 1))

    if len(key_columns) > 1:
        lines.append(f"  PRIMARY KEY ({', '.join(_quote(c) for c in key_columns)})")

    body = ",\n".join(lines)
    return f"CREATE TABLE {_qualified(table.schema, table.name)} (\n{body}\n);"


def _column_definition(column: Column, inline_pk: bool) -> str:
    col_type = format_column_type(column)
    if column.auto_increment and column.type in _SERIAL_TYPES and not column.type_detail:
        col_type = _SERIAL_TYPES[column.type]

    parts = [_quote(column.name), col_type]
    if column.primary_key and inline_pk:
        parts.append("PRIMARY KEY")
    else:
        if column.unique:
            parts.append("UNIQUE")
        if not column.nullable:
            parts.append("NOT NULL")
    if column.default is not None:
        parts.append(f"DEFAULT {format_default_value(column)}")
    return " ".join(parts)


def _create_index(table: Table, column: Column) -> str:
    using = f" USING {column.index_type.upper()}" if column.index_type else ""
    unique = "UNIQUE " if column.unique else ""
    return (
        f"CREATE {unique}INDEX ON {_qualified(table.schema, table.name)}"
        f"{using} ({_quote(column.name)});"
    )


def _add_foreign_key(group: list[Relationship]) -> str:
    first = group[0]
    child_columns = ", ".join(_quote(r.child.column) for r in group)
    parent_columns = ", ".join(_quote(r.parent.column) for r in group)

    statement = (
        f"ALTER TABLE {_qualified(first.child.schema, first.child.table)} "
        f"ADD FOREIGN KEY ({child_columns}) "
        f"REFERENCES {_qualified(first.parent.schema, first.parent.table)} ({parent_columns})"
    )
    if first.on_delete:
        statement += f" ON DELETE {first.on_delete.upper()}"
    if first.on_update:
        statement += f" ON UPDATE {first.on_update.upper()}"
    return statement + ";"


def _group_by_declaration(relationships: Iterable[Relationship]) -> list[list[Relationship]]:
    groups: dict[str, list[Relationship]] = {}
    for rel in relationships:
        key = rel.declaration or rel.id
        groups.setdefault(key, []).append(rel)
    return list(groups.values())


# ============================================================================
# Quoting helpers
# ============================================================================


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def _qualified(schema: str, name: str) -> str:
    if schema == DEFAULT_SCHEMA:
        return _quote(name)
    return f"{_quote(schema)}.{_quote(name)}"


def _string_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"
