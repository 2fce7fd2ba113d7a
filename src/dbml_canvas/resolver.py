from __future__ import annotations

import logging
from dataclasses import dataclass

from .dbml.types import Endpoint, Reference
from .errors import LimitExceeded
from .types import (
    DEFAULT_SCHEMA,
    Column,
    ForeignKey,
    Relationship,
    RelationshipEndpoint,
    Table,
    TransformLimits,
    TransformWarning,
)

logger = logging.getLogger(__name__)

# ============================================================================
# Reference resolver
#
# Turns declared references into single-column relationships:
#   1. Resolve both endpoints to registered tables (own namespace, declaring
#      namespace, default namespace, then any namespace by name or alias).
#   2. Pick the parent ("1" side) and child; the second endpoint is parent
#      when the markers do not decide.
#   3. Zip parent and child columns into one relationship per pair.
#   4. Attach a foreign-key descriptor to each child column.
# ============================================================================

TableKey = tuple[str, str]
ColumnKey = tuple[str, str, str]


def normalize_schema_name(name: str | None) -> str:
    if name and name.strip():
        return name
    return DEFAULT_SCHEMA


@dataclass(slots=True)
class ResolvedEndpoint:
    table: Table
    # Namespace the lookup succeeded under
    schema: str
    endpoint: Endpoint


class ReferenceResolver:
    """Resolves references against registries built for one transform call."""

    def __init__(
        self,
        tables: dict[TableKey, Table],
        columns: dict[ColumnKey, Column],
        limits: TransformLimits,
        warnings: list[TransformWarning],
    ) -> None:
        self.tables = tables
        self.columns = columns
        self.limits = limits
        self.warnings = warnings
        self.relationships: list[Relationship] = []
        # "child -> parent" signatures already emitted
        self._seen: set[str] = set()

    def resolve(
        self,
        ref: Reference,
        schema_index: int,
        ref_index: int,
        fallback_schema: str,
    ) -> list[Relationship]:
        if len(ref.endpoints) != 2:
            self._warn(
                "Reference is missing endpoints",
                f"schema index {schema_index} ref {ref_index}",
            )
            return []

        endpoint_a, endpoint_b = ref.endpoints
        resolved_a = self.resolve_endpoint(endpoint_a, fallback_schema)
        resolved_b = self.resolve_endpoint(endpoint_b, fallback_schema)

        if resolved_a is None or resolved_b is None:
            self._warn(
                "Unable to resolve reference endpoints",
                f"{endpoint_a.table} <-> {endpoint_b.table}",
            )
            return []

        parent, child = _assign_parent(resolved_a, resolved_b)
        parent_columns = parent.endpoint.columns
        child_columns = child.endpoint.columns
        pair_count = max(len(parent_columns), len(child_columns))

        created: list[Relationship] = []
        for idx in range(pair_count):
            parent_column = _column_at(parent_columns, idx)
            child_column = _column_at(child_columns, idx)

            if not parent_column or not child_column:
                self._warn(
                    "Reference endpoint missing column name",
                    f"{parent.table.display_label} <-> {child.table.display_label}",
                )
                continue

            relationship = self._build(
                ref, parent, child, parent_column, child_column, schema_index, ref_index, idx
            )
            created.append(relationship)
            self.relationships.append(relationship)

            if len(self.relationships) > self.limits.max_relationships:
                raise LimitExceeded(
                    f"Schema exceeds maximum relationship limit of "
                    f"{self.limits.max_relationships}. "
                    f"Found {len(self.relationships)} relationships.",
                    limit="relationships",
                    maximum=self.limits.max_relationships,
                    found=len(self.relationships),
                )

            self._attach_foreign_key(ref, parent, child, parent_column, child_column)

        return created

    def resolve_endpoint(self, endpoint: Endpoint, fallback_schema: str) -> ResolvedEndpoint | None:
        """Find the table an endpoint names; first match wins."""
        if not endpoint.table:
            return None

        candidates: list[str] = []
        if endpoint.schema:
            candidates.append(normalize_schema_name(endpoint.schema))
        for name in (normalize_schema_name(fallback_schema), DEFAULT_SCHEMA):
            if name not in candidates:
                candidates.append(name)

        for schema in candidates:
            table = self.tables.get((schema, endpoint.table))
            if table is not None:
                return ResolvedEndpoint(table=table, schema=schema, endpoint=endpoint)

        for table in self.tables.values():
            if endpoint.table in (table.name, table.alias):
                return ResolvedEndpoint(table=table, schema=table.schema, endpoint=endpoint)

        return None

    # ------------------------------------------------------------------------

    def _build(
        self,
        ref: Reference,
        parent: ResolvedEndpoint,
        child: ResolvedEndpoint,
        parent_column: str,
        child_column: str,
        schema_index: int,
        ref_index: int,
        pair_index: int,
    ) -> Relationship:
        forward = (
            f"{parent.table.schema}.{parent.table.name}.{parent_column}->"
            f"{child.table.schema}.{child.table.name}.{child_column}"
        )
        reverse = (
            f"{child.table.schema}.{child.table.name}.{child_column}->"
            f"{parent.table.schema}.{parent.table.name}.{parent_column}"
        )

        if forward in self._seen:
            self._warn(
                "Duplicate reference",
                f"{parent.table.display_label}.{parent_column} -> "
                f"{child.table.display_label}.{child_column}",
            )
        if reverse in self._seen:
            self._warn(
                "Potential circular reference detected",
                f"{parent.table.display_label}.{parent_column} <-> "
                f"{child.table.display_label}.{child_column}",
            )
        self._seen.add(forward)

        return Relationship(
            id=f"{forward}:{schema_index}:{ref_index}:{pair_index}",
            parent=RelationshipEndpoint(
                schema=parent.table.schema,
                table=parent.table.name,
                column=parent_column,
                relation=parent.endpoint.relation,
            ),
            child=RelationshipEndpoint(
                schema=child.table.schema,
                table=child.table.name,
                column=child_column,
                relation=child.endpoint.relation,
            ),
            on_delete=ref.on_delete or None,
            on_update=ref.on_update or None,
            declaration=f"{schema_index}:{ref_index}",
        )

    def _attach_foreign_key(
        self,
        ref: Reference,
        parent: ResolvedEndpoint,
        child: ResolvedEndpoint,
        parent_column: str,
        child_column: str,
    ) -> None:
        column = self.columns.get((child.schema, child.endpoint.table, child_column))
        if column is None:
            column = self.columns.get((child.table.schema, child.table.name, child_column))

        if column is None:
            self._warn(
                f"Unable to attach foreign key metadata for {child_column}",
                child.table.display_label,
            )
            return

        column.foreign_keys.append(
            ForeignKey(
                schema=parent.table.schema,
                table=parent.table.name,
                column=parent_column,
                relation=parent.endpoint.relation,
                on_delete=ref.on_delete or None,
                on_update=ref.on_update or None,
            )
        )

    def _warn(self, message: str, context: str | None = None) -> None:
        logger.debug("reference warning: %s (%s)", message, context)
        self.warnings.append(TransformWarning(message=message, context=context))


def _assign_parent(
    a: ResolvedEndpoint, b: ResolvedEndpoint
) -> tuple[ResolvedEndpoint, ResolvedEndpoint]:
    """Return (parent, child). Only a lone "1" on the first endpoint flips them."""
    a_is_one = a.endpoint.relation == "1"
    b_is_one = b.endpoint.relation == "1"
    if a_is_one and not b_is_one:
        return a, b
    return b, a


def _column_at(columns: list[str], idx: int) -> str | None:
    if idx < len(columns) and columns[idx]:
        return columns[idx]
    return columns[0] if columns else None
