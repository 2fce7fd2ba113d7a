from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

# ============================================================================
# Transformed schema model
#
# Output of the schema transformer: normalized tables and columns, resolved
# single-column relationships, and the non-fatal warnings collected on the way.
# ============================================================================

DEFAULT_SCHEMA = "public"

# Literal kind of a column default. 'expression' keeps `now()` apart from
# the string literal 'now()'.
DefaultKind = Literal["expression", "string", "number", "boolean", "null"]

IndexType = Literal["btree", "hash", "gist", "gin", "brin"]

INDEX_TYPES: tuple[str, ...] = ("btree", "hash", "gist", "gin", "brin")


@dataclass(frozen=True, slots=True)
class DefaultValue:
    """A column default tagged with its literal kind."""

    value: str | int | float | bool | None
    kind: DefaultKind


@dataclass(slots=True)
class ForeignKey:
    """Foreign-key descriptor attached to the child column of a relationship."""

    schema: str
    table: str
    column: str
    relation: str | None = None
    on_delete: str | None = None
    on_update: str | None = None


@dataclass(slots=True)
class Column:
    name: str
    # Normalized type name (int, varchar, ...)
    type: str
    # Verbatim argument suffix: "255" or "10,2"
    type_detail: str | None = None
    nullable: bool = True
    primary_key: bool = False
    unique: bool = False
    auto_increment: bool = False
    default: DefaultValue | None = None
    note: str | None = None
    enum_values: list[str] | None = None
    # Namespace of the named enum this column is typed with
    type_schema: str | None = None
    foreign_keys: list[ForeignKey] = field(default_factory=list)
    indexed: bool = False
    index_type: IndexType | None = None
    length: int | None = None
    precision: int | None = None
    scale: int | None = None

    def __post_init__(self) -> None:
        if self.primary_key:
            self.mark_primary_key()

    def mark_primary_key(self) -> None:
        """Primary keys are always unique and non-nullable."""
        self.primary_key = True
        self.unique = True
        self.nullable = False


@dataclass(slots=True)
class Table:
    schema: str
    # Declared name
    name: str
    columns: list[Column] = field(default_factory=list)
    alias: str | None = None
    note: str | None = None

    @property
    def reference_name(self) -> str:
        """Lookup key used by relationships: alias when present."""
        return self.alias or self.name

    @property
    def display_label(self) -> str:
        if self.schema == DEFAULT_SCHEMA:
            return self.name
        return f"{self.schema}.{self.name}"

    @property
    def node_key(self) -> str:
        return f"{self.schema}.{self.reference_name}"

    def column(self, name: str) -> Column | None:
        for col in self.columns:
            if col.name == name:
                return col
        return None


@dataclass(frozen=True, slots=True)
class RelationshipEndpoint:
    schema: str
    table: str
    column: str
    # Cardinality marker from the declaration ("1" or "*")
    relation: str | None = None


@dataclass(frozen=True, slots=True)
class Relationship:
    """A single-column edge from the parent ("one") to the child ("many") side."""

    id: str
    parent: RelationshipEndpoint
    child: RelationshipEndpoint
    on_delete: str | None = None
    on_update: str | None = None
    # "{schema_index}:{ref_index}" of the declaring reference; composite keys
    # share it across their column pairs.
    declaration: str = ""


@dataclass(frozen=True, slots=True)
class TransformWarning:
    message: str
    context: str | None = None


@dataclass(frozen=True, slots=True)
class TransformLimits:
    """Hard ceilings that keep the diagram renderable."""

    max_tables: int = 500
    max_columns_per_table: int = 200
    max_relationships: int = 2000


@dataclass(frozen=True, slots=True)
class TransformResult:
    tables: tuple[Table, ...]
    relationships: tuple[Relationship, ...]
    warnings: tuple[TransformWarning, ...]
    # SQL rendering of the resolved model
    exported_text: str

    @property
    def sql(self) -> str:
        return self.exported_text
