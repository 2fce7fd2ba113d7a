from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

# ============================================================================
# DBML document types
#
# Structured output of the DBML reader. Names are kept as written; nothing
# here is resolved against anything else except the existence check the
# reader performs on reference tables.
# ============================================================================

LiteralKind = Literal["string", "number", "boolean", "null", "expression"]

# Cardinality marker of a reference endpoint
Relation = Literal["1", "*"]


@dataclass(frozen=True, slots=True)
class DefaultLiteral:
    """A default value exactly as written, tagged with its token kind."""

    value: str | int | float | bool | None
    kind: LiteralKind


@dataclass(slots=True)
class Field:
    name: str
    # Type as written, including any argument suffix: "varchar(255)"
    type_name: str
    # Values of an inline enum('a', 'b') type
    enum_values: list[str] | None = None
    pk: bool = False
    unique: bool = False
    not_null: bool = False
    increment: bool = False
    # DefaultLiteral from the reader; raw primitives are also accepted
    default: Any = None
    note: str | None = None
    line: int = 0


@dataclass(slots=True)
class Index:
    # Column names; expression subjects are kept with their backticks
    columns: list[str] = field(default_factory=list)
    pk: bool = False
    unique: bool = False
    type: str | None = None
    name: str | None = None
    note: str | None = None


@dataclass(slots=True)
class DocumentTable:
    name: str
    schema: str | None = None
    alias: str | None = None
    fields: list[Field] = field(default_factory=list)
    indexes: list[Index] = field(default_factory=list)
    note: str | None = None
    line: int = 0


@dataclass(slots=True)
class Endpoint:
    table: str
    schema: str | None = None
    columns: list[str] = field(default_factory=list)
    relation: Relation | None = None


@dataclass(slots=True)
class Reference:
    endpoints: list[Endpoint]
    name: str | None = None
    on_delete: str | None = None
    on_update: str | None = None
    line: int = 0


@dataclass(slots=True)
class EnumValue:
    name: str
    note: str | None = None


@dataclass(slots=True)
class DocumentEnum:
    name: str
    schema: str | None = None
    values: list[EnumValue] = field(default_factory=list)


@dataclass(slots=True)
class DocumentSchema:
    """Everything declared under one namespace, in declaration order."""

    name: str
    tables: list[DocumentTable] = field(default_factory=list)
    refs: list[Reference] = field(default_factory=list)
    enums: list[DocumentEnum] = field(default_factory=list)


@dataclass(slots=True)
class Document:
    schemas: list[DocumentSchema] = field(default_factory=list)

    @property
    def table_count(self) -> int:
        return sum(len(s.tables) for s in self.schemas)


# ============================================================================
# Diagnostics
# ============================================================================

Severity = Literal["error", "warning"]


@dataclass(frozen=True, slots=True)
class Diagnostic:
    message: str
    line: int = 1
    column: int = 1
    severity: Severity = "error"


class DbmlSyntaxError(ValueError):
    """Raised by the reader; carries one or more structured diagnostics."""

    def __init__(self, diagnostics: list[Diagnostic]) -> None:
        self.diagnostics = diagnostics
        first = diagnostics[0].message if diagnostics else "Invalid DBML"
        super().__init__(first)


@dataclass(slots=True)
class ValidationError:
    line: int
    column: int
    message: str
    severity: Severity = "error"


@dataclass(slots=True)
class ValidationResult:
    is_valid: bool
    errors: list[ValidationError] = field(default_factory=list)
    document: Document | None = None
