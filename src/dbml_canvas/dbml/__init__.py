from __future__ import annotations

from .types import (
    Document,
    DocumentSchema,
    DocumentTable,
    DocumentEnum,
    Field,
    Index,
    Reference,
    Endpoint,
    DefaultLiteral,
    Diagnostic,
    DbmlSyntaxError,
    ValidationError,
    ValidationResult,
)
from .parser import parse_dbml
from .adapter import parse_document, validate_dbml

__all__ = [
    "Document",
    "DocumentSchema",
    "DocumentTable",
    "DocumentEnum",
    "Field",
    "Index",
    "Reference",
    "Endpoint",
    "DefaultLiteral",
    "Diagnostic",
    "DbmlSyntaxError",
    "ValidationError",
    "ValidationResult",
    "parse_dbml",
    "parse_document",
    "validate_dbml",
]
