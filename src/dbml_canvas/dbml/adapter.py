from __future__ import annotations

import logging

from ..errors import ParseDiagnostic
from .parser import parse_dbml
from .types import DbmlSyntaxError, Document, ValidationError, ValidationResult

logger = logging.getLogger(__name__)

# ============================================================================
# Document model adapter
#
# The only entry point the transformer uses to read schema text. Every reader
# failure leaves here as a single-line ParseDiagnostic.
# ============================================================================

EMPTY_MESSAGE = "DBML string cannot be empty"
FALLBACK_MESSAGE = "Failed to parse DBML"


def parse_document(text: str) -> Document:
    """Parse schema text into a Document or raise ParseDiagnostic."""
    if not text or not text.strip():
        raise ParseDiagnostic(EMPTY_MESSAGE)

    try:
        return parse_dbml(text)
    except DbmlSyntaxError as err:
        if err.diagnostics:
            first = err.diagnostics[0]
            message = _single_line(first.message) or FALLBACK_MESSAGE
            raise ParseDiagnostic(message, first.line, first.column) from err
        raise ParseDiagnostic(FALLBACK_MESSAGE) from err
    except Exception as err:
        logger.debug("DBML reader failed unexpectedly: %r", err)
        raise ParseDiagnostic(FALLBACK_MESSAGE) from err


def validate_dbml(text: str) -> ValidationResult:
    """Syntax-only validation with line/column positions. Never raises."""
    if not text or not text.strip():
        return ValidationResult(
            is_valid=False,
            errors=[ValidationError(line=1, column=1, message="DBML cannot be empty")],
        )

    try:
        document = parse_dbml(text)
    except DbmlSyntaxError as err:
        errors = [
            ValidationError(
                line=diag.line or 1,
                column=diag.column or 1,
                message=diag.message or "Syntax error",
                severity=diag.severity,
            )
            for diag in err.diagnostics
        ]
        if not errors:
            errors.append(ValidationError(line=1, column=1, message="Invalid DBML syntax"))
        return ValidationResult(is_valid=False, errors=errors)

    return ValidationResult(is_valid=True, document=document)


def _single_line(message: str) -> str:
    return " ".join(message.split())
