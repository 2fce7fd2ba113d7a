from __future__ import annotations

# ============================================================================
# Error taxonomy
#
# Fatal conditions raise. Everything else is collected as TransformWarning
# data on the result (see types.py).
# ============================================================================


class SchemaError(ValueError):
    """Base class for fatal schema transformation failures."""


class ParseDiagnostic(SchemaError):
    """The schema text could not be turned into a document."""

    def __init__(self, message: str, line: int | None = None, column: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.line = line
        self.column = column


class LimitExceeded(SchemaError):
    """A size ceiling was crossed; the whole transform is aborted."""

    def __init__(self, message: str, limit: str, maximum: int, found: int) -> None:
        super().__init__(message)
        self.limit = limit
        self.maximum = maximum
        self.found = found


class TransformInProgress(RuntimeError):
    """A submit arrived while another transform was still in flight."""
