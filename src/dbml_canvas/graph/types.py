from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

from ..types import Column

# ============================================================================
# Diagram graph types
#
# What the graph engine hands to the diagram surface: one node per table,
# one edge per relationship.
# ============================================================================

LayoutDirection = Literal["TB", "LR"]


class GraphStatus(str, Enum):
    EMPTY = "empty"
    LOADING = "loading"
    READY = "ready"
    ERRORED = "errored"


@dataclass(frozen=True, slots=True)
class Position:
    x: float
    y: float


@dataclass(slots=True)
class TableNode:
    # "schema.reference_name"
    id: str
    position: Position
    # Declared table name
    label: str
    schema: str
    display_label: str
    columns: list[Column]
    alias: str | None = None
    # Columns on the parent side of at least one relationship
    source_columns: list[str] = field(default_factory=list)
    type: str = "table"


@dataclass(slots=True)
class DiagramEdge:
    # Relationship id
    id: str
    source: str
    source_handle: str
    target: str
    target_handle: str
    animated: bool = False
    type: str = "smoothstep"


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    """Immutable layout snapshot: node id -> position."""

    positions: dict[str, Position]
    timestamp: float


@dataclass(frozen=True, slots=True)
class GraphOptions:
    grid_columns: int = 4
    grid_origin: tuple[float, float] = (120.0, 120.0)
    column_spacing: float = 320.0
    row_spacing: float = 220.0
    max_history: int = 50
