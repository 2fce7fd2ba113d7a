from __future__ import annotations

from .types import (
    DiagramEdge,
    GraphOptions,
    GraphStatus,
    HistoryEntry,
    LayoutDirection,
    Position,
    TableNode,
)
from .history import LayoutHistory
from .layout import auto_layout, grid_position
from .filter import filter_graph
from .store import SchemaGraph

__all__ = [
    "DiagramEdge",
    "GraphOptions",
    "GraphStatus",
    "HistoryEntry",
    "LayoutDirection",
    "Position",
    "TableNode",
    "LayoutHistory",
    "auto_layout",
    "grid_position",
    "filter_graph",
    "SchemaGraph",
]
