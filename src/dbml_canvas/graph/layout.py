from __future__ import annotations

from collections.abc import Sequence

from grandalf.graphs import Edge, Graph, Vertex
from grandalf.layouts import SugiyamaLayout

from .types import DiagramEdge, GraphOptions, LayoutDirection, Position, TableNode

# ============================================================================
# Node placement
#
# grid_position(): deterministic default slot for a node seen for the first
#   time (row by row, options.grid_columns per row).
# auto_layout(): layered layout of the whole diagram via grandalf. Each
#   connected component is laid out on its own, then components are placed
#   side by side.
# ============================================================================

NODE_MIN_WIDTH = 320
NODE_BASE_HEIGHT = 100
NODE_ROW_HEIGHT = 45
NODE_PAD_X = 24
COLUMN_FONT_SIZE = 12
NODE_SPACING = 60
LAYER_SPACING = 100
LAYOUT_MARGIN = 50
COMPONENT_GAP = 120


def grid_position(index: int, options: GraphOptions) -> Position:
    origin_x, origin_y = options.grid_origin
    return Position(
        x=origin_x + (index % options.grid_columns) * options.column_spacing,
        y=origin_y + (index // options.grid_columns) * options.row_spacing,
    )


def estimate_mono_text_width(text: str, font_size: float) -> float:
    """Average character width in px for monospace fonts (uniform glyph width)."""
    return len(text) * font_size * 0.6


def node_size(node: TableNode) -> tuple[float, float]:
    """Width and height of a table box, driven by its column rows."""
    widest = 0.0
    for column in node.columns:
        w = estimate_mono_text_width(f"{column.name}  {column.type}", COLUMN_FONT_SIZE)
        if w > widest:
            widest = w
    width = max(NODE_MIN_WIDTH, widest + NODE_PAD_X * 2)
    height = NODE_BASE_HEIGHT + len(node.columns) * NODE_ROW_HEIGHT
    return width, height


class _VertexView:
    """Minimal view object required by grandalf's SugiyamaLayout."""

    def __init__(self, w: float, h: float) -> None:
        self.w = w
        self.h = h
        # xy is set by the layout engine (center coordinates)
        self.xy = (0.0, 0.0)


def auto_layout(
    nodes: Sequence[TableNode],
    edges: Sequence[DiagramEdge],
    direction: LayoutDirection = "TB",
) -> dict[str, Position]:
    """Compute top-left positions for every node.

    TB stacks relationship layers top to bottom, LR left to right.
    """
    if not nodes:
        return {}

    horizontal = direction == "LR"
    sizes = {node.id: node_size(node) for node in nodes}

    vertices: dict[str, Vertex] = {}
    for node in nodes:
        w, h = sizes[node.id]
        v = Vertex(node.id)
        # LR: grandalf's layer axis (y) becomes our x axis, so swap the box
        v.view = _VertexView(h, w) if horizontal else _VertexView(w, h)
        vertices[node.id] = v

    graph_edges: list[Edge] = []
    seen_pairs: set[tuple[str, str]] = set()
    for edge in edges:
        pair = (edge.source, edge.target)
        if edge.source == edge.target or pair in seen_pairs:
            continue
        src = vertices.get(edge.source)
        tgt = vertices.get(edge.target)
        if src is None or tgt is None:
            continue
        seen_pairs.add(pair)
        graph_edges.append(Edge(src, tgt))

    g = Graph(list(vertices.values()), graph_edges)

    positions: dict[str, Position] = {}
    offset = float(LAYOUT_MARGIN)

    for component in g.C:
        try:
            sug = SugiyamaLayout(component)
            sug.xspace = NODE_SPACING
            sug.yspace = LAYER_SPACING
            sug.init_all()
            sug.draw()
        except Exception as err:
            raise RuntimeError(f"Grandalf layout failed: {err}") from err

        placed: dict[str, Position] = {}
        for v in component.sV:
            cx, cy = v.view.xy
            if horizontal:
                cx, cy = cy, cx
            w, h = sizes[v.data]
            placed[v.data] = Position(x=cx - w / 2, y=cy - h / 2)

        min_x = min(p.x for p in placed.values())
        min_y = min(p.y for p in placed.values())
        extent = 0.0
        for node_id, p in placed.items():
            w, h = sizes[node_id]
            if horizontal:
                shifted = Position(x=p.x - min_x + LAYOUT_MARGIN, y=p.y - min_y + offset)
                extent = max(extent, shifted.y + h)
            else:
                shifted = Position(x=p.x - min_x + offset, y=p.y - min_y + LAYOUT_MARGIN)
                extent = max(extent, shifted.x + w)
            positions[node_id] = shifted

        offset = extent + COMPONENT_GAP

    return positions
