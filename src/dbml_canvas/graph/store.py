from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Callable, Mapping

from ..errors import TransformInProgress
from ..transformer import transform_dbml
from ..types import Relationship, Table, TransformResult, TransformWarning
from .filter import filter_graph
from .history import LayoutHistory
from .layout import auto_layout, grid_position
from .types import (
    DiagramEdge,
    GraphOptions,
    GraphStatus,
    LayoutDirection,
    Position,
    TableNode,
)

logger = logging.getLogger(__name__)

# ============================================================================
# Graph state engine
#
# Applies transform results to the live diagram:
#   - node ids are "schema.reference_name"; known ids keep their position
#     when positions are preserved, new ids get a grid slot
#   - edges are rebuilt 1:1 from relationships
#   - only layout is undo-tracked, and only on completed drags or explicit
#     layout commands
#
# States: EMPTY -> LOADING -> READY | ERRORED. A failed transform keeps the
# last good nodes and edges on screen.
# ============================================================================

TransformFn = Callable[[str], TransformResult]


class SchemaGraph:
    def __init__(
        self,
        options: GraphOptions | None = None,
        transform: TransformFn = transform_dbml,
    ) -> None:
        self.options = options or GraphOptions()
        self._transform = transform

        self.status = GraphStatus.EMPTY
        self.dbml = ""
        self.sql = ""
        self.tables: list[Table] = []
        self.nodes: list[TableNode] = []
        self.edges: list[DiagramEdge] = []
        self.warnings: list[TransformWarning] = []
        self.error: str | None = None
        self.locked = False

        self.history = LayoutHistory(self.options.max_history)
        # Layout before the drag currently in progress
        self._drag_origin: dict[str, Position] | None = None

    # ------------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------------

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo

    @property
    def can_redo(self) -> bool:
        return self.history.can_redo

    @property
    def is_loading(self) -> bool:
        return self.status is GraphStatus.LOADING

    def positions(self) -> dict[str, Position]:
        return {node.id: node.position for node in self.nodes}

    def node(self, node_id: str) -> TableNode:
        for node in self.nodes:
            if node.id == node_id:
                return node
        raise KeyError(node_id)

    def filter(self, query: str) -> tuple[list[TableNode], list[DiagramEdge]]:
        return filter_graph(self.nodes, self.edges, query)

    # ------------------------------------------------------------------------
    # Submitting schema text
    # ------------------------------------------------------------------------

    def submit(self, text: str, preserve_positions: bool = False) -> None:
        """Transform `text` and replace the diagram with the result.

        Raises TransformInProgress while another submit is in flight, and
        re-raises transform failures after recording them in `error`.
        """
        if not self._begin(text):
            return
        try:
            result = self._transform(text)
            self._apply(text, result, preserve_positions)
        except BaseException as err:
            self._fail(err)
            raise

    async def submit_async(self, text: str, preserve_positions: bool = False) -> None:
        """Like submit(), with the transform running in a worker thread.

        Cancelling the awaiting task settles the graph as ERRORED; the
        worker's eventual result is discarded.
        """
        if not self._begin(text):
            return
        try:
            result = await asyncio.to_thread(self._transform, text)
            self._apply(text, result, preserve_positions)
        except BaseException as err:
            self._fail(err)
            raise

    def _begin(self, text: str) -> bool:
        """Guard and state change shared by both submit paths.

        Returns False when there is nothing to transform.
        """
        if self.status is GraphStatus.LOADING:
            logger.warning("Schema update already in progress")
            raise TransformInProgress("Schema update already in progress")

        if not text or not text.strip():
            self._clear()
            return False

        self.status = GraphStatus.LOADING
        self.error = None
        return True

    def _clear(self) -> None:
        self.status = GraphStatus.EMPTY
        self.dbml = ""
        self.sql = ""
        self.tables = []
        self.nodes = []
        self.edges = []
        self.warnings = []
        self.error = None

    def _fail(self, err: BaseException) -> None:
        if isinstance(err, Exception):
            message = str(err) or "Failed to parse DBML"
        else:
            # Cancellation or interpreter shutdown
            message = "Schema update interrupted"
        logger.info("Schema update failed: %s", message)
        self.status = GraphStatus.ERRORED
        self.error = message

    def _apply(self, text: str, result: TransformResult, preserve_positions: bool) -> None:
        previous = self.positions() if preserve_positions else {}
        derived: list[TransformWarning] = []

        tables = [copy.deepcopy(t) for t in result.tables]
        nodes = self._build_nodes(tables, result.relationships, previous)
        edges = self._build_edges(tables, nodes, result.relationships, derived)

        self.dbml = text
        self.sql = result.exported_text
        self.tables = tables
        self.nodes = nodes
        self.edges = edges
        self.warnings = [*result.warnings, *derived]
        self.error = None
        self._drag_origin = None
        self.status = GraphStatus.READY
        logger.debug("diagram ready: %d nodes, %d edges", len(nodes), len(edges))

    def _build_nodes(
        self,
        tables: list[Table],
        relationships: tuple[Relationship, ...],
        previous: Mapping[str, Position],
    ) -> list[TableNode]:
        # "schema.name" -> parent-side column names, in first-seen order
        sources: dict[str, list[str]] = {}
        for rel in relationships:
            cols = sources.setdefault(f"{rel.parent.schema}.{rel.parent.table}", [])
            if rel.parent.column not in cols:
                cols.append(rel.parent.column)

        nodes: list[TableNode] = []
        for index, table in enumerate(tables):
            node_id = table.node_key
            position = previous.get(node_id) or grid_position(index, self.options)
            nodes.append(
                TableNode(
                    id=node_id,
                    position=position,
                    label=table.name,
                    schema=table.schema,
                    display_label=table.display_label,
                    alias=table.alias,
                    columns=table.columns,
                    source_columns=sources.get(f"{table.schema}.{table.name}", []),
                )
            )
        return nodes

    def _build_edges(
        self,
        tables: list[Table],
        nodes: list[TableNode],
        relationships: tuple[Relationship, ...],
        warnings: list[TransformWarning],
    ) -> list[DiagramEdge]:
        registry: dict[str, tuple[Table, TableNode]] = {
            f"{table.schema}.{table.name}": (table, node) for table, node in zip(tables, nodes)
        }

        edges: list[DiagramEdge] = []
        for rel in relationships:
            parent = registry.get(f"{rel.parent.schema}.{rel.parent.table}")
            child = registry.get(f"{rel.child.schema}.{rel.child.table}")
            if parent is None or child is None:
                warnings.append(
                    TransformWarning(
                        "Relationship references unknown table",
                        f"{rel.parent.schema}.{rel.parent.table} -> "
                        f"{rel.child.schema}.{rel.child.table}",
                    )
                )
                continue

            parent_table, parent_node = parent
            child_table, child_node = child
            if parent_table.column(rel.parent.column) is None or child_table.column(rel.child.column) is None:
                warnings.append(
                    TransformWarning(
                        "Relationship references unknown column",
                        f"{parent_table.display_label}.{rel.parent.column} -> "
                        f"{child_table.display_label}.{rel.child.column}",
                    )
                )
                continue

            edges.append(
                DiagramEdge(
                    id=rel.id,
                    source=parent_node.id,
                    source_handle=f"{parent_node.id}-{rel.parent.column}-source",
                    target=child_node.id,
                    target_handle=f"{child_node.id}-{rel.child.column}-target",
                )
            )
        return edges

    # ------------------------------------------------------------------------
    # Layout changes from the diagram surface
    # ------------------------------------------------------------------------

    def move_node(self, node_id: str, x: float, y: float, dragging: bool = False) -> None:
        """Apply a surface-reported move; a finished drag is recorded in history."""
        if self.locked:
            return

        node = self.node(node_id)
        if self._drag_origin is None:
            self._drag_origin = self.positions()
        node.position = Position(x=x, y=y)

        if dragging:
            return

        origin = self._drag_origin
        self._drag_origin = None
        if len(self.history) == 0:
            self.history.push(origin)
        self.history.push(self.positions())

    def set_positions(self, positions: Mapping[str, Position]) -> None:
        """Replace the layout wholesale and record it in history."""
        if self.locked:
            return
        if len(self.history) == 0 and self.nodes:
            self.history.push(self.positions())
        self._apply_positions(positions)
        self.history.push(self.positions())

    def auto_layout(self, direction: LayoutDirection = "TB") -> None:
        self.set_positions(auto_layout(self.nodes, self.edges, direction))

    def undo(self) -> None:
        positions = self.history.undo()
        if positions is not None:
            self._apply_positions(positions)

    def redo(self) -> None:
        positions = self.history.redo()
        if positions is not None:
            self._apply_positions(positions)

    def _apply_positions(self, positions: Mapping[str, Position]) -> None:
        for node in self.nodes:
            if node.id in positions:
                node.position = positions[node.id]

    # ------------------------------------------------------------------------
    # Presentation toggles
    # ------------------------------------------------------------------------

    def set_edge_highlight(self, edge_id: str, highlighted: bool) -> None:
        """Animate one edge; highlighting a new edge clears the others."""
        for edge in self.edges:
            if edge.id == edge_id:
                edge.animated = highlighted
            elif highlighted and edge.animated:
                edge.animated = False

    def toggle_lock(self) -> bool:
        self.locked = not self.locked
        return self.locked
