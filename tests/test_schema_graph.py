"""Tests for the graph state engine: submit lifecycle, node and edge
construction, sticky positions, layout history, lock and highlight."""
from __future__ import annotations

import asyncio
import threading

import pytest

from dbml_canvas.errors import LimitExceeded, ParseDiagnostic, TransformInProgress
from dbml_canvas.graph.store import SchemaGraph
from dbml_canvas.graph.types import GraphOptions, GraphStatus, Position
from dbml_canvas.transformer import transform_dbml
from dbml_canvas.types import (
    Column,
    Relationship,
    RelationshipEndpoint,
    Table,
    TransformLimits,
    TransformResult,
)

SCHEMA = """
Table users {
  id int [pk]
  email varchar
}

Table posts {
  id int [pk]
  user_id int [ref: > users.id]
}
"""

SCHEMA_WITH_TAGS = SCHEMA + """
Table tags {
  id int [pk]
}
"""


@pytest.fixture
def graph() -> SchemaGraph:
    g = SchemaGraph()
    g.submit(SCHEMA)
    return g


def relationship(parent: tuple[str, str], child: tuple[str, str]) -> Relationship:
    return Relationship(
        id=f"public.{parent[0]}.{parent[1]}->public.{child[0]}.{child[1]}:0:0:0",
        parent=RelationshipEndpoint("public", parent[0], parent[1], "1"),
        child=RelationshipEndpoint("public", child[0], child[1], "*"),
    )


# ============================================================================
# Submit lifecycle
# ============================================================================


class TestSubmit:
    def test_starts_empty(self):
        g = SchemaGraph()
        assert g.status is GraphStatus.EMPTY
        assert g.nodes == []
        assert g.edges == []
        assert not g.can_undo

    def test_ready_after_valid_text(self, graph):
        assert graph.status is GraphStatus.READY
        assert graph.error is None
        assert graph.dbml == SCHEMA
        assert graph.sql.startswith('CREATE TABLE "users"')
        assert [n.id for n in graph.nodes] == ["public.users", "public.posts"]

    def test_loading_while_transform_runs(self):
        seen = []
        g = SchemaGraph(transform=lambda text: seen.append(g.status) or transform_dbml(text))
        g.submit(SCHEMA)
        assert seen == [GraphStatus.LOADING]
        assert g.status is GraphStatus.READY

    @pytest.mark.parametrize("text", ["", "  \n "])
    def test_empty_text_clears(self, graph, text):
        graph.submit(text)
        assert graph.status is GraphStatus.EMPTY
        assert graph.nodes == []
        assert graph.edges == []
        assert graph.sql == ""

    def test_failure_keeps_last_good_diagram(self, graph):
        before = [n.id for n in graph.nodes]
        with pytest.raises(ParseDiagnostic):
            graph.submit("Table broken { id ")
        assert graph.status is GraphStatus.ERRORED
        assert graph.error.startswith("Expected")
        assert [n.id for n in graph.nodes] == before
        assert len(graph.edges) == 1

    def test_recovers_after_failure(self, graph):
        with pytest.raises(ParseDiagnostic):
            graph.submit("Table broken { id ")
        graph.submit(SCHEMA_WITH_TAGS)
        assert graph.status is GraphStatus.READY
        assert graph.error is None
        assert len(graph.nodes) == 3

    def test_limit_failure_is_recorded(self):
        g = SchemaGraph(transform=lambda text: transform_dbml(text, TransformLimits(max_tables=1)))
        with pytest.raises(LimitExceeded):
            g.submit(SCHEMA)
        assert g.status is GraphStatus.ERRORED
        assert "maximum table limit" in g.error

    def test_rejects_submit_while_loading(self):
        started = threading.Event()
        release = threading.Event()

        def slow(text):
            started.set()
            release.wait(5)
            return transform_dbml(text)

        g = SchemaGraph(transform=slow)

        async def scenario():
            task = asyncio.create_task(g.submit_async(SCHEMA))
            await asyncio.to_thread(started.wait, 5)
            assert g.is_loading
            with pytest.raises(TransformInProgress):
                g.submit(SCHEMA_WITH_TAGS)
            release.set()
            await task

        asyncio.run(scenario())
        assert g.status is GraphStatus.READY
        assert len(g.nodes) == 2

    def test_cancelled_submit_settles_and_allows_resubmit(self):
        started = threading.Event()
        release = threading.Event()

        def slow(text):
            started.set()
            release.wait(5)
            return transform_dbml(text)

        g = SchemaGraph(transform=slow)

        async def scenario():
            task = asyncio.create_task(g.submit_async(SCHEMA))
            await asyncio.to_thread(started.wait, 5)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            assert g.status is GraphStatus.ERRORED
            assert g.error == "Schema update interrupted"
            release.set()

        asyncio.run(scenario())
        g.submit(SCHEMA)
        assert g.status is GraphStatus.READY
        assert len(g.nodes) == 2

    def test_failure_while_applying_result_settles(self):
        g = SchemaGraph(transform=lambda text: None)
        with pytest.raises(AttributeError):
            g.submit(SCHEMA)
        assert g.status is GraphStatus.ERRORED
        assert not g.is_loading

    def test_submit_async_failure(self):
        g = SchemaGraph()
        with pytest.raises(ParseDiagnostic):
            asyncio.run(g.submit_async("Table broken { id "))
        assert g.status is GraphStatus.ERRORED

    def test_tables_are_copies(self):
        result = transform_dbml(SCHEMA)
        g = SchemaGraph(transform=lambda text: result)
        g.submit(SCHEMA)
        assert g.tables == list(result.tables)
        assert g.tables[0] is not result.tables[0]


# ============================================================================
# Nodes and edges
# ============================================================================


class TestNodesAndEdges:
    def test_nodes_take_grid_slots(self, graph):
        assert graph.node("public.users").position == Position(120, 120)
        assert graph.node("public.posts").position == Position(440, 120)

    def test_node_fields(self, graph):
        users = graph.node("public.users")
        assert users.label == "users"
        assert users.schema == "public"
        assert users.display_label == "users"
        assert users.type == "table"
        assert [c.name for c in users.columns] == ["id", "email"]
        assert users.source_columns == ["id"]
        assert graph.node("public.posts").source_columns == []

    def test_alias_is_part_of_node_id(self):
        g = SchemaGraph()
        g.submit(
            "Table users as U {\n  id int\n}\n"
            "Table sales.orders {\n  user_id int [ref: > U.id]\n}"
        )
        users = g.node("public.U")
        assert users.label == "users"
        assert users.alias == "U"
        assert g.node("sales.orders").display_label == "sales.orders"
        assert g.edges[0].source == "public.U"

    def test_edge_per_relationship(self, graph):
        (edge,) = graph.edges
        assert edge.id == "public.users.id->public.posts.user_id:0:0:0"
        assert edge.source == "public.users"
        assert edge.target == "public.posts"
        assert edge.source_handle == "public.users-id-source"
        assert edge.target_handle == "public.posts-user_id-target"
        assert edge.animated is False
        assert edge.type == "smoothstep"

    def test_unknown_node_raises(self, graph):
        with pytest.raises(KeyError):
            graph.node("public.ghost")

    def test_edges_to_missing_tables_or_columns_become_warnings(self):
        users = Table("public", "users", [Column("id", "int")])
        posts = Table("public", "posts", [Column("user_id", "int")])
        result = TransformResult(
            tables=(users, posts),
            relationships=(
                relationship(("users", "id"), ("posts", "user_id")),
                relationship(("ghosts", "id"), ("posts", "user_id")),
                relationship(("users", "missing"), ("posts", "user_id")),
            ),
            warnings=(),
            exported_text="",
        )
        g = SchemaGraph(transform=lambda text: result)
        g.submit("anything")
        assert len(g.edges) == 1
        assert [w.message for w in g.warnings] == [
            "Relationship references unknown table",
            "Relationship references unknown column",
        ]

    def test_filter(self, graph):
        nodes, edges = graph.filter("email")
        assert [n.id for n in nodes] == ["public.users"]
        assert edges == []


# ============================================================================
# Positions and history
# ============================================================================


class TestPositions:
    def test_preserve_positions_keeps_known_nodes(self, graph):
        graph.move_node("public.users", 900, 900)
        graph.submit(SCHEMA_WITH_TAGS, preserve_positions=True)
        assert graph.node("public.users").position == Position(900, 900)
        assert graph.node("public.posts").position == Position(440, 120)
        assert graph.node("public.tags").position == Position(760, 120)

    def test_without_preserve_positions_nodes_reset(self, graph):
        graph.move_node("public.users", 900, 900)
        graph.submit(SCHEMA)
        assert graph.node("public.users").position == Position(120, 120)

    def test_completed_drag_records_history(self, graph):
        graph.move_node("public.users", 130, 130, dragging=True)
        graph.move_node("public.users", 140, 140, dragging=True)
        assert len(graph.history) == 0

        graph.move_node("public.users", 150, 150)
        assert len(graph.history) == 2
        assert graph.can_undo

        graph.undo()
        assert graph.node("public.users").position == Position(120, 120)
        assert graph.can_redo
        graph.redo()
        assert graph.node("public.users").position == Position(150, 150)

    def test_undo_without_history_is_noop(self, graph):
        graph.undo()
        graph.redo()
        assert graph.node("public.users").position == Position(120, 120)

    def test_new_drag_after_undo_drops_redo(self, graph):
        graph.move_node("public.users", 150, 150)
        graph.move_node("public.users", 300, 300)
        graph.undo()
        graph.move_node("public.posts", 0, 0)
        assert not graph.can_redo
        assert len(graph.history) == 3

    def test_history_respects_capacity(self):
        g = SchemaGraph(GraphOptions(max_history=3))
        g.submit(SCHEMA)
        for i in range(10):
            g.move_node("public.users", i, i)
        assert len(g.history) == 3

    def test_set_positions(self, graph):
        graph.set_positions({"public.users": Position(1, 2)})
        assert graph.node("public.users").position == Position(1, 2)
        assert graph.node("public.posts").position == Position(440, 120)
        graph.undo()
        assert graph.node("public.users").position == Position(120, 120)

    def test_auto_layout(self, graph):
        graph.auto_layout()
        users = graph.node("public.users").position
        posts = graph.node("public.posts").position
        assert users.y < posts.y
        assert len(graph.history) == 2
        graph.undo()
        assert graph.node("public.users").position == Position(120, 120)


# ============================================================================
# Lock and highlight
# ============================================================================


class TestToggles:
    def test_lock_blocks_moves(self, graph):
        assert graph.toggle_lock() is True
        graph.move_node("public.users", 500, 500)
        graph.set_positions({"public.users": Position(7, 7)})
        assert graph.node("public.users").position == Position(120, 120)
        assert len(graph.history) == 0

        assert graph.toggle_lock() is False
        graph.move_node("public.users", 500, 500)
        assert graph.node("public.users").position == Position(500, 500)

    def test_highlight_is_exclusive(self):
        g = SchemaGraph()
        g.submit(
            "Table a {\n  id int\n}\n"
            "Table b {\n  a_id int [ref: > a.id]\n  a2_id int [ref: > a.id]\n}"
        )
        first, second = g.edges
        g.set_edge_highlight(first.id, True)
        assert (first.animated, second.animated) == (True, False)
        g.set_edge_highlight(second.id, True)
        assert (first.animated, second.animated) == (False, True)
        g.set_edge_highlight(second.id, False)
        assert (first.animated, second.animated) == (False, False)
