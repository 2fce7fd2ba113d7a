from __future__ import annotations

from collections.abc import Sequence

from .types import DiagramEdge, TableNode


def filter_graph(
    nodes: Sequence[TableNode],
    edges: Sequence[DiagramEdge],
    query: str,
) -> tuple[list[TableNode], list[DiagramEdge]]:
    """Keep nodes whose label, schema or any column name contains `query`.

    Matching is case-insensitive. Edges survive only when both ends are kept.
    A blank query keeps everything.
    """
    if not query.strip():
        return list(nodes), list(edges)

    needle = query.strip().lower()
    visible = [node for node in nodes if _matches(node, needle)]
    visible_ids = {node.id for node in visible}
    kept_edges = [e for e in edges if e.source in visible_ids and e.target in visible_ids]
    return visible, kept_edges


def _matches(node: TableNode, needle: str) -> bool:
    if needle in node.label.lower():
        return True
    if needle in node.schema.lower():
        return True
    return any(needle in column.name.lower() for column in node.columns)
