"""Graphviz DOT rendering of a DataflowGraph for debugging rewrites."""

import logging
from pathlib import Path

from graph_fusion.graph.graph import DataflowGraph
from graph_fusion.graph.node import Node, OpKind

logger = logging.getLogger(__name__)

NODE_KIND_COLORS: dict[str, str] = {
    "parameter": "#FFB6C1",
    "view": "#FFEAA7",
    "compute": "#A8D8EA",
    "fused": "#A8E6CF",
}
DEFAULT_NODE_COLOR = "#E8E8E8"

_VIEW_KINDS = frozenset({OpKind.RESHAPE, OpKind.SLICE, OpKind.BROADCAST, OpKind.CONCAT})
_FUSED_KINDS = frozenset({OpKind.BATCH_DOT, OpKind.SIGMOID_MULTIPLY})


def _escape_dot_string(s: str) -> str:
    return s.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _node_category(node: Node) -> str:
    if node.kind is OpKind.PARAMETER:
        category = "parameter"
    elif node.kind in _VIEW_KINDS:
        category = "view"
    elif node.kind in _FUSED_KINDS:
        category = "fused"
    else:
        category = "compute"
    return category


def _format_node(node: Node) -> tuple[str, str]:
    """Return the DOT label and fill color for a node."""
    dims = ", ".join(str(d) for d in node.shape)
    lines = [f"%{node.id} {node.kind.display_name}", f"{node.dtype}[{dims}]"]
    for key, value in sorted(node.attrs.items()):
        lines.append(f"{key}={value}")
    color = NODE_KIND_COLORS.get(_node_category(node), DEFAULT_NODE_COLOR)
    return _escape_dot_string("\n".join(lines)), color


def graph_to_dot(graph: DataflowGraph, indent: str = "    ") -> str:
    """Render the live part of ``graph`` as DOT source.

    Edge labels list the consumer input slots each edge feeds.

    Args:
        graph: Graph to render.
        indent: Indentation for statements inside the digraph block.

    Returns:
        DOT source text.
    """
    ordered = graph.ordered_nodes()
    live = {node.id for node in ordered}
    outputs = {node.id for node in graph.outputs}
    lines = [
        f'digraph "{_escape_dot_string(graph.name)}" {{',
        f"{indent}rankdir=TB;",
        f"{indent}node [shape=box, style=filled];",
    ]
    for node in ordered:
        label, color = _format_node(node)
        border = ", penwidth=2" if node.id in outputs else ""
        lines.append(f'{indent}node{node.id} [label="{label}", fillcolor="{color}"{border}];')
    for node in ordered:
        for consumer in node.consumers:
            if consumer.id not in live:
                continue
            slots = ",".join(str(s) for s in graph.edges[node.id, consumer.id]["slots"])
            lines.append(f'{indent}node{node.id} -> node{consumer.id} [label="{slots}"];')
    lines.append("}")
    return "\n".join(lines)


def save_dot(graph: DataflowGraph, path: str | Path) -> Path:
    """Write ``graph_to_dot(graph)`` to ``path`` and return the path."""
    path = Path(path)
    path.write_text(graph_to_dot(graph) + "\n")
    logger.info(f"Wrote {graph.name} to {path}")
    return path
