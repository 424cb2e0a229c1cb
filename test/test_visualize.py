"""Unit tests for graph_fusion.graph.visualize DOT export.

Run with: pytest test/test_visualize.py -v
"""

from graph_fusion.graph import DataflowGraph, graph_to_dot, ops, save_dot


def test_renders_live_nodes_and_edges(diamond_graph) -> None:
    """Every live node and edge appears, with slots as edge labels."""
    graph, nodes = diamond_graph
    ops.negative(nodes["x"])
    dot = graph_to_dot(graph)
    assert dot.startswith('digraph "diamond" {')
    assert dot.endswith("}")
    for node_id in range(5):
        assert f"node{node_id} [" in dot
    assert "node5 [" not in dot
    assert 'node0 -> node2 [label="0"];' in dot
    assert 'node3 -> node4 [label="1"];' in dot


def test_output_nodes_highlighted(diamond_graph) -> None:
    """Outputs get a thicker border."""
    graph, _ = diamond_graph
    lines = graph_to_dot(graph).splitlines()
    output_line = next(line for line in lines if line.strip().startswith("node4 ["))
    assert "penwidth=2" in output_line
    assert all("penwidth" not in line for line in lines if line.strip().startswith("node0 ["))


def test_repeated_operand_slots() -> None:
    """A node reading one producer twice lists both slots on the edge."""
    graph = DataflowGraph("square")
    x = graph.parameter("x", (2,))
    graph.set_outputs(x * x)
    assert 'node0 -> node1 [label="0,1"];' in graph_to_dot(graph)


def test_save_dot(tmp_path, diamond_graph) -> None:
    """save_dot writes the DOT source to the given path."""
    graph, _ = diamond_graph
    path = save_dot(graph, tmp_path / "diamond.dot")
    assert path.read_text() == graph_to_dot(graph) + "\n"
