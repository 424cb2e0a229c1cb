"""Graph model: operation kinds, nodes, the DataflowGraph container and node factories."""

from graph_fusion.graph import ops
from graph_fusion.graph.evaluate import evaluate
from graph_fusion.graph.graph import DataflowGraph
from graph_fusion.graph.node import Node, OpKind
from graph_fusion.graph.visualize import graph_to_dot, save_dot

__all__ = ["DataflowGraph", "Node", "OpKind", "evaluate", "graph_to_dot", "ops", "save_dot"]
