"""graph_fusion - Pattern-matching graph rewrites for tensor dataflow graphs.

Pipeline: build graph -> match patterns -> rewrite fusion groups -> prune

Subpackages:
    graph: Operation kinds, nodes, the DataflowGraph container, node factories,
        a numpy reference interpreter and DOT export
    pattern: Pattern IR (Exact, Label, Skip) and the structural matcher
    passes: Fusion passes (RNN mat, batch dot, sigmoid multiply) and the pass manager
    utils: Logging helpers
"""

from graph_fusion.config import FusionConfig
from graph_fusion.errors import (
    ArityError,
    GraphCorruptionError,
    GraphError,
    GraphFusionError,
    PatternError,
    StructuralError,
    UnboundLabelError,
)
from graph_fusion.graph import DataflowGraph, Node, OpKind, evaluate, ops
from graph_fusion.passes import BatchDotFusion, FusionPass, PassManager, RnnMatFusion, SigmoidMultiplyFusion
from graph_fusion.pattern import Matcher, exact, label, skip

__all__ = [
    "ArityError",
    "BatchDotFusion",
    "DataflowGraph",
    "FusionConfig",
    "FusionPass",
    "GraphCorruptionError",
    "GraphError",
    "GraphFusionError",
    "Matcher",
    "Node",
    "OpKind",
    "PassManager",
    "PatternError",
    "RnnMatFusion",
    "SigmoidMultiplyFusion",
    "StructuralError",
    "UnboundLabelError",
    "evaluate",
    "exact",
    "label",
    "ops",
    "skip",
]
