"""Fusion passes and the pass manager."""

from graph_fusion.passes.base import FusionPass, PassStats
from graph_fusion.passes.batch_dot_fusion import BatchDotFusion, BatchDotOpportunity
from graph_fusion.passes.manager import PassManager, format_pass_summary
from graph_fusion.passes.rnn_mat_fusion import FusionGroup, RnnMatFusion
from graph_fusion.passes.sigmoid_multiply_fusion import ActivationProduct, SigmoidMultiplyFusion

__all__ = [
    "ActivationProduct",
    "BatchDotFusion",
    "BatchDotOpportunity",
    "FusionGroup",
    "FusionPass",
    "PassManager",
    "PassStats",
    "RnnMatFusion",
    "SigmoidMultiplyFusion",
    "format_pass_summary",
]
