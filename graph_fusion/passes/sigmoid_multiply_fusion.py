"""Fuse the product of two activations into one sigmoid_multiply node.

Gated recurrent cells multiply a sigmoid gate with a sigmoid or tanh
activation. The pattern ``multiply(act_0, act_1)`` where each operand is a
SIGMOID or TANH node becomes::

    sigmoid_multiply(input(act_0), input(act_1), type_0, type_1)
"""

import logging
from dataclasses import dataclass

from graph_fusion.config import FusionConfig
from graph_fusion.graph import ops
from graph_fusion.graph.graph import DataflowGraph
from graph_fusion.graph.node import Node, OpKind
from graph_fusion.passes.base import FusionPass
from graph_fusion.pattern.ir import Label, Pattern, exact, label

logger = logging.getLogger(__name__)

ACTIVATION_NAMES = {OpKind.SIGMOID: "sigmoid", OpKind.TANH: "tanh"}


def _is_activation(node: Node) -> bool:
    return node.kind in ACTIVATION_NAMES


@dataclass
class ActivationProduct:
    """A multiply of two activation outputs."""

    multiply: Node
    activations: tuple[Node, Node]

    def __str__(self) -> str:
        return f"ActivationProduct(multiply=%{self.multiply.id})"


class SigmoidMultiplyFusion(FusionPass):
    """Replace ``multiply(activation, activation)`` with one fused node."""

    name = "sigmoid_multiply_fusion"

    def __init__(self, config: FusionConfig | None = None) -> None:
        super().__init__(config)
        self.activation_0 = label(predicate=_is_activation, name="activation_0")
        self.activation_1 = label(predicate=_is_activation, name="activation_1")
        self.matcher = self.make_matcher(construct_activation_product_pattern(self.activation_0, self.activation_1))

    def analyze(self, graph: DataflowGraph) -> list[ActivationProduct]:
        products: list[ActivationProduct] = []
        for node in graph.ordered_nodes():
            if node.kind is not OpKind.MULTIPLY:
                continue
            result = self.matcher.try_match(node)
            if result:
                products.append(ActivationProduct(node, (result[self.activation_0], result[self.activation_1])))
        return products

    def transform(self, graph: DataflowGraph, opportunity: ActivationProduct) -> None:
        act_0, act_1 = opportunity.activations
        self.check_current(graph, opportunity.multiply, act_0, act_1)
        fused = ops.sigmoid_multiply(
            act_0.argument(0), act_1.argument(0), ACTIVATION_NAMES[act_0.kind], ACTIVATION_NAMES[act_1.kind]
        )
        graph.check_replacement(opportunity.multiply, fused)
        graph.replace_node(opportunity.multiply, fused)
        logger.debug(f"Replaced %{opportunity.multiply.id} with {fused!r}")


def construct_activation_product_pattern(activation_0: Label, activation_1: Label) -> Pattern:
    return exact(OpKind.MULTIPLY, activation_0, activation_1)
