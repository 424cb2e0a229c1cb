"""Fuse per-time-step matrix products that share weights and bias.

A recurrent layer unrolled over time computes, for every step ``t``::

    slice(D, t) -> reshape -> dot(., reshape(W)) -> add(., broadcast(B))

with the same ``D``, ``W`` and ``B``. This pass recognizes each step with
three independent matchers, one per role (data, weights, bias), groups
the steps by the ``(D, W, B)`` they share, and replaces every group with a
single product over all steps::

    reshape(D, [x*y, z]) -> dot(., reshape(W)) -> add(., broadcast(B))

Each original step then reads its rows back with a strided slice of the
fused result.

Example::

    fusion = RnnMatFusion()
    modified = fusion.run(graph)
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

DATA, WEIGHTS, BIAS = 0, 1, 2
NUM_ROLES = 3


def _is_time_step_slice(node: Node) -> bool:
    """Accept ``D[:, t:t+1, :]`` with unit strides on a rank-3 value."""
    if node.kind is not OpKind.SLICE:
        return False
    source = node.argument(0).shape
    if len(source) != 3:
        return False
    lower, upper, strides = node.attrs["lower"], node.attrs["upper"], node.attrs["strides"]
    full_batch = lower[0] == 0 and upper[0] == source[0]
    full_feature = lower[2] == 0 and upper[2] == source[2]
    return full_batch and full_feature and upper[1] - lower[1] == 1 and tuple(strides) == (1, 1, 1)


def _is_row_major_reshape(node: Node) -> bool:
    if node.kind is not OpKind.RESHAPE:
        return False
    order = tuple(node.attrs["input_order"])
    return order == tuple(range(len(order)))


def _drops_time_axis(node: Node) -> bool:
    source = node.argument(0).shape
    return _is_row_major_reshape(node) and len(source) == 3 and node.shape == (source[0], source[2])


def _is_row_broadcast(node: Node) -> bool:
    return node.kind is OpKind.BROADCAST and tuple(node.attrs["broadcast_axes"]) == (0,)


@dataclass
class FusionGroup:
    """Matched time steps sharing one role tuple.

    Attributes:
        key: Stable ids of the data, weights and bias nodes.
        params: The data, weights and bias nodes.
        members: Matched add nodes, in scan order.
        segments: Per member, the label-bound slice, weights reshape and bias broadcast.
    """

    key: tuple[int, ...]
    params: tuple[Node, ...]
    members: list[Node]
    segments: list[tuple[Node, ...]]

    def __str__(self) -> str:
        members = ", ".join(f"%{m.id}" for m in self.members)
        return f"FusionGroup(key={self.key}, members=[{members}])"


class RnnMatFusion(FusionPass):
    """Combine time-step matrix products over shared data, weights and bias.

    The three matchers run in a fixed order (data, weights, bias) and a
    node qualifies only when all of them match it.
    """

    name = "rnn_mat_fusion"

    def __init__(self, config: FusionConfig | None = None) -> None:
        super().__init__(config)
        self.data_slice = label(predicate=_is_time_step_slice, name="data_slice")
        self.weights_reshape = label(predicate=_is_row_major_reshape, name="weights_reshape")
        self.bias_broadcast = label(predicate=_is_row_broadcast, name="bias_broadcast")
        self.role_labels: tuple[Label, ...] = (self.data_slice, self.weights_reshape, self.bias_broadcast)
        patterns = (
            construct_data_pattern(self.data_slice),
            construct_weights_pattern(self.weights_reshape),
            construct_bias_pattern(self.bias_broadcast),
        )
        self.matchers = [self.make_matcher(pattern) for pattern in patterns]

    def analyze(self, graph: DataflowGraph) -> list[FusionGroup]:
        """Group fully matched nodes by the role tuple they share.

        Args:
            graph: Graph to scan.

        Returns:
            Groups with at least ``config.min_group_size`` members, in the
            order their first member was scanned.
        """
        groups: dict[tuple[int, ...], FusionGroup] = {}
        for node in graph.ordered_nodes():
            params: list[Node] = []
            matched: list[Node] = []
            for matcher, role_label in zip(self.matchers, self.role_labels):
                result = matcher.try_match(node)
                if result:
                    bound = result[role_label]
                    params.append(bound.argument(0))
                    matched.append(bound)
            if len(params) != NUM_ROLES:
                continue
            key = tuple(param.id for param in params)
            logger.debug(f"%{node.id} matches all roles with key {key}")
            group = groups.setdefault(key, FusionGroup(key=key, params=tuple(params), members=[], segments=[]))
            group.members.append(node)
            group.segments.append(tuple(matched))
        return [group for group in groups.values() if len(group.members) >= self.config.min_group_size]

    def transform(self, graph: DataflowGraph, opportunity: FusionGroup) -> None:
        """Replace every member of the group with a slice of one fused product.

        Args:
            graph: Graph to rewrite.
            opportunity: Group from analyze().
        """
        self.check_current(graph, *opportunity.members, *opportunity.params)
        data_node = opportunity.params[DATA]
        weights_node = opportunity.params[WEIGHTS]
        bias_node = opportunity.params[BIAS]
        batch, steps, features = data_node.shape

        data_reshape = ops.reshape(data_node, range(3), (batch * steps, features))
        old_weights_reshape = opportunity.segments[0][WEIGHTS]
        weights_reshape = graph.copy_with_new_args(old_weights_reshape, [weights_node])
        fused_dot = ops.dot(data_reshape, weights_reshape)
        bias_broadcast = ops.broadcast(bias_node, fused_dot.shape, (0,))
        fused_add = ops.add(fused_dot, bias_broadcast)

        rank = len(fused_add.shape)
        strides = (steps,) + (1,) * (rank - 1)
        extractors: list[Node] = []
        for member, segment in zip(opportunity.members, opportunity.segments):
            step = segment[DATA].attrs["lower"][1]
            lower = (step,) + (0,) * (rank - 1)
            extractor = ops.slice_(fused_add, lower, fused_add.shape, strides)
            graph.check_replacement(member, extractor)
            extractors.append(extractor)

        for member, extractor in zip(opportunity.members, extractors):
            graph.replace_node(member, extractor)
        logger.debug(f"Fused {len(extractors)} time steps of %{data_node.id} into %{fused_add.id}")


def construct_data_pattern(data_slice: Label) -> Pattern:
    """``add(dot(reshape(data_slice), ?), ?)``: binds the time-step slice."""
    reshape_slice = exact(OpKind.RESHAPE, data_slice, predicate=_drops_time_axis)
    dot = exact(OpKind.DOT, reshape_slice, label(name="data_weights"))
    return exact(OpKind.ADD, dot, label(name="data_bias"))


def construct_weights_pattern(weights_reshape: Label) -> Pattern:
    """``add(dot(?, weights_reshape), ?)``: binds the reshaped weights."""
    dot = exact(OpKind.DOT, label(name="weights_data"), weights_reshape)
    return exact(OpKind.ADD, dot, label(name="weights_bias"))


def construct_bias_pattern(bias_broadcast: Label) -> Pattern:
    """``add(?, bias_broadcast)``: binds the broadcast bias."""
    return exact(OpKind.ADD, label(name="bias_dot"), bias_broadcast)
