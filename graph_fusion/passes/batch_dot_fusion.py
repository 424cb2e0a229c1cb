"""Fuse a batch of per-entry matrix products joined by a concat.

A batched matrix product lowered one batch entry at a time looks like::

    concat(
        reshape(dot(reshape(slice(A, 0)), reshape(slice(B, 0)))),
        reshape(dot(reshape(slice(A, 1)), reshape(slice(B, 1)))),
        axis=0,
    )

Each operand may carry an extra transposing reshape between its slice and
the reshape feeding the dot. The number of reshapes on the path decides the
transpose flag: one reshape means the operand is used as stored, more than
one means it is used transposed. The whole concat becomes::

    batch_dot(A, B, transpose_a, transpose_b)

Only concat nodes are candidates, so the matcher runs on their inputs alone.
"""

import logging
from dataclasses import dataclass

from graph_fusion.config import FusionConfig
from graph_fusion.graph import ops
from graph_fusion.graph.graph import DataflowGraph
from graph_fusion.graph.node import Node, OpKind
from graph_fusion.passes.base import FusionPass
from graph_fusion.pattern.ir import Label, Pattern, exact, is_kind, label, skip
from graph_fusion.pattern.matcher import MatchResult

logger = logging.getLogger(__name__)

BATCH_SIZE = 2
TRANSPOSE_ORDER = (0, 2, 1)


def _is_row_major_reshape(node: Node) -> bool:
    order = tuple(node.attrs["input_order"])
    return order == tuple(range(len(order)))


@dataclass
class BranchInfo:
    """What one matched concat input computes.

    Attributes:
        lhs: Batched left operand.
        rhs: Batched right operand.
        transpose_a: Whether the left operand is used transposed.
        transpose_b: Whether the right operand is used transposed.
        batch_index: Batch entry both slices select.
    """

    lhs: Node
    rhs: Node
    transpose_a: bool
    transpose_b: bool
    batch_index: int


@dataclass
class BatchDotOpportunity:
    """A concat whose two inputs are the entries of one batched product."""

    concat: Node
    lhs: Node
    rhs: Node
    transpose_a: bool
    transpose_b: bool

    def __str__(self) -> str:
        return f"BatchDotOpportunity(concat=%{self.concat.id}, lhs=%{self.lhs.id}, rhs=%{self.rhs.id})"


def count_wrappers(start: Node, bound: Node) -> tuple[list[Node], Node]:
    """Walk input 0 from ``start`` down to the slice of ``bound``.

    Args:
        start: Dot operand the walk starts at.
        bound: Node the operand label bound to.

    Returns:
        The reshapes passed on the way, outermost first, and the slice.
    """
    reshapes: list[Node] = []
    node = start
    while node.kind is OpKind.RESHAPE:
        reshapes.append(node)
        node = node.argument(0)
    assert node.kind is OpKind.SLICE and node.argument(0) is bound, f"%{start.id} does not reach a slice of %{bound.id}"
    return reshapes, node


def _batch_entry(slice_node: Node) -> int | None:
    """Return the batch entry a slice selects, or None if it is not ``X[i:i+1, :, :]``."""
    source = slice_node.argument(0).shape
    if len(source) != 3:
        return None
    lower, upper, strides = slice_node.attrs["lower"], slice_node.attrs["upper"], slice_node.attrs["strides"]
    if tuple(strides) != (1, 1, 1) or upper[0] - lower[0] != 1:
        return None
    if tuple(lower[1:]) != (0, 0) or tuple(upper[1:]) != source[1:]:
        return None
    return lower[0]


def _is_transposed(reshapes: list[Node]) -> bool | None:
    """Decide the transpose flag from the reshapes on one operand path.

    The outermost reshape only drops the unit batch axis. Any further
    reshapes must each be a pure axis permutation, and together they must
    swap the last two axes.

    Returns:
        The flag, or None when the path is not a plain or transposed read.
    """
    if len(reshapes) == 1:
        return False
    net = (0, 1, 2)
    for reshape in reversed(reshapes[1:]):
        order = tuple(reshape.attrs["input_order"])
        source = reshape.argument(0).shape
        if len(order) != 3 or reshape.shape != tuple(source[axis] for axis in order):
            return None
        net = tuple(net[axis] for axis in order)
    if net != TRANSPOSE_ORDER:
        return None
    return True


class BatchDotFusion(FusionPass):
    """Replace a two-entry concat of per-entry products with one batch_dot."""

    name = "batch_dot_fusion"

    def __init__(self, config: FusionConfig | None = None) -> None:
        super().__init__(config)
        self.lhs_label = label(name="batch_lhs")
        self.rhs_label = label(name="batch_rhs")
        self.matcher = self.make_matcher(construct_batch_dot_pattern(self.lhs_label, self.rhs_label))

    def analyze(self, graph: DataflowGraph) -> list[BatchDotOpportunity]:
        opportunities: list[BatchDotOpportunity] = []
        for node in graph.ordered_nodes():
            if node.kind is not OpKind.CONCAT:
                continue
            matches: list[MatchResult] = []
            for producer in node.inputs:
                result = self.matcher.try_match(producer)
                if result:
                    matches.append(result)
                if len(matches) == BATCH_SIZE:
                    break
            opportunity = self._check_matches(node, matches)
            if opportunity is not None:
                logger.debug(f"%{node.id} is a batch of {BATCH_SIZE} products")
                opportunities.append(opportunity)
        return opportunities

    def _branch_info(self, result: MatchResult) -> BranchInfo | None:
        lhs = result[self.lhs_label]
        rhs = result[self.rhs_label]
        root = result.root
        dot = root.argument(0)
        if root.shape != (1,) + dot.shape:
            return None
        lhs_reshapes, lhs_slice = count_wrappers(dot.argument(0), lhs)
        rhs_reshapes, rhs_slice = count_wrappers(dot.argument(1), rhs)
        for reshapes in (lhs_reshapes, rhs_reshapes):
            source = reshapes[0].argument(0).shape
            if len(source) != 3 or source[0] != 1 or reshapes[0].shape != source[1:]:
                return None
        transpose_a = _is_transposed(lhs_reshapes)
        transpose_b = _is_transposed(rhs_reshapes)
        lhs_entry = _batch_entry(lhs_slice)
        rhs_entry = _batch_entry(rhs_slice)
        if transpose_a is None or transpose_b is None or lhs_entry is None or lhs_entry != rhs_entry:
            return None
        return BranchInfo(lhs, rhs, transpose_a, transpose_b, lhs_entry)

    def _check_matches(self, concat: Node, matches: list[MatchResult]) -> BatchDotOpportunity | None:
        """Accept exactly one match per batch entry, all agreeing on operands and flags."""
        if len(matches) != BATCH_SIZE or len(concat.input_ids) != BATCH_SIZE or concat.attrs["axis"] != 0:
            logger.debug(f"%{concat.id}: {len(matches)} matching inputs, not a batch of {BATCH_SIZE}")
            return None
        branches = [self._branch_info(result) for result in matches]
        if any(branch is None for branch in branches):
            return None
        first = branches[0]
        for index, branch in enumerate(branches):
            if branch.batch_index != index:
                return None
            if (branch.lhs, branch.rhs, branch.transpose_a, branch.transpose_b) != (
                first.lhs,
                first.rhs,
                first.transpose_a,
                first.transpose_b,
            ):
                return None
        if first.lhs.shape[0] != BATCH_SIZE or first.rhs.shape[0] != BATCH_SIZE:
            return None
        return BatchDotOpportunity(concat, first.lhs, first.rhs, first.transpose_a, first.transpose_b)

    def transform(self, graph: DataflowGraph, opportunity: BatchDotOpportunity) -> None:
        self.check_current(graph, opportunity.concat, opportunity.lhs, opportunity.rhs)
        fused = ops.batch_dot(opportunity.lhs, opportunity.rhs, opportunity.transpose_a, opportunity.transpose_b)
        graph.check_replacement(opportunity.concat, fused)
        graph.replace_node(opportunity.concat, fused)
        logger.debug(f"Replaced %{opportunity.concat.id} with {fused!r}")


def construct_batch_dot_pattern(lhs: Label, rhs: Label) -> Pattern:
    """``reshape(dot(reshape(skip(slice(lhs))), reshape(skip(slice(rhs)))))``."""
    lhs_operand = exact(
        OpKind.RESHAPE,
        skip(exact(OpKind.SLICE, lhs), is_kind(OpKind.RESHAPE)),
        predicate=_is_row_major_reshape,
    )
    rhs_operand = exact(
        OpKind.RESHAPE,
        skip(exact(OpKind.SLICE, rhs), is_kind(OpKind.RESHAPE)),
        predicate=_is_row_major_reshape,
    )
    dot = exact(OpKind.DOT, lhs_operand, rhs_operand)
    return exact(OpKind.RESHAPE, dot, predicate=_is_row_major_reshape)
