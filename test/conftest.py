"""Shared graph builders and fixtures for pytest."""

import numpy as np
import pytest

from graph_fusion.graph import DataflowGraph, Node, ops


def make_random_array(shape: tuple[int, ...], seed: int, dtype: np.dtype = np.float32) -> np.ndarray:
    """Generate a deterministic random array for testing.

    Args:
        shape: Shape of the array to generate.
        seed: Random seed for reproducibility.
        dtype: Data type for the array.

    Returns:
        Random array with values in [-1, 1] range.
    """
    rng = np.random.default_rng(seed)
    return rng.uniform(-1.0, 1.0, size=shape).astype(dtype)


def make_inputs(graph: DataflowGraph, seed: int = 0) -> dict[str, np.ndarray]:
    """Random values for every parameter of ``graph``, keyed by parameter name."""
    return {p.name: make_random_array(p.shape, seed + i) for i, p in enumerate(graph.parameters)}


def build_rnn_step(data: Node, weights: Node, bias: Node, step: int) -> Node:
    """Build ``slice(D, t) -> reshape -> dot(., reshape(W)) -> add(., broadcast(B))``.

    Args:
        data: Rank-3 ``[batch, steps, features]`` parameter.
        weights: ``[features, hidden]`` parameter.
        bias: ``[hidden]`` parameter.
        step: Time step to slice.

    Returns:
        The add node computing the step.
    """
    batch, _, features = data.shape
    step_slice = ops.slice_(data, (0, step, 0), (batch, step + 1, features))
    step_rows = ops.reshape(step_slice, (0, 1, 2), (batch, features))
    weights_reshape = ops.reshape(weights, (0, 1), weights.shape)
    product = ops.dot(step_rows, weights_reshape)
    bias_broadcast = ops.broadcast(bias, product.shape, (0,))
    return ops.add(product, bias_broadcast)


def build_rnn_graph(
    batch: int = 2, steps: int = 2, features: int = 4, hidden: int = 1, name: str = "rnn"
) -> tuple[DataflowGraph, dict[str, Node]]:
    """Build an unrolled recurrent layer with one output per time step.

    Returns:
        The graph and its parameters keyed ``"D"``, ``"W"`` and ``"B"``.
    """
    graph = DataflowGraph(name)
    data = graph.parameter("D", (batch, steps, features))
    weights = graph.parameter("W", (features, hidden))
    bias = graph.parameter("B", (hidden,))
    graph.set_outputs(*[build_rnn_step(data, weights, bias, t) for t in range(steps)])
    return graph, {"D": data, "W": weights, "B": bias}


def build_batch_entry(lhs: Node, rhs: Node, index: int, transpose_a: bool = False, transpose_b: bool = False) -> Node:
    """Build ``reshape(dot(reshape(slice(A, i)), reshape(slice(B, i))))`` for one batch entry.

    A transposed operand gets an extra ``(0, 2, 1)`` reshape after its slice.
    """
    operands = []
    for node, transpose in ((lhs, transpose_a), (rhs, transpose_b)):
        _, rows, cols = node.shape
        entry = ops.slice_(node, (index, 0, 0), (index + 1, rows, cols))
        if transpose:
            entry = ops.reshape(entry, (0, 2, 1), (1, cols, rows))
            rows, cols = cols, rows
        operands.append(ops.reshape(entry, (0, 1, 2), (rows, cols)))
    product = ops.dot(*operands)
    return ops.reshape(product, (0, 1), (1,) + product.shape)


def build_batch_dot_graph(transpose_a: bool = False, transpose_b: bool = False) -> tuple[DataflowGraph, Node]:
    """Build ``concat(entry(0), entry(1), axis=0)`` over ``A[2, m, k]`` and ``B[2, k, n]``.

    Returns:
        The graph and its concat output.
    """
    m, k, n = 3, 4, 5
    graph = DataflowGraph("batch_dot")
    lhs = graph.parameter("A", (2, k, m) if transpose_a else (2, m, k))
    rhs = graph.parameter("B", (2, n, k) if transpose_b else (2, k, n))
    entries = [build_batch_entry(lhs, rhs, i, transpose_a, transpose_b) for i in range(2)]
    concat = ops.concat(entries, axis=0)
    graph.set_outputs(concat)
    return graph, concat


@pytest.fixture
def rnn_graph() -> tuple[DataflowGraph, dict[str, Node]]:
    """Two-step recurrent layer over ``D[2, 2, 4]``, ``W[4, 1]`` and ``B[1]``."""
    return build_rnn_graph()


@pytest.fixture
def diamond_graph() -> tuple[DataflowGraph, dict[str, Node]]:
    """``out = (x + y) * (x - y)`` with every node keyed by role."""
    graph = DataflowGraph("diamond")
    x = graph.parameter("x", (2, 3))
    y = graph.parameter("y", (2, 3))
    total = x + y
    diff = x - y
    out = total * diff
    graph.set_outputs(out)
    return graph, {"x": x, "y": y, "sum": total, "diff": diff, "out": out}
