"""Reference interpreter for DataflowGraph verification.

Executes a graph by walking ``ordered_nodes()`` and dispatching each node
to a numpy simulation of its kind. Used to check that fusion passes
preserve the values a graph computes.
"""

from collections.abc import Callable
from typing import Any

import numpy as np

from graph_fusion.errors import StructuralError
from graph_fusion.graph.graph import DataflowGraph
from graph_fusion.graph.node import Node, OpKind

Simulate = Callable[[list[np.ndarray], dict[str, Any]], np.ndarray]

NUMPY_DTYPES: dict[str, type] = {"f16": np.float16, "f32": np.float32, "f64": np.float64, "i32": np.int32}


def _sigmoid(x: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-x))


def _activation(kind: str) -> Callable[[np.ndarray], np.ndarray]:
    return _sigmoid if kind == "sigmoid" else np.tanh


def _reshape(args: list[np.ndarray], attrs: dict[str, Any]) -> np.ndarray:
    return np.transpose(args[0], attrs["input_order"]).reshape(attrs["shape"])


def _slice(args: list[np.ndarray], attrs: dict[str, Any]) -> np.ndarray:
    index = tuple(slice(lo, hi, step) for lo, hi, step in zip(attrs["lower"], attrs["upper"], attrs["strides"]))
    return args[0][index]


def _broadcast(args: list[np.ndarray], attrs: dict[str, Any]) -> np.ndarray:
    expanded = np.expand_dims(args[0], tuple(attrs["broadcast_axes"])) if attrs["broadcast_axes"] else args[0]
    return np.broadcast_to(expanded, attrs["shape"])


def _batch_dot(args: list[np.ndarray], attrs: dict[str, Any]) -> np.ndarray:
    lhs, rhs = args
    if attrs["transpose_a"]:
        lhs = np.swapaxes(lhs, 1, 2)
    if attrs["transpose_b"]:
        rhs = np.swapaxes(rhs, 1, 2)
    return np.matmul(lhs, rhs)


def _sigmoid_multiply(args: list[np.ndarray], attrs: dict[str, Any]) -> np.ndarray:
    return _activation(attrs["input_0_type"])(args[0]) * _activation(attrs["input_1_type"])(args[1])


SIMULATORS: dict[OpKind, Simulate] = {
    OpKind.ADD: lambda args, attrs: args[0] + args[1],
    OpKind.SUBTRACT: lambda args, attrs: args[0] - args[1],
    OpKind.MULTIPLY: lambda args, attrs: args[0] * args[1],
    OpKind.NEGATIVE: lambda args, attrs: -args[0],
    OpKind.SIGMOID: lambda args, attrs: _sigmoid(args[0]),
    OpKind.TANH: lambda args, attrs: np.tanh(args[0]),
    OpKind.DOT: lambda args, attrs: np.tensordot(args[0], args[1], axes=1),
    OpKind.RESHAPE: _reshape,
    OpKind.SLICE: _slice,
    OpKind.BROADCAST: _broadcast,
    OpKind.CONCAT: lambda args, attrs: np.concatenate(args, axis=attrs["axis"]),
    OpKind.BATCH_DOT: _batch_dot,
    OpKind.SIGMOID_MULTIPLY: _sigmoid_multiply,
}


def _bind_parameter(node: Node, inputs: dict[str, np.ndarray]) -> np.ndarray:
    name = node.attrs["name"]
    if name not in inputs:
        raise KeyError(f"Missing input for parameter {name!r}")
    value = np.asarray(inputs[name], dtype=NUMPY_DTYPES[node.dtype])
    if value.shape != node.shape:
        raise StructuralError(f"Input {name!r} has shape {list(value.shape)}, expected {list(node.shape)}")
    return value


def evaluate(graph: DataflowGraph, inputs: dict[str, np.ndarray]) -> list[np.ndarray]:
    """Compute the graph outputs for the given parameter values.

    Args:
        graph: Graph to execute.
        inputs: Parameter values keyed by parameter name.

    Returns:
        One array per graph output, in output order.
    """
    env: dict[int, np.ndarray] = {}
    for node in graph.ordered_nodes():
        if node.kind is OpKind.PARAMETER:
            env[node.id] = _bind_parameter(node, inputs)
            continue
        args = [env[i] for i in node.input_ids]
        result = np.asarray(SIMULATORS[node.kind](args, node.attrs))
        assert result.shape == node.shape, f"{node!r} produced shape {result.shape}"
        env[node.id] = result
    return [env[output.id] for output in graph.outputs]
