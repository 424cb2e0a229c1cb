"""Node-kind factories with shape inference.

Every factory takes operand nodes plus kind-specific attributes, infers
the output descriptor, and adds the node to the operands' graph. Shape
rules are shared with the pattern IR through ``infer_shape`` so patterns
can be validated before any graph exists.

Example::

    g = DataflowGraph()
    x = g.parameter("x", (2, 4))
    w = g.parameter("w", (4, 1))
    y = ops.dot(x, w)  # f32[2, 1]
"""

import math
from collections.abc import Callable, Sequence
from typing import Any

from graph_fusion.errors import ArityError, StructuralError
from graph_fusion.graph.node import Node, OpKind

ShapeRule = Callable[[tuple[tuple[int, ...], ...], dict[str, Any]], tuple[int, ...]]

ACTIVATION_TYPES = ("sigmoid", "tanh")


def _infer_elementwise(shapes: tuple[tuple[int, ...], ...], attrs: dict[str, Any]) -> tuple[int, ...]:
    first = shapes[0]
    for shape in shapes[1:]:
        if shape != first:
            raise StructuralError(f"Elementwise operands must have equal shapes, got {list(first)} and {list(shape)}")
    return first


def _infer_dot(shapes: tuple[tuple[int, ...], ...], attrs: dict[str, Any]) -> tuple[int, ...]:
    lhs, rhs = shapes
    if not lhs or not rhs:
        raise StructuralError("Dot operands must have rank >= 1")
    if lhs[-1] != rhs[0]:
        raise StructuralError(f"Dot contraction mismatch: {list(lhs)} x {list(rhs)}")
    return lhs[:-1] + rhs[1:]


def _infer_reshape(shapes: tuple[tuple[int, ...], ...], attrs: dict[str, Any]) -> tuple[int, ...]:
    (arg,) = shapes
    input_order = tuple(attrs["input_order"])
    out_shape = tuple(attrs["shape"])
    if sorted(input_order) != list(range(len(arg))):
        raise StructuralError(f"Reshape input_order {list(input_order)} is not a permutation of rank {len(arg)}")
    if math.prod(out_shape) != math.prod(arg):
        raise StructuralError(f"Cannot reshape {list(arg)} to {list(out_shape)}")
    return out_shape


def _infer_slice(shapes: tuple[tuple[int, ...], ...], attrs: dict[str, Any]) -> tuple[int, ...]:
    (arg,) = shapes
    lower, upper, strides = attrs["lower"], attrs["upper"], attrs["strides"]
    if not len(lower) == len(upper) == len(strides) == len(arg):
        raise StructuralError(f"Slice bounds must have rank {len(arg)}")
    out_shape: tuple[int, ...] = ()
    for dim, lo, hi, step in zip(arg, lower, upper, strides):
        if not 0 <= lo <= hi <= dim or step < 1:
            raise StructuralError(f"Slice [{lo}:{hi}:{step}] is out of range for axis of size {dim}")
        out_shape += (math.ceil((hi - lo) / step),)
    return out_shape


def _infer_broadcast(shapes: tuple[tuple[int, ...], ...], attrs: dict[str, Any]) -> tuple[int, ...]:
    (arg,) = shapes
    out_shape = tuple(attrs["shape"])
    axes = tuple(attrs["broadcast_axes"])
    if list(axes) != sorted(set(axes)) or any(axis >= len(out_shape) for axis in axes):
        raise StructuralError(f"Invalid broadcast axes {list(axes)} for shape {list(out_shape)}")
    expected = tuple(dim for axis, dim in enumerate(out_shape) if axis not in axes)
    if expected != arg:
        raise StructuralError(f"Cannot broadcast {list(arg)} to {list(out_shape)} along axes {list(axes)}")
    return out_shape


def _infer_concat(shapes: tuple[tuple[int, ...], ...], attrs: dict[str, Any]) -> tuple[int, ...]:
    axis = attrs["axis"]
    first = shapes[0]
    if not 0 <= axis < len(first):
        raise StructuralError(f"Concat axis {axis} out of range for rank {len(first)}")
    total = 0
    for shape in shapes:
        if len(shape) != len(first) or shape[:axis] + shape[axis + 1 :] != first[:axis] + first[axis + 1 :]:
            raise StructuralError(f"Concat operands disagree off axis {axis}: {list(first)} vs {list(shape)}")
        total += shape[axis]
    return first[:axis] + (total,) + first[axis + 1 :]


def _infer_batch_dot(shapes: tuple[tuple[int, ...], ...], attrs: dict[str, Any]) -> tuple[int, ...]:
    lhs, rhs = shapes
    if len(lhs) != 3 or len(rhs) != 3:
        raise StructuralError(f"BatchDot operands must be rank 3, got {list(lhs)} and {list(rhs)}")
    if lhs[0] != rhs[0]:
        raise StructuralError(f"BatchDot batch mismatch: {lhs[0]} vs {rhs[0]}")
    m, k_lhs = (lhs[2], lhs[1]) if attrs["transpose_a"] else (lhs[1], lhs[2])
    k_rhs, n = (rhs[2], rhs[1]) if attrs["transpose_b"] else (rhs[1], rhs[2])
    if k_lhs != k_rhs:
        raise StructuralError(f"BatchDot contraction mismatch: {k_lhs} vs {k_rhs}")
    return (lhs[0], m, n)


def _infer_sigmoid_multiply(shapes: tuple[tuple[int, ...], ...], attrs: dict[str, Any]) -> tuple[int, ...]:
    for key in ("input_0_type", "input_1_type"):
        if attrs[key] not in ACTIVATION_TYPES:
            raise StructuralError(f"SigmoidMultiply {key} must be one of {ACTIVATION_TYPES}, got {attrs[key]!r}")
    return _infer_elementwise(shapes, attrs)


SHAPE_RULES: dict[OpKind, ShapeRule] = {
    OpKind.ADD: _infer_elementwise,
    OpKind.SUBTRACT: _infer_elementwise,
    OpKind.MULTIPLY: _infer_elementwise,
    OpKind.NEGATIVE: _infer_elementwise,
    OpKind.SIGMOID: _infer_elementwise,
    OpKind.TANH: _infer_elementwise,
    OpKind.DOT: _infer_dot,
    OpKind.RESHAPE: _infer_reshape,
    OpKind.SLICE: _infer_slice,
    OpKind.BROADCAST: _infer_broadcast,
    OpKind.CONCAT: _infer_concat,
    OpKind.BATCH_DOT: _infer_batch_dot,
    OpKind.SIGMOID_MULTIPLY: _infer_sigmoid_multiply,
}

ATTR_FREE_KINDS = frozenset(
    {
        OpKind.ADD,
        OpKind.SUBTRACT,
        OpKind.MULTIPLY,
        OpKind.NEGATIVE,
        OpKind.SIGMOID,
        OpKind.TANH,
        OpKind.DOT,
    }
)
"""Kinds whose output shape follows from operand shapes alone."""


def infer_shape(
    kind: OpKind, shapes: Sequence[tuple[int, ...]], attrs: dict[str, Any] | None = None
) -> tuple[int, ...]:
    """Infer the output shape of ``kind`` applied to operands of ``shapes``.

    Args:
        kind: Operation kind (not ``PARAMETER``).
        shapes: Operand shapes in input order.
        attrs: Kind-specific attributes.

    Returns:
        Output shape.

    Raises:
        ArityError: If the operand count is illegal for ``kind``.
        StructuralError: If the shapes or attributes are inconsistent.
    """
    if kind not in SHAPE_RULES:
        raise ArityError(f"{kind.display_name} has no operands to infer a shape from")
    if not kind.accepts_arity(len(shapes)):
        raise ArityError(f"{kind.display_name} expects {kind.arity} inputs, got {len(shapes)}")
    return SHAPE_RULES[kind](tuple(tuple(s) for s in shapes), attrs or {})


def make_node(kind: OpKind, inputs: Sequence[Node], attrs: dict[str, Any] | None = None) -> Node:
    """Build a node of ``kind`` over ``inputs`` in their graph.

    Raises:
        ArityError: If the operand count is illegal for ``kind``.
        StructuralError: If shapes, dtypes or attributes are inconsistent.
    """
    attrs = dict(attrs or {})
    if not inputs or not kind.accepts_arity(len(inputs)):
        raise ArityError(f"{kind.display_name} expects {kind.arity} inputs, got {len(inputs)}")
    dtype = inputs[0].dtype
    for operand in inputs[1:]:
        if operand.dtype != dtype:
            raise StructuralError(f"{kind.display_name} operands disagree on element type: {dtype} vs {operand.dtype}")
    shape = infer_shape(kind, [operand.shape for operand in inputs], attrs)
    return inputs[0].graph.create(kind, inputs, shape, dtype, attrs)


def add(lhs: Node, rhs: Node) -> Node:
    return make_node(OpKind.ADD, (lhs, rhs))


def subtract(lhs: Node, rhs: Node) -> Node:
    return make_node(OpKind.SUBTRACT, (lhs, rhs))


def multiply(lhs: Node, rhs: Node) -> Node:
    return make_node(OpKind.MULTIPLY, (lhs, rhs))


def negative(arg: Node) -> Node:
    return make_node(OpKind.NEGATIVE, (arg,))


def sigmoid(arg: Node) -> Node:
    return make_node(OpKind.SIGMOID, (arg,))


def tanh(arg: Node) -> Node:
    return make_node(OpKind.TANH, (arg,))


def dot(lhs: Node, rhs: Node) -> Node:
    """Contract the last axis of ``lhs`` with the first axis of ``rhs``."""
    return make_node(OpKind.DOT, (lhs, rhs))


def reshape(arg: Node, input_order: Sequence[int], shape: Sequence[int]) -> Node:
    """Permute ``arg``'s axes by ``input_order`` then reshape row-major to ``shape``.

    Args:
        arg: Operand node.
        input_order: Axis permutation applied before reshaping.
        shape: Output shape with the same element count as ``arg``.

    Returns:
        The new Reshape node.
    """
    return make_node(OpKind.RESHAPE, (arg,), {"input_order": tuple(input_order), "shape": tuple(shape)})


def slice_(arg: Node, lower: Sequence[int], upper: Sequence[int], strides: Sequence[int] | None = None) -> Node:
    """Take ``arg[lower:upper:strides]`` along every axis.

    Args:
        arg: Operand node.
        lower: Inclusive start per axis.
        upper: Exclusive end per axis.
        strides: Step per axis; defaults to all ones.

    Returns:
        The new Slice node.
    """
    if strides is None:
        strides = (1,) * len(lower)
    attrs = {"lower": tuple(lower), "upper": tuple(upper), "strides": tuple(strides)}
    return make_node(OpKind.SLICE, (arg,), attrs)


def broadcast(arg: Node, shape: Sequence[int], broadcast_axes: Sequence[int]) -> Node:
    """Broadcast ``arg`` to ``shape`` by inserting the axes in ``broadcast_axes``."""
    return make_node(OpKind.BROADCAST, (arg,), {"shape": tuple(shape), "broadcast_axes": tuple(sorted(broadcast_axes))})


def concat(args: Sequence[Node], axis: int) -> Node:
    return make_node(OpKind.CONCAT, tuple(args), {"axis": axis})


def batch_dot(lhs: Node, rhs: Node, transpose_a: bool, transpose_b: bool) -> Node:
    """Batched matrix product over axis 0 with optional per-operand transposes.

    Computes ``out[i] = op_a(lhs[i]) @ op_b(rhs[i])`` where ``op_x`` swaps
    the last two axes when the matching transpose flag is set.
    """
    return make_node(OpKind.BATCH_DOT, (lhs, rhs), {"transpose_a": transpose_a, "transpose_b": transpose_b})


def sigmoid_multiply(lhs: Node, rhs: Node, input_0_type: str, input_1_type: str) -> Node:
    """Fused ``act_0(lhs) * act_1(rhs)`` where each activation is sigmoid or tanh."""
    attrs = {"input_0_type": input_0_type, "input_1_type": input_1_type}
    return make_node(OpKind.SIGMOID_MULTIPLY, (lhs, rhs), attrs)
