"""Operation kinds and the Node handle stored in a DataflowGraph."""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from graph_fusion.graph.graph import DataflowGraph


class OpKind(Enum):
    """Closed set of operation kinds with their fixed input arity.

    Each member's value is ``(display_name, arity)``. An arity of ``None``
    marks a variadic kind that takes one or more inputs.
    """

    PARAMETER = ("Parameter", 0)
    ADD = ("Add", 2)
    SUBTRACT = ("Subtract", 2)
    MULTIPLY = ("Multiply", 2)
    NEGATIVE = ("Negative", 1)
    SIGMOID = ("Sigmoid", 1)
    TANH = ("Tanh", 1)
    DOT = ("Dot", 2)
    RESHAPE = ("Reshape", 1)
    SLICE = ("Slice", 1)
    BROADCAST = ("Broadcast", 1)
    CONCAT = ("Concat", None)
    BATCH_DOT = ("BatchDot", 2)
    SIGMOID_MULTIPLY = ("SigmoidMultiply", 2)

    @property
    def display_name(self) -> str:
        return self.value[0]

    @property
    def arity(self) -> int | None:
        return self.value[1]

    def accepts_arity(self, count: int) -> bool:
        """Check whether ``count`` inputs is a legal operand count for this kind."""
        if self.arity is None:
            return count >= 1
        return count == self.arity


class Node:
    """Handle to one operation in a DataflowGraph.

    Nodes are created by the graph (through the factories in
    ``graph_fusion.graph.ops``) and compare by identity. The output
    descriptor and attributes never change after construction; only the
    graph may rewire ``input_ids`` during ``replace_node``.

    Attributes:
        graph: Owning graph.
        id: Stable integer identity, unique within the graph.
        kind: Operation kind.
        input_ids: Ordered ids of the producer nodes.
        shape: Output dimension sizes.
        dtype: Output element type, e.g. ``"f32"``.
        attrs: Kind-specific attributes such as slice bounds.
    """

    def __init__(
        self,
        graph: DataflowGraph,
        node_id: int,
        kind: OpKind,
        input_ids: tuple[int, ...],
        shape: tuple[int, ...],
        dtype: str,
        attrs: dict[str, Any],
    ) -> None:
        self.graph = graph
        self.id = node_id
        self.kind = kind
        self.input_ids = input_ids
        self.shape = shape
        self.dtype = dtype
        self.attrs = MappingProxyType(dict(attrs))

    @property
    def inputs(self) -> tuple[Node, ...]:
        """Producer nodes in input order."""
        return tuple(self.graph.get_node(i) for i in self.input_ids)

    @property
    def consumers(self) -> list[Node]:
        """Nodes that read this node's output, ordered by id."""
        return self.graph.consumers(self)

    @property
    def name(self) -> str:
        return self.attrs.get("name", f"{self.kind.display_name}_{self.id}")

    def argument(self, index: int) -> Node:
        """Return the producer feeding input slot ``index``."""
        return self.graph.get_node(self.input_ids[index])

    def attr(self, key: str) -> Any:
        return self.attrs[key]

    def __add__(self, other: Node) -> Node:
        from graph_fusion.graph import ops

        return ops.add(self, other)

    def __sub__(self, other: Node) -> Node:
        from graph_fusion.graph import ops

        return ops.subtract(self, other)

    def __mul__(self, other: Node) -> Node:
        from graph_fusion.graph import ops

        return ops.multiply(self, other)

    def __neg__(self) -> Node:
        from graph_fusion.graph import ops

        return ops.negative(self)

    def __repr__(self) -> str:
        args = ", ".join(f"%{i}" for i in self.input_ids)
        attrs = ", ".join(f"{k}={v}" for k, v in sorted(self.attrs.items()))
        if attrs:
            args = f"{args}, {attrs}" if args else attrs
        dims = ", ".join(str(d) for d in self.shape)
        return f"%{self.id} = {self.kind.display_name}({args}) : {self.dtype}[{dims}]"
