"""The pattern IR: templates describing subgraph shapes to search for.

Three pattern kinds compose into a tree:

- ``Exact``: a node of a given kind whose inputs match the child patterns.
- ``Label``: a variable matching any node that satisfies its constraints.
  Reusing one label in several places requires all of them to bind the
  same node.
- ``Skip``: zero or more predicate-satisfying wrapper nodes in front of an
  inner pattern.

Patterns never share representation with graph nodes. Build them with
``exact``, ``label`` and ``skip``::

    x = label(shape=(2, 4))
    w = label(shape=(4, 1))
    pattern = exact(OpKind.ADD, exact(OpKind.DOT, x, w), label())
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

from graph_fusion.errors import ArityError, PatternError, StructuralError
from graph_fusion.graph.node import Node, OpKind
from graph_fusion.graph.ops import ATTR_FREE_KINDS, infer_shape

NodePredicate = Callable[[Node], bool]


class Pattern:
    """Base class for pattern nodes.

    Attributes:
        shape: Output shape the pattern is known to produce, or ``None``.
    """

    shape: tuple[int, ...] | None = None

    def children(self) -> tuple[Pattern, ...]:
        return ()

    def labels(self) -> list[Label]:
        """Return the distinct labels in this pattern, in first-visit order."""
        found: list[Label] = []
        stack: list[Pattern] = [self]
        while stack:
            pattern = stack.pop()
            if isinstance(pattern, Label) and all(pattern is not seen for seen in found):
                found.append(pattern)
            stack.extend(reversed(pattern.children()))
        return found


class Exact(Pattern):
    """Match a node of ``kind`` whose inputs match ``children`` in order.

    Attributes:
        kind: Required operation kind.
        args: Child patterns, one per input.
        shape: Declared or inferred output shape, used for validation only.
        predicate: Optional extra filter on the candidate node.
    """

    def __init__(
        self,
        kind: OpKind,
        args: Sequence[Pattern],
        shape: Sequence[int] | None = None,
        predicate: NodePredicate | None = None,
    ) -> None:
        if kind is OpKind.PARAMETER:
            raise PatternError("Match parameters with a label, not an exact pattern")
        if not kind.accepts_arity(len(args)):
            raise PatternError(f"{kind.display_name} pattern expects {kind.arity} children, got {len(args)}")
        for arg in args:
            if not isinstance(arg, Pattern):
                raise PatternError(f"{kind.display_name} pattern child {arg!r} is not a pattern")
        self.kind = kind
        self.args = tuple(args)
        self.predicate = predicate
        self.shape = self._resolve_shape(None if shape is None else tuple(shape))

    def _resolve_shape(self, declared: tuple[int, ...] | None) -> tuple[int, ...] | None:
        child_shapes = [arg.shape for arg in self.args]
        if self.kind not in ATTR_FREE_KINDS or any(s is None for s in child_shapes):
            return declared
        try:
            inferred = infer_shape(self.kind, child_shapes)
        except (ArityError, StructuralError) as e:
            raise PatternError(f"Inconsistent {self.kind.display_name} pattern: {e}") from e
        if declared is not None and declared != inferred:
            raise PatternError(
                f"{self.kind.display_name} pattern declares shape {list(declared)} but operands give {list(inferred)}"
            )
        return inferred

    def children(self) -> tuple[Pattern, ...]:
        return self.args

    def __repr__(self) -> str:
        return f"{self.kind.display_name}({', '.join(repr(a) for a in self.args)})"


class Label(Pattern):
    """Bind any node meeting the element type, shape and predicate constraints.

    Attributes:
        dtype: Required element type, or ``None`` for any.
        shape: Required output shape, or ``None`` for any.
        predicate: Optional filter on the candidate node.
        name: Display name for diagnostics, or ``None`` to show the label by identity.
    """

    def __init__(
        self,
        dtype: str | None = None,
        shape: Sequence[int] | None = None,
        predicate: NodePredicate | None = None,
        name: str | None = None,
    ) -> None:
        self.dtype = dtype
        self.shape = None if shape is None else tuple(shape)
        self.predicate = predicate
        self.name = name

    def accepts(self, node: Node) -> bool:
        """Check the constraints and predicate against ``node`` (ignores bindings)."""
        if self.dtype is not None and node.dtype != self.dtype:
            return False
        if self.shape is not None and node.shape != self.shape:
            return False
        return self.predicate is None or self.predicate(node)

    def __repr__(self) -> str:
        if self.name is None:
            return f"?label@{id(self):x}"
        return f"?{self.name}"


class Skip(Pattern):
    """Match ``inner``, optionally behind a chain of wrappers satisfying ``predicate``.

    A wrapper is peeled by following its pass-through input (input 0).

    Attributes:
        inner: Pattern expected once the wrappers are peeled.
        predicate: Test identifying a wrapper node.
    """

    def __init__(self, inner: Pattern, predicate: NodePredicate) -> None:
        if not isinstance(inner, Pattern):
            raise PatternError(f"Skip inner {inner!r} is not a pattern")
        self.inner = inner
        self.predicate = predicate

    def children(self) -> tuple[Pattern, ...]:
        return (self.inner,)

    def __repr__(self) -> str:
        return f"Skip*({self.inner!r})"


def exact(
    kind: OpKind,
    *children: Pattern,
    shape: Sequence[int] | None = None,
    predicate: NodePredicate | None = None,
) -> Exact:
    """Build an Exact pattern.

    Args:
        kind: Operation kind the node must have.
        *children: One pattern per input of the node, in input order.
        shape: Declared output shape; checked against what the children imply.
        predicate: Optional extra filter on the matched node.

    Returns:
        The pattern.

    Raises:
        PatternError: If the child count or the child shapes are inconsistent with ``kind``.
    """
    return Exact(kind, children, shape=shape, predicate=predicate)


def label(
    dtype: str | None = None,
    shape: Sequence[int] | None = None,
    predicate: NodePredicate | None = None,
    name: str | None = None,
) -> Label:
    return Label(dtype=dtype, shape=shape, predicate=predicate, name=name)


def skip(inner: Pattern, predicate: NodePredicate) -> Skip:
    return Skip(inner, predicate)


def is_kind(kind: OpKind) -> NodePredicate:
    """Return a predicate accepting nodes of ``kind``."""

    def predicate(node: Node) -> bool:
        return node.kind is kind

    return predicate
