"""Structural matcher: unify a pattern tree with a live graph node.

``Matcher.try_match`` walks the pattern and the candidate node in
lock-step and returns a ``MatchResult`` holding the label bindings.
Failure is an ordinary falsy result, never an exception. Matching reads
the graph only.

Backtracking happens at ``Skip`` patterns: the zero-peel alternative is
tried first and any bindings it made are rolled back before the matcher
peels one wrapper and retries.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field

from graph_fusion.errors import UnboundLabelError
from graph_fusion.graph.node import Node
from graph_fusion.pattern.ir import Exact, Label, Pattern, Skip

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TraceEvent:
    """One match attempt observed by a trace callback.

    Attributes:
        kind: ``"attempt"``, ``"success"`` or ``"failure"``.
        pattern: Root pattern of the matcher.
        node: Candidate root node.
    """

    kind: str
    pattern: Pattern
    node: Node


TraceCallback = Callable[[TraceEvent], None]


def log_trace(event: TraceEvent) -> None:
    """Trace callback that logs every event at DEBUG level."""
    logger.debug(f"match {event.kind}: {event.pattern!r} at {event.node!r}")


@dataclass
class MatchResult:
    """Outcome of one ``try_match`` call.

    Truthiness equals ``matched``. Bindings are keyed by label identity.

    Attributes:
        matched: Whether the pattern matched.
        root: The candidate node the match was attempted at.
        bindings: Label to bound node, empty on failure.
    """

    matched: bool
    root: Node | None = None
    bindings: dict[Label, Node] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return self.matched

    def __getitem__(self, item: Label) -> Node:
        """Return the node bound to ``item``.

        Raises:
            UnboundLabelError: If the label did not bind in this match.
        """
        if item not in self.bindings:
            raise UnboundLabelError(f"Label {item!r} is not bound in this match")
        return self.bindings[item]

    def __contains__(self, item: Label) -> bool:
        return item in self.bindings

    def items(self) -> Iterator[tuple[Label, Node]]:
        return iter(self.bindings.items())


class Matcher:
    """Matches one root pattern against candidate nodes.

    Attributes:
        pattern: Root pattern.
        trace: Optional callback receiving attempt/success/failure events.
    """

    def __init__(self, pattern: Pattern, trace: TraceCallback | None = None) -> None:
        self.pattern = pattern
        self.trace = trace

    @property
    def labels(self) -> list[Label]:
        return self.pattern.labels()

    def try_match(self, node: Node) -> MatchResult:
        """Match the root pattern against ``node``.

        Args:
            node: Candidate root node.

        Returns:
            A successful result with bindings, or a falsy result.
        """
        self._emit("attempt", node)
        bindings: dict[Label, Node] = {}
        if self._match(self.pattern, node, bindings):
            self._emit("success", node)
            return MatchResult(matched=True, root=node, bindings=bindings)
        self._emit("failure", node)
        return MatchResult(matched=False, root=node)

    def _emit(self, kind: str, node: Node) -> None:
        if self.trace is not None:
            self.trace(TraceEvent(kind=kind, pattern=self.pattern, node=node))

    def _match(self, pattern: Pattern, node: Node, bindings: dict[Label, Node]) -> bool:
        if isinstance(pattern, Label):
            matched = self._match_label(pattern, node, bindings)
        elif isinstance(pattern, Exact):
            matched = self._match_exact(pattern, node, bindings)
        elif isinstance(pattern, Skip):
            matched = self._match_skip(pattern, node, bindings)
        else:
            raise TypeError(f"Unknown pattern type {type(pattern).__name__}")
        return matched

    def _match_label(self, pattern: Label, node: Node, bindings: dict[Label, Node]) -> bool:
        if pattern in bindings:
            return bindings[pattern] is node
        if not pattern.accepts(node):
            return False
        bindings[pattern] = node
        return True

    def _match_exact(self, pattern: Exact, node: Node, bindings: dict[Label, Node]) -> bool:
        if node.kind is not pattern.kind or len(node.input_ids) != len(pattern.args):
            return False
        if pattern.predicate is not None and not pattern.predicate(node):
            return False
        for child, producer in zip(pattern.args, node.inputs):
            if not self._match(child, producer, bindings):
                return False
        return True

    def _match_skip(self, pattern: Skip, node: Node, bindings: dict[Label, Node]) -> bool:
        current = node
        while True:
            snapshot = dict(bindings)
            if self._match(pattern.inner, current, bindings):
                return True
            bindings.clear()
            bindings.update(snapshot)
            if not current.input_ids or not pattern.predicate(current):
                return False
            current = current.argument(0)
