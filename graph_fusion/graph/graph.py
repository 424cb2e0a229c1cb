"""Dataflow graph container with the replace_node rewrite primitive."""

import logging
from collections.abc import Iterable, Sequence
from typing import Any

import networkx as nx

from graph_fusion.config import DEFAULT_DTYPE
from graph_fusion.errors import ArityError, GraphCorruptionError, StructuralError
from graph_fusion.graph.node import Node, OpKind

logger = logging.getLogger(__name__)


class DataflowGraph(nx.DiGraph):
    """DAG of operation nodes keyed by stable integer ids.

    Each graph node stores its ``Node`` handle under the ``"node"``
    attribute. An edge ``producer -> consumer`` records in ``"slots"`` the
    consumer input positions it feeds, so a node reading the same producer
    twice keeps a single edge. Consumers are always derived from edges.

    Live nodes are the parameters, the outputs and every ancestor of an
    output. Nodes built but not yet wired in (replacement candidates) stay
    in the arena until ``replace_node`` makes them live or ``prune`` drops
    them.
    """

    def __init__(self, name: str = "graph", **attr: Any) -> None:
        super().__init__(**attr)
        self.name = name
        self._next_id = 0
        self._parameters: list[int] = []
        self._outputs: list[int] = []

    def _add_node(self, node: Node) -> None:
        self.add_node(node.id, node=node)

    def _allocate_id(self) -> int:
        node_id = self._next_id
        self._next_id += 1
        return node_id

    def _add_edge(self, producer_id: int, consumer_id: int, slot: int) -> None:
        if self.has_edge(producer_id, consumer_id):
            self.edges[producer_id, consumer_id]["slots"].append(slot)
        else:
            self.add_edge(producer_id, consumer_id, slots=[slot])

    def parameter(self, name: str, shape: Sequence[int], dtype: str = DEFAULT_DTYPE) -> Node:
        """Declare a graph input."""
        node = Node(self, self._allocate_id(), OpKind.PARAMETER, (), tuple(shape), dtype, {"name": name})
        self._add_node(node)
        self._parameters.append(node.id)
        logger.debug(f"Add parameter {node}")
        return node

    def create(
        self,
        kind: OpKind,
        inputs: Sequence[Node],
        shape: Sequence[int],
        dtype: str,
        attrs: dict[str, Any] | None = None,
    ) -> Node:
        """Construct a node over ``inputs`` and add it to the arena.

        Shape inference is the caller's job; use the factories in
        ``graph_fusion.graph.ops`` rather than calling this directly.

        Raises:
            ArityError: If the operand count is illegal for ``kind``.
            GraphCorruptionError: If an input is not a node of this graph.
        """
        if kind is OpKind.PARAMETER:
            raise ArityError("Parameters are declared with DataflowGraph.parameter")
        if not kind.accepts_arity(len(inputs)):
            raise ArityError(f"{kind.display_name} expects {kind.arity} inputs, got {len(inputs)}")
        for producer in inputs:
            self._require(producer)
        node = Node(self, self._allocate_id(), kind, tuple(p.id for p in inputs), tuple(shape), dtype, attrs or {})
        self._add_node(node)
        for slot, producer in enumerate(inputs):
            self._add_edge(producer.id, node.id, slot)
        logger.debug(f"Create {node}")
        return node

    def _require(self, node: Node) -> None:
        if node not in self:
            raise GraphCorruptionError(f"{node!r} is not a node of graph {self.name!r}")

    def __contains__(self, item: object) -> bool:
        if isinstance(item, Node):
            return item.graph is self and self.has_node(item.id) and self.nodes[item.id]["node"] is item
        return super().__contains__(item)

    def get_node(self, node_id: int) -> Node:
        return self.nodes[node_id]["node"]

    def consumers(self, node: Node) -> list[Node]:
        """Return every node reading ``node``'s output, ordered by id."""
        return [self.get_node(i) for i in sorted(self.successors(node.id))]

    @property
    def parameters(self) -> list[Node]:
        return [self.get_node(i) for i in self._parameters]

    @property
    def outputs(self) -> list[Node]:
        return [self.get_node(i) for i in self._outputs]

    def set_outputs(self, *nodes: Node) -> None:
        """Mark ``nodes`` as the graph results, in order."""
        for node in nodes:
            self._require(node)
        self._outputs = [node.id for node in nodes]

    def _live_ids(self) -> set[int]:
        live = set(self._parameters) | set(self._outputs)
        for output_id in self._outputs:
            live |= nx.ancestors(self, output_id)
        return live

    def ordered_nodes(self) -> list[Node]:
        """Return the live nodes in a deterministic topological order.

        Every node appears after all of its producers; ties are broken by
        node id. The order is recomputed on each call.
        """
        order = nx.lexicographical_topological_sort(self.subgraph(self._live_ids()), key=lambda node_id: node_id)
        return [self.get_node(i) for i in order]

    def check_replacement(self, old: Node, new: Node) -> None:
        """Validate ``replace_node(old, new)`` without mutating the graph.

        Raises:
            StructuralError: If ``new``'s output descriptor differs from ``old``'s.
            GraphCorruptionError: If a node is foreign or the rewiring would form a cycle.
        """
        self._require(old)
        self._require(new)
        if old is new:
            raise StructuralError(f"Cannot replace {old!r} with itself")
        if old.shape != new.shape or old.dtype != new.dtype:
            raise StructuralError(
                f"Replacement {new.dtype}{list(new.shape)} is incompatible with {old.dtype}{list(old.shape)} "
                f"of %{old.id}"
            )
        for consumer_id in self.successors(old.id):
            if consumer_id != new.id and nx.has_path(self, consumer_id, new.id):
                raise GraphCorruptionError(
                    f"Replacing %{old.id} with %{new.id} would create a cycle through %{consumer_id}"
                )

    def replace_node(self, old: Node, new: Node) -> None:
        """Point every consumer and output slot of ``old`` at ``new``.

        ``old`` is then removed, together with any producer left without
        consumers (parameters and outputs are kept). A consumer that is
        ``new`` itself keeps reading ``old``.
        """
        self.check_replacement(old, new)
        for consumer_id in sorted(self.successors(old.id)):
            if consumer_id == new.id:
                continue
            consumer = self.get_node(consumer_id)
            slots = self.edges[old.id, consumer_id]["slots"]
            self.remove_edge(old.id, consumer_id)
            input_ids = list(consumer.input_ids)
            for slot in slots:
                input_ids[slot] = new.id
                self._add_edge(new.id, consumer_id, slot)
            consumer.input_ids = tuple(input_ids)
        self._outputs = [new.id if i == old.id else i for i in self._outputs]
        logger.debug(f"Replace %{old.id} with {new}")
        self._remove_dead([old.id])

    def _remove_dead(self, candidates: Iterable[int]) -> None:
        pending = list(candidates)
        keep = set(self._parameters) | set(self._outputs)
        while pending:
            node_id = pending.pop()
            if node_id in keep or not self.has_node(node_id) or self.out_degree(node_id) > 0:
                continue
            producers = list(self.predecessors(node_id))
            self.remove_node(node_id)
            pending.extend(producers)

    def copy_with_new_args(self, node: Node, new_inputs: Sequence[Node]) -> Node:
        """Build a node of ``node``'s kind and attributes over ``new_inputs``.

        Raises:
            ArityError: If ``new_inputs`` has a different length than ``node``'s inputs.
        """
        from graph_fusion.graph import ops

        if len(new_inputs) != len(node.input_ids):
            raise ArityError(f"Incorrect number of new arguments for {node.kind.display_name}: {len(new_inputs)}")
        return ops.make_node(node.kind, new_inputs, node.attrs)

    @property
    def next_id(self) -> int:
        """Id the next created node will receive."""
        return self._next_id

    def prune(self, since: int = 0) -> int:
        """Drop non-live nodes with an id of at least ``since`` and return how many were removed.

        Passes record ``next_id`` before they start and prune from it, so
        only the abandoned candidates they built themselves are dropped.
        """
        live = self._live_ids()
        dead = [node_id for node_id in self.nodes if node_id >= since and node_id not in live]
        self.remove_nodes_from(dead)
        if dead:
            logger.debug(f"Pruned {len(dead)} unreachable nodes from {self.name}")
        return len(dead)

    def dump(self) -> str:
        """Render the live nodes one per line in topological order."""
        lines = [repr(node) for node in self.ordered_nodes()]
        lines.append("return " + ", ".join(f"%{i}" for i in self._outputs))
        return "\n".join(lines)
