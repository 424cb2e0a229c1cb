"""Base class for fusion passes over a DataflowGraph.

All passes follow the analyze-then-transform pattern:
1. analyze(): one read-only scan of ``ordered_nodes()`` collecting opportunities
2. transform(): rewrite the graph for a single opportunity

The graph is never mutated while the scan is running: every opportunity
is collected first and only then rewritten. ``run`` drives both phases.

To add a new pass:
1. Subclass FusionPass
2. Implement analyze() returning a list of opportunities
3. Implement transform() building replacement nodes and calling replace_node
4. Register the pass in passes/__init__.py
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from graph_fusion.config import FusionConfig
from graph_fusion.errors import ArityError, StructuralError
from graph_fusion.graph.graph import DataflowGraph
from graph_fusion.graph.node import Node
from graph_fusion.pattern.ir import Pattern
from graph_fusion.pattern.matcher import Matcher, log_trace

logger = logging.getLogger(__name__)


@dataclass
class PassStats:
    """Outcome counters of the latest ``FusionPass.run``.

    Attributes:
        found: Opportunities returned by analyze().
        rewritten: Opportunities successfully rewritten.
        skipped: Opportunities abandoned after a recoverable error.
    """

    found: int = 0
    rewritten: int = 0
    skipped: int = 0


class FusionPass(ABC):
    """Base class for graph fusion passes.

    Attributes:
        name: Human-readable name for logging and summaries.
        config: Pass configuration.
        stats: Counters from the latest run.
    """

    name: str

    def __init__(self, config: FusionConfig | None = None) -> None:
        self.config = config or FusionConfig()
        self.stats = PassStats()

    def make_matcher(self, pattern: Pattern) -> Matcher:
        """Build a matcher, tracing match attempts when the config asks for it."""
        return Matcher(pattern, trace=log_trace if self.config.trace_matches else None)

    def check_current(self, graph: DataflowGraph, *nodes: Node) -> None:
        """Reject an opportunity whose nodes an earlier rewrite in this run removed.

        Raises:
            StructuralError: If any node is no longer in ``graph``.
        """
        for node in nodes:
            if node not in graph:
                raise StructuralError(f"%{node.id} was removed by an earlier rewrite")

    @abstractmethod
    def analyze(self, graph: DataflowGraph) -> list[Any]:
        """Scan the graph once and collect rewrite opportunities.

        Args:
            graph: Graph to inspect. Must not be mutated.

        Returns:
            Pass-specific opportunities, in scan order.
        """

    @abstractmethod
    def transform(self, graph: DataflowGraph, opportunity: Any) -> None:
        """Rewrite the graph for one opportunity from analyze().

        Implementations build and validate every replacement before the
        first ``replace_node`` so a failure leaves the graph untouched.

        Args:
            graph: Graph to rewrite.
            opportunity: One element of analyze()'s result.

        Raises:
            StructuralError: If a replacement does not fit its consumers.
            ArityError: If a replacement is built with a wrong operand count.
        """

    def run(self, graph: DataflowGraph) -> bool:
        """Analyze then rewrite every opportunity.

        Recoverable errors leave the affected opportunity unfused and the
        pass moves on. ``GraphCorruptionError`` propagates. Candidates built
        during the run and never wired in are pruned; nodes that existed
        before the run are only removed by ``replace_node``.

        Args:
            graph: Graph to rewrite in place.

        Returns:
            Whether any opportunity was rewritten.
        """
        watermark = graph.next_id
        opportunities = self.analyze(graph)
        self.stats = PassStats(found=len(opportunities))
        for opportunity in opportunities:
            try:
                self.transform(graph, opportunity)
            except (StructuralError, ArityError) as e:
                self.stats.skipped += 1
                logger.warning(f"{self.name}: leaving {opportunity} unfused: {e}")
                continue
            self.stats.rewritten += 1
        graph.prune(since=watermark)
        logger.info(
            f"{self.name}: {self.stats.found} found, {self.stats.rewritten} rewritten, {self.stats.skipped} skipped"
        )
        return self.stats.rewritten > 0
