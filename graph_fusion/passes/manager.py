"""Run a sequence of fusion passes and report what each one did."""

import logging
from collections.abc import Sequence

from tabulate import tabulate

from graph_fusion.graph.graph import DataflowGraph
from graph_fusion.passes.base import FusionPass

logger = logging.getLogger(__name__)


def format_pass_summary(passes: Sequence[FusionPass]) -> str:
    """Render the latest stats of each pass as a table.

    Args:
        passes: Passes that have run.

    Returns:
        A ``tabulate`` table with one row per pass.
    """
    headers = ["pass", "found", "rewritten", "skipped"]
    rows = [[p.name, p.stats.found, p.stats.rewritten, p.stats.skipped] for p in passes]
    return tabulate(rows, headers=headers, tablefmt="simple")


class PassManager:
    """Ordered list of fusion passes applied to a graph.

    Attributes:
        passes: Passes in run order.
    """

    def __init__(self, passes: Sequence[FusionPass] = ()) -> None:
        self.passes: list[FusionPass] = list(passes)

    def register_pass(self, fusion_pass: FusionPass) -> None:
        self.passes.append(fusion_pass)

    def run(self, graph: DataflowGraph) -> bool:
        """Run every pass once, in registration order.

        Args:
            graph: Graph to rewrite in place.

        Returns:
            Whether any pass modified the graph.
        """
        modified = False
        for fusion_pass in self.passes:
            logger.debug(f"Running {fusion_pass.name} on {graph.name} ({len(graph.ordered_nodes())} live nodes)")
            modified |= fusion_pass.run(graph)
        logger.info(f"Pass summary for {graph.name}:\n{format_pass_summary(self.passes)}")
        return modified
