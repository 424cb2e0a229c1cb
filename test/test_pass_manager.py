"""Unit tests for graph_fusion.passes.base.FusionPass and the PassManager.

Tests the analyze-then-transform protocol using concrete test passes
(RecordingPass and FailingPass) and the pass summary table.

Run with: pytest test/test_pass_manager.py -v
"""

import logging
from typing import Any

import pytest
from conftest import build_batch_dot_graph, build_rnn_graph

from graph_fusion.errors import ArityError, GraphCorruptionError, StructuralError
from graph_fusion.graph import DataflowGraph, ops
from graph_fusion.passes import (
    BatchDotFusion,
    FusionPass,
    PassManager,
    RnnMatFusion,
    SigmoidMultiplyFusion,
    format_pass_summary,
)


class RecordingPass(FusionPass):
    """Pass that replaces every output with a double negation of its operand.

    Attributes:
        name: Pass name for diagnostics.
        calls: Phases invoked, in order.
    """

    name = "recording"

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[str] = []

    def analyze(self, graph: DataflowGraph) -> list[Any]:
        self.calls.append("analyze")
        return list(graph.outputs)

    def transform(self, graph: DataflowGraph, opportunity: Any) -> None:
        self.calls.append("transform")
        graph.replace_node(opportunity, -(-opportunity.argument(0)))


class FailingPass(FusionPass):
    """Pass whose transform fails on the first opportunity after building a dangling node.

    Attributes:
        name: Pass name for diagnostics.
        error: Exception raised on the first opportunity.
    """

    name = "failing"

    def __init__(self, error: Exception) -> None:
        super().__init__()
        self.error = error
        self.seen = 0

    def analyze(self, graph: DataflowGraph) -> list[Any]:
        return list(graph.outputs)

    def transform(self, graph: DataflowGraph, opportunity: Any) -> None:
        self.seen += 1
        if self.seen == 1:
            ops.negative(opportunity)
            raise self.error
        graph.replace_node(opportunity, ops.tanh(opportunity.argument(0)))


@pytest.fixture
def two_output_graph() -> DataflowGraph:
    graph = DataflowGraph("two_outputs")
    x = graph.parameter("x", (2,))
    y = graph.parameter("y", (2,))
    graph.set_outputs(ops.sigmoid(x), ops.sigmoid(y))
    return graph


class TestFusionPassRun:
    """Tests for FusionPass.run()."""

    def test_analyze_before_transform(self, two_output_graph: DataflowGraph) -> None:
        """analyze() runs once before any transform()."""
        fusion = RecordingPass()
        assert fusion.run(two_output_graph) is True
        assert fusion.calls == ["analyze", "transform", "transform"]
        assert (fusion.stats.found, fusion.stats.rewritten, fusion.stats.skipped) == (2, 2, 0)

    @pytest.mark.parametrize("error", [StructuralError("bad shape"), ArityError("bad arity")])
    def test_recoverable_error_skips_opportunity(
        self, two_output_graph: DataflowGraph, error: Exception, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Recoverable errors are logged and the remaining opportunities are still rewritten."""
        first, second = two_output_graph.outputs
        fusion = FailingPass(error)
        with caplog.at_level(logging.WARNING, logger="graph_fusion.passes.base"):
            assert fusion.run(two_output_graph) is True
        assert (fusion.stats.found, fusion.stats.rewritten, fusion.stats.skipped) == (2, 1, 1)
        assert two_output_graph.outputs[0] is first
        assert two_output_graph.outputs[1] is not second
        assert any("unfused" in record.getMessage() for record in caplog.records)

    def test_abandoned_nodes_are_pruned(self, two_output_graph: DataflowGraph) -> None:
        """Nodes built by a failed transform are removed after the run."""
        fusion = FailingPass(StructuralError("bad shape"))
        fusion.run(two_output_graph)
        assert len(two_output_graph.nodes) == len(two_output_graph.ordered_nodes())

    def test_run_without_rewrites_keeps_side_nodes(self) -> None:
        """Nodes built before the run survive even when they are not live."""
        graph = DataflowGraph("side_node")
        x = graph.parameter("x", (2,))
        y = graph.parameter("y", (2,))
        graph.set_outputs(x + y)
        side = x * y
        assert len(graph) == 4
        assert SigmoidMultiplyFusion().run(graph) is False
        assert len(graph) == 4
        assert side in graph

    def test_failed_run_prunes_only_its_own_nodes(self, two_output_graph: DataflowGraph) -> None:
        """Abandoned candidates are pruned while earlier unwired nodes are kept."""
        side = ops.tanh(two_output_graph.parameters[0])
        FailingPass(StructuralError("bad shape")).run(two_output_graph)
        assert side in two_output_graph
        assert len(two_output_graph) == len(two_output_graph.ordered_nodes()) + 1

    def test_corruption_propagates(self, two_output_graph: DataflowGraph) -> None:
        """GraphCorruptionError aborts the pass."""
        with pytest.raises(GraphCorruptionError):
            FailingPass(GraphCorruptionError("cycle")).run(two_output_graph)

    def test_stale_opportunity(self, two_output_graph: DataflowGraph) -> None:
        """check_current rejects nodes removed by an earlier rewrite."""
        fusion = RecordingPass()
        stale = two_output_graph.outputs[0]
        fusion.run(two_output_graph)
        with pytest.raises(StructuralError, match="removed by an earlier rewrite"):
            fusion.check_current(two_output_graph, stale)


class TestPassManager:
    """Tests for PassManager and format_pass_summary."""

    def test_runs_in_registration_order(self, two_output_graph: DataflowGraph) -> None:
        """Passes run in the order they were registered."""
        order: list[str] = []
        first, second = RecordingPass(), RecordingPass()
        first.name, second.name = "first", "second"
        first.analyze = lambda graph: order.append("first") or []
        second.analyze = lambda graph: order.append("second") or []
        manager = PassManager([first])
        manager.register_pass(second)
        assert manager.run(two_output_graph) is False
        assert order == ["first", "second"]

    def test_reports_any_modification(self) -> None:
        """run() is true when any pass rewrote the graph."""
        graph, _ = build_rnn_graph()
        manager = PassManager([BatchDotFusion(), RnnMatFusion(), SigmoidMultiplyFusion()])
        assert manager.run(graph) is True
        assert [p.stats.rewritten for p in manager.passes] == [0, 1, 0]

    def test_summary_table(self, caplog: pytest.LogCaptureFixture) -> None:
        """The summary lists every pass with its counters and is logged at INFO."""
        graph, _ = build_batch_dot_graph()
        passes = [RnnMatFusion(), BatchDotFusion()]
        with caplog.at_level(logging.INFO, logger="graph_fusion"):
            PassManager(passes).run(graph)
        table = format_pass_summary(passes)
        lines = table.splitlines()
        assert lines[0].split() == ["pass", "found", "rewritten", "skipped"]
        assert lines[2].split() == ["rnn_mat_fusion", "0", "0", "0"]
        assert lines[3].split() == ["batch_dot_fusion", "1", "1", "0"]
        assert any(table in record.getMessage() for record in caplog.records)
