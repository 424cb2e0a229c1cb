"""Pattern IR (Exact, Label, Skip) and the structural matcher."""

from graph_fusion.pattern.ir import Exact, Label, Pattern, Skip, exact, is_kind, label, skip
from graph_fusion.pattern.matcher import MatchResult, Matcher, TraceEvent, log_trace

__all__ = [
    "Exact",
    "Label",
    "MatchResult",
    "Matcher",
    "Pattern",
    "Skip",
    "TraceEvent",
    "exact",
    "is_kind",
    "label",
    "log_trace",
    "skip",
]
