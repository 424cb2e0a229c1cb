"""Exception types raised by the graph model, pattern IR and fusion passes.

Recoverable errors (``StructuralError``, ``ArityError``) make a pass leave
the affected fusion group unfused. ``GraphCorruptionError`` aborts the pass.
"""


class GraphFusionError(Exception):
    """Base class for all graph_fusion errors."""


class PatternError(GraphFusionError):
    """Raised when a pattern is constructed with inconsistent children or shapes."""


class GraphError(GraphFusionError):
    """Base class for errors reported by the graph model."""


class StructuralError(GraphError):
    """Raised when a node's output descriptor or attributes are inconsistent with its use."""


class ArityError(GraphError):
    """Raised when a node is constructed with the wrong number of operands for its kind."""


class GraphCorruptionError(GraphError):
    """Raised when a mutation would break the DAG or references a node outside the graph."""


class UnboundLabelError(GraphFusionError, KeyError):
    """Raised when reading a pattern label that did not bind in a match."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "unbound label"
