"""Configuration shared by fusion passes."""

from dataclasses import dataclass

DEFAULT_DTYPE = "f32"
"""Element type used when a parameter is declared without one."""

MIN_GROUP_SIZE = 2
"""Smallest number of matched nodes worth fusing into one shared subgraph."""


@dataclass(frozen=True)
class FusionConfig:
    """Knobs for fusion passes.

    Attributes:
        min_group_size: Fusion groups with fewer members are left unfused.
        trace_matches: Attach ``log_trace`` to every matcher a pass builds.
    """

    min_group_size: int = MIN_GROUP_SIZE
    trace_matches: bool = False

    def __post_init__(self) -> None:
        if self.min_group_size < MIN_GROUP_SIZE:
            raise ValueError(f"min_group_size must be >= {MIN_GROUP_SIZE}, got {self.min_group_size}")
