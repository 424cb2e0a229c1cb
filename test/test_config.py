"""Unit tests for graph_fusion.config.

Run with: pytest test/test_config.py -v
"""

import dataclasses

import pytest

from graph_fusion.config import DEFAULT_DTYPE, MIN_GROUP_SIZE, FusionConfig
from graph_fusion.passes import RnnMatFusion
from graph_fusion.pattern import log_trace


def test_defaults() -> None:
    """Defaults fuse groups of two and do not trace."""
    config = FusionConfig()
    assert config.min_group_size == MIN_GROUP_SIZE == 2
    assert config.trace_matches is False
    assert DEFAULT_DTYPE == "f32"


@pytest.mark.parametrize("size", [1, 0, -3])
def test_min_group_size_lower_bound(size: int) -> None:
    """Group sizes below two are rejected."""
    with pytest.raises(ValueError, match="min_group_size"):
        FusionConfig(min_group_size=size)


def test_frozen() -> None:
    """Configs are immutable."""
    config = FusionConfig()
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.min_group_size = 5


def test_pass_uses_defaults_without_config() -> None:
    """Passes built without a config use the defaults and no trace."""
    fusion = RnnMatFusion()
    assert fusion.config == FusionConfig()
    assert all(matcher.trace is None for matcher in fusion.matchers)


def test_trace_matches_attaches_log_trace() -> None:
    """trace_matches gives every matcher the logging trace callback."""
    fusion = RnnMatFusion(FusionConfig(trace_matches=True))
    assert all(matcher.trace is log_trace for matcher in fusion.matchers)
