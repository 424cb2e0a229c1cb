"""Utility helpers."""

from graph_fusion.utils.logging import MultilineFormatter, setup_logging

__all__ = ["MultilineFormatter", "setup_logging"]
