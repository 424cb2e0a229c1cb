"""Logging utilities for graph_fusion.

Pass summaries are multi-line ``tabulate`` tables. The formatter puts the
time, level and logger in fixed-width columns ahead of the message and
starts every continuation line at the message column, so table rows line
up under the table header.
"""

import logging

__all__ = ["setup_logging", "MultilineFormatter"]

PACKAGE_LOGGER = "graph_fusion"
LEVEL_WIDTH = 8
BARE_INDENT = "    "


def short_logger_name(name: str) -> str:
    """Drop the ``graph_fusion.`` prefix, e.g. ``passes.base``."""
    prefix = f"{PACKAGE_LOGGER}."
    return name[len(prefix) :] if name.startswith(prefix) else name


class MultilineFormatter(logging.Formatter):
    """Column-aligned formatter for multi-line records.

    Attributes:
        name_width: Column width reserved for the shortened logger name.
        show_metadata: Whether to prefix records with time, level and logger.
    """

    def __init__(self, name_width: int, show_metadata: bool) -> None:
        super().__init__(datefmt="%H:%M:%S")
        self.name_width = name_width
        self.show_metadata = show_metadata

    def prefix(self, record: logging.LogRecord) -> str:
        if not self.show_metadata:
            return ""
        name = short_logger_name(record.name)
        return f"{self.formatTime(record)} {record.levelname:<{LEVEL_WIDTH}} {name:<{self.name_width}} | "

    def format(self, record: logging.LogRecord) -> str:
        head, *rest = record.getMessage().split("\n")
        prefix = self.prefix(record)
        indent = " " * len(prefix) if prefix else BARE_INDENT
        return "\n".join([prefix + head] + [indent + line for line in rest])


def setup_logging(
    log_file: str | None = None, level: int = logging.INFO, name_width: int = 24, show_metadata: bool = True
) -> logging.Handler:
    """Attach a ``MultilineFormatter`` handler to the package logger.

    Args:
        log_file: File to write, truncated on open. Logs go to stderr when omitted.
        level: Level for the ``graph_fusion`` logger.
        name_width: Width of the logger name column.
        show_metadata: Whether to prefix records with time, level and logger.

    Returns:
        The installed handler, so callers can remove it again.
    """
    handler: logging.Handler
    if log_file is None:
        handler = logging.StreamHandler()
    else:
        handler = logging.FileHandler(log_file, mode="w")
    handler.setFormatter(MultilineFormatter(name_width=name_width, show_metadata=show_metadata))
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.addHandler(handler)
    package_logger.setLevel(level)
    return handler
