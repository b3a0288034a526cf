"""
Logging configuration for plasmaeq.

Every worker of a group writes to its own stream, so the default format
tags each record with the worker rank. Threads of an
:class:`~plasmaeq.parallel.comm.InProcessGroup` share one process, so
their rank is held per thread.
"""

import logging
import sys
import threading
from typing import Optional

DEFAULT_FORMAT = "[%(asctime)s] [rank %(rank)s] %(name)s - %(levelname)s - %(message)s"

_context = threading.local()


def set_log_rank(rank: Optional[int]) -> None:
    """Set the rank reported by records emitted from the calling thread."""
    _context.rank = rank


def get_log_rank() -> Optional[int]:
    return getattr(_context, "rank", None)


class RankFilter(logging.Filter):
    """Attach the emitting thread's worker rank to each record as ``rank``."""

    def filter(self, record: logging.LogRecord) -> bool:
        rank = get_log_rank()
        record.rank = "-" if rank is None else rank
        return True


def setup_logging(
    level: str = "INFO",
    format_string: Optional[str] = None,
    stream: Optional[object] = None,
    rank: Optional[int] = None,
) -> None:
    """
    Configure logging for plasmaeq.

    Parameters
    ----------
    level : str
        Logging level: 'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'
    format_string : str, optional
        Custom format string. If None, uses :data:`DEFAULT_FORMAT`, which
        may use the ``%(rank)s`` field.
    stream : file-like object, optional
        Stream to write logs to. If None, uses sys.stderr.
    rank : int, optional
        Worker rank of the calling thread. Records from threads without a
        rank show ``-``.

    Raises
    ------
    ValueError
        If ``level`` is not a logging level name
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown logging level: {level}")

    handler = logging.StreamHandler(sys.stderr if stream is None else stream)
    handler.setFormatter(
        logging.Formatter(format_string or DEFAULT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    )
    handler.addFilter(RankFilter())

    logging.basicConfig(level=numeric_level, handlers=[handler], force=True)
    set_log_rank(rank)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Parameters
    ----------
    name : str
        Logger name, relative to the package (e.g. 'plasma.populations')

    Returns
    -------
    logging.Logger
        Logger instance
    """
    return logging.getLogger(f"plasmaeq.{name}")
