"""Logging helpers shared by the clock infrastructure."""

from __future__ import annotations

import logging
from logging.handlers import QueueHandler, QueueListener
from queue import Queue
from typing import Optional

__all__ = ["LOG_FORMAT", "get_logger", "configure_logging"]

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def get_logger(name: str) -> logging.Logger:
    """Return a logger below the ``ticketclock`` namespace."""

    if name.startswith("ticketclock"):
        return logging.getLogger(name)
    return logging.getLogger(f"ticketclock.{name}")


def configure_logging(level: str = "INFO", *, use_queue: bool = True) -> Optional[QueueListener]:
    """Install a console handler, optionally behind a queue listener.

    The 10 ms display loop logs from the event loop thread, so handlers are
    moved behind a :class:`QueueListener` to keep formatting and I/O off it.
    The caller owns the returned listener and must stop it on shutdown.
    """

    root_logger = logging.getLogger()
    resolved = logging.getLevelName(str(level).upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO
    root_logger.setLevel(resolved)

    handlers = list(root_logger.handlers)
    if not handlers:
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter(LOG_FORMAT))
        handlers = [console]
        if not use_queue:
            root_logger.addHandler(console)

    if not use_queue:
        return None

    log_queue: Queue = Queue(maxsize=4000)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
    root_logger.addHandler(QueueHandler(log_queue))

    listener = QueueListener(log_queue, *handlers, respect_handler_level=True)
    listener.start()
    return listener
