from __future__ import annotations

import logging
from pathlib import Path

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(verbose: bool) -> None:
    """Set the level of the ``tseg`` loggers for one CLI invocation.

    ``--verbose`` shows the per-stage debug records of a run; otherwise only
    warnings such as child stderr or failed scratch cleanup reach the console.
    A console handler using ``LOG_FORMAT`` is installed if none exists yet.
    """
    level = logging.DEBUG if verbose else logging.WARNING
    logging.getLogger("tseg").setLevel(level)

    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)


def add_file_handler(path: Path, *, verbose: bool = False) -> logging.Handler:
    """Mirror ``tseg`` log records into ``path`` (appending)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    target = logging.getLogger("tseg")
    if target.level == logging.NOTSET or target.level > handler.level:
        target.setLevel(handler.level)
    target.addHandler(handler)
    return handler
