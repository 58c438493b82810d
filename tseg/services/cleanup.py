from __future__ import annotations

import logging
import shutil
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Iterable

logger = logging.getLogger("tseg.cleanup")


def clear_dir(directory: Path | None) -> int:
    """Delete the contents of ``directory`` but keep the directory itself.

    Best effort: failures are logged and skipped. Returns the number of removed entries.
    """
    if directory is None or not Path(directory).is_dir():
        return 0
    removed = 0
    try:
        entries = list(Path(directory).iterdir())
    except OSError as e:
        logger.warning("Failed to list directory contents for %s: %s", directory, e)
        return 0
    for entry in entries:
        try:
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink(missing_ok=True)
            removed += 1
        except OSError as e:
            logger.warning("Failed to delete %s: %s", entry, e)
    return removed


class ScratchCleaner:
    """Clears scratch directories on a dedicated background thread."""

    def __init__(self) -> None:
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="tseg-cleanup")

    def clear_now(self, directories: Iterable[Path]) -> int:
        return sum(clear_dir(d) for d in directories)

    def schedule(self, directories: Iterable[Path]) -> Future[int]:
        dirs = list(directories)
        return self._executor.submit(self._run, dirs)

    def _run(self, directories: list[Path]) -> int:
        try:
            removed = self.clear_now(directories)
        except Exception:  # noqa: BLE001
            logger.warning("Error clearing inference directories", exc_info=True)
            return 0
        logger.debug("Cleared %d scratch entries.", removed)
        return removed

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> ScratchCleaner:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
