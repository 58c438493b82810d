from __future__ import annotations

from pathlib import Path


class TsegError(Exception):
    """Base class for errors raised by the inference pipeline."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidArgumentError(TsegError, ValueError):
    """Bad parameters, rejected before any I/O happens."""


class LayoutError(TsegError, OSError):
    """A working directory could not be created or accessed."""


class TileExportError(TsegError, OSError):
    """The tile exporter failed or wrote nothing."""


class ProcessSpawnError(TsegError):
    """The inference command could not be started."""


class ProcessFailureError(TsegError):
    """The inference process exited with a non-zero status."""

    def __init__(self, message: str, *, exit_code: int, log_file: Path | None = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.log_file = log_file


class MissingOutputError(TsegError):
    """The inference process exited cleanly but left no result artifact."""

    def __init__(self, message: str, *, expected_path: Path | None = None) -> None:
        super().__init__(message)
        self.expected_path = expected_path


class ResultParseError(TsegError, ValueError):
    """A result file or geometry could not be parsed."""


class ResultNotFoundError(TsegError, FileNotFoundError):
    """An expected file does not exist."""


class RunInProgressError(TsegError):
    """A run was requested while another one still owns the scratch space."""


class ModelExistsError(TsegError, FileExistsError):
    """A model with the same file name is already stored."""


class AnnotationLockedError(TsegError):
    """Attempted to edit a locked annotation."""
