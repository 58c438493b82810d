from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

from tseg.core.errors import (
    InvalidArgumentError,
    MissingOutputError,
    ProcessFailureError,
    TsegError,
)

SUPPORTED_MODEL_SUFFIX = ".onnx"


@dataclass(frozen=True)
class ImageInfo:
    """Minimal view of the image currently open in the host viewer."""

    name: str
    pixel_size_um: float
    width: int | None = None
    height: int | None = None


@dataclass(frozen=True)
class RunParameters:
    """Per-run choices made by the caller (model, resolution, confidence)."""

    model_path: Path
    target_mpp: float
    confidence: float


@dataclass(frozen=True)
class InferenceRequest:
    model_path: Path
    target_resolution: float
    confidence_threshold: float
    region_bounds: tuple[int, int, int, int]

    def __post_init__(self) -> None:
        if not str(self.model_path):
            raise InvalidArgumentError("model_path must not be empty")
        if Path(self.model_path).suffix.lower() != SUPPORTED_MODEL_SUFFIX:
            raise InvalidArgumentError(f"Unsupported model format: {Path(self.model_path).name}")
        if not math.isfinite(self.target_resolution) or self.target_resolution <= 0:
            raise InvalidArgumentError(
                f"target_resolution must be > 0, got {self.target_resolution}"
            )
        if not 0 <= self.confidence_threshold <= 1:
            raise InvalidArgumentError(
                f"confidence_threshold must be in [0, 1], got {self.confidence_threshold}"
            )
        if len(self.region_bounds) != 4:
            raise InvalidArgumentError("region_bounds must be (x, y, width, height)")
        _, _, width, height = self.region_bounds
        if width <= 0 or height <= 0:
            raise InvalidArgumentError(f"Region is empty: {self.region_bounds}")


@dataclass(frozen=True)
class InferenceSuccess:
    result_file: Path
    polygon_count: int | None = None
    elapsed_seconds: float | None = None

    @property
    def message(self) -> str:
        if self.polygon_count is not None and self.elapsed_seconds is not None:
            return f"Found {self.polygon_count} polygon(s) in {self.elapsed_seconds:.3f}s."
        return "Inference complete."


class FailureKind(str, enum.Enum):
    PROCESS_FAILURE = "process_failure"
    MISSING_OUTPUT = "missing_output"


@dataclass(frozen=True)
class InferenceFailure:
    reason: str
    exit_code: int
    log_file: Path
    kind: FailureKind = FailureKind.PROCESS_FAILURE

    @property
    def message(self) -> str:
        return self.reason

    def to_error(self) -> TsegError:
        if self.kind is FailureKind.MISSING_OUTPUT:
            return MissingOutputError(self.reason)
        return ProcessFailureError(self.reason, exit_code=self.exit_code, log_file=self.log_file)


InferenceResult = Union[InferenceSuccess, InferenceFailure]


class RunState(str, enum.Enum):
    IDLE = "idle"
    VALIDATING_INPUT = "validating_input"
    EXPORTING_TILES = "exporting_tiles"
    INVOKING = "invoking"
    INTERPRETING_RESULT = "interpreting_result"
    IMPORTING = "importing"
    CLEANING = "cleaning"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.DONE, RunState.FAILED)


@dataclass(frozen=True)
class RunEvent:
    state: RunState
    message: str = ""


@dataclass
class RunOutcome:
    """Final state of one run, delivered through the orchestrator's future."""

    state: RunState
    message: str
    result: InferenceResult | None = None
    error: TsegError | None = None
    imported: int = 0
    history: list[RunState] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state is RunState.DONE
