"""Core configuration, domain models and directory layout."""

from .annotations import Annotation
from .config import InferenceSettings, SetupConfig, TileConfig, TsegConfig, load_config
from .export_spec import Region, TileExportSpec, plan_tiles
from .models import (
    FailureKind,
    ImageInfo,
    InferenceFailure,
    InferenceRequest,
    InferenceResult,
    InferenceSuccess,
    RunEvent,
    RunOutcome,
    RunParameters,
    RunState,
)
from .paths import DirectoryLayout, default_layout

__all__ = [
    "Annotation",
    "InferenceSettings",
    "SetupConfig",
    "TileConfig",
    "TsegConfig",
    "load_config",
    "Region",
    "TileExportSpec",
    "plan_tiles",
    "FailureKind",
    "ImageInfo",
    "InferenceFailure",
    "InferenceRequest",
    "InferenceResult",
    "InferenceSuccess",
    "RunEvent",
    "RunOutcome",
    "RunParameters",
    "RunState",
    "DirectoryLayout",
    "default_layout",
]
