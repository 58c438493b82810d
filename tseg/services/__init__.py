"""Service implementations for process invocation, result import, cleanup and model storage."""

from .cleanup import ScratchCleaner, clear_dir
from .importer import GeoJSONResultImporter, read_annotations
from .interfaces import (
    CompletedInvocation,
    ProcessInvoker,
    ResultImporter,
    TileExporter,
    ViewerHost,
)
from .model_store import ModelStore, is_supported_model
from .process import InferenceProcessRunner, SubprocessInvoker

__all__ = [
    "ScratchCleaner",
    "clear_dir",
    "GeoJSONResultImporter",
    "read_annotations",
    "CompletedInvocation",
    "ProcessInvoker",
    "ResultImporter",
    "TileExporter",
    "ViewerHost",
    "ModelStore",
    "is_supported_model",
    "InferenceProcessRunner",
    "SubprocessInvoker",
]
