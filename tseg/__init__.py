"""Orchestration of the external TSEG tumor segmentation process."""

__version__ = "0.1.0"

from .core import DirectoryLayout, TileExportSpec, load_config  # noqa: E402
from .orchestration import InferenceOrchestrator  # noqa: E402

__all__ = [
    "__version__",
    "DirectoryLayout",
    "InferenceOrchestrator",
    "TileExportSpec",
    "load_config",
]
