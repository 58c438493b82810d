"""General utilities used across tseg.

Exports logging setup, click parameter callbacks and tile discovery.
"""

from .logging_utils import LOG_FORMAT, add_file_handler, configure_logging
from .params import list_tiles, parse_roi, validate_model_file, validate_tile_size

__all__ = [
    "LOG_FORMAT",
    "add_file_handler",
    "configure_logging",
    "list_tiles",
    "parse_roi",
    "validate_model_file",
    "validate_tile_size",
]
