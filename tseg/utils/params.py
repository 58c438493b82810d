import logging
import math
from pathlib import Path

import click

logger = logging.getLogger("tseg.utils")


def validate_model_file(ctx, param, value):
    """Resolve a model file argument to an absolute path; directories are refused."""
    if value is None:
        return None
    path = Path(value).expanduser()
    if not path.exists():
        raise click.BadParameter(f"Model file not found: {value}")
    if not path.is_file():
        raise click.BadParameter(f"Model path is not a file: {value}")
    return str(path.resolve())


def validate_tile_size(ctx, param, value):
    if value is not None and value <= 0:
        raise click.BadParameter(f"tile size must be at least 1 pixel, got {value}")
    return value


def parse_roi(ctx, param, value):
    """Parse ``X,Y,W,H`` into a tuple of floats."""
    if value is None:
        return None
    parts = [p.strip() for p in str(value).split(",")]
    if len(parts) != 4:
        raise click.BadParameter(f"expected X,Y,WIDTH,HEIGHT, got {value!r}")
    try:
        x, y, w, h = (float(p) for p in parts)
    except ValueError:
        raise click.BadParameter(f"ROI values must be numbers, got {value!r}") from None
    if not all(math.isfinite(v) for v in (x, y, w, h)):
        raise click.BadParameter(f"ROI values must be finite, got {value!r}")
    if w <= 0 or h <= 0:
        raise click.BadParameter(f"ROI width and height must be positive, got {value!r}")
    return x, y, w, h


def list_tiles(directory: Path, extension: str) -> list[Path]:
    """Tile files with the given extension in ``directory`` (case-insensitive, non-recursive).

    Missing directories yield an empty list.
    """
    directory = Path(directory)
    if not directory.is_dir():
        logger.debug("Tile directory does not exist: %s", directory)
        return []
    ext = extension.lower()
    if not ext.startswith("."):
        ext = "." + ext
    return sorted(p for p in directory.iterdir() if p.is_file() and p.suffix.lower() == ext)
