from __future__ import annotations

import logging
import shutil
import sys
from pathlib import Path

import click

from tseg import __version__
from tseg.core.config import TsegConfig, load_config
from tseg.core.errors import TsegError
from tseg.core.export_spec import Region, TileExportSpec, plan_tiles
from tseg.core.models import InferenceFailure, InferenceRequest
from tseg.core.paths import DirectoryLayout, default_layout
from tseg.services.cleanup import clear_dir
from tseg.services.importer import count_polygons, read_annotations
from tseg.services.model_store import ModelStore
from tseg.services.process import InferenceProcessRunner
from tseg.utils import (
    LOG_FORMAT,
    add_file_handler,
    configure_logging,
    list_tiles,
    parse_roi,
    validate_model_file,
    validate_tile_size,
)

logging.basicConfig(level=logging.WARNING, format=LOG_FORMAT)
logger = logging.getLogger("tseg.cli")


def _layout(cfg: TsegConfig) -> DirectoryLayout:
    return default_layout(cfg.setup)


def _build_spec(
    cfg: TsegConfig,
    roi: tuple[float, float, float, float],
    source_mpp: float,
    target_mpp: float | None,
    tile_size: int | None,
    overlap: float | None,
) -> TileExportSpec:
    return TileExportSpec(
        region=Region(*roi),
        target_resolution=target_mpp if target_mpp is not None else cfg.tiles.target_mpp,
        source_resolution=source_mpp,
        tile_size=tile_size if tile_size is not None else cfg.tiles.size,
        overlap_fraction=overlap if overlap is not None else cfg.tiles.overlap,
        image_format=cfg.tiles.extension,
    )


_ROI_OPTIONS: list = [
    click.option(
        "--roi",
        required=True,
        callback=parse_roi,
        help="Region in source pixels as X,Y,WIDTH,HEIGHT.",
    ),
    click.option(
        "--source-mpp",
        type=float,
        required=True,
        help="Pixel size of the source image in microns.",
    ),
    click.option(
        "--target-mpp",
        type=float,
        default=None,
        help="Resolution the model expects; defaults to tiles.target_mpp.",
    ),
]


def roi_options(func):
    for opt in reversed(_ROI_OPTIONS):
        func = opt(func)
    return func


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="YAML file merged over the bundled defaults.",
)
@click.option(
    "--set",
    "overrides",
    multiple=True,
    metavar="KEY=VALUE",
    help="Override a config value, e.g. --set tiles.size=256.",
)
@click.option("--log-file", type=click.Path(dir_okay=False), default=None, help="Append logs here.")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx, config_path: str | None, overrides: tuple[str, ...], log_file: str | None, verbose):
    """TSEG inference CLI.

    Drives the external tumor segmentation process against tiles exported
    from a region of interest and manages the inference working directories.
    """
    configure_logging(verbose)
    if log_file:
        add_file_handler(Path(log_file), verbose=verbose)
    ctx.obj = load_config(Path(config_path) if config_path else None, overrides)


@cli.command()
@click.pass_obj
def paths(cfg: TsegConfig):
    """Print (and create) the inference directories."""
    layout = _layout(cfg)
    click.echo(f"root:      {layout.root}")
    click.echo(f"repo:      {layout.model_repo_dir}")
    click.echo(f"models:    {layout.models_dir}")
    click.echo(f"tiles:     {layout.tile_scratch_dir}")
    click.echo(f"output:    {layout.output_scratch_dir}")
    click.echo(f"log file:  {layout.log_file}")


@cli.command()
@click.pass_obj
def status(cfg: TsegConfig):
    """Report setup state, inference script presence and stored models."""
    layout = _layout(cfg)
    script = layout.model_repo_dir / cfg.setup.script_name
    models = ModelStore(layout.models_dir).list_models()
    click.echo(f"setup complete: {'yes' if layout.has_completed_setup() else 'no'}")
    click.echo(f"script:         {script} ({'found' if script.is_file() else 'missing'})")
    click.echo(f"models:         {len(models)}")


@cli.command("list-models")
@click.pass_obj
def list_models(cfg: TsegConfig):
    """List the ONNX models available for inference."""
    layout = _layout(cfg)
    store = ModelStore(layout.models_dir, default_model=cfg.inference.default_model)
    models = store.list_models()
    if not models:
        click.echo(f"No models in {layout.models_dir}")
        return
    default = cfg.inference.default_model
    for model in models:
        marker = "*" if default and Path(default).name == model.name else " "
        click.echo(f"{marker} {model.name}")


@cli.command("add-model")
@click.argument("source", callback=validate_model_file)
@click.pass_obj
def add_model(cfg: TsegConfig, source: str):
    """Copy an ONNX model into the models directory."""
    store = ModelStore(_layout(cfg).models_dir)
    try:
        target = store.add(Path(source))
    except TsegError as e:
        raise click.ClickException(e.message) from e
    click.echo(f"Model available as {target.name}")


@cli.command()
@roi_options
@click.option("--tile-size", type=int, default=None, callback=validate_tile_size)
@click.option("--overlap", type=float, default=None, help="Tile overlap fraction in [0, 1).")
@click.pass_obj
def plan(
    cfg: TsegConfig,
    roi,
    source_mpp: float,
    target_mpp: float | None,
    tile_size: int | None,
    overlap: float | None,
):
    """Show the tile grid a region would be exported as."""
    try:
        spec = _build_spec(cfg, roi, source_mpp, target_mpp, tile_size, overlap)
    except TsegError as e:
        raise click.ClickException(e.message) from e
    boxes = plan_tiles(spec)
    click.echo(f"downsample:    {spec.downsample_factor():g}")
    click.echo(f"tile size:     {spec.tile_size}px")
    click.echo(f"overlap:       {spec.overlap_pixels()}px")
    click.echo(f"tiles:         {len(boxes)}")


@cli.command()
@roi_options
@click.option("--model", "model_name", default=None, help="Model file name in the models dir.")
@click.option("--confidence", type=click.FloatRange(0.0, 1.0), default=None)
@click.option(
    "--save",
    type=click.Path(dir_okay=False),
    default=None,
    help="Copy the resulting GeoJSON here.",
)
@click.option("--keep-scratch", is_flag=True, help="Leave tiles and outputs in place.")
@click.pass_obj
def infer(
    cfg: TsegConfig,
    roi,
    source_mpp: float,
    target_mpp: float | None,
    model_name: str | None,
    confidence: float | None,
    save: str | None,
    keep_scratch: bool,
):
    """Run the inference process on tiles already exported to the tile directory."""
    layout = _layout(cfg)
    store = ModelStore(layout.models_dir, default_model=cfg.inference.default_model)
    try:
        spec = _build_spec(cfg, roi, source_mpp, target_mpp, None, None)
        request = InferenceRequest(
            model_path=store.resolve(model_name),
            target_resolution=spec.target_resolution,
            confidence_threshold=confidence if confidence is not None else cfg.inference.confidence,
            region_bounds=Region(*roi).rounded(),
        )
    except TsegError as e:
        raise click.ClickException(e.message) from e

    if not list_tiles(layout.tile_scratch_dir, spec.image_format):
        raise click.ClickException(
            f"No {spec.image_format} tiles in {layout.tile_scratch_dir}; export the region first."
        )

    runner = InferenceProcessRunner(
        layout, launcher=cfg.setup.launcher, script_name=cfg.setup.script_name
    )
    try:
        result = runner.run(request, spec)
        if isinstance(result, InferenceFailure):
            raise result.to_error()
        annotations = read_annotations(result.result_file)
        if save:
            Path(save).parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(result.result_file, save)
            logger.info("Copied %s to %s", result.result_file, save)
    except TsegError as e:
        raise click.ClickException(e.message) from e
    finally:
        if not keep_scratch:
            for d in layout.scratch_dirs:
                clear_dir(d)

    click.echo(result.message)
    click.echo(
        f"{len(annotations)} annotation(s), {count_polygons(annotations)} polygon part(s)"
    )
    if save:
        click.echo(f"Saved result to {save}")


@cli.command()
@click.pass_obj
def clean(cfg: TsegConfig):
    """Clear the tile and output scratch directories."""
    layout = _layout(cfg)
    removed = sum(clear_dir(d) for d in layout.scratch_dirs)
    click.echo(f"Removed {removed} entr{'y' if removed == 1 else 'ies'}.")


def main():
    try:
        cli()
    except click.ClickException as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except TsegError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)
    except Exception as e:  # noqa: BLE001
        click.echo(f"Unexpected error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
