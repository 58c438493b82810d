from __future__ import annotations

import dataclasses
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable

from tseg.core.annotations import Annotation
from tseg.core.config import TileConfig
from tseg.core.errors import (
    InvalidArgumentError,
    RunInProgressError,
    TileExportError,
    TsegError,
)
from tseg.core.export_spec import TileExportSpec, plan_tiles
from tseg.core.models import (
    ImageInfo,
    InferenceFailure,
    InferenceRequest,
    InferenceResult,
    RunEvent,
    RunOutcome,
    RunParameters,
    RunState,
)
from tseg.core.paths import DirectoryLayout
from tseg.services.cleanup import ScratchCleaner
from tseg.services.interfaces import ResultImporter, TileExporter, ViewerHost
from tseg.services.process import InferenceProcessRunner
from tseg.utils.params import list_tiles

logger = logging.getLogger("tseg.runner")

RunListener = Callable[[RunEvent], None]


def _accepts_runs(state: RunState) -> bool:
    return state is RunState.IDLE or state.is_terminal


@dataclass
class _RunContext:
    params: RunParameters
    tiles: TileConfig
    image: ImageInfo | None
    selection: Annotation | None
    history: list[RunState] = field(default_factory=list)
    touched_scratch: bool = False


class InferenceOrchestrator:
    """Runs one inference at a time: validate, export tiles, invoke, interpret, import, clean.

    ``submit`` returns immediately with a future resolving to a ``RunOutcome``;
    the sequence itself runs on a single background worker. A second submit
    while a run is active raises ``RunInProgressError`` because both runs would
    share the same scratch directories. Subscribers receive a ``RunEvent`` on
    every state change, from the worker thread.
    """

    def __init__(
        self,
        host: ViewerHost,
        exporter: TileExporter,
        runner: InferenceProcessRunner,
        importer: ResultImporter,
        layout: DirectoryLayout,
        *,
        cleaner: ScratchCleaner | None = None,
    ) -> None:
        self.host = host
        self.exporter = exporter
        self.runner = runner
        self.importer = importer
        self.layout = layout
        self._owns_cleaner = cleaner is None
        self._cleaner = cleaner or ScratchCleaner()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="tseg-inference")
        self._lock = threading.Lock()
        self._state = RunState.IDLE
        self._listeners: list[RunListener] = []
        self._pending_cleanup: Future[int] | None = None

    @property
    def state(self) -> RunState:
        with self._lock:
            return self._state

    @property
    def is_busy(self) -> bool:
        return not _accepts_runs(self.state)

    def subscribe(self, listener: RunListener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it again."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def submit(self, params: RunParameters, tiles: TileConfig) -> Future[RunOutcome]:
        image = self.host.current_image()
        selection = self.host.selected_object()
        with self._lock:
            if not _accepts_runs(self._state):
                raise RunInProgressError(
                    f"An inference run is already in progress ({self._state.value})"
                )
            self._state = RunState.VALIDATING_INPUT
        ctx = _RunContext(
            params=params,
            tiles=dataclasses.replace(tiles),
            image=image,
            selection=selection,
            history=[RunState.VALIDATING_INPUT],
        )
        self._publish(RunEvent(RunState.VALIDATING_INPUT, "Validating input."))
        try:
            return self._executor.submit(self._run, ctx)
        except RuntimeError:
            with self._lock:
                self._state = RunState.FAILED
            raise

    def wait_for_cleanup(self, timeout: float | None = None) -> None:
        pending = self._pending_cleanup
        if pending is not None:
            pending.result(timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
        if self._owns_cleaner:
            self._cleaner.shutdown(wait=wait)

    def __enter__(self) -> InferenceOrchestrator:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    # -- run sequence ---------------------------------------------------------

    def _run(self, ctx: _RunContext) -> RunOutcome:
        result: InferenceResult | None = None
        try:
            request, spec = self._validate(ctx)

            self._transition(ctx, RunState.EXPORTING_TILES, "Exporting tiles.")
            self._export(ctx, spec)

            self._transition(ctx, RunState.INVOKING, "Running inference.")
            completed = self.runner.invoke(request, spec)

            self._transition(ctx, RunState.INTERPRETING_RESULT)
            result = self.runner.interpret(completed)
            if isinstance(result, InferenceFailure):
                raise result.to_error()

            self._transition(ctx, RunState.IMPORTING, result.message)
            assert ctx.selection is not None
            imported = self.importer.import_result(ctx.selection, result.result_file)
        except TsegError as exc:
            logger.error("Inference run failed: %s", exc.message)
            return self._finish(ctx, RunState.FAILED, exc.message, result=result, error=exc)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error during inference run")
            error = TsegError("Inference failed. Check log.")
            error.__cause__ = exc
            return self._finish(ctx, RunState.FAILED, error.message, result=result, error=error)

        self._transition(ctx, RunState.CLEANING)
        return self._finish(
            ctx, RunState.DONE, result.message, result=result, imported=len(imported)
        )

    def _validate(self, ctx: _RunContext) -> tuple[InferenceRequest, TileExportSpec]:
        if ctx.image is None:
            raise InvalidArgumentError("No image loaded.")
        if ctx.selection is None:
            raise InvalidArgumentError("Please select an area.")

        tiles = ctx.tiles.validated()
        region = ctx.selection.region
        spec = TileExportSpec(
            region=region,
            target_resolution=ctx.params.target_mpp,
            source_resolution=ctx.image.pixel_size_um,
            tile_size=tiles.size,
            overlap_fraction=tiles.overlap,
            image_format=tiles.extension,
        )
        request = InferenceRequest(
            model_path=ctx.params.model_path,
            target_resolution=ctx.params.target_mpp,
            confidence_threshold=ctx.params.confidence,
            region_bounds=region.rounded(),
        )
        return request, spec

    def _export(self, ctx: _RunContext, spec: TileExportSpec) -> None:
        # scratch is single-writer: let the previous run's cleanup finish first
        self.wait_for_cleanup()
        self.layout.ensure()
        ctx.touched_scratch = True
        self._cleaner.clear_now(self.layout.scratch_dirs)

        planned = plan_tiles(spec)
        logger.info(
            "Exporting about %d tile(s) of %dpx at downsample %.3f.",
            len(planned),
            spec.tile_size,
            spec.downsample_factor(),
        )
        assert ctx.image is not None
        tile_dir = self.layout.tile_scratch_dir
        try:
            self.exporter.export(ctx.image, spec, tile_dir)
        except OSError as exc:
            if isinstance(exc, TsegError):
                raise
            raise TileExportError(f"Tile export failed: {exc}") from exc

        written = list_tiles(tile_dir, spec.image_format)
        if not written:
            raise TileExportError(f"Tile export wrote no {spec.image_format} tiles to {tile_dir}")
        logger.debug("Exported %d tile(s) to %s", len(written), tile_dir)

    # -- state bookkeeping ----------------------------------------------------

    def _transition(self, ctx: _RunContext, state: RunState, message: str = "") -> None:
        with self._lock:
            self._state = state
        ctx.history.append(state)
        logger.debug("Run state -> %s", state.value)
        self._publish(RunEvent(state, message))

    def _finish(
        self,
        ctx: _RunContext,
        state: RunState,
        message: str,
        *,
        result: InferenceResult | None = None,
        error: TsegError | None = None,
        imported: int = 0,
    ) -> RunOutcome:
        with self._lock:
            if ctx.touched_scratch:
                try:
                    self._pending_cleanup = self._cleaner.schedule(self.layout.scratch_dirs)
                except RuntimeError as exc:
                    logger.warning("Could not schedule scratch cleanup: %s", exc)
            self._state = state
        ctx.history.append(state)
        self._publish(RunEvent(state, message))
        return RunOutcome(
            state=state,
            message=message,
            result=result,
            error=error,
            imported=imported,
            history=list(ctx.history),
        )

    def _publish(self, event: RunEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:  # noqa: BLE001
                logger.warning("Run listener failed on %s", event.state.value, exc_info=True)
