from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Any, Sequence

from tseg.core.errors import ProcessSpawnError
from tseg.core.export_spec import TileExportSpec
from tseg.core.models import (
    FailureKind,
    InferenceFailure,
    InferenceRequest,
    InferenceResult,
    InferenceSuccess,
)
from tseg.core.paths import DirectoryLayout
from tseg.services.interfaces import CompletedInvocation, ProcessInvoker

logger = logging.getLogger("tseg.process")

_STDERR_LOG_LIMIT = 4000


class SubprocessInvoker:
    """Runs a command as a child process without a shell and waits for it to exit."""

    def invoke(self, command: str, args: Sequence[str], cwd: Path) -> CompletedInvocation:
        argv = [command, *[str(a) for a in args]]
        logger.debug("Running %s (cwd=%s)", argv, cwd)
        try:
            proc = subprocess.run(
                argv,
                cwd=str(cwd),
                capture_output=True,
                text=True,
                errors="replace",
                check=False,
            )
        except OSError as exc:
            raise ProcessSpawnError(f"Could not start inference command {command}: {exc}") from exc
        return CompletedInvocation(
            exit_code=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
        )


def _load_json_object(text: str) -> dict[str, Any]:
    payload = json.loads(text)
    if not isinstance(payload, dict):
        raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
    return payload


def _as_int(value: Any) -> int | None:
    """Integer value of a JSON number, accepting integral floats such as ``3.0``."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not value.is_integer():
        return None
    return int(value)


def _as_text(value: Any) -> str | None:
    """String form of a JSON scalar; objects, arrays and null yield ``None``."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class InferenceProcessRunner:
    """Builds the inference command line, runs it and classifies the outcome.

    The child must print one JSON object on stdout. On success it may carry
    ``n_polygons`` and ``runtime_sec``; on failure it may carry ``message``.
    Success additionally requires the result file in the output directory.
    """

    def __init__(
        self,
        layout: DirectoryLayout,
        *,
        invoker: ProcessInvoker | None = None,
        launcher: Sequence[str] = ("uv", "run"),
        script_name: str = "infer.py",
    ) -> None:
        self.layout = layout
        self.invoker = invoker or SubprocessInvoker()
        self.launcher = [str(part) for part in launcher]
        self.script_name = script_name

    @property
    def script_path(self) -> Path:
        return self.layout.model_repo_dir / self.script_name

    def build_arguments(self, request: InferenceRequest, spec: TileExportSpec) -> list[str]:
        roi_x, roi_y, roi_w, roi_h = request.region_bounds
        # fmt: off
        return [
            "--model-path", str(request.model_path),
            "--tile-dir", str(self.layout.tile_scratch_dir),
            "--output-dir", str(self.layout.output_scratch_dir),
            "--roi-x", str(roi_x),
            "--roi-y", str(roi_y),
            "--roi-width", str(roi_w),
            "--roi-height", str(roi_h),
            "--downsample-rate", str(float(spec.downsample_factor())),
            "--tile-size", str(spec.tile_size),
            "--confidence", str(float(request.confidence_threshold)),
            "--log-file", str(self.layout.log_file),
        ]
        # fmt: on

    def build_command(
        self, request: InferenceRequest, spec: TileExportSpec
    ) -> tuple[str, list[str]]:
        script = str(self.script_path)
        flags = self.build_arguments(request, spec)
        if self.launcher:
            return self.launcher[0], [*self.launcher[1:], script, *flags]
        return script, flags

    def check_environment(self, command: str) -> None:
        """Fail before spawning when the inference environment is unusable."""
        repo = self.layout.model_repo_dir
        if not repo.is_dir():
            raise ProcessSpawnError(f"Inference repository not found at {repo}")
        if not self.script_path.is_file():
            raise ProcessSpawnError(f"{self.script_name} not found at {self.script_path}")
        if not self.layout.has_completed_setup():
            raise ProcessSpawnError(
                f"Inference environment setup has not completed (missing {self.layout.setup_marker})"
            )
        if self.launcher:
            if shutil.which(command) is None:
                raise ProcessSpawnError(f"Launcher executable not found on PATH: {command}")
        elif not os.access(command, os.X_OK):
            raise ProcessSpawnError(f"Inference script is not executable: {command}")

    def invoke(self, request: InferenceRequest, spec: TileExportSpec) -> CompletedInvocation:
        command, args = self.build_command(request, spec)
        self.check_environment(command)
        # a stale artifact must never pass for this run's output
        self.layout.result_file.unlink(missing_ok=True)
        logger.info("Starting inference with model %s.", Path(request.model_path).name)
        return self.invoker.invoke(command, args, self.layout.model_repo_dir)

    def interpret(self, completed: CompletedInvocation) -> InferenceResult:
        log_file = self.layout.log_file
        stderr = completed.stderr.strip()
        if stderr:
            logger.warning("Inference script stderr: %s", stderr[-_STDERR_LOG_LIMIT:])

        if completed.exit_code != 0:
            logger.error("Inference script failed with exit code %s", completed.exit_code)
            return InferenceFailure(
                reason=self._failure_reason(completed.stdout, log_file),
                exit_code=completed.exit_code,
                log_file=log_file,
            )

        logger.info("Inference script successful.")
        polygon_count, elapsed = self._success_fields(completed.stdout)
        result_file = self.layout.result_file
        if not result_file.is_file():
            logger.error("Inference finished without producing %s", result_file)
            return InferenceFailure(
                reason=f"Inference finished, but output file not found: {result_file}",
                exit_code=completed.exit_code,
                log_file=log_file,
                kind=FailureKind.MISSING_OUTPUT,
            )
        return InferenceSuccess(
            result_file=result_file,
            polygon_count=polygon_count,
            elapsed_seconds=elapsed,
        )

    def run(self, request: InferenceRequest, spec: TileExportSpec) -> InferenceResult:
        return self.interpret(self.invoke(request, spec))

    @staticmethod
    def _failure_reason(stdout: str, log_file: Path) -> str:
        generic = f"Inference run failed. Check log file: {log_file}"
        text = stdout.strip()
        if not text:
            return generic
        try:
            payload = _load_json_object(text)
        except ValueError as exc:
            logger.warning("Could not parse error JSON: %s", exc)
            return f"Inference failed with non-JSON output. Check log file: {log_file}"
        message = _as_text(payload.get("message"))
        if message and message.strip():
            return message.strip()
        return generic

    @staticmethod
    def _success_fields(stdout: str) -> tuple[int | None, float | None]:
        text = stdout.strip()
        if not text:
            return None, None
        try:
            payload = _load_json_object(text)
        except ValueError as exc:
            logger.debug("Could not parse success JSON: %s", exc)
            return None, None
        count = payload.get("n_polygons")
        runtime = payload.get("runtime_sec")
        polygons = _as_int(count)
        if polygons is not None and _is_number(runtime):
            return polygons, float(runtime)
        return None, None
