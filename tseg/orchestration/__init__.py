"""Orchestration layer sequencing export, inference and import into one run."""

from .runner import InferenceOrchestrator, RunListener

__all__ = ["InferenceOrchestrator", "RunListener"]
