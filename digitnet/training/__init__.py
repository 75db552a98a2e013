"""Training driver and pipeline assembly."""

from .pipelines import load_preset, presets, run_pipeline
from .trainer import CancellationToken, ProgressReporter, Trainer

__all__ = [
    "CancellationToken",
    "ProgressReporter",
    "Trainer",
    "load_preset",
    "presets",
    "run_pipeline",
]
