"""digitnet public API."""

from .codec import DecodeError, ModelContainer
from .core import activations  # noqa: F401
from .core import types  # noqa: F401
from .core.activations import ActivationFunction
from .core.config import DEFAULT_CONFIG, LayerConfig, NetworkConfig, build_network
from .core.layer import Layer
from .core.matrix import Matrix
from .core.network import BatchPolicy, Network
from .training.pipelines import load_preset, presets, run_pipeline
from .training.trainer import CancellationToken, ProgressReporter, Trainer

__all__ = [
    "ActivationFunction",
    "BatchPolicy",
    "CancellationToken",
    "DEFAULT_CONFIG",
    "DecodeError",
    "Layer",
    "LayerConfig",
    "Matrix",
    "ModelContainer",
    "Network",
    "NetworkConfig",
    "ProgressReporter",
    "Trainer",
    "activations",
    "build_network",
    "load_preset",
    "presets",
    "run_pipeline",
    "types",
]
