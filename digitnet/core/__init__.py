"""Core numerical primitives for digitnet."""

from . import activations, config, layer, matrix, network, types

__all__ = ["activations", "config", "layer", "matrix", "network", "types"]
