"""Network configuration records and the network factory."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional

import numpy as np

from .activations import ActivationFunction, default_accelerator
from .layer import Layer
from .network import Network


@dataclass(frozen=True)
class LayerConfig:
    inputs: int
    punits: int
    activation: ActivationFunction = ActivationFunction.SIGMOID
    try_on_gpu: bool = False


@dataclass(frozen=True)
class NetworkConfig:
    """Everything needed to build and train a fresh network."""

    epochs_wanted: int
    mini_batch_size: int
    alpha: float
    inputs: int
    layers: List[LayerConfig] = field(default_factory=list)

    def validate(self) -> "NetworkConfig":
        if self.epochs_wanted < 1:
            raise ValueError(f"epochs must be >= 1, got {self.epochs_wanted}")
        if self.mini_batch_size < 1:
            raise ValueError(f"mini_batch_size must be >= 1, got {self.mini_batch_size}")
        if not self.alpha > 0:
            raise ValueError(f"alpha must be positive, got {self.alpha}")
        if not self.layers:
            raise ValueError("network config needs at least one layer")
        if self.layers[0].inputs != self.inputs:
            raise ValueError(
                f"first layer expects {self.layers[0].inputs} inputs, network has {self.inputs}"
            )
        for index, (left, right) in enumerate(zip(self.layers, self.layers[1:])):
            if left.punits != right.inputs:
                raise ValueError(
                    f"layer {index} outputs {left.punits} values but layer "
                    f"{index + 1} expects {right.inputs}"
                )
        for layer in self.layers:
            if layer.inputs < 1 or layer.punits < 1:
                raise ValueError(f"layer dimensions must be positive: {layer}")
        return self

    @property
    def outputs(self) -> int:
        return self.layers[-1].punits if self.layers else self.inputs

    def with_overrides(self, **changes: Any) -> "NetworkConfig":
        return replace(self, **changes)

    # ------------------------------------------------------------------
    # Mapping form used by presets and CLI overrides

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "NetworkConfig":
        """Build a config from the JSON/YAML preset form.

        A layer may omit ``inputs``; it is then chained from the previous
        layer (or the network's ``inputs`` for the first one).
        """

        inputs = int(data["inputs"])
        layers: List[LayerConfig] = []
        width = inputs
        for raw in data.get("layers", []):
            layer = LayerConfig(
                inputs=int(raw.get("inputs", width)),
                punits=int(raw["punits"]),
                activation=ActivationFunction.parse(raw.get("activation", "sigmoid")),
                try_on_gpu=bool(raw.get("try_on_gpu", False)),
            )
            layers.append(layer)
            width = layer.punits
        return cls(
            epochs_wanted=int(data.get("epochs", 1)),
            mini_batch_size=int(data.get("mini_batch_size", 1)),
            alpha=float(data.get("alpha", 0.3)),
            inputs=inputs,
            layers=layers,
        ).validate()

    def to_mapping(self) -> Dict[str, Any]:
        return {
            "epochs": self.epochs_wanted,
            "mini_batch_size": self.mini_batch_size,
            "alpha": self.alpha,
            "inputs": self.inputs,
            "layers": [
                {
                    "inputs": layer.inputs,
                    "punits": layer.punits,
                    "activation": layer.activation.label,
                    "try_on_gpu": layer.try_on_gpu,
                }
                for layer in self.layers
            ],
        }


def build_network(config: NetworkConfig, rng: Optional[np.random.Generator] = None) -> Network:
    """Create a freshly initialised :class:`Network` for ``config``."""

    config.validate()
    rng = rng if rng is not None else np.random.default_rng()
    layers = [
        Layer(
            spec.inputs,
            spec.punits,
            spec.activation,
            rng=rng,
            accelerator=default_accelerator(spec.try_on_gpu),
        )
        for spec in config.layers
    ]
    return Network(layers, config.alpha)


DEFAULT_CONFIG = NetworkConfig(
    epochs_wanted=1,
    mini_batch_size=10,
    alpha=0.3,
    inputs=784,
    layers=[
        LayerConfig(784, 100, ActivationFunction.SIGMOID),
        LayerConfig(100, 10, ActivationFunction.SIGMOID),
    ],
)


__all__ = ["DEFAULT_CONFIG", "LayerConfig", "NetworkConfig", "build_network"]
