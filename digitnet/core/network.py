"""Feed-forward network built from chained :class:`Layer` objects."""

from __future__ import annotations

from enum import Enum
from typing import Iterable, List, Sequence, Tuple

import numpy as np

from .layer import Layer
from .matrix import Matrix


class BatchPolicy(str, Enum):
    """How :meth:`Network.train_batch` combines the samples of a mini-batch."""

    # Average only the output error, back-propagate through the last sample's
    # activations.  Matches models trained by earlier releases.
    LAST_SAMPLE = "last_sample"
    # Average per-layer gradients of every sample, then apply them once.
    MEAN_GRADIENT = "mean_gradient"


def _loss(error: Matrix) -> float:
    return float(np.mean(np.square(error.entries, dtype=np.float64)))


class Network:
    def __init__(self, layers: Iterable[Layer], alpha: float) -> None:
        layers = tuple(layers)
        if not layers:
            raise ValueError("network needs at least one layer")
        for index, (left, right) in enumerate(zip(layers, layers[1:])):
            if left.punits != right.inputs:
                raise ValueError(
                    f"layer {index} outputs {left.punits} values but layer "
                    f"{index + 1} expects {right.inputs}"
                )
        self._layers: Tuple[Layer, ...] = layers
        self.alpha = float(np.float32(alpha))

    # ------------------------------------------------------------------
    # Accessors

    @property
    def layers(self) -> Tuple[Layer, ...]:
        return self._layers

    @property
    def depth(self) -> int:
        return len(self._layers)

    @property
    def inputs(self) -> int:
        return self._layers[0].inputs

    @property
    def outputs(self) -> int:
        return self._layers[-1].punits

    @property
    def shape(self) -> List[int]:
        return [self.inputs] + [layer.punits for layer in self._layers]

    # ------------------------------------------------------------------
    # Inference

    def query(self, input: Matrix) -> Matrix:
        output = input
        for layer in self._layers:
            output = layer.query(output)
        return output

    def _forward(self, input: Matrix) -> List[Matrix]:
        outputs = [input]
        for layer in self._layers:
            outputs.append(layer.query(outputs[-1]))
        return outputs

    # ------------------------------------------------------------------
    # Training

    def _backward(self, outputs: Sequence[Matrix], error: Matrix) -> None:
        for index in range(self.depth - 1, -1, -1):
            error = self._layers[index].train(
                outputs[index], outputs[index + 1], error, self.alpha
            )

    def train(self, input: Matrix, target: Matrix) -> float:
        """Run one SGD step on a single sample and return its output loss."""

        outputs = self._forward(input)
        error = target - outputs[-1]
        self._backward(outputs, error)
        return _loss(error)

    def train_batch(
        self,
        inputs: Sequence[Matrix],
        targets: Sequence[Matrix],
        policy: BatchPolicy = BatchPolicy.LAST_SAMPLE,
    ) -> float:
        """Train on a mini-batch and return the loss of the applied error."""

        if len(inputs) != len(targets):
            raise ValueError(
                f"mini-batch has {len(inputs)} inputs but {len(targets)} targets"
            )
        if not inputs:
            raise ValueError("mini-batch must not be empty")
        if len(inputs) == 1:
            return self.train(inputs[0], targets[0])
        if BatchPolicy(policy) is BatchPolicy.MEAN_GRADIENT:
            return self._train_mean_gradient(inputs, targets)
        return self._train_last_sample(inputs, targets)

    def _train_last_sample(self, inputs: Sequence[Matrix], targets: Sequence[Matrix]) -> float:
        error = targets[0] - self.query(inputs[0])
        for input, target in zip(inputs[1:-1], targets[1:-1]):
            error = (error + (target - self.query(input))) / 2.0
        outputs = self._forward(inputs[-1])
        error = (error + (targets[-1] - outputs[-1])) / 2.0
        self._backward(outputs, error)
        return _loss(error)

    def _train_mean_gradient(self, inputs: Sequence[Matrix], targets: Sequence[Matrix]) -> float:
        totals: List[Matrix | None] = [None] * self.depth
        losses = []
        for input, target in zip(inputs, targets):
            outputs = self._forward(input)
            error = target - outputs[-1]
            losses.append(_loss(error))
            for index in range(self.depth - 1, -1, -1):
                layer = self._layers[index]
                grad = layer.gradient(outputs[index], outputs[index + 1], error)
                totals[index] = grad if totals[index] is None else totals[index] + grad
                error = layer.backpropagate(error)
        scale = 1.0 / len(inputs)
        for layer, total in zip(self._layers, totals):
            layer.apply_update(total * scale, self.alpha)
        return float(np.mean(losses))

    # ------------------------------------------------------------------

    def __eq__(self, other) -> bool:
        if not isinstance(other, Network):
            return NotImplemented
        return self.alpha == other.alpha and self._layers == other._layers

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        shape = "->".join(str(width) for width in self.shape)
        return f"Network(shape={shape}, alpha={self.alpha})"


__all__ = ["BatchPolicy", "Network"]
