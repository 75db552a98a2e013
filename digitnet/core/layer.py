"""Fully connected layer with an elementwise activation."""

from __future__ import annotations

import numpy as np

from .activations import Accelerator, ActivationFunction
from .distributions import GaussianDistribution
from .matrix import Matrix


class Layer:
    """Dense layer mapping ``inputs`` values to ``punits`` outputs.

    Weights are a ``punits x inputs`` float32 matrix.  When none are given
    they are drawn from ``N(0, inputs ** -0.5)``.
    """

    def __init__(
        self,
        inputs: int,
        punits: int,
        activation: ActivationFunction = ActivationFunction.IDENTITY,
        weights: Matrix | None = None,
        *,
        rng: np.random.Generator | None = None,
        accelerator: Accelerator | None = None,
    ) -> None:
        inputs, punits = int(inputs), int(punits)
        if inputs <= 0 or punits <= 0:
            raise ValueError(f"layer dimensions must be positive, got {inputs}->{punits}")
        if weights is None:
            dist = GaussianDistribution(0.0, inputs ** -0.5, rng=rng)
            weights = Matrix(punits, inputs, dist.sample(punits * inputs), dtype=np.float32)
        elif weights.shape != (punits, inputs):
            raise ValueError(
                f"weights must be {punits}x{inputs}, got {weights.rows}x{weights.columns}"
            )
        elif weights.dtype != np.float32:
            weights = Matrix(weights.rows, weights.columns, weights.entries, dtype=np.float32)
        self.inputs = inputs
        self.punits = punits
        self.activation = ActivationFunction(activation)
        self.weights = weights
        self.accelerator = accelerator

    # ------------------------------------------------------------------
    # Forward / backward

    def query(self, input: Matrix) -> Matrix:
        if input.shape != (self.inputs, 1):
            raise ValueError(
                f"layer expects a {self.inputs}x1 input, got {input.rows}x{input.columns}"
            )
        return self.activation.apply(self.weights @ input, self.accelerator)

    def backpropagate(self, error: Matrix) -> Matrix:
        return self.weights.T @ error

    def gradient(self, input: Matrix, output: Matrix, error: Matrix) -> Matrix:
        return (error * output * (1.0 - output)) @ input.T

    def apply_update(self, delta: Matrix, alpha: float) -> None:
        self.weights = self.weights + alpha * delta

    def train(self, input: Matrix, output: Matrix, error: Matrix, alpha: float) -> Matrix:
        """Update the weights from ``error`` and return the propagated error.

        The propagated error is taken against the weights as they were before
        this update.
        """

        propagated = self.backpropagate(error)
        self.apply_update(self.gradient(input, output, error), alpha)
        return propagated

    # ------------------------------------------------------------------

    def __eq__(self, other) -> bool:
        if not isinstance(other, Layer):
            return NotImplemented
        return (
            self.inputs == other.inputs
            and self.punits == other.punits
            and self.activation == other.activation
            and self.weights == other.weights
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return (
            f"Layer(inputs={self.inputs}, punits={self.punits}, "
            f"activation={self.activation.label})"
        )


__all__ = ["Layer"]
