"""Activation functions with an optional GPU offload path."""

from __future__ import annotations

from enum import IntEnum
from typing import Optional, Protocol

import numpy as np

from .matrix import Matrix
from .types import Array


def identity(x: Array) -> Array:
    return x


def sigmoid(x: Array) -> Array:
    """Return the logistic sigmoid of ``x`` in float32."""

    x = np.asarray(x, dtype=np.float32)
    with np.errstate(over="ignore", under="ignore"):
        return (1.0 / (1.0 + np.exp(-x))).astype(np.float32)


class Accelerator(Protocol):
    """Device that can evaluate an activation over a flat float32 buffer."""

    def evaluate(self, function: "ActivationFunction", entries: Array) -> Optional[Array]:
        """Return the activated buffer, or ``None`` when unable to run."""


class ActivationFunction(IntEnum):
    """Closed set of elementwise activations; the value is the NNXD tag."""

    IDENTITY = 1
    SIGMOID = 2

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, value: "str | int | ActivationFunction") -> "ActivationFunction":
        if isinstance(value, ActivationFunction):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError as exc:
                raise ValueError(f"Unknown activation function: {value}") from exc
        return cls(int(value))

    def cpu(self, entries: Array) -> Array:
        return _CPU[self](entries)

    def apply(self, matrix: Matrix, accelerator: Accelerator | None = None) -> Matrix:
        """Evaluate the activation elementwise over ``matrix``.

        The CPU evaluation is the reference.  An accelerator is only a hint:
        if it is missing, fails or returns something unusable, the CPU result
        is returned instead.
        """

        if accelerator is not None:
            try:
                result = accelerator.evaluate(self, np.asarray(matrix.entries, dtype=np.float32))
            except Exception:  # accelerator faults never reach the caller
                result = None
            if result is not None:
                result = np.asarray(result, dtype=np.float32).reshape(-1)
                if result.size == matrix.entries.size:
                    return Matrix(matrix.rows, matrix.columns, result, dtype=np.float32)
        return matrix.map(self.cpu, vectorized=True)


_CPU = {
    ActivationFunction.IDENTITY: identity,
    ActivationFunction.SIGMOID: sigmoid,
}


_SIGMOID_KERNEL = (
    "float32 x",
    "float32 y",
    "y = 1.0f / (1.0f + expf(-x))",
    "digitnet_sigmoid",
)


class CupyAccelerator:
    """Synchronous single-call CUDA offload via CuPy.

    ``cupy`` is imported on first use.  Any import or device error marks the
    accelerator unavailable and every later call answers ``None``.
    """

    def __init__(self) -> None:
        self._cupy = None
        self._kernel = None
        self._available: bool | None = None
        self.last_error: Exception | None = None

    @property
    def available(self) -> bool:
        if self._available is None:
            self._available = self._load()
        return self._available

    def _load(self) -> bool:
        try:
            import cupy  # type: ignore

            if cupy.cuda.runtime.getDeviceCount() < 1:
                return False
            self._kernel = cupy.ElementwiseKernel(*_SIGMOID_KERNEL)
            self._cupy = cupy
        except Exception as exc:  # pragma: no cover - depends on the host GPU
            self.last_error = exc
            return False
        return True

    def evaluate(self, function: ActivationFunction, entries: Array) -> Optional[Array]:
        if not self.available:
            return None
        if function is ActivationFunction.IDENTITY:
            return np.array(entries, dtype=np.float32)
        try:  # pragma: no cover - requires a CUDA device
            cp = self._cupy
            device_in = cp.asarray(entries, dtype=cp.float32)
            device_out = self._kernel(device_in)
            cp.cuda.Stream.null.synchronize()
            return cp.asnumpy(device_out).astype(np.float32)
        except Exception as exc:  # pragma: no cover - requires a CUDA device
            self.last_error = exc
            return None


_DEFAULT_ACCELERATOR: CupyAccelerator | None = None


def default_accelerator(enabled: bool = True) -> CupyAccelerator | None:
    """Return the shared CuPy accelerator when ``enabled``, else ``None``."""

    global _DEFAULT_ACCELERATOR
    if not enabled:
        return None
    if _DEFAULT_ACCELERATOR is None:
        _DEFAULT_ACCELERATOR = CupyAccelerator()
    return _DEFAULT_ACCELERATOR


__all__ = [
    "Accelerator",
    "ActivationFunction",
    "CupyAccelerator",
    "default_accelerator",
    "identity",
    "sigmoid",
]
