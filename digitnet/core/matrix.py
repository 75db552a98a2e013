"""Dense row-major matrix with strict shape contracts."""

from __future__ import annotations

from numbers import Number
from typing import Callable, Iterable, Sequence

import numpy as np

from .types import Array

_MISMATCH = "LHS and RHS dimensions not matching"


def _infer_dtype(values: Array) -> np.dtype:
    if np.issubdtype(values.dtype, np.integer) or values.dtype == np.bool_:
        return np.dtype(np.int64)
    return np.dtype(np.float32)


class Matrix:
    """Rectangular numeric container.

    Entries are kept in a read-only ``rows x columns`` numpy array.  Every
    operator returns a new matrix; elementwise operators require identical
    shapes and never broadcast.
    """

    __slots__ = ("_data",)
    __array_ufunc__ = None  # numpy scalars defer to the reflected operators

    def __init__(
        self,
        rows: int = 1,
        columns: int = 1,
        entries: Iterable[Number] | Array | None = None,
        dtype: np.dtype | type | None = None,
    ) -> None:
        rows, columns = int(rows), int(columns)
        if rows <= 0 or columns <= 0:
            raise ValueError(f"wrong dimensions: {rows}x{columns}")
        if entries is None:
            data = np.zeros(rows * columns, dtype=dtype or np.float32)
        else:
            values = np.asarray(
                entries if isinstance(entries, np.ndarray) else list(entries)
            )
            if values.size != rows * columns:
                raise ValueError(
                    f"wrong dimensions: {rows}x{columns} needs {rows * columns} "
                    f"entries, got {values.size}"
                )
            data = values.astype(dtype or _infer_dtype(values), copy=True).reshape(-1)
        data = data.reshape(rows, columns)
        data.flags.writeable = False
        self._data = data

    # ------------------------------------------------------------------
    # Construction helpers

    @classmethod
    def _wrap(cls, data: Array) -> "Matrix":
        matrix = cls.__new__(cls)
        data = np.ascontiguousarray(data)
        data.flags.writeable = False
        matrix._data = data
        return matrix

    @classmethod
    def zeros(cls, rows: int, columns: int = 1, dtype=np.float32) -> "Matrix":
        return cls(rows, columns, dtype=dtype)

    @classmethod
    def column(cls, values: Sequence[Number] | Array, dtype=None) -> "Matrix":
        """Return ``values`` as a ``len(values) x 1`` column vector."""

        values = np.asarray(values).reshape(-1)
        return cls(values.size, 1, values, dtype=dtype)

    @classmethod
    def from_numpy(cls, array: Array, dtype=None) -> "Matrix":
        array = np.asarray(array)
        if array.ndim != 2:
            raise ValueError(f"expected a 2-d array, got shape {array.shape}")
        return cls(array.shape[0], array.shape[1], array.reshape(-1), dtype=dtype)

    # ------------------------------------------------------------------
    # Accessors

    @property
    def rows(self) -> int:
        return self._data.shape[0]

    @property
    def columns(self) -> int:
        return self._data.shape[1]

    @property
    def shape(self) -> tuple[int, int]:
        return self._data.shape

    @property
    def dtype(self) -> np.dtype:
        return self._data.dtype

    @property
    def entries(self) -> Array:
        """Flat, read-only row-major view of the entries."""

        return self._data.reshape(-1)

    def to_numpy(self) -> Array:
        return self._data.copy()

    def __getitem__(self, index: tuple[int, int]):
        row, column = index
        if not (0 <= row < self.rows and 0 <= column < self.columns):
            raise IndexError(
                f"index ({row}, {column}) out of bounds for {self.rows}x{self.columns}"
            )
        return self._data[row, column].item()

    def argmax(self) -> int:
        return int(np.argmax(self._data))

    # ------------------------------------------------------------------
    # Transforms

    @property
    def T(self) -> "Matrix":
        return self._wrap(self._data.T)

    def transpose(self) -> "Matrix":
        return self.T

    def map(self, transform: Callable, *, vectorized: bool = False) -> "Matrix":
        """Apply ``transform`` to every entry and return a new matrix.

        With ``vectorized=True`` the transform receives the whole entry array
        once and must return an array of the same size.
        """

        if vectorized:
            result = np.asarray(transform(self._data.copy()))
        else:
            flat = [transform(value) for value in self._data.reshape(-1).tolist()]
            result = np.asarray(flat)
        if result.size != self._data.size:
            raise ValueError("map transform changed the number of entries")
        return self._wrap(result.reshape(self.shape).astype(self.dtype, copy=False))

    # ------------------------------------------------------------------
    # Arithmetic

    def _check_same_shape(self, other: "Matrix") -> None:
        if self.shape != other.shape:
            raise ValueError(f"{_MISMATCH}: {self.shape} vs {other.shape}")

    def _elementwise(self, other, op, reflected: bool = False) -> "Matrix":
        if isinstance(other, Matrix):
            self._check_same_shape(other)
            lhs, rhs = (other._data, self._data) if reflected else (self._data, other._data)
            return self._wrap(op(lhs, rhs))
        if isinstance(other, (Number, np.number)):
            scalar = np.asarray(other, dtype=self.dtype) if self._is_float else other
            lhs, rhs = (scalar, self._data) if reflected else (self._data, scalar)
            return self._wrap(op(lhs, rhs))
        return NotImplemented

    @property
    def _is_float(self) -> bool:
        return np.issubdtype(self.dtype, np.floating)

    def __add__(self, other):
        return self._elementwise(other, np.add)

    def __radd__(self, other):
        return self._elementwise(other, np.add, reflected=True)

    def __sub__(self, other):
        return self._elementwise(other, np.subtract)

    def __rsub__(self, other):
        return self._elementwise(other, np.subtract, reflected=True)

    def __mul__(self, other):
        return self._elementwise(other, np.multiply)

    def __rmul__(self, other):
        return self._elementwise(other, np.multiply, reflected=True)

    def __truediv__(self, other):
        if not self._is_float:
            raise TypeError("division is only defined for floating point matrices")
        return self._elementwise(other, np.divide)

    def __rtruediv__(self, other):
        if not self._is_float:
            raise TypeError("division is only defined for floating point matrices")
        return self._elementwise(other, np.divide, reflected=True)

    def __neg__(self) -> "Matrix":
        return self._wrap(np.negative(self._data))

    def dot(self, other: "Matrix") -> "Matrix":
        if not isinstance(other, Matrix):
            raise TypeError(f"cannot multiply Matrix with {type(other).__name__}")
        if self.columns != other.rows:
            raise ValueError(f"{_MISMATCH}: {self.shape} @ {other.shape}")
        return self._wrap(np.matmul(self._data, other._data))

    def __matmul__(self, other):
        if not isinstance(other, Matrix):
            return NotImplemented
        return self.dot(other)

    # ------------------------------------------------------------------
    # Comparison / display

    def __eq__(self, other) -> bool:
        if not isinstance(other, Matrix):
            return NotImplemented
        return self.shape == other.shape and bool(np.array_equal(self._data, other._data))

    def __ne__(self, other) -> bool:
        result = self.__eq__(other)
        return result if result is NotImplemented else not result

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        flat = self.entries.tolist()
        shown = ", ".join(str(v) for v in flat[:10])
        if len(flat) > 10:
            shown += f", ... ({len(flat) - 10} more)"
        return f"Matrix(rows: {self.rows}, columns: {self.columns}, entries: [{shown}])"


__all__ = ["Matrix"]
