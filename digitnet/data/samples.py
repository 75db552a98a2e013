"""In-memory labelled image splits shared between training and the UI."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple

import numpy as np

from ..core.types import Array


class Purpose(str, Enum):
    TRAIN = "train"
    TEST = "test"


def _as_bytes(values, what: str) -> Array:
    array = np.asarray(values)
    if array.dtype != np.uint8 and array.size:
        low, high = array.min(), array.max()
        if low < 0 or high > 255:
            raise ValueError(f"{what} must lie in 0..255, got {low}..{high}")
    return np.array(array, dtype=np.uint8)


@dataclass(frozen=True)
class Split:
    """Images and labels for one purpose.

    ``images`` is ``uint8[n, pixels]`` and ``labels`` is ``uint8[n]``.
    """

    purpose: Purpose
    images: Array
    labels: Array

    def __post_init__(self) -> None:
        object.__setattr__(self, "purpose", Purpose(self.purpose))
        images = _as_bytes(self.images, f"{self.purpose.value} images")
        labels = _as_bytes(self.labels, f"{self.purpose.value} labels").reshape(-1)
        if images.ndim != 2:
            images = images.reshape(images.shape[0], -1)
        if images.shape[0] != labels.shape[0]:
            raise ValueError(
                f"{self.purpose.value} split has {images.shape[0]} images "
                f"but {labels.shape[0]} labels"
            )
        images.flags.writeable = False
        labels.flags.writeable = False
        object.__setattr__(self, "images", images)
        object.__setattr__(self, "labels", labels)

    def __len__(self) -> int:
        return int(self.labels.shape[0])

    @property
    def pixels(self) -> int:
        return int(self.images.shape[1])


class Dataset:
    """Thread-safe holder of the train and test splits.

    Training reads while a loader may swap in new data, so every access goes
    through one re-entrant lock.  Training samples are served in a shuffled
    order that :meth:`shuffle` redraws.
    """

    def __init__(self, splits: Iterable[Split] = ()) -> None:
        self._lock = threading.RLock()
        self._splits: Dict[Purpose, Split] = {}
        self._order: Array = np.arange(0, dtype=np.int64)
        for split in splits:
            self.replace(split)

    # ------------------------------------------------------------------

    def replace(self, split: Split) -> None:
        with self._lock:
            self._splits[split.purpose] = split
            if split.purpose is Purpose.TRAIN:
                self._order = np.arange(len(split), dtype=np.int64)

    def shuffle(self, seed: Optional[int] = None) -> None:
        rng = np.random.default_rng(seed)
        with self._lock:
            train = self._splits.get(Purpose.TRAIN)
            if train is not None:
                self._order = rng.permutation(len(train)).astype(np.int64)

    def is_loaded(self, purpose: Purpose | None = None) -> bool:
        with self._lock:
            if purpose is None:
                return all(p in self._splits for p in Purpose)
            return Purpose(purpose) in self._splits

    def count(self, purpose: Purpose) -> int:
        with self._lock:
            split = self._splits.get(Purpose(purpose))
            return len(split) if split is not None else 0

    @property
    def pixels(self) -> int:
        with self._lock:
            for split in self._splits.values():
                return split.pixels
        return 0

    # ------------------------------------------------------------------

    def _split(self, purpose: Purpose) -> Split:
        try:
            return self._splits[Purpose(purpose)]
        except KeyError:
            raise LookupError(f"{Purpose(purpose).value} split is not loaded") from None

    def fetch(self, index: int, purpose: Purpose) -> Tuple[Array, int]:
        """Return ``(pixels, label)`` of one sample."""

        with self._lock:
            split = self._split(purpose)
            if not 0 <= index < len(split):
                raise IndexError(f"sample {index} out of range for {len(split)} samples")
            if split.purpose is Purpose.TRAIN:
                index = int(self._order[index])
            return split.images[index], int(split.labels[index])

    def fetch_range(self, start: int, stop: int, purpose: Purpose) -> Tuple[Array, Array]:
        """Return ``(images, labels)`` for positions ``start..stop-1``."""

        with self._lock:
            split = self._split(purpose)
            if not 0 <= start <= stop <= len(split):
                raise IndexError(f"range {start}:{stop} out of bounds for {len(split)} samples")
            if split.purpose is Purpose.TRAIN:
                rows = self._order[start:stop]
                return split.images[rows], split.labels[rows]
            return split.images[start:stop], split.labels[start:stop]

    def snapshot(self, purpose: Purpose) -> Tuple[Array, Array]:
        """Return every ``(images, labels)`` of ``purpose`` in serving order.

        The arrays come from one split taken under the lock, so a concurrent
        :meth:`replace` never shows through.  An unloaded split is empty.
        """

        with self._lock:
            split = self._splits.get(Purpose(purpose))
            if split is None:
                return np.zeros((0, self.pixels), dtype=np.uint8), np.zeros(0, dtype=np.uint8)
            if split.purpose is Purpose.TRAIN:
                return split.images[self._order], split.labels[self._order]
            return split.images, split.labels


__all__ = ["Dataset", "Purpose", "Split"]
