"""Dataset registry and the built-in dataset sources."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, MutableMapping

import numpy as np

from .samples import Dataset, Purpose, Split


@dataclass(frozen=True)
class DatasetSpec:
    """A loaded dataset plus the metadata needed to size a network.

    Attributes
    ----------
    name:
        Registry identifier.
    dataset:
        The :class:`~digitnet.data.samples.Dataset` holding both splits.
    num_classes:
        Width of the one-hot targets.
    provenance:
        Free-form description of where the samples came from.
    """

    name: str
    dataset: Dataset
    num_classes: int = 10
    provenance: Dict[str, Any] = field(default_factory=dict)

    @property
    def pixels(self) -> int:
        return self.dataset.pixels

    @property
    def splits(self) -> Dict[str, int]:
        return {p.value: self.dataset.count(p) for p in Purpose}


DatasetFactory = Callable[..., DatasetSpec]


_REGISTRY: MutableMapping[str, DatasetFactory] = {}


def register_dataset(
    name: str | None = None,
    factory: DatasetFactory | None = None,
) -> Callable[[DatasetFactory], DatasetFactory] | DatasetFactory:
    """Register a dataset factory.

    Works as a decorator::

        @register_dataset("synthetic")
        def build_synthetic(**kwargs):
            ...

    or directly with ``register_dataset("synthetic", build_synthetic)``.
    """

    def _decorator(func: DatasetFactory) -> DatasetFactory:
        _REGISTRY[str(name or func.__name__)] = func
        return func

    if factory is not None:
        return _decorator(factory)
    if name is None:
        raise TypeError("register_dataset requires a name when used without a decorator")
    return _decorator


def get_dataset(dataset: str, /, **options: Any) -> DatasetSpec:
    """Build the :class:`DatasetSpec` registered as ``dataset``."""

    if dataset not in _REGISTRY:
        raise KeyError(f"Unknown dataset: {dataset}")
    spec = _REGISTRY[dataset](**options)
    _validate_spec(spec)
    return spec


def available_datasets() -> Iterable[str]:
    """Return the sorted list of available dataset identifiers."""

    return sorted(_REGISTRY)


def _validate_spec(spec: DatasetSpec) -> None:
    if spec.num_classes < 2:
        raise ValueError(f"Dataset {spec.name!r} needs at least two classes")
    if not spec.dataset.is_loaded():
        raise ValueError(f"Dataset {spec.name!r} must provide train and test splits")
    for purpose in Purpose:
        _, labels = spec.dataset.fetch_range(0, spec.dataset.count(purpose), purpose)
        if labels.size and int(labels.max()) >= spec.num_classes:
            raise ValueError(
                f"Dataset {spec.name!r} has label {int(labels.max())} "
                f"outside {spec.num_classes} classes"
            )


# ---------------------------------------------------------------------------
# Built-in sources


def _prototypes(rng: np.random.Generator, classes: int, side: int) -> np.ndarray:
    """One bright stroke pattern per class on a ``side x side`` grid."""

    protos = np.zeros((classes, side, side), dtype=np.float32)
    for label in range(classes):
        rows = rng.integers(side // 6, side - side // 6, size=3)
        cols = rng.integers(side // 6, side - side // 6, size=3)
        for r, c in zip(rows, cols):
            protos[label, r, max(c - side // 4, 0) : c + side // 4] = 1.0
            protos[label, max(r - side // 4, 0) : r + side // 4, c] = 1.0
    return protos.reshape(classes, side * side)


def _noisy_samples(
    rng: np.random.Generator, protos: np.ndarray, count: int, noise: float
) -> tuple[np.ndarray, np.ndarray]:
    labels = rng.integers(0, protos.shape[0], size=count)
    images = protos[labels] + rng.normal(0.0, noise, size=(count, protos.shape[1]))
    images = np.clip(images, 0.0, 1.0) * 255.0
    return images.astype(np.uint8), labels.astype(np.uint8)


@register_dataset("synthetic")
def build_synthetic(
    *,
    train_size: int = 600,
    test_size: int = 100,
    side: int = 28,
    num_classes: int = 10,
    noise: float = 0.15,
    seed: int = 0,
) -> DatasetSpec:
    """Deterministic prototype digits with Gaussian pixel noise."""

    rng = np.random.default_rng(seed)
    protos = _prototypes(rng, num_classes, side)
    x_train, y_train = _noisy_samples(rng, protos, train_size, noise)
    x_test, y_test = _noisy_samples(rng, protos, test_size, noise)
    dataset = Dataset(
        [
            Split(Purpose.TRAIN, x_train, y_train),
            Split(Purpose.TEST, x_test, y_test),
        ]
    )
    provenance = {"mode": "offline", "source": "synthetic", "seed": seed}
    return DatasetSpec("synthetic", dataset, num_classes, provenance)


@register_dataset("npz")
def build_npz(*, path: str | Path | None = None, num_classes: int = 10) -> DatasetSpec:
    """Images from a local ``.npz`` with ``X_train, y_train, X_test, y_test``."""

    if path is None:
        raise ValueError("npz dataset requires a path")
    path = Path(path)
    with np.load(path) as data:
        missing = {"X_train", "y_train", "X_test", "y_test"} - set(data.files)
        if missing:
            raise ValueError(f"{path} is missing arrays: {sorted(missing)}")
        splits = [
            Split(Purpose.TRAIN, _as_bytes(data["X_train"]), data["y_train"]),
            Split(Purpose.TEST, _as_bytes(data["X_test"]), data["y_test"]),
        ]
    provenance = {"mode": "local", "source": str(path)}
    return DatasetSpec("npz", Dataset(splits), num_classes, provenance)


def _as_bytes(images: np.ndarray) -> np.ndarray:
    images = np.asarray(images)
    if images.dtype != np.uint8:
        images = images.astype(np.float32)
        if images.size and images.max() <= 1.0:
            images = images * 255.0
        images = np.clip(np.rint(images), 0, 255).astype(np.uint8)
    return images.reshape(images.shape[0], -1)


__all__ = [
    "DatasetSpec",
    "available_datasets",
    "build_npz",
    "build_synthetic",
    "get_dataset",
    "register_dataset",
]
