"""Dataset holder, registry and input transforms."""

from .registry import DatasetSpec, available_datasets, get_dataset, register_dataset
from .samples import Dataset, Purpose, Split
from .transforms import canvas_input, normalize_image, one_hot_target

__all__ = [
    "Dataset",
    "DatasetSpec",
    "Purpose",
    "Split",
    "available_datasets",
    "canvas_input",
    "get_dataset",
    "normalize_image",
    "one_hot_target",
    "register_dataset",
]
