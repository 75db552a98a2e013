"""Core typing contracts for digitnet."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

Array = np.ndarray


@dataclass
class Measures:
    """Per-epoch training record kept by the model container."""

    training_start_time: float = 0.0
    training_duration: float = 0.0
    training_accuracy: float = 0.0
    validation_accuracy: float = 0.0
    training_loss: Optional[List[float]] = field(default=None)

    def as_metrics(self) -> Dict[str, float]:
        metrics = {
            "start_time": float(self.training_start_time),
            "duration": float(self.training_duration),
            "train_accuracy": float(self.training_accuracy),
            "val_accuracy": float(self.validation_accuracy),
        }
        if self.training_loss:
            metrics["loss"] = float(np.mean(self.training_loss))
            metrics["loss_last"] = float(self.training_loss[-1])
        return metrics


@dataclass(frozen=True)
class RunResult:
    """Summary returned by :func:`digitnet.training.pipelines.run_pipeline`."""

    epochs: int
    model_path: str
    metrics_path: str
    config_path: str = ""
    validation_accuracy: float = 0.0


__all__ = ["Array", "Measures", "RunResult"]
