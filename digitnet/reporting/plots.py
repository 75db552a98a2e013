"""Headless-safe plotting adapters."""

from __future__ import annotations

from pathlib import Path
from typing import List, Mapping, Tuple


class PlotAdapter:
    """Collect mini-batch losses and optionally emit a matplotlib figure."""

    def __init__(self, run_dir: str | Path, enable_plots: bool = False):
        self.enable_plots = enable_plots
        self.run_dir = Path(run_dir)
        self._history: List[Tuple[int, float]] = []
        self._epoch_marks: List[int] = []
        if self.enable_plots:
            self.run_dir.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self.run_dir / "loss.png"

    def on_step(self, step: int, metrics: Mapping[str, float]) -> None:
        if not self.enable_plots:
            return
        self._history.append((int(step), float(metrics.get("loss", 0.0))))

    def on_epoch(self, epoch: int, metrics: Mapping[str, float]) -> None:
        if self.enable_plots and self._history:
            self._epoch_marks.append(self._history[-1][0])

    def close(self) -> Path | None:
        if not self.enable_plots or not self._history:
            return None
        import matplotlib

        matplotlib.use("Agg", force=True)
        import matplotlib.pyplot as plt  # imported lazily for headless safety

        steps, losses = zip(*self._history)
        fig, ax = plt.subplots()
        ax.plot(steps, losses, linewidth=0.8)
        for mark in self._epoch_marks[:-1]:
            ax.axvline(mark, color="grey", linestyle=":", linewidth=0.6)
        ax.set_xlabel("Mini-batch")
        ax.set_ylabel("Loss")
        ax.set_title("Training loss")
        fig.savefig(self.path)
        plt.close(fig)
        return self.path

    __call__ = on_step


__all__ = ["PlotAdapter"]
