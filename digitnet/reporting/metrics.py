"""Metrics sinks for training runs."""

from __future__ import annotations

import csv
import json
import subprocess
from pathlib import Path
from typing import Mapping


def _git_sha() -> str:
    try:
        out = subprocess.check_output(["git", "rev-parse", "HEAD"], stderr=subprocess.DEVNULL)
        return out.decode().strip()
    except Exception:  # pragma: no cover - git may be unavailable in tests
        return "unknown"


def _numeric(metrics: Mapping[str, object]) -> dict:
    return {
        k: float(v)
        for k, v in metrics.items()
        if isinstance(v, (int, float)) and not isinstance(v, bool)
    }


class JsonlSink:
    """Append-only JSONL writer for epoch metrics."""

    def __init__(
        self,
        path: str | Path,
        *,
        split: str = "train",
        seed: int | None = None,
        sha: str | None = None,
        append: bool = False,
    ) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not append or not self.path.exists():
            self.path.write_text("")
        self.split = split
        self.seed = seed
        self.sha = sha or _git_sha()

    def on_epoch(self, epoch: int, metrics: Mapping[str, float]) -> None:
        record = {
            "epoch": int(epoch),
            "split": self.split,
            "seed": self.seed,
            "sha": self.sha,
        }
        record.update(_numeric(metrics))
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(record) + "\n")

    __call__ = on_epoch


class CsvSink:
    """Write epoch metrics to CSV with a stable schema."""

    def __init__(self, path: str | Path, *, split: str = "train") -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.split = split

    def on_epoch(self, epoch: int, metrics: Mapping[str, float]) -> None:
        row = {"epoch": int(epoch), "split": self.split}
        row.update(_numeric(metrics))
        with self.path.open("a", encoding="utf-8", newline="") as handle:
            writer = csv.DictWriter(handle, fieldnames=sorted(row.keys()))
            if handle.tell() == 0:
                writer.writeheader()
            writer.writerow(row)

    __call__ = on_epoch


__all__ = ["CsvSink", "JsonlSink"]
