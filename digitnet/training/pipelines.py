"""Pipeline assembly: presets, dataset, model container and sinks."""

from __future__ import annotations

import json
import time
from copy import deepcopy
from pathlib import Path
from typing import Dict, Mapping

import numpy as np

from ..codec.nnxd import ModelContainer
from ..core.config import DEFAULT_CONFIG, NetworkConfig
from ..core.network import BatchPolicy
from ..core.types import RunResult
from ..data import registry
from ..reporting.metrics import CsvSink, JsonlSink
from ..reporting.plots import PlotAdapter
from .trainer import Trainer


def _default_model() -> Dict[str, object]:
    model = DEFAULT_CONFIG.to_mapping()
    model.pop("epochs")
    return model


_PRESETS: Dict[str, Mapping[str, object]] = {
    "synthetic-min": {
        "data": {
            "name": "synthetic",
            "options": {"train_size": 300, "test_size": 60, "seed": 0},
        },
        "model": {
            "inputs": 784,
            "alpha": 0.3,
            "mini_batch_size": 10,
            "layers": [
                {"punits": 32, "activation": "sigmoid"},
                {"punits": 10, "activation": "sigmoid"},
            ],
        },
        "train": {
            "epochs": 1,
            "seed": 0,
            "policy": "last_sample",
            "run_dir": "runs/synthetic-min",
            "enable_plots": False,
        },
    },
    "synthetic-sgd": {
        "data": {
            "name": "synthetic",
            "options": {"train_size": 300, "test_size": 60, "seed": 0},
        },
        "model": {
            "inputs": 784,
            "alpha": 0.1,
            "mini_batch_size": 1,
            "layers": [
                {"punits": 32, "activation": "sigmoid"},
                {"punits": 10, "activation": "sigmoid"},
            ],
        },
        "train": {
            "epochs": 2,
            "seed": 1,
            "policy": "last_sample",
            "run_dir": "runs/synthetic-sgd",
            "enable_plots": False,
        },
    },
    "synthetic-mean-gradient": {
        "data": {
            "name": "synthetic",
            "options": {"train_size": 300, "test_size": 60, "seed": 0},
        },
        "model": {
            "inputs": 784,
            "alpha": 0.3,
            "mini_batch_size": 10,
            "layers": [
                {"punits": 32, "activation": "sigmoid"},
                {"punits": 10, "activation": "sigmoid"},
            ],
        },
        "train": {
            "epochs": 1,
            "seed": 0,
            "policy": "mean_gradient",
            "run_dir": "runs/synthetic-mean-gradient",
            "enable_plots": False,
        },
    },
    "mnist-default": {
        "data": {"name": "npz", "options": {"path": "data/mnist.npz"}},
        "model": _default_model(),
        "train": {
            "epochs": DEFAULT_CONFIG.epochs_wanted,
            "seed": 0,
            "policy": "last_sample",
            "run_dir": "runs/mnist-default",
            "enable_plots": True,
        },
    },
}

_PRESET_DIR = Path(__file__).resolve().parents[2] / "configs" / "presets"
_FILE_PRESETS_CACHE: Dict[str, Mapping[str, object]] | None = None


def _read_preset_file(path: Path) -> Mapping[str, object]:
    text = path.read_text()
    suffix = path.suffix.lower()
    if suffix in {".yaml", ".yml"}:
        try:
            import yaml  # type: ignore
        except Exception as exc:  # pragma: no cover - optional dependency
            raise RuntimeError("PyYAML is required to load preset files in YAML format") from exc
        data = yaml.safe_load(text) or {}
    elif suffix == ".json":
        data = json.loads(text or "{}")
    else:
        raise ValueError(f"Unsupported preset file type: {path.suffix}")

    if not isinstance(data, Mapping):
        raise TypeError(f"Preset {path.name} must decode to a mapping")
    return data


def _file_presets() -> Dict[str, Mapping[str, object]]:
    global _FILE_PRESETS_CACHE
    if _FILE_PRESETS_CACHE is None:
        presets: Dict[str, Mapping[str, object]] = {}
        if _PRESET_DIR.exists():
            for file in sorted(_PRESET_DIR.iterdir()):
                if file.suffix.lower() not in {".yaml", ".yml", ".json"}:
                    continue
                data = _read_preset_file(file)
                missing = {"data", "model", "train"} - set(data)
                if missing:
                    missing_str = ", ".join(sorted(missing))
                    raise KeyError(f"Preset {file.name} is missing required sections: {missing_str}")
                presets[file.stem] = json.loads(json.dumps(data))
        _FILE_PRESETS_CACHE = presets
    return {name: deepcopy(cfg) for name, cfg in _FILE_PRESETS_CACHE.items()}


def presets() -> Mapping[str, Mapping[str, object]]:
    combined: Dict[str, Mapping[str, object]] = {}
    combined.update({name: deepcopy(cfg) for name, cfg in _PRESETS.items()})
    combined.update(_file_presets())
    return combined


def load_preset(name: str) -> Mapping[str, object]:
    file_presets = _file_presets()
    if name in file_presets:
        return file_presets[name]
    try:
        return deepcopy(_PRESETS[name])
    except KeyError as exc:
        raise KeyError(f"Unknown preset: {name}") from exc


class _MetricsCapture:
    def __init__(self) -> None:
        self.history: list[tuple[int, Mapping[str, float]]] = []
        self.last: Mapping[str, float] = {}

    def on_epoch(self, epoch: int, metrics: Mapping[str, float]) -> None:
        payload = {k: float(v) for k, v in metrics.items()}
        self.history.append((int(epoch), payload))
        self.last = payload


def network_config(config: Mapping[str, object]) -> NetworkConfig:
    """Return the validated :class:`NetworkConfig` described by ``config``."""

    model_cfg = dict(config.get("model", {}))
    train_cfg = dict(config.get("train", {}))
    model_cfg["epochs"] = int(train_cfg.get("epochs", model_cfg.get("epochs", 1)))
    return NetworkConfig.from_mapping(model_cfg)


def run_pipeline(config: Mapping[str, object]) -> RunResult:
    data_cfg = dict(config["data"])
    train_cfg = dict(config["train"])

    spec = registry.get_dataset(data_cfg["name"], **data_cfg.get("options", {}))
    seed = int(train_cfg.get("seed", 0))
    policy = BatchPolicy(str(train_cfg.get("policy", BatchPolicy.LAST_SAMPLE.value)))

    resume = train_cfg.get("resume")
    if resume:
        container = ModelContainer.load(resume)
        epochs = int(train_cfg.get("epochs", 1))
    else:
        net_cfg = network_config(config)
        container = ModelContainer.from_config(net_cfg, rng=np.random.default_rng(seed))
        epochs = net_cfg.epochs_wanted
    network = container.network

    if network.inputs != spec.pixels:
        raise ValueError(f"Network expects {network.inputs} inputs but dataset has {spec.pixels} pixels")
    if network.outputs != spec.num_classes:
        raise ValueError(
            f"Network has {network.outputs} outputs but dataset has {spec.num_classes} classes"
        )

    run_dir = _resolve_run_dir(train_cfg, spec.name)
    run_dir.mkdir(parents=True, exist_ok=True)

    _print_startup_summary(
        dataset_name=spec.name,
        splits=spec.splits,
        shape=network.shape,
        activations=[layer.activation.label for layer in network.layers],
        alpha=network.alpha,
        mini_batch_size=container.mini_batch_size,
        policy=policy.value,
        resumed_epochs=container.epochs_trained,
    )

    jsonl = JsonlSink(run_dir / "metrics.jsonl", split="train", seed=seed)
    csv_sink = CsvSink(run_dir / "metrics.csv", split="train")
    capture = _MetricsCapture()
    plots = PlotAdapter(run_dir, enable_plots=bool(train_cfg.get("enable_plots", False)))

    trainer = Trainer(
        container,
        spec.dataset,
        epochs=epochs,
        policy=policy,
        callbacks=[jsonl, csv_sink, capture, plots],
        step_callbacks=[plots],
    )
    completed = trainer.run(epochs, shuffle_seed=seed)
    plots.close()

    model_path = container.save(run_dir / "model.nnxd")
    config_path = run_dir / "config.json"
    config_path.write_text(json.dumps(_safe_config(config), indent=2))

    return RunResult(
        epochs=len(completed),
        model_path=str(model_path),
        metrics_path=str(jsonl.path),
        config_path=str(config_path),
        validation_accuracy=float(capture.last.get("val_accuracy", 0.0)),
    )


def _resolve_run_dir(train_cfg: Mapping[str, object], dataset: str) -> Path:
    if train_cfg.get("run_dir"):
        return Path(train_cfg["run_dir"])
    timestamp = time.strftime("%Y%m%d-%H%M%S")
    return Path("runs") / timestamp / dataset


def _safe_config(config: Mapping[str, object]) -> Mapping[str, object]:
    return json.loads(json.dumps(config, default=str))


def _print_startup_summary(
    *,
    dataset_name: str,
    splits: Mapping[str, int],
    shape: list,
    activations: list,
    alpha: float,
    mini_batch_size: int,
    policy: str,
    resumed_epochs: int,
) -> None:
    print("=== digitnet run ===")
    print(f"Dataset       : {dataset_name} {dict(splits)}")
    print(f"Shape         : {shape}")
    print(f"Activations   : {activations}")
    print(f"Alpha         : {alpha}")
    print(f"Mini-batch    : {mini_batch_size}")
    print(f"Batch policy  : {policy}")
    print(f"Epochs so far : {resumed_epochs}")
    print("====================")


__all__ = ["load_preset", "network_config", "presets", "run_pipeline"]
