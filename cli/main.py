"""Command line entry point for digitnet training runs."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Iterable

from digitnet.codec import DecodeError, ModelContainer
from digitnet.core.network import BatchPolicy
from digitnet.training import pipelines


def _format_result(result) -> str:
    payload = {
        "epochs": result.epochs,
        "model": result.model_path,
        "metrics": result.metrics_path,
        "config": result.config_path,
        "val_accuracy": result.validation_accuracy,
    }
    return json.dumps(payload, sort_keys=True)


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    preset_names = sorted(pipelines.presets().keys())
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--preset",
        choices=preset_names,
        default="synthetic-min",
        help="Preset configuration to execute",
    )
    parser.add_argument("--config", type=Path, help="Optional JSON/YAML config override")
    parser.add_argument(
        "--dataset",
        choices=["synthetic", "npz"],
        help="Override the dataset used by the run",
    )
    parser.add_argument("--npz-path", help="Path to an .npz archive for the npz dataset")
    parser.add_argument("--epochs", type=int, help="Number of epochs to train")
    parser.add_argument("--seed", type=int, help="Seed used for weights, data and shuffling")
    parser.add_argument(
        "--policy",
        choices=[policy.value for policy in BatchPolicy],
        help="Mini-batch combination policy",
    )
    parser.add_argument("--model", type=Path, help="Resume training from an NNXD file")
    parser.add_argument("--run-dir", type=Path, help="Directory for run artefacts")
    parser.add_argument(
        "--enable-plots", action="store_true", help="Write loss.png into the run directory"
    )
    parser.add_argument(
        "--inspect", type=Path, help="Print a summary of an NNXD file as JSON and exit"
    )
    parser.add_argument(
        "--list-presets", action="store_true", help="List available presets and exit"
    )
    parser.add_argument(
        "--dump-config", type=Path, help="Dump the resolved config to a JSON file"
    )
    return parser.parse_args(argv)


def _load_override(path: Path) -> dict:
    text = path.read_text()
    if path.suffix in {".yml", ".yaml"}:
        try:
            import yaml  # type: ignore
        except Exception as exc:  # pragma: no cover - optional dependency
            raise RuntimeError("PyYAML is required to load YAML configs") from exc
        return yaml.safe_load(text) or {}
    return json.loads(text)


def _merge(base: dict, override: dict) -> dict:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            base[key] = _merge(dict(base[key]), value)
        else:
            base[key] = value
    return base


def _inspect(path: Path) -> None:
    try:
        container = ModelContainer.load(path)
    except DecodeError as exc:
        raise SystemExit(f"decode NNXD file {path} failed: {exc}") from None
    print(json.dumps(container.summary(), sort_keys=True))


def main(argv: Iterable[str] | None = None) -> None:
    args = parse_args(argv)

    if args.list_presets:
        for name in sorted(pipelines.presets().keys()):
            print(name)
        raise SystemExit(0)

    if args.inspect:
        _inspect(args.inspect)
        raise SystemExit(0)

    config = json.loads(json.dumps(pipelines.load_preset(args.preset)))

    if args.config:
        override = _load_override(args.config)
        if {"data", "model", "train"} <= set(override.keys()):
            config = json.loads(json.dumps(override))
        else:
            config = _merge(config, override)

    train_cfg = config.setdefault("train", {})
    if args.enable_plots:
        train_cfg["enable_plots"] = True
    if args.epochs is not None:
        train_cfg["epochs"] = int(args.epochs)
    if args.seed is not None:
        train_cfg["seed"] = int(args.seed)
    if args.policy:
        train_cfg["policy"] = args.policy
    if args.run_dir:
        train_cfg["run_dir"] = str(args.run_dir)
    if args.model:
        train_cfg["resume"] = str(args.model)

    if args.dataset:
        options: dict = {}
        if args.dataset == "npz":
            if not args.npz_path:
                raise SystemExit("--dataset npz requires --npz-path")
            options["path"] = args.npz_path
        elif args.seed is not None:
            options["seed"] = int(args.seed)
        config["data"] = {"name": args.dataset, "options": options}
    elif args.npz_path and config.get("data", {}).get("name") == "npz":
        config["data"].setdefault("options", {})["path"] = args.npz_path

    if args.dump_config:
        args.dump_config.parent.mkdir(parents=True, exist_ok=True)
        args.dump_config.write_text(json.dumps(config, indent=2))

    try:
        result = pipelines.run_pipeline(config)
    except DecodeError as exc:
        raise SystemExit(f"decode NNXD file {args.model} failed: {exc}") from None
    print(_format_result(result))


if __name__ == "__main__":
    main()
