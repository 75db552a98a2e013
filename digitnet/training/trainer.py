"""Epoch driver with cooperative cancellation and throttled progress."""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, List, Mapping, Optional, Sequence

import numpy as np

from ..codec.nnxd import ModelContainer
from ..core.network import BatchPolicy, Network
from ..core.types import Array, Measures
from ..data.samples import Dataset, Purpose
from ..data.transforms import normalize_image, one_hot_target


class CancellationToken:
    """Flag checked by the trainer between batches and between samples."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class ProgressReporter:
    """Report a ``0..1`` fraction, at most once per percent of progress.

    After :meth:`finish` the value returns to ``0.0`` once ``reset_delay``
    seconds have passed, so an observer sees the bar complete before it
    clears.
    """

    STEP = 0.01

    def __init__(
        self,
        callback: Optional[Callable[[float], None]] = None,
        reset_delay: float = 0.5,
    ) -> None:
        self._callback = callback
        self.reset_delay = float(reset_delay)
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self.value = 0.0

    def _report(self, value: float) -> None:
        if self._callback is not None:
            self._callback(value)

    def begin(self) -> None:
        with self._lock:
            self._cancel_timer()
            self.value = 0.0

    def advance(self, current: int, total: int) -> bool:
        fraction = min(1.0, current / total) if total > 0 else 1.0
        with self._lock:
            if fraction - self.value < self.STEP - 1e-9:
                return False
            self.value = fraction
        self._report(fraction)
        return True

    def finish(self) -> None:
        with self._lock:
            self._cancel_timer()
            self.value = 1.0
        self._report(1.0)
        if self.reset_delay <= 0:
            self.reset()
            return
        timer = threading.Timer(self.reset_delay, self.reset)
        timer.daemon = True
        with self._lock:
            self._timer = timer
        timer.start()

    def reset(self) -> None:
        with self._lock:
            self._cancel_timer()
            self.value = 0.0
        self._report(0.0)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


def _float32(value: float) -> float:
    return float(np.float32(value))


class Trainer:
    """Train a :class:`ModelContainer` on a :class:`Dataset` epoch by epoch.

    The container may be swapped with :meth:`replace_model` while another
    thread queries it; both sides take the model lock.
    """

    def __init__(
        self,
        container: ModelContainer,
        dataset: Dataset,
        *,
        epochs: int = 1,
        policy: BatchPolicy = BatchPolicy.LAST_SAMPLE,
        progress: ProgressReporter | None = None,
        callbacks: Sequence[object] | None = None,
        step_callbacks: Sequence[object] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._container = container
        self.dataset = dataset
        self.epochs = int(epochs)
        self.policy = BatchPolicy(policy)
        self.progress = progress or ProgressReporter()
        self.callbacks = list(callbacks or [])
        self.step_callbacks = list(step_callbacks or [])
        self._clock = clock
        self._lock = threading.RLock()
        self._executor: ThreadPoolExecutor | None = None
        self._step = 0

    # ------------------------------------------------------------------
    # Model access

    @property
    def container(self) -> ModelContainer:
        with self._lock:
            return self._container

    def replace_model(self, container: ModelContainer) -> None:
        with self._lock:
            self._container = container

    def predict(self, pixels: Array | bytes) -> Array:
        """Return the output activations for one raw image."""

        with self._lock:
            output = self._container.network.query(normalize_image(pixels))
        return output.to_numpy().reshape(-1)

    # ------------------------------------------------------------------
    # Training

    def train_epoch(self, cancel: CancellationToken | None = None) -> Optional[Measures]:
        """Train one pass over the shuffled training split.

        Returns ``None`` when cancelled; weight updates already applied are
        kept but no measures are recorded.

        The epoch trains and measures the container and training data that
        were current when it started.  A model or split swapped in meanwhile
        takes effect from the next epoch.
        """

        container = self.container
        network = container.network
        size = container.mini_batch_size
        images, labels = self.dataset.snapshot(Purpose.TRAIN)
        batches = len(labels) // size
        measures = Measures(training_start_time=self._clock())
        losses: List[float] = []

        self.progress.begin()
        for batch in range(batches):
            rows = slice(batch * size, (batch + 1) * size)
            inputs = [normalize_image(image) for image in images[rows]]
            targets = [one_hot_target(label, network.outputs) for label in labels[rows]]
            with self._lock:
                loss = network.train_batch(inputs, targets, self.policy)
            losses.append(_float32(loss))
            self._step += 1
            self._emit_step(self._step, {"loss": loss, "batch": batch})
            self.progress.advance(batch + 1, batches)
            if cancel is not None and cancel.cancelled:
                self.progress.reset()
                return None

        train_accuracy = self._accuracy(network, Purpose.TRAIN, cancel)
        if train_accuracy is None:
            return None
        validation_accuracy = self._accuracy(network, Purpose.TEST, cancel)
        if validation_accuracy is None:
            return None

        measures.training_duration = self._clock() - measures.training_start_time
        measures.training_accuracy = train_accuracy
        measures.validation_accuracy = validation_accuracy
        measures.training_loss = losses or None
        with self._lock:
            container.append(measures)
            epoch = container.epochs_trained
        self._emit_epoch(epoch, measures.as_metrics())
        self.progress.finish()
        return measures

    def evaluate(
        self, purpose: Purpose = Purpose.TEST, cancel: CancellationToken | None = None
    ) -> Optional[float]:
        """Return the argmax accuracy on ``purpose`` or ``None`` if cancelled."""

        accuracy = self._accuracy(self.container.network, purpose, cancel)
        if accuracy is not None:
            self.progress.finish()
        return accuracy

    def run(
        self,
        epochs: int | None = None,
        cancel: CancellationToken | None = None,
        shuffle_seed: int | None = None,
    ) -> List[Measures]:
        epochs = self.epochs if epochs is None else int(epochs)
        completed: List[Measures] = []
        for epoch in range(epochs):
            if cancel is not None and cancel.cancelled:
                break
            self.dataset.shuffle(None if shuffle_seed is None else shuffle_seed + epoch)
            measures = self.train_epoch(cancel)
            if measures is None:
                break
            completed.append(measures)
        return completed

    def submit(
        self,
        epochs: int | None = None,
        cancel: CancellationToken | None = None,
        shuffle_seed: int | None = None,
    ) -> Future:
        """Run :meth:`run` on the trainer's background worker."""

        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="digitnet-train")
        return self._executor.submit(self.run, epochs, cancel, shuffle_seed)

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None

    # ------------------------------------------------------------------
    # Internal helpers

    def _accuracy(
        self, network: Network, purpose: Purpose, cancel: CancellationToken | None
    ) -> Optional[float]:
        images, labels = self.dataset.snapshot(purpose)
        total = len(labels)
        if total == 0:
            return 0.0
        self.progress.begin()
        correct = 0
        for index, (image, label) in enumerate(zip(images, labels)):
            with self._lock:
                output = network.query(normalize_image(image))
            correct += int(output.argmax() == int(label))
            self.progress.advance(index + 1, total)
            if cancel is not None and cancel.cancelled:
                self.progress.reset()
                return None
        return _float32(correct / total)

    def _emit_step(self, step: int, metrics: Mapping[str, float]) -> None:
        for callback in self.step_callbacks:
            if hasattr(callback, "on_step"):
                callback.on_step(step, metrics)  # type: ignore[attr-defined]
            elif callable(callback):
                callback(step, metrics)

    def _emit_epoch(self, epoch: int, metrics: Mapping[str, float]) -> None:
        for callback in self.callbacks:
            if hasattr(callback, "on_epoch"):
                callback.on_epoch(epoch, metrics)  # type: ignore[attr-defined]
            elif callable(callback):
                callback(epoch, metrics)


__all__ = ["CancellationToken", "ProgressReporter", "Trainer"]
