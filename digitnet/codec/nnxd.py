"""NNXD: versioned binary container for a trained network and its history.

All integers are INT64 and all values big-endian.  Nested records are
written as blobs (INT64 byte length followed by the payload) so that a reader
can bound every record before parsing it.
"""

from __future__ import annotations

import os
from typing import Iterable, List, Optional

import numpy as np

from ..core.activations import ActivationFunction
from ..core.config import LayerConfig, NetworkConfig, build_network
from ..core.layer import Layer
from ..core.matrix import Matrix
from ..core.network import Network
from ..core.types import Measures
from .binary import (
    BOOL,
    FLOAT,
    FLOAT64,
    INT,
    ByteReader,
    ByteWriter,
    DecodeError,
    encode_array,
)


def _activation_from_tag(tag: int) -> ActivationFunction:
    try:
        return ActivationFunction(tag)
    except ValueError:
        return ActivationFunction.IDENTITY


# ---------------------------------------------------------------------------
# Record encoders


def encode_matrix(matrix: Matrix) -> bytes:
    writer = ByteWriter()
    writer.write(INT, matrix.rows).write(INT, matrix.columns).write(INT, matrix.entries.size)
    writer.write_bytes(encode_array(FLOAT, matrix.entries))
    return writer.getvalue()


def decode_matrix(reader: ByteReader) -> Matrix:
    rows = reader.read(INT)
    columns = reader.read(INT)
    count = reader.read_count("matrix entry count")
    if rows <= 0 or columns <= 0 or rows * columns != count:
        raise DecodeError(f"invalid matrix header {rows}x{columns} with {count} entries")
    entries = reader.read_array(FLOAT, count)
    reader.expect_end("matrix")
    return Matrix(rows, columns, entries, dtype=np.float32)


def encode_layer(layer: Layer) -> bytes:
    writer = ByteWriter()
    writer.write(INT, layer.inputs).write(INT, layer.punits).write(INT, int(layer.activation))
    writer.write_blob(encode_matrix(layer.weights))
    return writer.getvalue()


def decode_layer(reader: ByteReader) -> Layer:
    inputs = reader.read(INT)
    punits = reader.read(INT)
    activation = _activation_from_tag(reader.read(INT))
    weights = decode_matrix(reader.read_blob("weights"))
    reader.expect_end("layer")
    try:
        return Layer(inputs, punits, activation, weights)
    except ValueError as exc:
        raise DecodeError(f"invalid layer: {exc}") from exc


def encode_network(network: Network) -> bytes:
    writer = ByteWriter()
    writer.write(FLOAT, network.alpha).write(INT, network.depth)
    for layer in network.layers:
        writer.write_blob(encode_layer(layer))
    return writer.getvalue()


def decode_network(reader: ByteReader) -> Network:
    alpha = reader.read(FLOAT)
    count = reader.read_count("layer count")
    layers = [decode_layer(reader.read_blob("layer")) for _ in range(count)]
    reader.expect_end("network")
    try:
        return Network(layers, alpha)
    except ValueError as exc:
        raise DecodeError(f"invalid network: {exc}") from exc


def encode_measures(measures: Measures) -> bytes:
    loss = measures.training_loss or []
    writer = ByteWriter()
    writer.write(FLOAT64, measures.training_start_time)
    writer.write(FLOAT64, measures.training_duration)
    writer.write(FLOAT, measures.training_accuracy)
    writer.write(FLOAT, measures.validation_accuracy)
    writer.write(INT, len(loss))
    writer.write_bytes(encode_array(FLOAT, loss))
    return writer.getvalue()


def decode_measures(reader: ByteReader) -> Measures:
    start = reader.read(FLOAT64)
    duration = reader.read(FLOAT64)
    train_accuracy = reader.read(FLOAT)
    validation_accuracy = reader.read(FLOAT)
    count = reader.read_count("loss count")
    loss = reader.read_array(FLOAT, count)
    reader.expect_end("measures")
    return Measures(
        training_start_time=start,
        training_duration=duration,
        training_accuracy=train_accuracy,
        validation_accuracy=validation_accuracy,
        training_loss=[float(v) for v in loss] if count else None,
    )


def encode_layer_config(config: LayerConfig) -> bytes:
    writer = ByteWriter()
    writer.write(INT, config.inputs).write(INT, config.punits)
    writer.write(INT, int(config.activation)).write(BOOL, config.try_on_gpu)
    return writer.getvalue()


def encode_network_config(config: NetworkConfig) -> bytes:
    writer = ByteWriter()
    writer.write(INT, config.epochs_wanted).write(INT, config.mini_batch_size)
    writer.write(FLOAT, config.alpha).write(INT, config.inputs)
    writer.write(INT, len(config.layers))
    for layer in config.layers:
        writer.write_blob(encode_layer_config(layer))
    return writer.getvalue()


def decode_network_config(data: bytes) -> NetworkConfig:
    reader = ByteReader(data)
    epochs = reader.read(INT)
    mini_batch = reader.read(INT)
    alpha = reader.read(FLOAT)
    inputs = reader.read(INT)
    layers = []
    for _ in range(reader.read_count("layer count")):
        blob = reader.read_blob("layer config")
        layer = LayerConfig(
            inputs=blob.read(INT),
            punits=blob.read(INT),
            activation=_activation_from_tag(blob.read(INT)),
            try_on_gpu=blob.read(BOOL),
        )
        blob.expect_end("layer config")
        layers.append(layer)
    reader.expect_end("network config")
    try:
        return NetworkConfig(epochs, mini_batch, alpha, inputs, layers).validate()
    except ValueError as exc:
        raise DecodeError(f"invalid network config: {exc}") from exc


# ---------------------------------------------------------------------------
# Container


class ModelContainer:
    """A network, its mini-batch size and one :class:`Measures` per epoch."""

    MAGIC = b"!NNXD"
    VERSION = 2

    def __init__(
        self,
        network: Network,
        mini_batch_size: int,
        measures: Optional[Iterable[Measures]] = None,
    ) -> None:
        if mini_batch_size < 1:
            raise ValueError(f"mini_batch_size must be >= 1, got {mini_batch_size}")
        self.network = network
        self.mini_batch_size = int(mini_batch_size)
        self.measures: List[Measures] = list(measures or [])

    @classmethod
    def from_config(
        cls, config: NetworkConfig, rng: Optional[np.random.Generator] = None
    ) -> "ModelContainer":
        return cls(build_network(config, rng=rng), config.mini_batch_size)

    @property
    def epochs_trained(self) -> int:
        return len(self.measures)

    def append(self, measures: Measures) -> None:
        self.measures.append(measures)

    # ------------------------------------------------------------------
    # Serialisation

    def encode(self) -> bytes:
        writer = ByteWriter()
        writer.write_bytes(self.MAGIC)
        writer.write(INT, self.VERSION).write(INT, self.mini_batch_size)
        writer.write_blob(encode_network(self.network))
        writer.write(INT, len(self.measures))
        for record in self.measures:
            writer.write_blob(encode_measures(record))
        return writer.getvalue()

    @classmethod
    def decode(cls, data: bytes) -> "ModelContainer":
        """Parse a complete container or raise :class:`DecodeError`."""

        reader = ByteReader(data)
        magic = reader.read_bytes(len(cls.MAGIC))
        if magic != cls.MAGIC:
            raise DecodeError(f"bad magic {magic!r}, expected {cls.MAGIC!r}")
        version = reader.read(INT)
        if version != cls.VERSION:
            raise DecodeError(f"unsupported NNXD version {version}, expected {cls.VERSION}")
        mini_batch = reader.read(INT)
        if mini_batch < 1:
            raise DecodeError(f"invalid mini-batch size {mini_batch}")
        network = decode_network(reader.read_blob("network"))
        measures = [
            decode_measures(reader.read_blob("measures"))
            for _ in range(reader.read_count("measures count"))
        ]
        reader.expect_end("NNXD container")
        return cls(network, mini_batch, measures)

    def save(self, path: str | os.PathLike) -> str:
        path = os.fspath(path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "wb") as fh:
            fh.write(self.encode())
        return path

    @classmethod
    def load(cls, path: str | os.PathLike) -> "ModelContainer":
        with open(path, "rb") as fh:
            return cls.decode(fh.read())

    def summary(self) -> dict:
        return {
            "shape": self.network.shape,
            "activations": [layer.activation.label for layer in self.network.layers],
            "alpha": self.network.alpha,
            "mini_batch_size": self.mini_batch_size,
            "epochs_trained": self.epochs_trained,
            "measures": [record.as_metrics() for record in self.measures],
        }

    def __eq__(self, other) -> bool:
        if not isinstance(other, ModelContainer):
            return NotImplemented
        return (
            self.mini_batch_size == other.mini_batch_size
            and self.network == other.network
            and self.measures == other.measures
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return (
            f"ModelContainer({self.network!r}, mini_batch_size={self.mini_batch_size}, "
            f"epochs_trained={self.epochs_trained})"
        )


__all__ = [
    "ModelContainer",
    "decode_network",
    "decode_network_config",
    "encode_network",
    "encode_network_config",
]
