"""Big-endian fixed-width codecs and byte cursors."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from io import BytesIO
from typing import Any, Sequence

import numpy as np

from ..core.types import Array


class DecodeError(ValueError):
    """Raised when a byte buffer cannot be decoded."""


@dataclass(frozen=True)
class FixedCodec:
    """Codec for one fixed-width scalar type."""

    name: str
    format: str
    kind: str  # "int", "float" or "bool"
    low: int | None = None
    high: int | None = None

    @property
    def size(self) -> int:
        return struct.calcsize(self.format)

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(self.format)

    def encode(self, value: Any) -> bytes:
        if self.kind == "bool":
            return b"\x01" if value else b"\x00"
        if self.kind == "int":
            if isinstance(value, float) or not isinstance(value, (int, np.integer)):
                raise ValueError(f"{self.name} expects an integer, got {value!r}")
            value = int(value)
            if not self.low <= value <= self.high:
                raise ValueError(
                    f"{value} out of range for {self.name} [{self.low}, {self.high}]"
                )
            return struct.pack(self.format, value)
        try:
            return struct.pack(self.format, float(value))
        except OverflowError as exc:
            raise ValueError(f"{value!r} out of range for {self.name}") from exc

    def decode(self, buffer: bytes | memoryview, offset: int = 0) -> Any:
        end = offset + self.size
        if offset < 0 or end > len(buffer):
            raise DecodeError(
                f"need {self.size} bytes for {self.name} at offset {offset}, "
                f"buffer has {len(buffer)}"
            )
        if self.kind == "bool":
            return buffer[offset] == 1
        (value,) = struct.unpack_from(self.format, buffer, offset)
        return value


def _int_codec(name: str, fmt: str, bits: int, signed: bool) -> FixedCodec:
    if signed:
        low, high = -(1 << (bits - 1)), (1 << (bits - 1)) - 1
    else:
        low, high = 0, (1 << bits) - 1
    return FixedCodec(name, fmt, "int", low, high)


INT8 = _int_codec("INT8", ">b", 8, True)
INT16 = _int_codec("INT16", ">h", 16, True)
INT32 = _int_codec("INT32", ">i", 32, True)
INT64 = _int_codec("INT64", ">q", 64, True)
UINT8 = _int_codec("UINT8", ">B", 8, False)
UINT16 = _int_codec("UINT16", ">H", 16, False)
UINT32 = _int_codec("UINT32", ">I", 32, False)
UINT64 = _int_codec("UINT64", ">Q", 64, False)
FLOAT32 = FixedCodec("FLOAT32", ">f", "float")
FLOAT64 = FixedCodec("FLOAT64", ">d", "float")
BOOL = FixedCodec("BOOL", ">B", "bool")

# Container aliases
INT = INT64
FLOAT = FLOAT32


class _StringCodec:
    """Raw UTF-8 with no terminator; decoding needs the byte length."""

    name = "STRING"

    def encode(self, value: str) -> bytes:
        return value.encode("utf-8")

    def decode(self, buffer: bytes | memoryview, offset: int = 0, length: int | None = None) -> str:
        if length is None:
            length = len(buffer) - offset
        if length < 0 or offset < 0 or offset + length > len(buffer):
            raise DecodeError(
                f"need {length} bytes for STRING at offset {offset}, buffer has {len(buffer)}"
            )
        try:
            return bytes(buffer[offset : offset + length]).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"invalid UTF-8 string: {exc}") from exc


STRING = _StringCodec()


# ---------------------------------------------------------------------------
# Bulk numeric runs


def encode_array(codec: FixedCodec, values: Sequence[Any] | Array) -> bytes:
    if codec.kind != "float":
        return b"".join(codec.encode(value) for value in values)
    return np.asarray(values, dtype=codec.dtype).tobytes()


def decode_array(codec: FixedCodec, buffer: bytes | memoryview, count: int, offset: int = 0) -> Array:
    """Decode ``count`` consecutive values into a native-endian array."""

    if count < 0:
        raise DecodeError(f"negative element count {count}")
    needed = count * codec.size
    if offset < 0 or offset + needed > len(buffer):
        raise DecodeError(
            f"need {needed} bytes for {count} x {codec.name}, "
            f"{max(len(buffer) - offset, 0)} available"
        )
    if count == 0:
        return np.empty(0, dtype=bool if codec.kind == "bool" else codec.dtype.newbyteorder("="))
    if codec.kind == "bool":
        raw = np.frombuffer(buffer, dtype=np.uint8, count=count, offset=offset)
        return raw == 1
    values = np.frombuffer(buffer, dtype=codec.dtype, count=count, offset=offset)
    return values.astype(codec.dtype.newbyteorder("="))


# ---------------------------------------------------------------------------
# Cursors


class ByteWriter:
    def __init__(self) -> None:
        self._out = BytesIO()

    def write(self, codec: FixedCodec, value: Any) -> "ByteWriter":
        self._out.write(codec.encode(value))
        return self

    def write_bytes(self, data: bytes) -> "ByteWriter":
        self._out.write(data)
        return self

    def write_blob(self, payload: bytes) -> "ByteWriter":
        """Write ``payload`` prefixed with its INT64 byte length."""

        self.write(INT, len(payload))
        return self.write_bytes(payload)

    def getvalue(self) -> bytes:
        return self._out.getvalue()


class ByteReader:
    """Forward-only cursor over a bounded region of a buffer."""

    def __init__(self, data: bytes | memoryview, start: int = 0, end: int | None = None) -> None:
        self._data = memoryview(data)
        self._pos = start
        self._end = len(self._data) if end is None else end

    @property
    def position(self) -> int:
        return self._pos

    @property
    def remaining(self) -> int:
        return self._end - self._pos

    def _take(self, size: int, what: str) -> int:
        if size < 0:
            raise DecodeError(f"negative length {size} for {what}")
        if size > self.remaining:
            raise DecodeError(
                f"truncated {what} at offset {self._pos}: need {size} bytes, "
                f"{self.remaining} left"
            )
        start = self._pos
        self._pos += size
        return start

    def read(self, codec: FixedCodec) -> Any:
        start = self._take(codec.size, codec.name)
        return codec.decode(self._data, start)

    def read_count(self, what: str = "count") -> int:
        count = self.read(INT)
        if count < 0:
            raise DecodeError(f"negative {what} {count}")
        return count

    def read_bytes(self, size: int) -> bytes:
        start = self._take(size, "bytes")
        return bytes(self._data[start : start + size])

    def read_string(self, size: int) -> str:
        start = self._take(size, "STRING")
        return STRING.decode(self._data, start, size)

    def read_array(self, codec: FixedCodec, count: int) -> Array:
        if count < 0:
            raise DecodeError(f"negative element count {count}")
        start = self._take(count * codec.size, f"{count} x {codec.name}")
        return decode_array(codec, self._data, count, start)

    def read_blob(self, what: str = "blob") -> "ByteReader":
        """Read an INT64 length and return a reader bounded to that payload."""

        size = self.read(INT)
        start = self._take(size, what)
        return ByteReader(self._data, start, start + size)

    def expect_end(self, what: str = "buffer") -> None:
        if self.remaining:
            raise DecodeError(f"{self.remaining} unexpected trailing bytes in {what}")


__all__ = [
    "BOOL",
    "ByteReader",
    "ByteWriter",
    "DecodeError",
    "FLOAT",
    "FLOAT32",
    "FLOAT64",
    "FixedCodec",
    "INT",
    "INT8",
    "INT16",
    "INT32",
    "INT64",
    "STRING",
    "UINT8",
    "UINT16",
    "UINT32",
    "UINT64",
    "decode_array",
    "encode_array",
]
