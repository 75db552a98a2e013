"""Binary codecs and the NNXD model container."""

from .binary import DecodeError
from .nnxd import ModelContainer

__all__ = ["DecodeError", "ModelContainer"]
