"""Fixed-width chain types shared across the package."""

from .base import StrictBaseModel
from .byte_arrays import BaseBytes, Bytes20, Bytes32
from .uint import BaseUint, Uint32, Uint64, Uint256

__all__ = [
    "BaseUint",
    "Uint32",
    "Uint64",
    "Uint256",
    "BaseBytes",
    "Bytes20",
    "Bytes32",
    "StrictBaseModel",
]
