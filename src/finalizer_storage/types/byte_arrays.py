"""
Fixed-length byte types.

Transaction hashes are 32 bytes and token addresses are 20 bytes.
Both are kept as raw bytes, which is also how SQLite stores them.
"""

from __future__ import annotations

from typing import Any, ClassVar

from pydantic.annotated_handlers import GetCoreSchemaHandler
from pydantic_core import core_schema
from typing_extensions import Self


class BaseBytes(bytes):
    """A `bytes` subclass whose length is fixed by `LENGTH`."""

    LENGTH: ClassVar[int]
    """The exact number of bytes (overridden by subclasses)."""

    def __new__(cls, value: bytes | bytearray) -> Self:
        """
        Wrap raw bytes, checking their length.

        Raises:
            TypeError: If `value` is not `bytes` or `bytearray`.
            ValueError: If the length differs from `LENGTH`.
        """
        if not isinstance(value, (bytes, bytearray)):
            raise TypeError(f"{cls.__name__} expects bytes, got {type(value).__name__}")
        if len(value) != cls.LENGTH:
            raise ValueError(
                f"{cls.__name__} expects exactly {cls.LENGTH} bytes, got {len(value)}"
            )
        return super().__new__(cls, value)

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        """
        Hook into Pydantic's validation system.

        Instances pass through, raw bytes of the right length are wrapped,
        and values dump as 0x-prefixed hex.
        """
        from_raw = core_schema.chain_schema(
            [
                core_schema.bytes_schema(min_length=cls.LENGTH, max_length=cls.LENGTH),
                core_schema.no_info_plain_validator_function(cls),
            ]
        )
        return core_schema.union_schema(
            [core_schema.is_instance_schema(cls), from_raw],
            serialization=core_schema.plain_serializer_function_ser_schema(
                lambda value: "0x" + value.hex()
            ),
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(0x{self.hex()})"

    def __hash__(self) -> int:
        return hash((type(self), bytes(self)))


class Bytes20(BaseBytes):
    """A 20-byte token address."""

    LENGTH = 20


class Bytes32(BaseBytes):
    """A 32-byte transaction hash."""

    LENGTH = 32
