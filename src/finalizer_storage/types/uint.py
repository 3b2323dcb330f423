"""Fixed-width unsigned integer types used for chain values."""

from __future__ import annotations

from typing import Any, ClassVar

from pydantic import GetCoreSchemaHandler, GetJsonSchemaHandler
from pydantic.json_schema import JsonSchemaValue
from pydantic_core import core_schema
from typing_extensions import Self


class BaseUint(int):
    """A base class for unsigned integer types of a fixed bit width."""

    BITS: ClassVar[int]
    """The number of bits in the integer (overridden by subclasses)."""

    def __new__(cls, value: int) -> Self:
        """
        Create and validate a new Uint instance.

        Only real integers are accepted. Floats and strings are never coerced,
        and booleans are rejected even though `bool` is an `int` subclass.

        Raises:
            TypeError: If `value` is not an integer.
            OverflowError: If `value` is outside the allowed range [0, 2**BITS - 1].
        """
        if not isinstance(value, int) or isinstance(value, bool):
            raise TypeError(f"{cls.__name__} expects an int, got {type(value).__name__}")
        int_value = int(value)
        if not (0 <= int_value <= cls.max_value()):
            raise OverflowError(f"{int_value} is out of range for {cls.__name__}")
        return super().__new__(cls, int_value)

    @classmethod
    def max_value(cls) -> int:
        """Largest value representable by this type."""
        return 2**cls.BITS - 1

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        """Hook into Pydantic's validation system."""

        def validate(value: Any) -> BaseUint:
            """Pydantic validation function that calls the class constructor."""
            try:
                return cls(value)
            except (OverflowError, TypeError) as e:
                raise ValueError(str(e)) from e

        return core_schema.json_or_python_schema(
            # The range check lives in the constructor, so it covers uint256 too.
            json_schema=core_schema.chain_schema(
                [
                    core_schema.int_schema(ge=0),
                    core_schema.no_info_plain_validator_function(validate),
                ]
            ),
            python_schema=core_schema.no_info_plain_validator_function(validate),
            serialization=core_schema.plain_serializer_function_ser_schema(
                lambda instance: int(instance)
            ),
        )

    @classmethod
    def __get_pydantic_json_schema__(
        cls, core_schema: core_schema.CoreSchema, handler: GetJsonSchemaHandler
    ) -> JsonSchemaValue:
        """Hook into Pydantic's JSON Schema generation system."""
        json_schema = handler(core_schema)
        json_schema.update(format=f"uint{cls.BITS}")
        return json_schema

    def _check_operand(self, other: Any, op_symbol: str) -> None:
        """Reject comparisons between different integer widths or plain ints."""
        if not isinstance(other, type(self)):
            raise TypeError(
                f"Unsupported operand type(s) for {op_symbol}: "
                f"'{type(self).__name__}' and '{type(other).__name__}'"
            )

    def __eq__(self, other: object) -> bool:
        """Handle the equality operator (`==`)."""
        # Non-integers (None included) fall back to identity comparison.
        if not isinstance(other, int):
            return NotImplemented
        self._check_operand(other, "==")
        return super().__eq__(other)

    def __ne__(self, other: object) -> bool:
        """Handle the inequality operator (`!=`)."""
        if not isinstance(other, int):
            return NotImplemented
        self._check_operand(other, "!=")
        return super().__ne__(other)

    def __lt__(self, other: Any) -> bool:
        """Handle the less-than operator (`<`)."""
        self._check_operand(other, "<")
        return super().__lt__(other)

    def __le__(self, other: Any) -> bool:
        """Handle the less-than-or-equal-to operator (`<=`)."""
        self._check_operand(other, "<=")
        return super().__le__(other)

    def __gt__(self, other: Any) -> bool:
        """Handle the greater-than operator (`>`)."""
        self._check_operand(other, ">")
        return super().__gt__(other)

    def __ge__(self, other: Any) -> bool:
        """Handle the greater-than-or-equal-to operator (`>=`)."""
        self._check_operand(other, ">=")
        return super().__ge__(other)

    def __repr__(self) -> str:
        """Return the official string representation of the object."""
        return f"{type(self).__name__}({int(self)})"

    def __str__(self) -> str:
        """Return the informal, user-friendly string representation."""
        return str(int(self))

    def __hash__(self) -> int:
        """Return a distinct hash for the object."""
        return hash((type(self), int(self)))


class Uint32(BaseUint):
    """A 32-bit unsigned integer. Used for event positions within a transaction."""

    BITS = 32


class Uint64(BaseUint):
    """A 64-bit unsigned integer. Used for L1 and L2 block numbers."""

    BITS = 64


class Uint256(BaseUint):
    """A 256-bit unsigned integer. The native width of token amounts."""

    BITS = 256
