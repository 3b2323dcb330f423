"""
Lossless conversion between 256-bit amounts and decimals.

Withdrawal amounts are uint256 on chain. At rest they are arbitrary-precision
decimals, written to SQLite as their plain digit string because SQLite has no
exact wide numeric column.

Decoding is the strict direction: any value that is not a non-negative
integer within the uint256 range is rejected instead of being rounded.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from .exceptions import ConversionError
from .types import Uint256

_MAX_AMOUNT = Decimal(Uint256.max_value())


def encode(value: Uint256) -> Decimal:
    """Convert a uint256 to a decimal. Exact for every input."""
    return Decimal(int(value))


def decode(value: Decimal) -> Uint256:
    """
    Convert a decimal back to a uint256.

    Raises:
        ConversionError: If the value is not finite, negative, has a
            fractional part, or exceeds 2**256 - 1.
    """
    if not value.is_finite():
        raise ConversionError(value, "Uint256", "value is not finite")
    if value < 0:
        raise ConversionError(value, "Uint256", "value is negative")

    # Compared as decimals first, so a huge exponent never becomes an int.
    if value > _MAX_AMOUNT:
        raise ConversionError(value, "Uint256", "value exceeds 2**256 - 1")
    if value != value.to_integral_value():
        raise ConversionError(value, "Uint256", "value is not integral")

    return Uint256(int(value))


def encode_text(value: Uint256) -> str:
    """Render a uint256 in the digit-string form stored in the amount column."""
    return str(encode(value))


def decode_text(raw: str) -> Uint256:
    """
    Parse a stored amount string.

    Raises:
        ConversionError: If `raw` is not a decimal number or fails `decode`.
    """
    try:
        value = Decimal(raw)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise ConversionError(raw, "Uint256", "not a decimal number") from e
    return decode(value)
