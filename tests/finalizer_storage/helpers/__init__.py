"""Test helpers for building withdrawals and hashes."""

from finalizer_storage.types import Bytes20, Bytes32

TOKEN = Bytes20(b"\xbb" * 20)
"""Token address shared by most test withdrawals."""


def tx_hash(n: int) -> Bytes32:
    """Deterministic, distinct transaction hash for test number `n`."""
    return Bytes32(n.to_bytes(32, "big"))


__all__ = ["TOKEN", "tx_hash"]
