"""
Shared pytest fixtures for finalizer_storage tests.

Stores are backed by in-memory SQLite, so every test starts from an empty schema.
"""

from __future__ import annotations

from collections.abc import Callable, Generator

import pytest

from finalizer_storage import SQLiteWithdrawalStore, StorageConfig, StoredWithdrawal, WithdrawalEvent
from finalizer_storage.types import Bytes20, Bytes32, Uint32, Uint64, Uint256
from tests.finalizer_storage.helpers import TOKEN, tx_hash


@pytest.fixture
def db() -> Generator[SQLiteWithdrawalStore, None, None]:
    """Create an in-memory withdrawal store for testing."""
    store = SQLiteWithdrawalStore.open(StorageConfig())
    yield store
    store.close()


@pytest.fixture
def make_withdrawal() -> Callable[..., StoredWithdrawal]:
    """Factory for withdrawals with sensible defaults."""

    def _create(
        tx: Bytes32 | int = 0,
        block_number: int = 1,
        amount: int = 100,
        index_in_tx: int = 0,
        token: Bytes20 = TOKEN,
        is_finalized: bool = False,
    ) -> StoredWithdrawal:
        return StoredWithdrawal(
            event=WithdrawalEvent(
                tx_hash=tx if isinstance(tx, Bytes32) else tx_hash(tx),
                block_number=Uint64(block_number),
                token=token,
                amount=Uint256(amount),
            ),
            index_in_tx=Uint32(index_in_tx),
            is_finalized=is_finalized,
        )

    return _create
