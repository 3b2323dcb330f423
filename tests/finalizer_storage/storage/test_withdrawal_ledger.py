"""Tests for ingesting, finalizing and scanning withdrawals."""

from __future__ import annotations

import random
from collections.abc import Callable
from typing import Any

import pytest

from finalizer_storage import (
    ConstraintViolation,
    SQLiteWithdrawalStore,
    StorageConfig,
    StoredWithdrawal,
)
from finalizer_storage.types import Bytes20, Uint32, Uint64, Uint256
from tests.finalizer_storage.helpers import tx_hash

MakeWithdrawal = Callable[..., StoredWithdrawal]


def _keys(withdrawals: list[StoredWithdrawal]) -> list[tuple[bytes, int]]:
    return [(bytes(w.event.tx_hash), int(w.index_in_tx)) for w in withdrawals]


class TestIngest:
    """Tests for bulk insertion."""

    def test_stores_all_fields(self, db: SQLiteWithdrawalStore, make_withdrawal: MakeWithdrawal) -> None:
        """Everything ingested can be read back unchanged."""
        withdrawal = make_withdrawal(
            tx=0xAA,
            block_number=10,
            token=Bytes20(b"\xbb" * 20),
            amount=100,
            index_in_tx=0,
        )
        db.ingest([withdrawal])

        assert db.get_withdrawal(tx_hash(0xAA), Uint32(0)) == withdrawal

    def test_full_width_amount_is_lossless(
        self, db: SQLiteWithdrawalStore, make_withdrawal: MakeWithdrawal
    ) -> None:
        """The largest uint256 amount survives storage exactly."""
        db.ingest([make_withdrawal(amount=2**256 - 1)])

        stored = db.get_withdrawal(tx_hash(0), Uint32(0))
        assert stored is not None
        assert stored.event.amount == Uint256(2**256 - 1)

    def test_replay_is_idempotent(
        self, db: SQLiteWithdrawalStore, make_withdrawal: MakeWithdrawal
    ) -> None:
        """Ingesting the same events twice leaves the ledger as after once."""
        batch = [make_withdrawal(tx=n, block_number=n) for n in range(1, 6)]

        db.ingest(batch)
        once = db.pending_finalization(limit=100)
        db.ingest(batch)

        assert db.pending_finalization(limit=100) == once
        assert len(once) == 5

    def test_conflict_keeps_first_amount(
        self, db: SQLiteWithdrawalStore, make_withdrawal: MakeWithdrawal
    ) -> None:
        """A duplicate key with a different amount does not update the row."""
        db.ingest([make_withdrawal(tx=1, amount=100)])
        db.ingest([make_withdrawal(tx=1, amount=999)])

        stored = db.get_withdrawal(tx_hash(1), Uint32(0))
        assert stored is not None
        assert stored.event.amount == Uint256(100)

    def test_duplicates_within_one_batch(
        self, db: SQLiteWithdrawalStore, make_withdrawal: MakeWithdrawal
    ) -> None:
        """The first occurrence in a batch wins and the rest are skipped."""
        db.ingest(
            [
                make_withdrawal(tx=1, amount=1),
                make_withdrawal(tx=1, amount=2),
                make_withdrawal(tx=2, amount=3),
            ]
        )

        first = db.get_withdrawal(tx_hash(1), Uint32(0))
        assert first is not None
        assert first.event.amount == Uint256(1)
        assert len(db.pending_finalization()) == 2

    def test_partial_overlap_inserts_new_rows(
        self, db: SQLiteWithdrawalStore, make_withdrawal: MakeWithdrawal
    ) -> None:
        """Known events are skipped while new ones in the same batch are stored."""
        db.ingest([make_withdrawal(tx=1)])
        db.ingest([make_withdrawal(tx=1), make_withdrawal(tx=2)])

        assert db.get_withdrawal(tx_hash(2), Uint32(0)) is not None
        assert len(db.pending_finalization()) == 2

    def test_same_tx_different_indices(
        self, db: SQLiteWithdrawalStore, make_withdrawal: MakeWithdrawal
    ) -> None:
        """One transaction may withdraw several times."""
        db.ingest([make_withdrawal(tx=1, index_in_tx=i, amount=i + 1) for i in range(3)])

        for i in range(3):
            stored = db.get_withdrawal(tx_hash(1), Uint32(i))
            assert stored is not None
            assert stored.event.amount == Uint256(i + 1)

    def test_empty_batch(self, db: SQLiteWithdrawalStore) -> None:
        """An empty batch is a no-op."""
        db.ingest([])
        assert db.highest_observed_l2_block() is None

    def test_preserves_finalized_flag(
        self, db: SQLiteWithdrawalStore, make_withdrawal: MakeWithdrawal
    ) -> None:
        """Events ingested as already finalized are not pending."""
        db.ingest([make_withdrawal(tx=1, is_finalized=True)])

        stored = db.get_withdrawal(tx_hash(1), Uint32(0))
        assert stored is not None
        assert stored.is_finalized is True
        assert db.pending_finalization() == []


class TestFinalize:
    """Tests for the finalization flag update."""

    def test_finalized_withdrawal_leaves_pending(
        self, db: SQLiteWithdrawalStore, make_withdrawal: MakeWithdrawal
    ) -> None:
        """Once finalized, a withdrawal is never offered again."""
        withdrawal = make_withdrawal(tx=1)
        db.ingest([withdrawal, make_withdrawal(tx=2)])

        db.finalize([(tx_hash(1), Uint32(0))])

        assert _keys(db.pending_finalization()) == [(bytes(tx_hash(2)), 0)]
        stored = db.get_withdrawal(tx_hash(1), Uint32(0))
        assert stored is not None
        assert stored.is_finalized is True

    def test_only_matching_index_is_finalized(
        self, db: SQLiteWithdrawalStore, make_withdrawal: MakeWithdrawal
    ) -> None:
        """Finalizing one withdrawal of a transaction leaves its siblings pending."""
        db.ingest([make_withdrawal(tx=1, index_in_tx=0), make_withdrawal(tx=1, index_in_tx=1)])

        db.finalize([(tx_hash(1), Uint32(1))])

        assert _keys(db.pending_finalization()) == [(bytes(tx_hash(1)), 0)]

    def test_is_idempotent(self, db: SQLiteWithdrawalStore, make_withdrawal: MakeWithdrawal) -> None:
        """Finalizing twice is the same as once."""
        withdrawal = make_withdrawal(tx=1)
        db.ingest([withdrawal])

        db.finalize([withdrawal.key])
        db.finalize([withdrawal.key])

        stored = db.get_withdrawal(tx_hash(1), Uint32(0))
        assert stored is not None
        assert stored.is_finalized is True

    def test_unknown_keys_are_ignored(
        self, db: SQLiteWithdrawalStore, make_withdrawal: MakeWithdrawal
    ) -> None:
        """Keys without a row neither fail nor create rows."""
        db.ingest([make_withdrawal(tx=1)])

        db.finalize([(tx_hash(99), Uint32(0)), (tx_hash(1), Uint32(7))])

        assert db.get_withdrawal(tx_hash(99), Uint32(0)) is None
        assert len(db.pending_finalization()) == 1

    def test_empty_keys(self, db: SQLiteWithdrawalStore, make_withdrawal: MakeWithdrawal) -> None:
        db.ingest([make_withdrawal(tx=1)])
        db.finalize([])
        assert len(db.pending_finalization()) == 1

    def test_finalize_before_ingest_does_not_stick(
        self, db: SQLiteWithdrawalStore, make_withdrawal: MakeWithdrawal
    ) -> None:
        """A finalize that raced ahead of ingestion has no effect on the later row."""
        db.finalize([(tx_hash(1), Uint32(0))])
        db.ingest([make_withdrawal(tx=1)])

        assert len(db.pending_finalization()) == 1


class TestPendingFinalization:
    """Tests for the bounded, oldest-first candidate scan."""

    def test_capped_at_thirty_in_block_order(
        self, db: SQLiteWithdrawalStore, make_withdrawal: MakeWithdrawal
    ) -> None:
        """Fifty pending withdrawals yield the thirty oldest, oldest first."""
        blocks = list(range(1, 51))
        random.Random(7).shuffle(blocks)
        db.ingest([make_withdrawal(tx=n, block_number=n) for n in blocks])

        pending = db.pending_finalization()

        assert len(pending) == 30
        assert [int(w.event.block_number) for w in pending] == list(range(1, 31))

    def test_repeated_calls_drain_backlog(
        self, db: SQLiteWithdrawalStore, make_withdrawal: MakeWithdrawal
    ) -> None:
        """Finalizing each batch and asking again walks through the backlog."""
        db.ingest([make_withdrawal(tx=n, block_number=n) for n in range(1, 51)])

        seen: list[int] = []
        while batch := db.pending_finalization():
            seen.extend(int(w.event.block_number) for w in batch)
            db.finalize([w.key for w in batch])

        assert seen == list(range(1, 51))

    def test_ties_are_ordered_deterministically(
        self, db: SQLiteWithdrawalStore, make_withdrawal: MakeWithdrawal
    ) -> None:
        """Withdrawals in the same block come back by hash, then index."""
        db.ingest(
            [
                make_withdrawal(tx=2, block_number=5, index_in_tx=1),
                make_withdrawal(tx=2, block_number=5, index_in_tx=0),
                make_withdrawal(tx=1, block_number=5, index_in_tx=0),
            ]
        )

        assert _keys(db.pending_finalization()) == [
            (bytes(tx_hash(1)), 0),
            (bytes(tx_hash(2)), 0),
            (bytes(tx_hash(2)), 1),
        ]

    def test_explicit_limit(self, db: SQLiteWithdrawalStore, make_withdrawal: MakeWithdrawal) -> None:
        db.ingest([make_withdrawal(tx=n, block_number=n) for n in range(1, 11)])
        assert len(db.pending_finalization(limit=4)) == 4

    def test_configured_limit(self, make_withdrawal: MakeWithdrawal) -> None:
        """The default cap comes from the store's configuration."""
        with SQLiteWithdrawalStore.open(StorageConfig(pending_finalization_limit=3)) as store:
            store.ingest([make_withdrawal(tx=n, block_number=n) for n in range(1, 11)])
            pending = store.pending_finalization()

        assert [int(w.event.block_number) for w in pending] == [1, 2, 3]

    @pytest.mark.parametrize("limit", [0, -5, True, "10", 2.5])
    def test_invalid_limit_raises(self, db: SQLiteWithdrawalStore, limit: Any) -> None:
        """Anything but a positive int is refused before the query runs."""
        with pytest.raises(ConstraintViolation, match="limit must be a positive int"):
            db.pending_finalization(limit=limit)

    def test_empty_ledger(self, db: SQLiteWithdrawalStore) -> None:
        assert db.pending_finalization() == []

    def test_returns_full_records(
        self, db: SQLiteWithdrawalStore, make_withdrawal: MakeWithdrawal
    ) -> None:
        """Candidates carry everything the finalizer needs to act on them."""
        withdrawal = make_withdrawal(tx=3, block_number=12, amount=5_000, index_in_tx=2)
        db.ingest([withdrawal])

        (candidate,) = db.pending_finalization()
        assert candidate == withdrawal
        assert candidate.event.block_number == Uint64(12)
        assert candidate.is_finalized is False
