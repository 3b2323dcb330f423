"""
Abstract interface for withdrawal storage.

Defines the Protocol that store implementations follow. Orchestration code
depends on this interface and receives a concrete store from its caller.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from finalizer_storage.models import BlockLifecycle, Phase, StoredWithdrawal
    from finalizer_storage.types import Bytes32, Uint32, Uint64


class WithdrawalStore(Protocol):
    """
    Protocol for withdrawal and block lifecycle storage.

    Every mutating method is atomic and idempotent, so a caller may retry any
    failed call. Failures surface as `StorageError` subclasses.

    Storage Organization
    --------------------
    - Block lifecycle: L1 block number per phase, indexed by L2 block number
    - Withdrawals: indexed by (tx_hash, index_in_tx)
    """

    # -------------------------------------------------------------------------
    # Block Lifecycle
    # -------------------------------------------------------------------------

    def record_phase(
        self,
        phase: Phase,
        start: Uint64,
        end: Uint64,
        l1_block_number: Uint64,
    ) -> None:
        """
        Record that L2 blocks `start..=end` reached `phase` in an L1 block.

        Args:
            phase: Lifecycle phase observed on L1.
            start: First L2 block of the batch (inclusive).
            end: Last L2 block of the batch (inclusive).
            l1_block_number: L1 block in which the phase happened.
        """
        ...

    def get_block_lifecycle(self, l2_block_number: Uint64) -> BlockLifecycle | None:
        """
        Retrieve the lifecycle record of an L2 block.

        Returns:
            The record, or None if no phase has touched the block.
        """
        ...

    def phase_l1_block(
        self,
        phase: Phase,
        tx_hash: Bytes32,
        index_in_tx: Uint32 | None = None,
    ) -> Uint64 | None:
        """
        L1 block in which the block holding a withdrawal reached `phase`.

        Args:
            phase: Lifecycle phase to look up.
            tx_hash: Transaction that emitted the withdrawal.
            index_in_tx: Position of the withdrawal in the transaction.
                If omitted, the lowest index for `tx_hash` is used.

        Returns:
            L1 block number, or None if the withdrawal or phase is unknown.
        """
        ...

    # -------------------------------------------------------------------------
    # Withdrawal Ledger
    # -------------------------------------------------------------------------

    def ingest(self, withdrawals: Sequence[StoredWithdrawal]) -> None:
        """
        Insert withdrawals. Records whose key already exists are skipped.

        Args:
            withdrawals: Records to insert.
        """
        ...

    def finalize(self, keys: Sequence[tuple[Bytes32, Uint32]]) -> None:
        """
        Mark withdrawals as finalized. Unknown keys are ignored.

        Args:
            keys: `(tx_hash, index_in_tx)` pairs finalized on L1.
        """
        ...

    def pending_finalization(self, limit: int | None = None) -> list[StoredWithdrawal]:
        """
        Oldest unfinalized withdrawals, by ascending L2 block number.

        Args:
            limit: Maximum records to return. Defaults to the configured cap.

        Returns:
            Up to `limit` unfinalized records.
        """
        ...

    def get_withdrawal(self, tx_hash: Bytes32, index_in_tx: Uint32) -> StoredWithdrawal | None:
        """
        Retrieve a single withdrawal by key.

        Returns:
            The record, or None if it was never ingested.
        """
        ...

    # -------------------------------------------------------------------------
    # Watermarks
    # -------------------------------------------------------------------------

    def highest_observed_l2_block(self) -> Uint64 | None:
        """
        Highest L2 block number with a recorded withdrawal.

        Returns:
            Block number, or None if the ledger is empty.
        """
        ...

    def highest_committed_l1_block(self) -> Uint64 | None:
        """
        Highest L1 block number recorded for the commit phase.

        Returns:
            Block number, or None if no commit was recorded.
        """
        ...

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the store and release its connection."""
        ...
