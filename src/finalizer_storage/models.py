"""
Withdrawal and block lifecycle records.

A withdrawal becomes eligible for finalization once the L2 block holding it
has gone through all three L1 phases: commit, verify and execute.
"""

from __future__ import annotations

from enum import Enum

from .types import Bytes20, Bytes32, StrictBaseModel, Uint32, Uint64, Uint256


class Phase(Enum):
    """L1 lifecycle phase of an L2 block."""

    COMMIT = "commit"
    """The block's batch was committed on L1."""

    VERIFY = "verify"
    """The block's batch was proven on L1."""

    EXECUTE = "execute"
    """The block's batch was executed on L1."""

    @property
    def column(self) -> str:
        """Name of the `l2_blocks` column holding this phase's L1 block number."""
        return f"{self.value}_l1_block_number"


class WithdrawalEvent(StrictBaseModel):
    """A withdrawal emitted on L2, as observed by the event watcher."""

    tx_hash: Bytes32
    """Hash of the L2 transaction that emitted the event."""

    block_number: Uint64
    """L2 block containing the transaction."""

    token: Bytes20
    """Address of the withdrawn token."""

    amount: Uint256
    """Withdrawn amount in the token's base units."""


class StoredWithdrawal(StrictBaseModel):
    """A withdrawal event together with its identity and finalization state."""

    event: WithdrawalEvent
    """The observed withdrawal."""

    index_in_tx: Uint32
    """Zero-based position of the event among the withdrawals of its transaction."""

    is_finalized: bool = False
    """Whether the withdrawal was finalized on L1. Only ever goes from False to True."""

    @property
    def key(self) -> tuple[Bytes32, Uint32]:
        """Identity of the record: `(tx_hash, index_in_tx)`."""
        return self.event.tx_hash, self.index_in_tx


class BlockLifecycle(StrictBaseModel):
    """L1 block numbers at which an L2 block went through each phase."""

    l2_block_number: Uint64
    """The L2 block this record describes."""

    commit_l1_block_number: Uint64 | None = None
    verify_l1_block_number: Uint64 | None = None
    execute_l1_block_number: Uint64 | None = None

    def l1_block(self, phase: Phase) -> Uint64 | None:
        """L1 block number recorded for `phase`, if any."""
        return getattr(self, phase.column)
