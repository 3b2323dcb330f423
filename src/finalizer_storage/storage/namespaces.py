"""
Table definitions for withdrawal storage.

Each namespace groups a table name with the DDL that creates it.
Every statement is idempotent so the schema can be applied on each open.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class L2BlockNamespace:
    """
    Namespace for per-block L1 lifecycle markers.

    One row per L2 block. Each phase column is set independently and may be
    overwritten when the phase is reported again.
    """

    TABLE_NAME: str = "l2_blocks"
    """Table name for block lifecycle storage."""

    CREATE_TABLE: str = """
        CREATE TABLE IF NOT EXISTS l2_blocks (
            l2_block_number INTEGER PRIMARY KEY,
            commit_l1_block_number INTEGER,
            verify_l1_block_number INTEGER,
            execute_l1_block_number INTEGER
        )
    """
    """SQL to create the l2_blocks table."""


@dataclass(frozen=True, slots=True)
class WithdrawalNamespace:
    """
    Namespace for withdrawal events.

    Identity is (tx_hash, event_index_in_tx). Amounts are decimal digit
    strings so no precision is lost on uint256 values.
    """

    TABLE_NAME: str = "withdrawals"
    """Table name for withdrawal storage."""

    CREATE_TABLE: str = """
        CREATE TABLE IF NOT EXISTS withdrawals (
            tx_hash BLOB NOT NULL,
            l2_block_number INTEGER NOT NULL,
            token BLOB NOT NULL,
            amount TEXT NOT NULL,
            event_index_in_tx INTEGER NOT NULL,
            is_finalized INTEGER NOT NULL DEFAULT 0,
            UNIQUE (tx_hash, event_index_in_tx)
        )
    """
    """SQL to create the withdrawals table."""

    CREATE_BLOCK_INDEX: str = """
        CREATE INDEX IF NOT EXISTS idx_withdrawals_l2_block
        ON withdrawals(l2_block_number)
    """
    """SQL to index withdrawals by L2 block, for joins and the watermark."""

    CREATE_PENDING_INDEX: str = """
        CREATE INDEX IF NOT EXISTS idx_withdrawals_pending
        ON withdrawals(l2_block_number) WHERE NOT is_finalized
    """
    """SQL to index unfinalized withdrawals, for the finalization scan."""


L2_BLOCKS = L2BlockNamespace()
WITHDRAWALS = WithdrawalNamespace()

SCHEMA: list[str] = [
    L2_BLOCKS.CREATE_TABLE,
    WITHDRAWALS.CREATE_TABLE,
    WITHDRAWALS.CREATE_BLOCK_INDEX,
    WITHDRAWALS.CREATE_PENDING_INDEX,
]
"""Statements applied, in order, when a store is opened."""
