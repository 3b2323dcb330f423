"""
Storage for withdrawal events and their L2 blocks' L1 lifecycle.

Provides the store protocol and its SQLite implementation.
"""

from .database import WithdrawalStore
from .namespaces import L2_BLOCKS, WITHDRAWALS, L2BlockNamespace, WithdrawalNamespace
from .sqlite import SQLiteWithdrawalStore

__all__ = [
    "WithdrawalStore",
    "SQLiteWithdrawalStore",
    "L2BlockNamespace",
    "WithdrawalNamespace",
    "L2_BLOCKS",
    "WITHDRAWALS",
]
