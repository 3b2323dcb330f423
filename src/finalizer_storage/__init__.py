"""Persistence for L2 withdrawal events and the L1 lifecycle of their blocks."""

from .config import StorageConfig
from .exceptions import ConstraintViolation, ConversionError, StorageError, StoreUnavailable
from .models import BlockLifecycle, Phase, StoredWithdrawal, WithdrawalEvent
from .storage import SQLiteWithdrawalStore, WithdrawalStore

__all__ = [
    "StorageConfig",
    "Phase",
    "WithdrawalEvent",
    "StoredWithdrawal",
    "BlockLifecycle",
    "WithdrawalStore",
    "SQLiteWithdrawalStore",
    # Exceptions
    "StorageError",
    "StoreUnavailable",
    "ConversionError",
    "ConstraintViolation",
]
