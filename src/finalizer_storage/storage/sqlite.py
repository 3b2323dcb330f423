"""
SQLite implementation of withdrawal storage.

This module persists the state the withdrawal finalizer works from:

- Per-L2-block markers of the L1 blocks where each phase happened
- Withdrawal events keyed by (tx_hash, index_in_tx), with a finalized flag
- Watermarks used to resume chain watching after a restart

Every mutating call is one transaction, or a savepoint inside the caller's
open transaction. It either commits as a whole or rolls back, and all of
them are idempotent so a failed call can be retried.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any, Final, TypeVar

from finalizer_storage.codec import decode_text, encode_text
from finalizer_storage.config import StorageConfig
from finalizer_storage.exceptions import (
    ConstraintViolation,
    ConversionError,
    StoreUnavailable,
)
from finalizer_storage.models import (
    BlockLifecycle,
    Phase,
    StoredWithdrawal,
    WithdrawalEvent,
)
from finalizer_storage.types import BaseBytes, BaseUint, Bytes20, Bytes32, Uint32, Uint64

from .namespaces import L2_BLOCKS, SCHEMA, WITHDRAWALS

logger = logging.getLogger(__name__)

_T = TypeVar("_T", bound=BaseUint | BaseBytes)

SQLITE_MAX_INTEGER: Final = 2**63 - 1
"""Largest value an SQLite INTEGER column holds."""

_SAVEPOINT: Final = "finalizer_storage"
"""Savepoint used when the caller already has a transaction open."""


def _load(type_: type[_T], value: Any, column: str) -> _T:
    """Build an in-memory value from a stored column, rejecting corrupt data."""
    try:
        return type_(value)
    except (OverflowError, TypeError, ValueError) as e:
        raise ConversionError(value, type_.__name__, f"invalid {column}") from e


def _load_optional(value: Any, column: str) -> Uint64 | None:
    return None if value is None else _load(Uint64, value, column)


def _argument(type_: type[_T], value: Any, operation: str, name: str) -> _T:
    """Validate a caller-supplied argument against its fixed-width type."""
    try:
        return type_(value)
    except (OverflowError, TypeError, ValueError) as e:
        raise ConstraintViolation(operation, f"invalid {name}: {e}") from e


def _check_storable(value: BaseUint, operation: str, name: str) -> None:
    """Reject integers that don't fit a signed 64-bit INTEGER column."""
    if int(value) > SQLITE_MAX_INTEGER:
        raise ConstraintViolation(operation, f"{name} {value} exceeds the storable maximum")


class SQLiteWithdrawalStore:
    """
    SQLite implementation of the WithdrawalStore protocol.

    The store wraps one connection supplied by the caller, or opened by
    `open()`. It keeps no locks of its own: concurrent writers are serialized
    by SQLite's database locking.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        config: StorageConfig | None = None,
        *,
        owns_connection: bool = False,
    ) -> None:
        """
        Wrap an existing connection and create the schema if needed.

        Args:
            conn: Connection owned by the caller.
            config: Runtime settings. Defaults to `StorageConfig()`.
            owns_connection: Close `conn` when the store is closed.
        """
        self._conn = conn
        self._config = config if config is not None else StorageConfig()
        self._owns_connection = owns_connection

        busy_timeout_ms = int(self._config.busy_timeout_secs * 1000)
        with self._translate_errors("open"):
            self._conn.execute(f"PRAGMA busy_timeout = {busy_timeout_ms}")

        self._init_schema()

    @classmethod
    def open(cls, config: StorageConfig | None = None) -> SQLiteWithdrawalStore:
        """
        Open a connection to `config.database_path` and wrap it.

        The returned store owns the connection and closes it on `close()`.

        Raises:
            StoreUnavailable: If the database cannot be opened.
        """
        config = config if config is not None else StorageConfig()
        try:
            conn = sqlite3.connect(
                config.database_path,
                timeout=config.busy_timeout_secs,
                check_same_thread=False,
            )
            # WAL lets readers proceed while a writer holds the lock.
            if config.database_path != ":memory:":
                conn.execute("PRAGMA journal_mode = WAL")
        except sqlite3.Error as e:
            raise StoreUnavailable("open", str(e)) from e

        return cls(conn, config, owns_connection=True)

    def _init_schema(self) -> None:
        """Create tables and indexes if they don't exist."""
        with self._transaction("init_schema") as cursor:
            for statement in SCHEMA:
                cursor.execute(statement)
        logger.info("Withdrawal storage schema ready")

    # -------------------------------------------------------------------------
    # Transaction and Error Boundary
    # -------------------------------------------------------------------------

    @contextmanager
    def _translate_errors(self, operation: str) -> Iterator[None]:
        """Map storage engine failures onto the storage error taxonomy."""
        try:
            yield
        except sqlite3.IntegrityError as e:
            logger.warning("%s violated a constraint: %s", operation, e)
            raise ConstraintViolation(operation, str(e)) from e
        except OverflowError as e:
            # Raised by sqlite3 when binding an int wider than 64 signed bits.
            logger.warning("%s got a value too wide for storage: %s", operation, e)
            raise ConstraintViolation(operation, str(e)) from e
        except sqlite3.Error as e:
            logger.warning("%s failed: %s", operation, e)
            raise StoreUnavailable(operation, str(e)) from e

    def _cursor(self) -> sqlite3.Cursor:
        cursor = self._conn.cursor()
        cursor.row_factory = sqlite3.Row
        return cursor

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[sqlite3.Cursor]:
        """
        Run the body as one atomic unit.

        Commits when the body returns and rolls back if it raises,
        so a failure leaves nothing from the call visible.

        If the caller already has a transaction open, the body runs in a
        savepoint instead. The caller's transaction stays open and its
        pending writes are neither committed nor rolled back.
        """
        with self._translate_errors(operation):
            if self._conn.in_transaction:
                with self._savepoint() as cursor:
                    yield cursor
                return

            with self._conn:
                cursor = self._cursor()
                cursor.execute("BEGIN")
                yield cursor

    @contextmanager
    def _savepoint(self) -> Iterator[sqlite3.Cursor]:
        """Nest the body inside the caller's open transaction."""
        cursor = self._cursor()
        cursor.execute(f"SAVEPOINT {_SAVEPOINT}")
        try:
            yield cursor
        except BaseException:
            # Some engine errors abort the whole transaction, savepoint included.
            if self._conn.in_transaction:
                cursor.execute(f"ROLLBACK TO SAVEPOINT {_SAVEPOINT}")
                cursor.execute(f"RELEASE SAVEPOINT {_SAVEPOINT}")
            raise
        cursor.execute(f"RELEASE SAVEPOINT {_SAVEPOINT}")

    @contextmanager
    def _read(self, operation: str) -> Iterator[sqlite3.Cursor]:
        """Run a single read statement with error translation."""
        with self._translate_errors(operation):
            yield self._cursor()

    # -------------------------------------------------------------------------
    # Block Lifecycle
    # -------------------------------------------------------------------------
    #
    # One row per L2 block. The three phase columns are written independently,
    # so a row may carry any subset of them.

    def record_phase(
        self,
        phase: Phase,
        start: Uint64,
        end: Uint64,
        l1_block_number: Uint64,
    ) -> None:
        """Record that L2 blocks `start..=end` reached `phase` in an L1 block."""
        operation = f"record_phase({phase.value})"
        start = _argument(Uint64, start, operation, "start")
        end = _argument(Uint64, end, operation, "end")
        l1_block_number = _argument(Uint64, l1_block_number, operation, "l1_block_number")
        if start > end:
            raise ConstraintViolation(operation, f"start {start} is after end {end}")
        _check_storable(end, operation, "end")
        _check_storable(l1_block_number, operation, "l1_block_number")

        # Upsert touching only the phase column.
        #
        # New rows get NULL for the other phases.
        # Existing rows keep them and have this phase overwritten, not maxed,
        # so replaying a report converges on the same state.
        column = phase.column
        statement = f"""
            INSERT INTO {L2_BLOCKS.TABLE_NAME} (l2_block_number, {column})
            VALUES (?, ?)
            ON CONFLICT (l2_block_number) DO UPDATE SET {column} = excluded.{column}
        """
        rows = ((number, int(l1_block_number)) for number in range(int(start), int(end) + 1))

        with self._transaction(operation) as cursor:
            cursor.executemany(statement, rows)

        logger.debug(
            "Recorded %s of L2 blocks %s..=%s in L1 block %s",
            phase.value,
            start,
            end,
            l1_block_number,
        )

    def get_block_lifecycle(self, l2_block_number: Uint64) -> BlockLifecycle | None:
        """Retrieve the lifecycle record of an L2 block."""
        operation = "get_block_lifecycle"
        l2_block_number = _argument(Uint64, l2_block_number, operation, "l2_block_number")

        with self._read(operation) as cursor:
            cursor.execute(
                f"SELECT * FROM {L2_BLOCKS.TABLE_NAME} WHERE l2_block_number = ?",
                (int(l2_block_number),),
            )
            row = cursor.fetchone()
        if row is None:
            return None

        return BlockLifecycle(
            l2_block_number=_load(Uint64, row["l2_block_number"], "l2_block_number"),
            commit_l1_block_number=_load_optional(
                row["commit_l1_block_number"], "commit_l1_block_number"
            ),
            verify_l1_block_number=_load_optional(
                row["verify_l1_block_number"], "verify_l1_block_number"
            ),
            execute_l1_block_number=_load_optional(
                row["execute_l1_block_number"], "execute_l1_block_number"
            ),
        )

    def phase_l1_block(
        self,
        phase: Phase,
        tx_hash: Bytes32,
        index_in_tx: Uint32 | None = None,
    ) -> Uint64 | None:
        """L1 block in which the block holding a withdrawal reached `phase`."""
        operation = f"phase_l1_block({phase.value})"
        tx_hash = _argument(Bytes32, tx_hash, operation, "tx_hash")

        # A transaction can emit several withdrawals, all in the same L2 block.
        #
        # Without an index the lowest one is used, which keeps the answer
        # deterministic when the caller only knows the transaction.
        params: tuple[Any, ...] = (bytes(tx_hash),)
        index_filter = ""
        if index_in_tx is not None:
            index_in_tx = _argument(Uint32, index_in_tx, operation, "index_in_tx")
            index_filter = "AND w.event_index_in_tx = ?"
            params += (int(index_in_tx),)

        with self._read(operation) as cursor:
            cursor.execute(
                f"""
                SELECT b.{phase.column} AS l1_block_number
                FROM {WITHDRAWALS.TABLE_NAME} AS w
                JOIN {L2_BLOCKS.TABLE_NAME} AS b
                    ON b.l2_block_number = w.l2_block_number
                WHERE w.tx_hash = ? {index_filter}
                ORDER BY w.event_index_in_tx ASC
                LIMIT 1
                """,
                params,
            )
            row = cursor.fetchone()
        if row is None:
            return None
        return _load_optional(row["l1_block_number"], phase.column)

    # -------------------------------------------------------------------------
    # Withdrawal Ledger
    # -------------------------------------------------------------------------
    #
    # Rows are inserted once per (tx_hash, index_in_tx) and afterwards only
    # the finalized flag changes. Nothing is ever deleted.

    def ingest(self, withdrawals: Sequence[StoredWithdrawal]) -> None:
        """Insert withdrawals. Records whose key already exists are skipped."""
        if not withdrawals:
            return

        for w in withdrawals:
            _check_storable(w.event.block_number, "ingest", "block_number")

        rows = [
            (
                bytes(w.event.tx_hash),
                int(w.event.block_number),
                bytes(w.event.token),
                encode_text(w.event.amount),
                int(w.index_in_tx),
                int(w.is_finalized),
            )
            for w in withdrawals
        ]

        # DO NOTHING on conflict makes replays of the same events a no-op.
        #
        # The first insert of a key wins, including within a single batch.
        with self._transaction("ingest") as cursor:
            cursor.executemany(
                f"""
                INSERT INTO {WITHDRAWALS.TABLE_NAME} (
                    tx_hash,
                    l2_block_number,
                    token,
                    amount,
                    event_index_in_tx,
                    is_finalized
                )
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (tx_hash, event_index_in_tx) DO NOTHING
                """,
                rows,
            )
            inserted = cursor.rowcount

        logger.debug("Ingested %d of %d withdrawals", inserted, len(rows))

    def finalize(self, keys: Sequence[tuple[Bytes32, Uint32]]) -> None:
        """Mark withdrawals as finalized. Unknown keys are ignored."""
        if not keys:
            return

        rows = [
            (
                bytes(_argument(Bytes32, tx_hash, "finalize", "tx_hash")),
                int(_argument(Uint32, index_in_tx, "finalize", "index_in_tx")),
            )
            for tx_hash, index_in_tx in keys
        ]

        with self._transaction("finalize") as cursor:
            cursor.executemany(
                f"""
                UPDATE {WITHDRAWALS.TABLE_NAME}
                SET is_finalized = 1
                WHERE tx_hash = ? AND event_index_in_tx = ? AND NOT is_finalized
                """,
                rows,
            )
            updated = cursor.rowcount

        logger.debug("Finalized %d of %d withdrawals", updated, len(rows))

    def pending_finalization(self, limit: int | None = None) -> list[StoredWithdrawal]:
        """Oldest unfinalized withdrawals, by ascending L2 block number."""
        if limit is None:
            limit = self._config.pending_finalization_limit
        if not isinstance(limit, int) or isinstance(limit, bool) or limit <= 0:
            raise ConstraintViolation(
                "pending_finalization", f"limit must be a positive int, got {limit!r}"
            )

        # Oldest blocks first so no withdrawal waits behind newer ones.
        #
        # The cap bounds the finalizer's work per cycle. Callers drain a
        # larger backlog by calling again after finalizing the batch.
        with self._read("pending_finalization") as cursor:
            cursor.execute(
                f"""
                SELECT * FROM {WITHDRAWALS.TABLE_NAME}
                WHERE NOT is_finalized
                ORDER BY l2_block_number ASC, tx_hash ASC, event_index_in_tx ASC
                LIMIT ?
                """,
                (int(limit),),
            )
            rows = cursor.fetchall()

        return [self._row_to_withdrawal(row) for row in rows]

    def get_withdrawal(self, tx_hash: Bytes32, index_in_tx: Uint32) -> StoredWithdrawal | None:
        """Retrieve a single withdrawal by key."""
        operation = "get_withdrawal"
        tx_hash = _argument(Bytes32, tx_hash, operation, "tx_hash")
        index_in_tx = _argument(Uint32, index_in_tx, operation, "index_in_tx")

        with self._read(operation) as cursor:
            cursor.execute(
                f"""
                SELECT * FROM {WITHDRAWALS.TABLE_NAME}
                WHERE tx_hash = ? AND event_index_in_tx = ?
                """,
                (bytes(tx_hash), int(index_in_tx)),
            )
            row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_withdrawal(row)

    @staticmethod
    def _row_to_withdrawal(row: sqlite3.Row) -> StoredWithdrawal:
        """Rebuild a withdrawal from its row. Corrupt columns raise ConversionError."""
        return StoredWithdrawal(
            event=WithdrawalEvent(
                tx_hash=_load(Bytes32, row["tx_hash"], "tx_hash"),
                block_number=_load(Uint64, row["l2_block_number"], "l2_block_number"),
                token=_load(Bytes20, row["token"], "token"),
                amount=decode_text(row["amount"]),
            ),
            index_in_tx=_load(Uint32, row["event_index_in_tx"], "event_index_in_tx"),
            is_finalized=bool(row["is_finalized"]),
        )

    # -------------------------------------------------------------------------
    # Watermarks
    # -------------------------------------------------------------------------
    #
    # Single aggregate statements, so each answer is a consistent snapshot.

    def highest_observed_l2_block(self) -> Uint64 | None:
        """Highest L2 block number with a recorded withdrawal."""
        with self._read("highest_observed_l2_block") as cursor:
            cursor.execute(f"SELECT MAX(l2_block_number) AS highest FROM {WITHDRAWALS.TABLE_NAME}")
            row = cursor.fetchone()
        return _load_optional(row["highest"], "l2_block_number")

    def highest_committed_l1_block(self) -> Uint64 | None:
        """Highest L1 block number recorded for the commit phase."""
        with self._read("highest_committed_l1_block") as cursor:
            cursor.execute(
                f"SELECT MAX({Phase.COMMIT.column}) AS highest FROM {L2_BLOCKS.TABLE_NAME}"
            )
            row = cursor.fetchone()
        return _load_optional(row["highest"], Phase.COMMIT.column)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the connection if this store opened it."""
        if self._owns_connection:
            self._conn.close()

    def __enter__(self) -> SQLiteWithdrawalStore:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()
