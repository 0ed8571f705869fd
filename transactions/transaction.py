"""
Catalog Store Transactions
==========================
Serializable optimistic transactions over the multi-version KV store.

Invariants:
  - Reads see the snapshot at read_version, overlaid with this
    transaction's own writes
  - Writes are buffered locally and reach the store only at commit
  - Every key and range read is recorded; commit fails if any of them
    was written by a transaction that committed after read_version
    (first committer wins)
  - A transaction with no writes commits without a conflict check
  - Commit is all-or-nothing: a conflict leaves the store untouched
"""

import bisect
import logging
from enum import Enum
from typing import List, Optional, Tuple

from storage.errors import TransactionConflictError, TransactionStateError
from storage.key_encoding import strinc
from transactions.wal import Mutation, MutationType

logger = logging.getLogger(__name__)

KeyRange = Tuple[bytes, bytes]


class TransactionState(Enum):
    ACTIVE = "ACTIVE"
    COMMITTED = "COMMITTED"
    ABORTED = "ABORTED"


def point_range(key: bytes) -> KeyRange:
    """The single-key range [key, key + 0x00)."""
    return key, key + b"\x00"


def ranges_intersect(a: KeyRange, b: KeyRange) -> bool:
    return a[0] < b[1] and b[0] < a[1]


class Transaction:
    """
    One unit of work against a KVStore.

    Usage:
        with store.create_transaction() as tr:
            tr.set(b"k", b"v")
        # committed on clean exit, aborted on exception
    """

    def __init__(self, store, txn_id: int, read_version: int):
        self._store = store
        self.txn_id = txn_id
        self.read_version = read_version
        self.state = TransactionState.ACTIVE
        self.committed_version: Optional[int] = None

        self._writes: dict = {}                     # key → value, None = cleared
        self._cleared: List[KeyRange] = []
        self._mutations: List[Mutation] = []        # commit order
        self._read_ranges: List[KeyRange] = []
        self._write_ranges: List[KeyRange] = []

    # ─── Reads ───────────────────────────────────────────────────────────

    def get(self, key: bytes) -> Optional[bytes]:
        """Value of `key`, or None if absent."""
        self._check_active()
        if key in self._writes:
            return self._writes[key]
        if self._is_cleared(key):
            return None
        self._read_ranges.append(point_range(key))
        return self._store._read(key, self.read_version)

    def get_range(self, begin: bytes, end: bytes, limit: int = 0,
                  reverse: bool = False) -> List[Tuple[bytes, bytes]]:
        """Key/value pairs with begin <= key < end, in key order."""
        self._check_active()
        self._read_ranges.append((begin, end))

        merged = dict(self._store._read_range(begin, end, self.read_version))
        for key in [k for k in merged if self._is_cleared(k)]:
            del merged[key]
        for key, value in self._writes.items():
            if begin <= key < end:
                if value is None:
                    merged.pop(key, None)
                else:
                    merged[key] = value

        items = sorted(merged.items(), reverse=reverse)
        if limit > 0:
            items = items[:limit]
        return items

    def get_range_startswith(self, prefix: bytes, limit: int = 0) -> List[Tuple[bytes, bytes]]:
        return self.get_range(prefix, strinc(prefix), limit=limit)

    # ─── Writes ──────────────────────────────────────────────────────────

    def set(self, key: bytes, value: bytes) -> None:
        self._check_active()
        if not isinstance(key, bytes) or not isinstance(value, bytes):
            raise TypeError("Keys and values must be bytes")
        self._writes[key] = value
        self._mutations.append((MutationType.SET, key, value))
        self._write_ranges.append(point_range(key))

    def clear(self, key: bytes) -> None:
        self._check_active()
        self._writes[key] = None
        self._mutations.append((MutationType.CLEAR, key, b""))
        self._write_ranges.append(point_range(key))

    def clear_range(self, begin: bytes, end: bytes) -> None:
        """Remove every key with begin <= key < end."""
        self._check_active()
        if begin >= end:
            return
        for key in [k for k in self._writes if begin <= k < end]:
            del self._writes[key]
        self._cleared.append((begin, end))
        self._mutations.append((MutationType.CLEAR_RANGE, begin, end))
        self._write_ranges.append((begin, end))

    def clear_range_startswith(self, prefix: bytes) -> None:
        self.clear_range(prefix, strinc(prefix))

    # ─── Lifecycle ───────────────────────────────────────────────────────

    @property
    def mutations(self) -> List[Mutation]:
        return list(self._mutations)

    @property
    def read_ranges(self) -> List[KeyRange]:
        return list(self._read_ranges)

    @property
    def write_ranges(self) -> List[KeyRange]:
        return list(self._write_ranges)

    def commit(self) -> int:
        """
        Commit atomically. Returns the commit version.
        Raises TransactionConflictError if a read was invalidated; the
        transaction is then aborted and none of its writes are applied.
        """
        self._check_active()
        try:
            version = self._store._commit(self)
        except TransactionConflictError:
            self.state = TransactionState.ABORTED
            logger.debug("Transaction %d conflicted at read version %d",
                         self.txn_id, self.read_version)
            raise
        except Exception:
            self.state = TransactionState.ABORTED
            raise
        finally:
            self._store._release(self.txn_id)

        self.state = TransactionState.COMMITTED
        self.committed_version = version
        logger.debug("Transaction %d committed at version %d (%d mutations)",
                     self.txn_id, version, len(self._mutations))
        return version

    def abort(self) -> None:
        """Discard all buffered writes. No-op on a finished transaction."""
        if self.state != TransactionState.ACTIVE:
            return
        self.state = TransactionState.ABORTED
        self._store._release(self.txn_id)
        logger.debug("Transaction %d aborted", self.txn_id)

    def __enter__(self) -> "Transaction":
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is not None:
            self.abort()
        elif self.state == TransactionState.ACTIVE:
            self.commit()
        return False

    # ─── Internal ────────────────────────────────────────────────────────

    def _check_active(self) -> None:
        if self.state != TransactionState.ACTIVE:
            raise TransactionStateError(
                f"Transaction {self.txn_id} is {self.state.value}, not ACTIVE")

    def _is_cleared(self, key: bytes) -> bool:
        return any(begin <= key < end for begin, end in self._cleared)

    def __repr__(self) -> str:
        return (f"Transaction(id={self.txn_id}, read_version={self.read_version}, "
                f"state={self.state.value})")


def conflicts_with(read_ranges: List[KeyRange], write_ranges: List[KeyRange]) -> bool:
    """True if any write range overlaps any read range."""
    if not read_ranges or not write_ranges:
        return False
    ordered = sorted(read_ranges)
    starts = [r[0] for r in ordered]
    for w in write_ranges:
        # Only read ranges starting before w's end can overlap it.
        hi = bisect.bisect_left(starts, w[1])
        for r in ordered[:hi]:
            if ranges_intersect(r, w):
                return True
    return False
