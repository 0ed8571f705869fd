"""
Catalog Key-Value Store
=======================
Ordered, multi-version key-value store with serializable transactions.

Each commit is assigned the next version number. A transaction reads the
snapshot at the version current when it began, so all of its reads are
mutually consistent. Conflict detection at commit time gives
first-committer-wins semantics between overlapping transactions.

Durability is optional: with a data directory, every commit is appended
to the commit log and fsynced before it becomes visible, and the log is
replayed on open.

Thread safety: all shared state is guarded by one mutex.
"""

import bisect
import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from storage.errors import TransactionConflictError
from transactions.transaction import KeyRange, Transaction, conflicts_with
from transactions.wal import CommitLog, Mutation, MutationType

logger = logging.getLogger(__name__)

DEFAULT_RETRY_LIMIT = 100

# Version chain entry: (commit_version, value), value None = deleted
_Entry = Tuple[int, Optional[bytes]]


@dataclass
class _CommitSummary:
    """What a committed transaction wrote, kept for conflict checks."""
    version: int
    write_ranges: List[KeyRange]


class KVStore:
    """
    In-process ordered KV store.

    Usage:
        store = KVStore()                 # in-memory
        store = KVStore("path/to/data")   # durable
        with store.create_transaction() as tr:
            tr.set(b"key", b"value")
    """

    def __init__(self, data_dir: Optional[str] = None, *,
                 retry_limit: int = DEFAULT_RETRY_LIMIT):
        self.data_dir = data_dir
        self.retry_limit = retry_limit

        self._mutex = threading.Lock()
        self._keys: List[bytes] = []                  # sorted, every live or recently deleted key
        self._chains: Dict[bytes, List[_Entry]] = {}  # key → version chain (ascending)
        self._tombstones: Set[bytes] = set()          # keys whose newest entry is a delete
        self._version = 0
        self._history: List[_CommitSummary] = []
        self._active: Dict[int, int] = {}             # txn_id → read_version
        self._next_txn_id = 1

        self._log: Optional[CommitLog] = None
        if data_dir is not None:
            self._log = CommitLog(data_dir)
            self._replay()

    # ─── Public API ──────────────────────────────────────────────────────

    @property
    def version(self) -> int:
        """Most recent commit version."""
        with self._mutex:
            return self._version

    def create_transaction(self) -> Transaction:
        with self._mutex:
            txn_id = self._next_txn_id
            self._next_txn_id += 1
            self._active[txn_id] = self._version
            read_version = self._version
        logger.debug("Transaction %d begins at read version %d", txn_id, read_version)
        return Transaction(self, txn_id, read_version)

    def close(self) -> None:
        if self._log is not None:
            self._log.close()
            self._log = None

    def __enter__(self) -> "KVStore":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    # ─── Called by Transaction ───────────────────────────────────────────

    def _read(self, key: bytes, version: int) -> Optional[bytes]:
        with self._mutex:
            return self._visible(self._chains.get(key), version)

    def _read_range(self, begin: bytes, end: bytes, version: int) -> List[Tuple[bytes, bytes]]:
        with self._mutex:
            lo = bisect.bisect_left(self._keys, begin)
            hi = bisect.bisect_left(self._keys, end)
            result = []
            for key in self._keys[lo:hi]:
                value = self._visible(self._chains[key], version)
                if value is not None:
                    result.append((key, value))
            return result

    def _commit(self, txn: Transaction) -> int:
        mutations = txn.mutations
        if not mutations:
            return txn.read_version

        read_ranges = txn.read_ranges
        with self._mutex:
            for summary in self._history:
                if summary.version <= txn.read_version:
                    continue
                if conflicts_with(read_ranges, summary.write_ranges):
                    raise TransactionConflictError(
                        f"Transaction {txn.txn_id} read data changed by commit "
                        f"{summary.version} (read version {txn.read_version})")

            version = self._version + 1
            if self._log is not None:
                # Durable before visible
                self._log.append_commit(version, mutations)
            self._apply(version, mutations)
            self._history.append(_CommitSummary(version, txn.write_ranges))
            self._version = version
            return version

    def _release(self, txn_id: int) -> None:
        with self._mutex:
            self._active.pop(txn_id, None)
            horizon = self._horizon()
            # Commits at or before every live read version can no longer conflict.
            self._history = [s for s in self._history if s.version > horizon]
            self._reclaim(horizon)

    # ─── Internal ────────────────────────────────────────────────────────

    def _horizon(self) -> int:
        """Oldest read version any live transaction may still use."""
        if self._active:
            return min(self._active.values())
        return self._version

    @staticmethod
    def _visible(chain: Optional[List[_Entry]], version: int) -> Optional[bytes]:
        if not chain:
            return None
        for entry_version, value in reversed(chain):
            if entry_version <= version:
                return value
        return None

    def _apply(self, version: int, mutations: List[Mutation]) -> None:
        """Install a write set at `version`. Caller holds the mutex."""
        horizon = self._horizon()
        for mtype, first, second in mutations:
            if mtype == MutationType.SET:
                self._put(first, version, second, horizon)
            elif mtype == MutationType.CLEAR:
                if first in self._chains:
                    self._put(first, version, None, horizon)
            elif mtype == MutationType.CLEAR_RANGE:
                lo = bisect.bisect_left(self._keys, first)
                hi = bisect.bisect_left(self._keys, second)
                for key in self._keys[lo:hi]:
                    self._put(key, version, None, horizon)

    def _put(self, key: bytes, version: int, value: Optional[bytes], horizon: int) -> None:
        chain = self._chains.get(key)
        if chain is None:
            if value is None:
                return
            bisect.insort(self._keys, key)
            chain = self._chains[key] = []

        if chain and chain[-1][0] == version:
            chain[-1] = (version, value)
        else:
            chain.append((version, value))

        # Drop versions no reader can see any more: keep the newest
        # entry at or below the horizon and everything after it.
        keep_from = 0
        for i, (entry_version, _) in enumerate(chain):
            if entry_version <= horizon:
                keep_from = i
        if keep_from:
            del chain[:keep_from]

        if value is None:
            self._tombstones.add(key)
        else:
            self._tombstones.discard(key)

    def _reclaim(self, horizon: int) -> int:
        """
        Forget keys deleted at or before `horizon`. Every live reader sees
        them as absent already. Caller holds the mutex. Returns the count.
        """
        expired = [k for k in self._tombstones if self._chains[k][-1][0] <= horizon]
        for key in expired:
            self._tombstones.discard(key)
            del self._chains[key]
            del self._keys[bisect.bisect_left(self._keys, key)]
        return len(expired)

    def _replay(self) -> None:
        records = self._log.recover()
        for record in records:
            self._apply(record.version, record.mutations)
            self._version = record.version
        self._reclaim(self._version)
        logger.info("Replayed %d commit(s) from %s (version %d)",
                    len(records), self._log.path, self._version)

    def __repr__(self) -> str:
        return (f"KVStore(version={self._version}, keys={len(self._keys)}, "
                f"data_dir={self.data_dir!r})")
