"""
Schema Cache
============
Non-authoritative copy of the last full catalog listing.

The entry is keyed by the catalog change token, a random value that every
successful mutation rewrites in the store. A reader compares the token it
reads in its own transaction with the cached one, so mutations made by any
other manager sharing the store invalidate the entry as well.
"""

import threading
from typing import Dict, Optional

from catalog.types import TableMetadata


class SchemaCache:
    """Thread-safe single-entry cache of {table_name: TableMetadata}."""

    def __init__(self):
        self._lock = threading.Lock()
        self._token: Optional[bytes] = None
        self._tables: Optional[Dict[str, TableMetadata]] = None
        self.hits = 0
        self.misses = 0

    def get(self, token: Optional[bytes]) -> Optional[Dict[str, TableMetadata]]:
        with self._lock:
            if token is None or self._tables is None or token != self._token:
                self.misses += 1
                return None
            self.hits += 1
            return _copy(self._tables)

    def put(self, token: Optional[bytes], tables: Dict[str, TableMetadata]) -> None:
        if token is None:
            return
        with self._lock:
            self._token = token
            self._tables = _copy(tables)

    def invalidate(self) -> None:
        with self._lock:
            self._token = None
            self._tables = None

    @property
    def is_populated(self) -> bool:
        with self._lock:
            return self._tables is not None


def _copy(tables: Dict[str, TableMetadata]) -> Dict[str, TableMetadata]:
    return {name: meta.copy() for name, meta in tables.items()}
