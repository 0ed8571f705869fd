"""
Subspace
========
A contiguous key range identified by a raw byte prefix. Keys inside the
subspace are the prefix followed by a packed tuple.
"""

from typing import Tuple

from storage import key_encoding


class Subspace:
    """Raw-prefix key range with tuple packing relative to the prefix."""

    def __init__(self, prefix_tuple: tuple = (), raw_prefix: bytes = b""):
        self._raw_prefix = raw_prefix + key_encoding.pack(prefix_tuple)

    @property
    def key(self) -> bytes:
        return self._raw_prefix

    def pack(self, items: tuple = ()) -> bytes:
        return self._raw_prefix + key_encoding.pack(items)

    def unpack(self, key: bytes) -> tuple:
        if not self.contains(key):
            raise ValueError(f"Key {key!r} is not in subspace {self._raw_prefix!r}")
        return key_encoding.unpack(key[len(self._raw_prefix):])

    def range(self, items: tuple = ()) -> Tuple[bytes, bytes]:
        """[begin, end) of every key that extends `items` inside this subspace."""
        begin, end = key_encoding.range_of(items)
        return self._raw_prefix + begin, self._raw_prefix + end

    def contains(self, key: bytes) -> bool:
        return key.startswith(self._raw_prefix)

    def subspace(self, items: tuple) -> "Subspace":
        return Subspace(items, self._raw_prefix)

    def __getitem__(self, item) -> "Subspace":
        return self.subspace((item,))

    def __repr__(self) -> str:
        return f"Subspace(prefix={self._raw_prefix!r})"
