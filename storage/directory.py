"""
Directory Layer
===============
Maps hierarchical names (paths of strings) to isolated key ranges.

Layout (all under the reserved node prefix 0xFE):
  ("node",)   + path      → content prefix of the directory at `path`
  ("prefix", content_prefix) → path (reverse index, used for allocation)

Content prefixes are tuple-packed random 62-bit integers, so they are
prefix-free and never start with 0xFE. Allocation reads only the reverse
index entry of the candidate prefix, so transactions creating different
directories do not conflict with each other.

Every operation runs inside the caller's transaction.
"""

import logging
import secrets
from typing import List, Sequence, Tuple, Union

from storage import key_encoding
from storage.subspace import Subspace

logger = logging.getLogger(__name__)

NODE_PREFIX = b"\xfe"
_PREFIX_BITS = 62

PathLike = Union[str, Sequence[str]]


class DirectoryError(Exception):
    """Base class for directory layer errors."""
    pass


class DirectoryAlreadyExistsError(DirectoryError):
    pass


class DirectoryNotFoundError(DirectoryError):
    pass


def to_path(path: PathLike) -> Tuple[str, ...]:
    """Normalize a name or sequence of names to a path tuple."""
    if isinstance(path, str):
        path = (path,)
    path = tuple(path)
    for part in path:
        if not isinstance(part, str):
            raise TypeError(f"Directory path components must be str, got {type(part).__name__}")
        if not part:
            raise ValueError("Directory path components must be non-empty")
    return path


class DirectoryLayer:
    """Namespace service over a KV store."""

    def __init__(self, node_prefix: bytes = NODE_PREFIX, content_prefix: bytes = b""):
        self._nodes = Subspace(raw_prefix=node_prefix)
        self._content_prefix = content_prefix

    # ─── Public API ──────────────────────────────────────────────────────

    def exists(self, tr, path: PathLike) -> bool:
        path = to_path(path)
        if not path:
            return True
        return tr.get(self._node_key(path)) is not None

    def open(self, tr, path: PathLike) -> "DirectorySubspace":
        path = to_path(path)
        prefix = tr.get(self._node_key(path))
        if prefix is None:
            raise DirectoryNotFoundError(f"Directory {'/'.join(path)!r} does not exist")
        return DirectorySubspace(path, prefix, self)

    def create(self, tr, path: PathLike) -> "DirectorySubspace":
        """Create a new directory (and any missing parents)."""
        path = to_path(path)
        if not path:
            raise ValueError("Cannot create the root directory")
        if self.exists(tr, path):
            raise DirectoryAlreadyExistsError(f"Directory {'/'.join(path)!r} already exists")
        if len(path) > 1:
            self.create_or_open(tr, path[:-1])

        prefix = self._allocate_prefix(tr)
        tr.set(self._node_key(path), prefix)
        tr.set(self._reverse_key(prefix), key_encoding.pack(path))
        logger.debug("Allocated prefix %s for directory %s", prefix.hex(), "/".join(path))
        return DirectorySubspace(path, prefix, self)

    def create_or_open(self, tr, path: PathLike) -> "DirectorySubspace":
        path = to_path(path)
        if self.exists(tr, path):
            return self.open(tr, path)
        return self.create(tr, path)

    def remove(self, tr, path: PathLike) -> None:
        """Remove a directory, its contents and all of its descendants."""
        path = to_path(path)
        if not path:
            raise ValueError("Cannot remove the root directory")
        node_key = self._node_key(path)
        prefix = tr.get(node_key)
        if prefix is None:
            raise DirectoryNotFoundError(f"Directory {'/'.join(path)!r} does not exist")

        begin, end = self._nodes.range(("node",) + path)
        for key, child_prefix in tr.get_range(begin, end):
            self._clear_node(tr, key, child_prefix)
        self._clear_node(tr, node_key, prefix)

    def remove_if_exists(self, tr, path: PathLike) -> bool:
        if not self.exists(tr, path):
            return False
        self.remove(tr, path)
        return True

    def list(self, tr, path: PathLike = ()) -> List[str]:
        """Names of the immediate subdirectories of `path`, sorted."""
        path = to_path(path)
        if path and not self.exists(tr, path):
            raise DirectoryNotFoundError(f"Directory {'/'.join(path)!r} does not exist")

        depth = len(path) + 2   # ("node",) + path + (child,)
        begin, end = self._nodes.range(("node",) + path)
        names = []
        for key, _ in tr.get_range(begin, end):
            parts = self._nodes.unpack(key)
            if len(parts) == depth:
                names.append(parts[-1])
        return names

    # ─── Internal ────────────────────────────────────────────────────────

    def _node_key(self, path: Tuple[str, ...]) -> bytes:
        return self._nodes.pack(("node",) + path)

    def _reverse_key(self, prefix: bytes) -> bytes:
        return self._nodes.pack(("prefix", prefix))

    def _clear_node(self, tr, node_key: bytes, prefix: bytes) -> None:
        tr.clear_range_startswith(prefix)
        tr.clear(self._reverse_key(prefix))
        tr.clear(node_key)

    def _allocate_prefix(self, tr) -> bytes:
        while True:
            candidate = self._content_prefix + key_encoding.pack((secrets.randbits(_PREFIX_BITS),))
            if tr.get(self._reverse_key(candidate)) is None:
                return candidate


class DirectorySubspace(Subspace):
    """A directory's content range, with directory operations relative to it."""

    def __init__(self, path: Tuple[str, ...], prefix: bytes, layer: DirectoryLayer):
        super().__init__(raw_prefix=prefix)
        self.path = path
        self.layer = layer

    def exists(self, tr, sub_path: PathLike = ()) -> bool:
        return self.layer.exists(tr, self.path + to_path(sub_path))

    def open(self, tr, sub_path: PathLike) -> "DirectorySubspace":
        return self.layer.open(tr, self.path + to_path(sub_path))

    def create(self, tr, sub_path: PathLike) -> "DirectorySubspace":
        return self.layer.create(tr, self.path + to_path(sub_path))

    def create_or_open(self, tr, sub_path: PathLike) -> "DirectorySubspace":
        return self.layer.create_or_open(tr, self.path + to_path(sub_path))

    def remove(self, tr, sub_path: PathLike) -> None:
        self.layer.remove(tr, self.path + to_path(sub_path))

    def list(self, tr, sub_path: PathLike = ()) -> List[str]:
        return self.layer.list(tr, self.path + to_path(sub_path))

    def __repr__(self) -> str:
        return f"DirectorySubspace(path={self.path!r}, prefix={self.key!r})"
