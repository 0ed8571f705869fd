"""
Namespace Directory
===================
Maps table names to isolated key ranges under the catalog root directory.
Every call runs inside the caller's transaction, so an existence check
and the mutation that depends on it commit (or conflict) together.
"""

from typing import List, Optional, Sequence, Union

from storage.directory import DirectoryLayer, DirectorySubspace, to_path

DEFAULT_ROOT = ("root",)


class NamespaceDirectory:
    """Per-table directories below one root path."""

    def __init__(self, root_path: Union[str, Sequence[str]] = DEFAULT_ROOT,
                 layer: Optional[DirectoryLayer] = None):
        self.root_path = to_path(root_path)
        self._layer = layer or DirectoryLayer()

    def exists(self, tr, name: str) -> bool:
        return self._layer.exists(tr, self._path(name))

    def create(self, tr, name: str) -> DirectorySubspace:
        """Allocate a fresh key range. Raises DirectoryAlreadyExistsError if taken."""
        return self._layer.create(tr, self._path(name))

    def open(self, tr, name: str) -> DirectorySubspace:
        return self._layer.open(tr, self._path(name))

    def remove(self, tr, name: str) -> None:
        """Delete the entry and every key in its range."""
        self._layer.remove(tr, self._path(name))

    def list(self, tr) -> List[str]:
        if not self._layer.exists(tr, self.root_path):
            return []
        return self._layer.list(tr, self.root_path)

    def root(self, tr) -> DirectorySubspace:
        return self._layer.create_or_open(tr, self.root_path)

    def root_if_exists(self, tr) -> Optional[DirectorySubspace]:
        if not self._layer.exists(tr, self.root_path):
            return None
        return self._layer.open(tr, self.root_path)

    def _path(self, name: str) -> tuple:
        if not isinstance(name, str):
            raise TypeError(f"Table name must be str, got {type(name).__name__}")
        return self.root_path + to_path(name)
