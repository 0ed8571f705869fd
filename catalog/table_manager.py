"""
Table Manager
=============
Public schema-mutation API of the catalog.

Every operation is one store transaction: existence checks, metadata
reads and metadata writes all happen inside it, and it either commits as
a whole or leaves no trace. Two callers racing on the same table are
serialized by the store's conflict detection; the loser is re-run against
the new snapshot and sees the winner's result (e.g. TABLE_ALREADY_EXISTS).

Result policy:
  - Rejected requests (bad arguments, missing or duplicate table or
    attribute) return a StatusCode and write nothing.
  - Store failures and damaged records raise (StoreError,
    DirectoryError, SchemaCorruptionError).

Per-table layout: see catalog.schema_codec.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional, Sequence, Tuple

from catalog.cache import SchemaCache
from catalog.namespace import DEFAULT_ROOT, NamespaceDirectory
from catalog.schema_codec import (
    ATTRIBUTE_LIST_KEY, ATTRIBUTE_RECORD_TAG, SchemaCorruptionError,
    attribute_key, decode_attribute, decode_attribute_list,
    encode_attribute, encode_attribute_list,
)
from catalog.types import AttributeType, StatusCode, TableMetadata, type_from_value
from storage.kv_store import KVStore
from transactions.retry import transactional

logger = logging.getLogger(__name__)

# Change token, stored in the root directory's own key range.
CATALOG_VERSION_KEY = ("catalog_version",)


class TableManager:
    """
    Catalog of tables stored in a KVStore.

    Usage:
        manager = TableManager(KVStore())
        manager.create_table("Users", ["id", "name"],
                             [AttributeType.INT, AttributeType.VARCHAR], ["id"])
        manager.list_tables()["Users"].attribute_names   # ['id', 'name']
    """

    def __init__(self, store: KVStore, *, root_path: Sequence[str] = DEFAULT_ROOT,
                 cache_enabled: bool = True):
        self._store = store
        self._namespace = NamespaceDirectory(root_path)
        self._cache: Optional[SchemaCache] = SchemaCache() if cache_enabled else None

    @property
    def store(self) -> KVStore:
        return self._store

    @property
    def namespace(self) -> NamespaceDirectory:
        return self._namespace

    @property
    def cache(self) -> Optional[SchemaCache]:
        return self._cache

    # ─── Tables ─────────────────────────────────────────────────────

    def create_table(self, table_name: str, attribute_names: Sequence[str],
                     attribute_types: Sequence[Any],
                     primary_key_names: Sequence[str]) -> StatusCode:
        """
        Create a table with its attributes and primary key.

        Checked in order, stopping at the first failure:
          1. names and types given, same length, names unique and non-empty
          2. primary key names given and non-empty
          3. every primary key name is an attribute name
          4. every type is INT, VARCHAR or DOUBLE
          5. no table with this name exists
        """
        _check_name(table_name, "Table name")
        status, types = _validate_creation(attribute_names, attribute_types, primary_key_names)
        if status is not StatusCode.SUCCESS:
            logger.debug("create_table %r rejected: %s", table_name, status.value)
            return status

        status = _create_table(self._store, self._namespace, table_name,
                               list(attribute_names), types, list(primary_key_names))
        self._mutated(status, "Created table %r with %d attribute(s)",
                      table_name, len(types))
        return status

    def delete_table(self, table_name: str) -> StatusCode:
        """Remove a table and all of its metadata."""
        _check_name(table_name, "Table name")
        status = _delete_table(self._store, self._namespace, table_name)
        self._mutated(status, "Deleted table %r", table_name)
        return status

    def drop_all_tables(self) -> StatusCode:
        """Remove every table. An empty catalog is a successful no-op."""
        dropped = _drop_all_tables(self._store, self._namespace)
        self._mutated(StatusCode.SUCCESS, "Dropped %d table(s)", dropped)
        return StatusCode.SUCCESS

    def list_tables(self) -> Dict[str, TableMetadata]:
        """
        Metadata of every table, read from one snapshot.
        Raises SchemaCorruptionError if any table's records cannot be
        read back; no partial listing is returned.
        """
        return _list_tables(self._store, self._namespace, self._cache)

    def describe_table(self, table_name: str) -> Optional[TableMetadata]:
        """Metadata of one table, or None if it does not exist."""
        _check_name(table_name, "Table name")
        return _describe_table(self._store, self._namespace, table_name)

    # ─── Attributes ─────────────────────────────────────────────────

    def add_attribute(self, table_name: str, attribute_name: str,
                      attribute_type: Any) -> StatusCode:
        """Append a non-primary-key attribute to an existing table."""
        _check_name(table_name, "Table name")
        _check_name(attribute_name, "Attribute name")
        status = _add_attribute(self._store, self._namespace, table_name,
                                attribute_name, type_from_value(attribute_type))
        self._mutated(status, "Added attribute %r to table %r", attribute_name, table_name)
        return status

    def drop_attribute(self, table_name: str, attribute_name: str) -> StatusCode:
        """
        Remove an attribute. Dropping the last primary-key attribute is
        allowed and leaves the table without a primary key.
        """
        _check_name(table_name, "Table name")
        _check_name(attribute_name, "Attribute name")
        status = _drop_attribute(self._store, self._namespace, table_name, attribute_name)
        self._mutated(status, "Dropped attribute %r from table %r", attribute_name, table_name)
        return status

    # ─── Internal ───────────────────────────────────────────────────

    def _mutated(self, status: StatusCode, message: str, *args) -> None:
        if status is not StatusCode.SUCCESS:
            logger.debug("Catalog request rejected: %s", status.value)
            return
        if self._cache is not None:
            self._cache.invalidate()
        logger.info(message, *args)

    def __repr__(self) -> str:
        return f"TableManager(root={'/'.join(self._namespace.root_path)!r}, store={self._store!r})"


# ─── Validation ─────────────────────────────────────────────────────────────

def _check_name(name: Any, what: str) -> None:
    if not isinstance(name, str):
        raise TypeError(f"{what} must be str, got {type(name).__name__}")
    if not name:
        raise ValueError(f"{what} must be non-empty")


def _is_sequence(value: Any) -> bool:
    return value is not None and not isinstance(value, (str, bytes)) and hasattr(value, "__len__")


def _validate_creation(attribute_names, attribute_types,
                       primary_key_names) -> Tuple[StatusCode, List[AttributeType]]:
    if not _is_sequence(attribute_names) or not _is_sequence(attribute_types):
        return StatusCode.TABLE_CREATION_ATTRIBUTE_INVALID, []
    if len(attribute_names) != len(attribute_types):
        return StatusCode.TABLE_CREATION_ATTRIBUTE_INVALID, []
    if any(not isinstance(n, str) or not n for n in attribute_names):
        return StatusCode.TABLE_CREATION_ATTRIBUTE_INVALID, []
    if len(set(attribute_names)) != len(attribute_names):
        return StatusCode.TABLE_CREATION_ATTRIBUTE_INVALID, []

    if not _is_sequence(primary_key_names) or len(primary_key_names) == 0:
        return StatusCode.TABLE_CREATION_NO_PRIMARY_KEY, []

    declared = set(attribute_names)
    if any(not isinstance(pk, str) or pk not in declared for pk in primary_key_names):
        return StatusCode.TABLE_CREATION_PRIMARY_KEY_NOT_FOUND, []

    types = [type_from_value(t) for t in attribute_types]
    if any(t is None for t in types):
        return StatusCode.ATTRIBUTE_TYPE_NOT_SUPPORTED, []

    return StatusCode.SUCCESS, types


# ─── Transactions ───────────────────────────────────────────────────────────
# Each function runs as one transaction (see transactions.retry).

@transactional
def _create_table(tr, namespace: NamespaceDirectory, table_name: str,
                  names: List[str], types: List[AttributeType],
                  primary_key_names: List[str]) -> StatusCode:
    if namespace.exists(tr, table_name):
        return StatusCode.TABLE_ALREADY_EXISTS

    table = namespace.create(tr, table_name)
    primary_keys = set(primary_key_names)
    for name, attr_type in zip(names, types):
        tr.set(table.pack(attribute_key(name)), encode_attribute(attr_type, name in primary_keys))
    tr.set(table.pack(ATTRIBUTE_LIST_KEY), encode_attribute_list(names))
    _touch(tr, namespace)
    return StatusCode.SUCCESS


@transactional
def _delete_table(tr, namespace: NamespaceDirectory, table_name: str) -> StatusCode:
    if not namespace.exists(tr, table_name):
        return StatusCode.TABLE_NOT_FOUND
    namespace.remove(tr, table_name)
    _touch(tr, namespace)
    return StatusCode.SUCCESS


@transactional
def _drop_all_tables(tr, namespace: NamespaceDirectory) -> int:
    names = namespace.list(tr)
    for name in names:
        namespace.remove(tr, name)
    if names:
        _touch(tr, namespace)
    return len(names)


@transactional
def _list_tables(tr, namespace: NamespaceDirectory,
                 cache: Optional[SchemaCache]) -> Dict[str, TableMetadata]:
    token = _read_token(tr, namespace)
    if cache is not None:
        cached = cache.get(token)
        if cached is not None:
            return cached

    tables = {}
    for name in namespace.list(tr):
        tables[name] = _read_table(tr, namespace.open(tr, name), name)

    if cache is not None:
        cache.put(token, tables)
    return tables


@transactional
def _describe_table(tr, namespace: NamespaceDirectory, table_name: str) -> Optional[TableMetadata]:
    if not namespace.exists(tr, table_name):
        return None
    return _read_table(tr, namespace.open(tr, table_name), table_name)


@transactional
def _add_attribute(tr, namespace: NamespaceDirectory, table_name: str,
                   attribute_name: str, attr_type: Optional[AttributeType]) -> StatusCode:
    if not namespace.exists(tr, table_name):
        return StatusCode.TABLE_NOT_FOUND
    if attr_type is None:
        return StatusCode.ATTRIBUTE_TYPE_NOT_SUPPORTED

    table = namespace.open(tr, table_name)
    record_key = table.pack(attribute_key(attribute_name))
    if tr.get(record_key) is not None:
        return StatusCode.ATTRIBUTE_ALREADY_EXISTS

    names = _read_attribute_list(tr, table, table_name)
    names.append(attribute_name)
    tr.set(record_key, encode_attribute(attr_type, False))
    tr.set(table.pack(ATTRIBUTE_LIST_KEY), encode_attribute_list(names))
    _touch(tr, namespace)
    return StatusCode.SUCCESS


@transactional
def _drop_attribute(tr, namespace: NamespaceDirectory, table_name: str,
                    attribute_name: str) -> StatusCode:
    if not namespace.exists(tr, table_name):
        return StatusCode.TABLE_NOT_FOUND

    table = namespace.open(tr, table_name)
    record_key = table.pack(attribute_key(attribute_name))
    if tr.get(record_key) is None:
        return StatusCode.ATTRIBUTE_NOT_FOUND

    names = [n for n in _read_attribute_list(tr, table, table_name) if n != attribute_name]
    tr.clear(record_key)
    tr.set(table.pack(ATTRIBUTE_LIST_KEY), encode_attribute_list(names))
    _touch(tr, namespace)
    return StatusCode.SUCCESS


# ─── Record helpers ─────────────────────────────────────────────────────────

def _read_attribute_list(tr, table, table_name: str) -> List[str]:
    raw = tr.get(table.pack(ATTRIBUTE_LIST_KEY))
    if raw is None:
        raise SchemaCorruptionError(f"Table '{table_name}' has no attribute list record")
    return decode_attribute_list(raw)


def _read_table(tr, table, table_name: str) -> TableMetadata:
    """Rebuild one table's metadata, checking list and records agree."""
    names = _read_attribute_list(tr, table, table_name)

    begin, end = table.range((ATTRIBUTE_RECORD_TAG,))
    records = {}
    for key, value in tr.get_range(begin, end):
        parts = table.unpack(key)
        if len(parts) != 2 or not isinstance(parts[1], str):
            raise SchemaCorruptionError(f"Table '{table_name}' has a malformed record key {parts!r}")
        records[parts[1]] = decode_attribute(value)

    if set(records) != set(names) or len(set(names)) != len(names):
        raise SchemaCorruptionError(
            f"Table '{table_name}': attribute list {names} does not match "
            f"attribute records {sorted(records)}")

    meta = TableMetadata()
    for name in names:
        attr_type, is_primary_key = records[name]
        meta.attribute_names.append(name)
        meta.attribute_types.append(attr_type)
        if is_primary_key:
            meta.primary_key_names.append(name)
    return meta


def _touch(tr, namespace: NamespaceDirectory) -> None:
    """Blind-write a fresh change token."""
    root = namespace.root(tr)
    tr.set(root.pack(CATALOG_VERSION_KEY), uuid.uuid4().bytes)


def _read_token(tr, namespace: NamespaceDirectory) -> Optional[bytes]:
    root = namespace.root_if_exists(tr)
    if root is None:
        return None
    return tr.get(root.pack(CATALOG_VERSION_KEY))
