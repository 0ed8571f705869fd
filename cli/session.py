"""
Catalog Session
===============
Per-connection state object that wires the store and the catalog.

Owns:
  - KVStore (in-memory, or durable in data_dir)
  - TableManager rooted at one directory path

execute() returns (rows, message, column_names):
  - rows: list of dicts for SHOW TABLES / DESCRIBE, else None
  - message: outcome of a mutation, else None
"""

import logging
import os
from typing import Any, Dict, List, Optional, Tuple

from catalog.table_manager import TableManager
from catalog.types import StatusCode, TableMetadata
from cli.commands import (
    AddAttributeCommand, CreateTableCommand, DescribeCommand, DropAllTablesCommand,
    DropAttributeCommand, DropTableCommand, ShowTablesCommand, parse_command,
)
from storage.kv_store import KVStore

logger = logging.getLogger(__name__)

DEFAULT_ROOT = "root"

Result = Tuple[Optional[List[Dict[str, Any]]], Optional[str], Optional[List[str]]]


class SessionError(Exception):
    """Session-level error (use after close, etc.)."""
    pass


class Session:
    """
    Catalog session: owns the store for one connection.

    Usage:
        with Session("path/to/data") as session:
            session.execute("CREATE TABLE t (id INT) PRIMARY KEY (id)")
            rows, _, cols = session.execute("SHOW TABLES")
    """

    def __init__(self, data_dir: Optional[str] = None, *, root: str = DEFAULT_ROOT,
                 cache_enabled: bool = True):
        self.data_dir = os.path.abspath(data_dir) if data_dir else None
        self.store = KVStore(self.data_dir)
        self.manager = TableManager(self.store, root_path=(root,),
                                    cache_enabled=cache_enabled)
        self.stats = {
            "commands_executed": 0,
            "commands_rejected": 0,
        }
        self._closed = False
        logger.debug("Session opened (data_dir=%s, root=%s)", self.data_dir, root)

    # ─── Execution ──────────────────────────────────────────────────

    def execute(self, text: str) -> Result:
        """Parse and run one command."""
        if self._closed:
            raise SessionError("Session is closed")

        cmd = parse_command(text)
        self.stats["commands_executed"] += 1

        if isinstance(cmd, ShowTablesCommand):
            return self._show_tables()
        if isinstance(cmd, DescribeCommand):
            return self._describe(cmd.table)

        if isinstance(cmd, CreateTableCommand):
            status = self.manager.create_table(
                cmd.table,
                [name for name, _ in cmd.columns],
                [type_name for _, type_name in cmd.columns],
                cmd.primary_key,
            )
            return None, self._message(status, f"Table '{cmd.table}' created."), None

        if isinstance(cmd, DropTableCommand):
            status = self.manager.delete_table(cmd.table)
            return None, self._message(status, f"Table '{cmd.table}' dropped."), None

        if isinstance(cmd, DropAllTablesCommand):
            status = self.manager.drop_all_tables()
            return None, self._message(status, "All tables dropped."), None

        if isinstance(cmd, AddAttributeCommand):
            status = self.manager.add_attribute(cmd.table, cmd.attribute, cmd.type_name)
            return None, self._message(
                status, f"Attribute '{cmd.attribute}' added to '{cmd.table}'."), None

        if isinstance(cmd, DropAttributeCommand):
            status = self.manager.drop_attribute(cmd.table, cmd.attribute)
            return None, self._message(
                status, f"Attribute '{cmd.attribute}' dropped from '{cmd.table}'."), None

        raise SessionError(f"Unsupported command: {type(cmd).__name__}")

    def _show_tables(self) -> Result:
        columns = ["table", "attribute", "type", "primary_key"]
        rows = []
        tables = self.manager.list_tables()
        for name in sorted(tables):
            attrs = _attribute_rows(tables[name])
            if not attrs:
                # A table whose last attribute was dropped still exists.
                attrs = [{"attribute": None, "type": None, "primary_key": None}]
            for attr in attrs:
                rows.append({"table": name, **attr})
        return rows, None, columns

    def _describe(self, table_name: str) -> Result:
        meta = self.manager.describe_table(table_name)
        if meta is None:
            return None, self._message(StatusCode.TABLE_NOT_FOUND, ""), None
        return _attribute_rows(meta), None, ["attribute", "type", "primary_key"]

    def _message(self, status: StatusCode, success_text: str) -> str:
        if status is StatusCode.SUCCESS:
            return success_text
        self.stats["commands_rejected"] += 1
        return f"Rejected: {status.value}"

    # ─── Lifecycle ──────────────────────────────────────────────────

    def close(self) -> None:
        if self._closed:
            return
        self.store.close()
        self._closed = True

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


def _attribute_rows(meta: TableMetadata) -> List[Dict[str, Any]]:
    return [
        {"attribute": name, "type": attr_type.value, "primary_key": meta.is_primary_key(name)}
        for name, attr_type in zip(meta.attribute_names, meta.attribute_types)
    ]
