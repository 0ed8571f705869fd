"""
Catalog Result Renderer
=======================
Prints catalog listings, mutation outcomes and errors.

Listing modes:
  table     boxed ASCII grid, columns sized to content (capped)
  vertical  one block per row, "name: value" lines
  raw       pipe-separated, for scripts

Booleans print as yes/no. Every listing ends with a row count.
"""

import sys
import time
from typing import Any, Dict, List, Optional, TextIO, Tuple, Type

from catalog.schema_codec import SchemaCorruptionError
from cli.commands import CommandError
from cli.session import SessionError
from storage.directory import DirectoryError
from storage.errors import CommitLogCorruptionError, StoreError

# First matching class wins, so subclasses go before their bases.
ERROR_PREFIXES: List[Tuple[Type[BaseException], str]] = [
    (CommandError, "SyntaxError"),
    (SessionError, "SessionError"),
    (SchemaCorruptionError, "CorruptionError"),
    (CommitLogCorruptionError, "CorruptionError"),
    (StoreError, "StoreError"),
    (DirectoryError, "StoreError"),
    (KeyboardInterrupt, "Interrupted"),
    (ValueError, "ExecutionError"),
    (TypeError, "ExecutionError"),
]

Row = Dict[str, Any]


class Renderer:
    """Writes results to `output` (stdout by default)."""

    MODES = ("table", "vertical", "raw")

    def __init__(self, output: Optional[TextIO] = None):
        self.output = output or sys.stdout
        self.mode = "table"
        self.show_headers = True
        self.show_timer = False
        self.max_col_width = 50

    # ─── Public API ─────────────────────────────────────────────────

    def render_rows(self, rows: List[Row], column_names: Optional[List[str]] = None) -> int:
        """Print a listing and its footer. Returns the number of rows."""
        started = time.perf_counter()
        columns = column_names or (list(rows[0]) if rows else [])
        cells = [[self._format_value(row.get(c)) for c in columns] for row in rows]

        draw = {"raw": self._draw_raw, "vertical": self._draw_vertical}.get(
            self.mode, self._draw_table)
        draw(columns, cells)

        footer = f"\n{len(rows)} row(s)"
        if self.show_timer:
            footer += f" ({time.perf_counter() - started:.3f}s)"
        self._print(footer)
        return len(rows)

    def render_message(self, message: str):
        if message:
            self._print(message)

    def render_error(self, error: BaseException):
        """Print `<Prefix>: <message>`, the prefix naming the kind of failure."""
        self._print(f"{self.error_prefix(error)}: {error}")

    @staticmethod
    def error_prefix(error: BaseException) -> str:
        for error_class, prefix in ERROR_PREFIXES:
            if isinstance(error, error_class):
                return prefix
        return f"Error[{type(error).__name__}]"

    # ─── Modes ──────────────────────────────────────────────────────

    def _draw_table(self, columns: List[str], cells: List[List[str]]):
        if not columns:
            return
        cells = [[self._clip(v) for v in line] for line in cells]
        widths = [min(len(c), self.max_col_width) for c in columns]
        for line in cells:
            widths = [max(w, len(v)) for w, v in zip(widths, line)]

        rule = "+" + "+".join("-" * (w + 2) for w in widths) + "+"

        def boxed(values):
            return "|" + "|".join(f" {v:<{w}} " for v, w in zip(values, widths)) + "|"

        if self.show_headers:
            self._print(rule)
            self._print(boxed([self._clip(c) for c in columns]))
            self._print(rule)
        for line in cells:
            self._print(boxed(line))
        if self.show_headers and cells:
            self._print(rule)

    def _draw_vertical(self, columns: List[str], cells: List[List[str]]):
        label_width = max((len(c) for c in columns), default=0)
        for number, line in enumerate(cells, start=1):
            self._print(f"*** Row {number} ***")
            for column, value in zip(columns, line):
                self._print(f"  {column:>{label_width}}: {value}")

    def _draw_raw(self, columns: List[str], cells: List[List[str]]):
        if self.show_headers and columns:
            self._print("|".join(columns))
        for line in cells:
            self._print("|".join(line))

    # ─── Helpers ────────────────────────────────────────────────────

    def _clip(self, text: str) -> str:
        if len(text) > self.max_col_width:
            return text[:self.max_col_width - 3] + "..."
        return text

    @staticmethod
    def _format_value(value) -> str:
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return "yes" if value else "no"
        return str(value)

    def _print(self, text: str):
        print(text, file=self.output)
