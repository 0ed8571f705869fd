"""
Catalog Interactive REPL
========================
Prompt loop over a Session.

  - Commands may span lines and end with ;
  - Lines starting with . are meta-commands, run immediately
  - Ctrl+C drops the pending input, Ctrl+D (EOF) exits
  - History persists in ~/.catalog_history when readline is available
"""

import os
import sys
from typing import Callable, Dict, Optional

from cli.renderer import Renderer
from cli.session import DEFAULT_ROOT, Session

HISTORY_FILE = os.path.expanduser("~/.catalog_history")
HISTORY_MAX = 1000

try:
    import readline
    _HAS_READLINE = True
except ImportError:
    try:
        import pyreadline3 as readline
        _HAS_READLINE = True
    except ImportError:
        _HAS_READLINE = False

HELP_TEXT = """Meta-commands:
  .tables                   Table names
  .schema [TABLE]           Attributes, types and primary keys
  .mode table|vertical|raw  Listing style (default: table)
  .headers on|off           Column headers in listings
  .stats                    Session counters
  .help                     This text
  .quit                     Leave (also .exit, .q)

Commands (end with ;):
  CREATE TABLE t (col TYPE, ...) PRIMARY KEY (col, ...)
  DROP TABLE t
  DROP ALL TABLES
  ALTER TABLE t ADD [COLUMN] col TYPE
  ALTER TABLE t DROP [COLUMN] col
  SHOW TABLES
  DESCRIBE t

Types: INT, VARCHAR, DOUBLE"""


def _history(action: str) -> None:
    """Load or save readline history; unreadable files are ignored."""
    if not _HAS_READLINE:
        return
    try:
        if action == "load":
            if os.path.exists(HISTORY_FILE):
                readline.read_history_file(HISTORY_FILE)
        else:
            readline.set_history_length(HISTORY_MAX)
            readline.write_history_file(HISTORY_FILE)
    except OSError:
        pass


class REPL:
    """
    Usage:
        REPL("path/to/data").run()
    """

    PROMPT = "catalog> "
    CONTINUATION = "    ...> "

    def __init__(self, data_dir: Optional[str], *, root: str = DEFAULT_ROOT):
        self.data_dir = data_dir
        self.root = root
        self.session: Optional[Session] = None
        self.renderer = Renderer()
        self._running = False
        self._meta: Dict[str, Callable[[str], None]] = {
            ".help": lambda _: self._out(HELP_TEXT),
            ".tables": self._cmd_tables,
            ".schema": self._cmd_schema,
            ".mode": self._cmd_mode,
            ".headers": self._cmd_headers,
            ".stats": self._cmd_stats,
            ".quit": self._cmd_quit,
            ".exit": self._cmd_quit,
            ".q": self._cmd_quit,
        }

    def run(self):
        try:
            self.session = Session(self.data_dir, root=self.root)
        except Exception as e:
            print(f"Error: cannot open catalog at '{self.data_dir}': {e}", file=sys.stderr)
            return

        _history("load")
        print("Schema Catalog Shell")
        print(f"Store: {self.data_dir or '(in-memory)'}  Root: {self.root}")
        print('Enter ".help" for usage hints.\n')

        pending = ""
        self._running = True
        try:
            while self._running:
                try:
                    line = input(self.CONTINUATION if pending else self.PROMPT).strip()
                except KeyboardInterrupt:
                    print()
                    pending = ""
                    continue
                except EOFError:
                    print()
                    break

                if not line:
                    continue
                if not pending and line.startswith("."):
                    self.handle_meta_command(line)
                    continue

                pending = f"{pending} {line}".strip()
                *statements, pending = pending.split(";")
                pending = pending.strip()
                for statement in statements:
                    if statement.strip():
                        self.execute_statement(statement)
        finally:
            _history("save")
            self._shutdown()

    # ─── Statements ─────────────────────────────────────────────────

    def execute_statement(self, text: str):
        """Run one command and print its outcome; errors are printed, not raised."""
        try:
            rows, message, columns = self.session.execute(text)
        except Exception as e:
            self.renderer.render_error(e)
            return
        if rows is not None:
            self.renderer.render_rows(rows, columns)
        else:
            self.renderer.render_message(message)

    # ─── Meta-Commands ──────────────────────────────────────────────

    def handle_meta_command(self, line: str):
        name, _, arg = line.partition(" ")
        handler = self._meta.get(name.lower())
        if handler is None:
            self._out(f"Unknown command: {name}. Enter .help for the list.")
            return
        handler(arg.strip())

    def _cmd_quit(self, _arg: str):
        self._running = False

    def _cmd_tables(self, _arg: str):
        names = sorted(self.session.manager.list_tables())
        self._out("\n".join(f"  {n}" for n in names) if names else "No tables.")

    def _cmd_schema(self, table_name: str):
        tables = self.session.manager.list_tables()
        if table_name and table_name not in tables:
            self._out(f"Table '{table_name}' not found.")
            return
        names = [table_name] if table_name else sorted(tables)
        if not names:
            self._out("No tables.")
        for name in names:
            meta = tables[name]
            self._out(f"Table: {name}")
            for attr, attr_type in zip(meta.attribute_names, meta.attribute_types):
                marker = " PRIMARY KEY" if meta.is_primary_key(attr) else ""
                self._out(f"  {attr:<20} {attr_type.value:<10}{marker}")

    def _cmd_mode(self, arg: str):
        mode = arg.lower()
        if mode in Renderer.MODES:
            self.renderer.mode = mode
            self._out(f"Output mode: {mode}")
        else:
            self._out(f"Usage: .mode {'|'.join(Renderer.MODES)} (current: {self.renderer.mode})")

    def _cmd_headers(self, arg: str):
        switch = {"on": True, "off": False}.get(arg.lower())
        if switch is not None:
            self.renderer.show_headers = switch
        self._out(f"Headers {'ON' if self.renderer.show_headers else 'OFF'}")

    def _cmd_stats(self, _arg: str):
        stats = self.session.stats
        self._out(f"Commands executed: {stats['commands_executed']}\n"
                  f"Commands rejected: {stats['commands_rejected']}\n"
                  f"Store version:     {self.session.store.version}")

    # ─── Helpers ────────────────────────────────────────────────────

    def _out(self, text: str):
        print(text, file=self.renderer.output)

    def _shutdown(self):
        if self.session is not None:
            self.session.close()
            print("Goodbye.")
