"""
Catalog Command Parser
======================
Parses the shell's small DDL language into command objects.

Grammar (keywords case-insensitive, optional trailing ;):
  CREATE TABLE t (col TYPE, ...) [PRIMARY KEY (col, ...)]
  DROP TABLE t
  DROP ALL TABLES
  ALTER TABLE t ADD [COLUMN] col TYPE
  ALTER TABLE t DROP [COLUMN] col
  SHOW TABLES
  DESCRIBE t | DESC t

Identifiers are bare words ([A-Za-z_][A-Za-z0-9_]*) or "double quoted".
Type names are passed through unchecked; the catalog decides whether a
type is supported.
"""

import re
from dataclasses import dataclass, field
from typing import List, Tuple, Union


class CommandError(Exception):
    """Raised when a command cannot be parsed."""
    pass


@dataclass
class CreateTableCommand:
    table: str
    columns: List[Tuple[str, str]] = field(default_factory=list)
    primary_key: List[str] = field(default_factory=list)


@dataclass
class DropTableCommand:
    table: str


@dataclass
class DropAllTablesCommand:
    pass


@dataclass
class AddAttributeCommand:
    table: str
    attribute: str
    type_name: str


@dataclass
class DropAttributeCommand:
    table: str
    attribute: str


@dataclass
class ShowTablesCommand:
    pass


@dataclass
class DescribeCommand:
    table: str


Command = Union[CreateTableCommand, DropTableCommand, DropAllTablesCommand,
                AddAttributeCommand, DropAttributeCommand, ShowTablesCommand,
                DescribeCommand]

_IDENT = r'(?:[A-Za-z_][A-Za-z0-9_]*|"[^"]+")'
_FLAGS = re.IGNORECASE | re.DOTALL

_CREATE = re.compile(
    rf'^CREATE\s+TABLE\s+({_IDENT})\s*\(([^()]*)\)'
    rf'(?:\s*PRIMARY\s+KEY\s*\(([^()]*)\))?$', _FLAGS)
_DROP_ALL = re.compile(r'^DROP\s+ALL\s+TABLES$', _FLAGS)
_DROP_TABLE = re.compile(rf'^DROP\s+TABLE\s+({_IDENT})$', _FLAGS)
_ALTER_ADD = re.compile(
    rf'^ALTER\s+TABLE\s+({_IDENT})\s+ADD\s+(?:COLUMN\s+)?({_IDENT})\s+(\w+)$', _FLAGS)
_ALTER_DROP = re.compile(
    rf'^ALTER\s+TABLE\s+({_IDENT})\s+DROP\s+(?:COLUMN\s+)?({_IDENT})$', _FLAGS)
_SHOW = re.compile(r'^SHOW\s+TABLES$', _FLAGS)
_DESCRIBE = re.compile(rf'^(?:DESCRIBE|DESC)\s+({_IDENT})$', _FLAGS)


def parse_command(text: str) -> Command:
    """Parse one command. Raises CommandError on bad input."""
    stmt = text.strip()
    if stmt.endswith(";"):
        stmt = stmt[:-1].rstrip()
    if not stmt:
        raise CommandError("Empty command")

    m = _CREATE.match(stmt)
    if m:
        columns = [_parse_column(c) for c in _split_list(m.group(2), "column list")]
        primary_key = []
        if m.group(3) is not None:
            primary_key = [_ident(p) for p in _split_list(m.group(3), "primary key")]
        return CreateTableCommand(_ident(m.group(1)), columns, primary_key)

    if _DROP_ALL.match(stmt):
        return DropAllTablesCommand()

    m = _DROP_TABLE.match(stmt)
    if m:
        return DropTableCommand(_ident(m.group(1)))

    m = _ALTER_ADD.match(stmt)
    if m:
        return AddAttributeCommand(_ident(m.group(1)), _ident(m.group(2)), m.group(3))

    m = _ALTER_DROP.match(stmt)
    if m:
        return DropAttributeCommand(_ident(m.group(1)), _ident(m.group(2)))

    if _SHOW.match(stmt):
        return ShowTablesCommand()

    m = _DESCRIBE.match(stmt)
    if m:
        return DescribeCommand(_ident(m.group(1)))

    keyword = stmt.split(None, 1)[0].upper()
    raise CommandError(f"Unrecognized command near '{keyword}'")


def _split_list(body: str, what: str) -> List[str]:
    parts = [p.strip() for p in body.split(",")]
    if not body.strip() or any(not p for p in parts):
        raise CommandError(f"Malformed {what}: ({body.strip()})")
    return parts


def _parse_column(text: str) -> Tuple[str, str]:
    m = re.match(rf'^({_IDENT})\s+(\w+)$', text, _FLAGS)
    if not m:
        raise CommandError(f"Expected 'name TYPE', got {text!r}")
    return _ident(m.group(1)), m.group(2)


def _ident(token: str) -> str:
    token = token.strip()
    if re.fullmatch(_IDENT, token) is None:
        raise CommandError(f"Invalid identifier {token!r}")
    if token.startswith('"'):
        return token[1:-1]
    return token
