"""
Schema Catalog Shell
====================
Entry point: run one command, a command script, or the interactive REPL
against a catalog store.

    python main.py [data_dir]                      REPL
    python main.py --execute "SHOW TABLES" [dir]   one command
    python main.py --file setup.ddl [dir]          script
"""

import logging
import os
import sys
from typing import Optional

from cli.renderer import Renderer
from cli.session import DEFAULT_ROOT, Session

DEFAULT_DATA_DIR = "catalog_data"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

USAGE = f"""Schema Catalog Shell

Usage:
    python main.py [options] [data_dir]

Options:
    --execute CMD     Run one command and exit
    --file PATH       Run a script (commands end with ;, -- starts a comment line)
    --root NAME       Catalog root directory inside the store (default: {DEFAULT_ROOT})
    --log-level LVL   DEBUG, INFO, WARNING or ERROR (default: WARNING)
    --memory          Keep the catalog in memory only
    --help            Show this help

data_dir defaults to ./{DEFAULT_DATA_DIR}. Inside the REPL, enter .help for commands."""

# Options that take a value, mapped to their key in the parsed settings.
_VALUE_OPTIONS = {
    "--execute": "execute",
    "--file": "script",
    "--root": "root",
    "--log-level": "log_level",
}


class UsageError(Exception):
    pass


def parse_args(argv) -> dict:
    """Turn argv (without the program name) into a settings dict."""
    settings = {
        "data_dir": None, "execute": None, "script": None,
        "root": DEFAULT_ROOT, "log_level": "WARNING", "memory": False, "help": False,
    }
    args = list(argv)
    while args:
        arg = args.pop(0)
        if arg in ("--help", "-h"):
            settings["help"] = True
        elif arg == "--memory":
            settings["memory"] = True
        elif arg in _VALUE_OPTIONS:
            if not args:
                raise UsageError(f"Option {arg} needs a value")
            settings[_VALUE_OPTIONS[arg]] = args.pop(0)
        elif arg.startswith("-"):
            raise UsageError(f"Unknown option: {arg}")
        elif settings["data_dir"] is None:
            settings["data_dir"] = arg
        else:
            raise UsageError(f"Unexpected argument: {arg}")

    settings["log_level"] = settings["log_level"].upper()
    if settings["memory"]:
        settings["data_dir"] = None
    elif settings["data_dir"] is None:
        settings["data_dir"] = os.path.join(os.getcwd(), DEFAULT_DATA_DIR)
    return settings


def execute_single(data_dir: Optional[str], root: str, text: str) -> int:
    """Run one command. Returns the process exit code."""
    with Session(data_dir, root=root) as session:
        return _run(session, Renderer(), text)


def execute_script(data_dir: Optional[str], root: str, script_path: str) -> int:
    """
    Run every command in a script file. Lines starting with -- are
    comments. A failing command stops the script; a rejected one does not.
    """
    if not os.path.isfile(script_path):
        print(f"Error: script file not found: {script_path}", file=sys.stderr)
        return 1

    with open(script_path, "r", encoding="utf-8") as f:
        text = "".join(line for line in f if not line.lstrip().startswith("--"))

    renderer = Renderer()
    with Session(data_dir, root=root) as session:
        for statement in filter(str.strip, text.split(";")):
            if _run(session, renderer, statement):
                print(f"Error in command: {statement.strip()[:80]}", file=sys.stderr)
                return 1
    return 0


def _run(session: Session, renderer: Renderer, text: str) -> int:
    try:
        rows, message, columns = session.execute(text)
    except Exception as e:
        renderer.render_error(e)
        return 1
    if rows is not None:
        renderer.render_rows(rows, columns)
    else:
        renderer.render_message(message)
    return 0


def main() -> None:
    try:
        settings = parse_args(sys.argv[1:])
    except UsageError as e:
        print(e, file=sys.stderr)
        print(USAGE, file=sys.stderr)
        sys.exit(2)

    if settings["help"]:
        print(USAGE)
        return

    logging.basicConfig(level=getattr(logging, settings["log_level"], logging.WARNING),
                        format=LOG_FORMAT)

    data_dir, root = settings["data_dir"], settings["root"]
    if settings["execute"]:
        sys.exit(execute_single(data_dir, root, settings["execute"]))
    if settings["script"]:
        sys.exit(execute_script(data_dir, root, settings["script"]))

    from cli.repl import REPL
    REPL(data_dir, root=root).run()


if __name__ == "__main__":
    main()
