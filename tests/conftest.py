import io
import sqlite3
from contextlib import redirect_stderr, redirect_stdout
from dataclasses import dataclass

import fncli
import pytest

from clido import config, db
from clido.cli import main
from clido.store import SqliteStore
from clido.workspace import Workspace


@dataclass
class Result:
    exit_code: int
    stdout: str
    stderr: str


class FnCLIRunner:
    """Runs `clido` in-process and captures what it prints."""

    def invoke(self, args: list[str]) -> Result:
        out, err = io.StringIO(), io.StringIO()
        code = 0
        with redirect_stdout(out), redirect_stderr(err):
            try:
                main(args)
            except SystemExit as e:
                code = e.code if isinstance(e.code, int) else (0 if e.code is None else 1)
        return Result(code, out.getvalue(), err.getvalue())


@pytest.fixture
def tmp_clido_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "DB_PATH", tmp_path / "data.db")
    monkeypatch.setattr(config, "BACKUP_DIR", tmp_path / "backups")
    monkeypatch.setattr(config, "CONFIG_PATH", tmp_path / "config.yaml")
    monkeypatch.setattr(fncli, "_TIMING_LOG", tmp_path / "cli_timings.jsonl")
    monkeypatch.setenv("NO_COLOR", "1")
    monkeypatch.delenv("CLIDO_LOG_LEVEL", raising=False)
    config.Config.reset()
    db.init()
    yield tmp_path
    config.Config.reset()


@pytest.fixture
def conn(tmp_clido_dir):
    connection = db._connect(config.DB_PATH)
    yield connection
    connection.close()


@pytest.fixture
def store(conn):
    return SqliteStore(conn)


@pytest.fixture
def workspace(store):
    ws = Workspace(store)
    ws.load()
    return ws


@pytest.fixture
def memory_conn():
    """A migrated in-memory database, for tests that never touch disk."""
    connection = sqlite3.connect(":memory:")
    connection.execute("PRAGMA foreign_keys = ON;")
    connection.execute(
        f"CREATE TABLE {db.MIGRATIONS_TABLE} "
        "(id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT NOT NULL UNIQUE, applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP)"
    )
    for _name, script in db.load_migrations():
        connection.executescript(script)
    yield connection
    connection.close()
