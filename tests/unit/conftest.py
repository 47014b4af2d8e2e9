"""
Shared fixtures for the board store unit tests.

Provides a temporary SQLite database with the board store schema plus the
roster tables the search and listing queries join against, a deterministic
clock and a children store that records cascades.
"""

import os
import tempfile

import pytest

from boardstore.database import SqliteDatabase
from boardstore.dialect import SqliteDialect
from boardstore.store import SQLStore

ROSTER_SQL = """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT NOT NULL PRIMARY KEY,
        roles TEXT NOT NULL DEFAULT ''
    );

    CREATE TABLE IF NOT EXISTS bots (
        user_id TEXT NOT NULL PRIMARY KEY
    );

    CREATE TABLE IF NOT EXISTS channel_members (
        channel_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        PRIMARY KEY (channel_id, user_id)
    );

    CREATE TABLE IF NOT EXISTS team_members (
        team_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        delete_at INTEGER NOT NULL DEFAULT 0,
        PRIMARY KEY (team_id, user_id)
    );
"""


class FakeClock:
    """Unix ms clock that advances on every read."""

    def __init__(self, start: int = 1_700_000_000_000, step: int = 1000) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> int:
        self.now += self.step
        return self.now


class RecordingChildren:
    """ChildrenStore that remembers every cascade."""

    def __init__(self) -> None:
        self.deleted = []
        self.undeleted = []

    def delete_children(self, conn, board_id, user_id):
        self.deleted.append((board_id, user_id))

    def undelete_children(self, conn, board_id, user_id):
        self.undeleted.append((board_id, user_id))


class RosterSeeder:
    """Writes users and memberships into the roster tables."""

    def __init__(self, database: SqliteDatabase) -> None:
        self.database = database

    def _run(self, sql, args):
        with self.database.transaction() as conn:
            conn.execute(sql, args)

    def user(self, user_id, roles="system_user", bot=False):
        self._run("INSERT INTO users (id, roles) VALUES (?, ?)", (user_id, roles))
        if bot:
            self._run("INSERT INTO bots (user_id) VALUES (?)", (user_id,))

    def channel_member(self, channel_id, user_id):
        self._run(
            "INSERT INTO channel_members (channel_id, user_id) VALUES (?, ?)",
            (channel_id, user_id),
        )

    def team_member(self, team_id, user_id, delete_at=0):
        self._run(
            "INSERT INTO team_members (team_id, user_id, delete_at) VALUES (?, ?, ?)",
            (team_id, user_id, delete_at),
        )


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def database(data_dir):
    """SQLite database with board store and roster tables."""
    db = SqliteDatabase(os.path.join(data_dir, "boards.db"), wal_mode=False)
    db.initialize()
    with db.connection() as conn:
        conn.executescript(ROSTER_SQL)
    return db


@pytest.fixture
def dialect():
    return SqliteDialect()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def children():
    return RecordingChildren()


@pytest.fixture
def roster(database):
    return RosterSeeder(database)


@pytest.fixture
def store(database, dialect, children, clock):
    """Store wired to the temporary database."""
    return SQLStore(database, dialect, children=children, clock=clock)
