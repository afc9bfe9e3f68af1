"""Database schema for the syssla_sync SQLite store.

Contains:
- Schema DDL (SCHEMA) and the wiki full-text index (WIKI_FTS_SCHEMA)
- Schema version tracking (SCHEMA_VERSION)
- Table allowlist (COLLECTION_TABLES, table_for)
- Database initialization (init_db)
"""

import logging
import sqlite3

from ..models import Collection

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 3

# Collection -> table name.  Only these names are ever interpolated into SQL.
COLLECTION_TABLES: dict[Collection, str] = {
    Collection.TASKS: "tasks",
    Collection.TIME_ENTRIES: "time_entries",
    Collection.CUSTOMERS: "customers",
    Collection.PROJECTS: "projects",
    Collection.WIKI: "wiki_entries",
}

SCHEMA = """
CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

-- Record tables keep the full wire document in `data` plus the columns
-- needed for filtering.
CREATE TABLE IF NOT EXISTS tasks (
    id TEXT PRIMARY KEY,
    source TEXT NOT NULL,
    created_at TEXT NOT NULL,
    completed_at TEXT,
    data TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_tasks_completed_at ON tasks(completed_at);

CREATE TABLE IF NOT EXISTS time_entries (
    id TEXT PRIMARY KEY,
    customer_id TEXT NOT NULL,
    start TEXT NOT NULL,
    data TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_time_entries_customer ON time_entries(customer_id);
CREATE INDEX IF NOT EXISTS idx_time_entries_start ON time_entries(start);

CREATE TABLE IF NOT EXISTS customers (
    id TEXT PRIMARY KEY,
    archived INTEGER NOT NULL DEFAULT 0,
    data TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS projects (
    id TEXT PRIMARY KEY,
    customer_id TEXT NOT NULL,
    data TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_projects_customer ON projects(customer_id);

CREATE TABLE IF NOT EXISTS wiki_entries (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    filename TEXT NOT NULL UNIQUE,
    content TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    synced_at TEXT
);

-- Single-row table: the running timer, if any.
CREATE TABLE IF NOT EXISTS active_timer (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    customer_id TEXT NOT NULL,
    project_id TEXT,
    note TEXT,
    start_time TEXT NOT NULL,
    paused_at TEXT,
    paused_duration INTEGER NOT NULL DEFAULT 0
);
"""

# External-content FTS5 table kept in step with wiki_entries by triggers.
WIKI_FTS_SCHEMA = """
CREATE VIRTUAL TABLE IF NOT EXISTS wiki_fts USING fts5(
    title,
    content,
    content='wiki_entries',
    content_rowid='rowid'
);

CREATE TRIGGER IF NOT EXISTS wiki_entries_ai AFTER INSERT ON wiki_entries BEGIN
    INSERT INTO wiki_fts(rowid, title, content)
    VALUES (new.rowid, new.title, new.content);
END;

CREATE TRIGGER IF NOT EXISTS wiki_entries_ad AFTER DELETE ON wiki_entries BEGIN
    INSERT INTO wiki_fts(wiki_fts, rowid, title, content)
    VALUES ('delete', old.rowid, old.title, old.content);
END;

CREATE TRIGGER IF NOT EXISTS wiki_entries_au AFTER UPDATE ON wiki_entries BEGIN
    INSERT INTO wiki_fts(wiki_fts, rowid, title, content)
    VALUES ('delete', old.rowid, old.title, old.content);
    INSERT INTO wiki_fts(rowid, title, content)
    VALUES (new.rowid, new.title, new.content);
END;
"""


def table_for(collection: Collection | str) -> str:
    """Return the table backing *collection*.

    Raises:
        ValueError: If *collection* is not a known collection name.
    """
    try:
        return COLLECTION_TABLES[Collection(collection)]
    except ValueError:
        raise ValueError(
            f"Unknown collection: '{collection}'. "
            f"Valid collections: {sorted(c.value for c in Collection)}"
        ) from None


def ensure_wiki_fts(conn: sqlite3.Connection) -> bool:
    """Create the wiki FTS5 index and its triggers.

    Returns:
        ``True`` when full-text search is available, ``False`` when the
        SQLite build lacks FTS5 (search then falls back to LIKE).
    """
    existing = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='wiki_fts'"
    ).fetchone()
    try:
        conn.executescript(WIKI_FTS_SCHEMA)
    except sqlite3.OperationalError as e:
        if "no such module: fts5" in str(e).lower():
            logger.warning(
                "FTS5 not available in this SQLite build - wiki search uses LIKE"
            )
            return False
        raise
    if existing is None:
        # Index rows that predate the FTS table
        conn.execute("INSERT INTO wiki_fts(wiki_fts) VALUES('rebuild')")
        logger.info("Built wiki_fts index")
    return True


def init_db(conn: sqlite3.Connection) -> bool:
    """Create all tables and record the schema version.

    Returns:
        Whether the wiki full-text index is available.
    """
    conn.executescript(SCHEMA)
    has_fts = ensure_wiki_fts(conn)
    row = conn.execute(
        "SELECT value FROM metadata WHERE key = 'schema_version'"
    ).fetchone()
    if row is None:
        conn.execute(
            "INSERT INTO metadata (key, value) VALUES ('schema_version', ?)",
            (str(SCHEMA_VERSION),),
        )
    elif int(row[0]) != SCHEMA_VERSION:
        logger.info(
            "Upgrading schema version %s -> %s", row[0], SCHEMA_VERSION
        )
        conn.execute(
            "UPDATE metadata SET value = ? WHERE key = 'schema_version'",
            (str(SCHEMA_VERSION),),
        )
    conn.commit()
    return has_fts
