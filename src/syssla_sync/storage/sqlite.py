"""SQLite-backed local store.

``LocalStore`` owns every record.  It is constructed explicitly with a
database path, opened once at application start and closed at shutdown;
there is no module-level connection.

Records other than wiki entries are stored as their wire JSON document in a
``data`` column next to the few columns used for filtering.  Wiki entries use
explicit columns so the FTS5 index can follow them through triggers.

Every mutating call returns the canonical state it produced.
"""

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import threading
from collections.abc import Iterable, Iterator
from datetime import datetime
from pathlib import Path
from typing import Any

from ..errors import LocalStoreError, NotFound
from ..models import (
    COLLECTION_MODELS,
    ActiveTimerSession,
    Collection,
    Customer,
    Project,
    Record,
    SyncTarget,
    Task,
    TimeEntry,
    WikiEntry,
    collection_of,
    format_timestamp,
)
from .schema import init_db, table_for

logger = logging.getLogger(__name__)

# Filter keys accepted by list(), per collection.
_FILTERS: dict[Collection, frozenset[str]] = {
    Collection.TASKS: frozenset({"completed", "source"}),
    Collection.TIME_ENTRIES: frozenset(
        {"customer_id", "start_from", "start_to"}
    ),
    Collection.CUSTOMERS: frozenset({"archived"}),
    Collection.PROJECTS: frozenset({"customer_id"}),
    Collection.WIKI: frozenset(),
}


def _ts(value: datetime | None) -> str | None:
    return format_timestamp(value) if value is not None else None


def _row_values(collection: Collection, record: Record) -> dict[str, Any]:
    """Column values for *record* (excluding wiki, handled separately)."""
    data = json.dumps(record.to_wire(), sort_keys=True)
    match record:
        case Task():
            return {
                "id": record.id,
                "source": record.source.value,
                "created_at": _ts(record.created_at),
                "completed_at": _ts(record.completed_at),
                "data": data,
            }
        case TimeEntry():
            return {
                "id": record.id,
                "customer_id": record.customer_id,
                "start": _ts(record.start),
                "data": data,
            }
        case Customer():
            return {
                "id": record.id,
                "archived": int(record.archived),
                "data": data,
            }
        case Project():
            return {
                "id": record.id,
                "customer_id": record.customer_id,
                "data": data,
            }
        case WikiEntry():
            return {
                "id": record.id,
                "title": record.title,
                "filename": record.filename,
                "content": record.content,
                "created_at": _ts(record.created_at),
                "updated_at": _ts(record.updated_at),
                "synced_at": _ts(record.synced_at),
            }
    raise ValueError(
        f"Unsupported record for {collection.value}: {type(record).__name__}"
    )


def _row_to_record(collection: Collection, row: sqlite3.Row) -> Record:
    if collection == Collection.WIKI:
        return WikiEntry(
            id=row["id"],
            title=row["title"],
            filename=row["filename"],
            content=row["content"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            synced_at=row["synced_at"],
        )
    model = COLLECTION_MODELS[collection]
    return model.model_validate(json.loads(row["data"]))


class LocalStore:
    """Explicit handle on the local SQLite database.

    Args:
        path: Database file path, or ``":memory:"``.

    Usage::

        with LocalStore(Path("syssla.db")) as store:
            store.insert(task)
    """

    def __init__(self, path: Path | str) -> None:
        self.path = str(path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self.has_fts = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> LocalStore:
        """Open the connection and create the schema if needed."""
        if self._conn is not None:
            return self
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = sqlite3.connect(self.path, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA busy_timeout=5000")
            if self.path != ":memory:":
                conn.execute("PRAGMA journal_mode=WAL")
            self.has_fts = init_db(conn)
        except sqlite3.Error as e:
            raise LocalStoreError(
                f"Cannot open local store {self.path}: {e}"
            ) from e
        self._conn = conn
        logger.debug("Opened local store %s", self.path)
        return self

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.debug("Closed local store %s", self.path)

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def __enter__(self) -> LocalStore:
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()

    @contextlib.contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Serialize access, commit on success and roll back on error.

        ``sqlite3.Error`` is re-raised as ``LocalStoreError``.
        """
        with self._lock:
            if self._conn is None:
                raise LocalStoreError("Local store is not open")
            conn = self._conn
            try:
                yield conn
                conn.commit()
            except sqlite3.Error as e:
                logger.debug("Transaction failed, rolling back: %s", e)
                conn.rollback()
                raise LocalStoreError(str(e)) from e
            except Exception:
                conn.rollback()
                raise

    # ------------------------------------------------------------------
    # Record CRUD
    # ------------------------------------------------------------------

    def list(
        self,
        collection: Collection | str,
        filter: dict[str, Any] | None = None,
    ) -> list[Record]:
        """List records of *collection*, optionally filtered.

        Supported filter keys:
            tasks: ``completed`` (bool), ``source``
            time_entries: ``customer_id``, ``start_from``, ``start_to``
            customers: ``archived`` (bool)
            projects: ``customer_id``

        Raises:
            ValueError: On an unknown collection or filter key.
        """
        table = table_for(collection)
        collection = Collection(collection)
        where, params = self._build_filter(collection, filter or {})
        order = (
            "updated_at DESC, filename"
            if collection == Collection.WIKI
            else "id"
        )
        sql = f"SELECT * FROM {table}"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += f" ORDER BY {order}"
        with self._transaction() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_row_to_record(collection, row) for row in rows]

    def get(
        self, collection: Collection | str, record_id: str
    ) -> Record | None:
        table = table_for(collection)
        with self._transaction() as conn:
            row = conn.execute(
                f"SELECT * FROM {table} WHERE id = ?", (record_id,)
            ).fetchone()
        if row is None:
            return None
        return _row_to_record(Collection(collection), row)

    def insert(self, record: Record) -> Record:
        """Insert a new record.

        Raises:
            LocalStoreError: If a record with the same id (or wiki filename)
                already exists.
        """
        collection = collection_of(record)
        with self._transaction() as conn:
            self._insert_row(conn, collection, record)
        return record

    def update(self, record: Record) -> Record:
        """Replace an existing record.

        Raises:
            NotFound: If no record with this id exists.
        """
        collection = collection_of(record)
        table = table_for(collection)
        values = _row_values(collection, record)
        assignments = ", ".join(f"{col} = :{col}" for col in values if col != "id")
        with self._transaction() as conn:
            cursor = conn.execute(
                f"UPDATE {table} SET {assignments} WHERE id = :id", values
            )
            if cursor.rowcount == 0:
                raise NotFound(collection.value, record.id)
        return record

    def delete(self, collection: Collection | str, record_id: str) -> Record:
        """Delete a record and return it.

        Raises:
            NotFound: If no record with this id exists.
        """
        table = table_for(collection)
        collection = Collection(collection)
        with self._transaction() as conn:
            row = conn.execute(
                f"SELECT * FROM {table} WHERE id = ?", (record_id,)
            ).fetchone()
            if row is None:
                raise NotFound(collection.value, record_id)
            conn.execute(f"DELETE FROM {table} WHERE id = ?", (record_id,))
        return _row_to_record(collection, row)

    def replace_all(
        self, collection: Collection | str, records: Iterable[Record]
    ) -> list[Record]:
        """Atomically replace every record of *collection*.

        The delete and all inserts run in one transaction; on any failure
        the previous contents are kept.

        Raises:
            LocalStoreError: If the transaction fails.
            ValueError: If a record does not belong to *collection*.
        """
        collection = Collection(collection)
        table = table_for(collection)
        records = list(records)
        model = COLLECTION_MODELS[collection]
        for record in records:
            if type(record) is not model:
                raise ValueError(
                    f"Cannot store {type(record).__name__} in {collection.value}"
                )
        with self._transaction() as conn:
            conn.execute(f"DELETE FROM {table}")
            for record in records:
                self._insert_row(conn, collection, record)
        logger.debug(
            "Replaced %s with %d records", collection.value, len(records)
        )
        return records

    def _insert_row(
        self, conn: sqlite3.Connection, collection: Collection, record: Record
    ) -> None:
        table = table_for(collection)
        values = _row_values(collection, record)
        columns = ", ".join(values)
        placeholders = ", ".join(f":{col}" for col in values)
        try:
            conn.execute(
                f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
                values,
            )
        except sqlite3.IntegrityError as e:
            raise LocalStoreError(
                f"Cannot insert {collection.value} record '{record.id}': {e}"
            ) from e

    def _build_filter(
        self, collection: Collection, filter: dict[str, Any]
    ) -> tuple[list[str], list[Any]]:
        unknown = set(filter) - _FILTERS[collection]
        if unknown:
            raise ValueError(
                f"Unsupported filter for {collection.value}: {sorted(unknown)}"
            )
        where: list[str] = []
        params: list[Any] = []
        for key, value in filter.items():
            if value is None:
                continue
            match key:
                case "completed":
                    where.append(
                        "completed_at IS NOT NULL"
                        if value
                        else "completed_at IS NULL"
                    )
                case "source":
                    where.append("source = ?")
                    params.append(getattr(value, "value", value))
                case "customer_id":
                    where.append("customer_id = ?")
                    params.append(value)
                case "start_from":
                    where.append("start >= ?")
                    params.append(format_timestamp(value))
                case "start_to":
                    where.append("start < ?")
                    params.append(format_timestamp(value))
                case "archived":
                    where.append("archived = ?")
                    params.append(int(bool(value)))
        return where, params

    # ------------------------------------------------------------------
    # Wiki helpers
    # ------------------------------------------------------------------

    def get_wiki_by_filename(self, filename: str) -> WikiEntry | None:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM wiki_entries WHERE filename = ?", (filename,)
            ).fetchone()
        if row is None:
            return None
        return _row_to_record(Collection.WIKI, row)  # type: ignore[return-value]

    def search_wiki(
        self, query: str, limit: int = 50
    ) -> list[tuple[WikiEntry, str | None]]:
        """Full-text search over wiki titles and content.

        Each whitespace-separated term is matched as a prefix.  An empty
        query lists all entries.

        Returns:
            List of ``(entry, snippet)`` tuples, best match first.  The
            snippet marks matches with ``**`` and is ``None`` when the
            query was empty.
        """
        terms = [t for t in query.split() if t]
        if not terms:
            return [(e, None) for e in self.list(Collection.WIKI)][:limit]  # type: ignore[misc]

        if self.has_fts:
            match = " ".join(
                '"' + t.replace('"', '""') + '"*' for t in terms
            )
            sql = (
                "SELECT w.*, snippet(wiki_fts, 1, '**', '**', '...', 12) AS snip "
                "FROM wiki_fts JOIN wiki_entries w ON w.rowid = wiki_fts.rowid "
                "WHERE wiki_fts MATCH ? ORDER BY rank LIMIT ?"
            )
            params: list[Any] = [match, limit]
        else:
            clauses = []
            params = []
            for t in terms:
                clauses.append("(title LIKE ? OR content LIKE ?)")
                params.extend([f"%{t}%", f"%{t}%"])
            sql = (
                "SELECT *, NULL AS snip FROM wiki_entries WHERE "
                + " AND ".join(clauses)
                + " ORDER BY updated_at DESC LIMIT ?"
            )
            params.append(limit)

        with self._transaction() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [
            (_row_to_record(Collection.WIKI, row), row["snip"])  # type: ignore[misc]
            for row in rows
        ]

    def mark_wiki_synced(
        self, filenames: Iterable[str], at: datetime
    ) -> int:
        """Set ``synced_at`` on entries whose file was just pushed.

        Returns:
            Number of entries updated.
        """
        stamp = format_timestamp(at)
        count = 0
        with self._transaction() as conn:
            for filename in filenames:
                cursor = conn.execute(
                    "UPDATE wiki_entries SET synced_at = ? WHERE filename = ?",
                    (stamp, filename),
                )
                count += cursor.rowcount
        return count

    # ------------------------------------------------------------------
    # Active timer
    # ------------------------------------------------------------------

    def get_active_timer(self) -> ActiveTimerSession | None:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM active_timer WHERE id = 1"
            ).fetchone()
        if row is None:
            return None
        return ActiveTimerSession(
            customer_id=row["customer_id"],
            project_id=row["project_id"],
            note=row["note"],
            start_time=row["start_time"],
            paused_at=row["paused_at"],
            paused_duration_ms=row["paused_duration"],
        )

    def save_active_timer(
        self, session: ActiveTimerSession
    ) -> ActiveTimerSession:
        with self._transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO active_timer "
                "(id, customer_id, project_id, note, start_time, paused_at, paused_duration) "
                "VALUES (1, ?, ?, ?, ?, ?, ?)",
                (
                    session.customer_id,
                    session.project_id,
                    session.note,
                    format_timestamp(session.start_time),
                    _ts(session.paused_at),
                    session.paused_duration_ms,
                ),
            )
        return session

    def clear_active_timer(self) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM active_timer WHERE id = 1")

    def finish_timer(self, entry: TimeEntry) -> TimeEntry:
        """Store *entry* and clear the active session in one transaction."""
        with self._transaction() as conn:
            self._insert_row(conn, Collection.TIME_ENTRIES, entry)
            conn.execute("DELETE FROM active_timer WHERE id = 1")
        return entry

    # ------------------------------------------------------------------
    # Sync target
    # ------------------------------------------------------------------

    def get_sync_target(self) -> SyncTarget | None:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT value FROM metadata WHERE key = 'sync_target'"
            ).fetchone()
        if row is None:
            return None
        return SyncTarget.model_validate_json(row["value"])

    def set_sync_target(self, target: SyncTarget | None) -> SyncTarget | None:
        """Persist (or clear, with ``None``) the remote sync target."""
        with self._transaction() as conn:
            if target is None:
                conn.execute("DELETE FROM metadata WHERE key = 'sync_target'")
            else:
                conn.execute(
                    "INSERT OR REPLACE INTO metadata (key, value) "
                    "VALUES ('sync_target', ?)",
                    (target.model_dump_json(),),
                )
        return target
