"""Snapshot codecs: records <-> remote partition files.

Each synced collection is stored remotely as a set of partition files:

* tasks: ``todos/active.json`` and ``todos/completed/YYYY-MM.json``
* time entries: ``timeentries/YYYY-MM-DD.json`` (UTC start day)
* customers: ``customers/customers.json``
* projects: ``customers/projects.json``
* wiki: ``wiki/<filename>`` (one Markdown file per note)

JSON partitions are arrays of wire-format records, written canonically
(sorted, two-space indent, trailing newline) so that unchanged data encodes
to byte-identical files.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import cast

from pydantic import ValidationError

from ..core.client import RemoteDocumentClient
from ..errors import DecodeError
from ..models import (
    Collection,
    Customer,
    Project,
    Record,
    Task,
    TimeEntry,
    WikiEntry,
    utc_now,
)
from ..validators import describe_validation_error
from ..wiki import WIKI_ROOT, extract_title, filename_stem, wiki_id_for

logger = logging.getLogger(__name__)


def wiki_file_content(entry: WikiEntry) -> str:
    """File body written for *entry*; a blank note is written as its heading."""
    if not entry.content.strip():
        return f"# {entry.title}\n"
    return entry.content


@dataclass(frozen=True)
class FetchedPartition:
    """A remote partition as read at the start of a sync attempt.

    Attributes:
        path: Remote file path.
        records: Decoded records (empty if decoding failed).
        version_tag: Version tag to guard the next write with.
        decode_failed: True when the file could not be parsed.
    """

    path: str
    records: list[Record] = field(default_factory=list)
    version_tag: str | None = None
    decode_failed: bool = False


class SnapshotCodec:
    """Base class for collection codecs."""

    collection: Collection
    model: type[Record]

    def discover(self, client: RemoteDocumentClient) -> list[str]:
        """Return the remote paths that may hold partitions."""
        raise NotImplementedError

    def partition_path(self, record: Record) -> str | None:
        """Remote path *record* belongs to, or ``None`` if it stays local."""
        raise NotImplementedError

    def encode(self, records: list[Record]) -> str | None:
        """Serialize one partition; ``None`` means nothing to write."""
        raise NotImplementedError

    def decode(self, path: str, content: str) -> list[Record]:
        """Parse one partition.

        Raises:
            DecodeError: If the whole file is unreadable.
        """
        raise NotImplementedError

    def sort_key(self, record: Record) -> tuple:
        return (record.id,)  # type: ignore[attr-defined]

    def partition(
        self,
        records: Iterable[Record],
        fetched: dict[str, FetchedPartition] | None = None,
    ) -> dict[str, list[Record]]:
        """Group *records* by partition path.

        Every fetched path is present in the result, so a partition whose
        records all moved away maps to an empty list.
        """
        groups: dict[str, list[Record]] = {path: [] for path in fetched or {}}
        for record in records:
            path = self.partition_path(record)
            if path is not None:
                groups.setdefault(path, []).append(record)
        return groups

    def fetch(self, client: RemoteDocumentClient) -> dict[str, FetchedPartition]:
        """Read and decode every existing partition.

        Unparseable partitions are logged and returned empty with
        ``decode_failed`` set; their version tag is kept so the next write
        can replace them.
        """
        fetched: dict[str, FetchedPartition] = {}
        for path in self.discover(client):
            try:
                remote = client.read_file(path)
            except DecodeError as e:
                logger.warning("Skipping undecodable partition %s: %s", path, e)
                continue
            if remote is None:
                continue
            try:
                records = self.decode(path, remote.content)
            except DecodeError as e:
                logger.warning("Treating %s as empty: %s", path, e)
                fetched[path] = FetchedPartition(
                    path, [], remote.version_tag, decode_failed=True
                )
                continue
            fetched[path] = FetchedPartition(path, records, remote.version_tag)
        logger.debug(
            "Fetched %d %s partitions", len(fetched), self.collection.value
        )
        return fetched


class JsonArrayCodec(SnapshotCodec):
    """Codec for collections stored as JSON arrays of records."""

    def encode(self, records: list[Record]) -> str | None:
        ordered = sorted(
            (r for r in records if self.accepts(r)), key=self.sort_key
        )
        payload = [record.to_wire() for record in ordered]
        return json.dumps(payload, indent=2, ensure_ascii=False) + "\n"

    def decode(self, path: str, content: str) -> list[Record]:
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise DecodeError(f"Malformed JSON in {path}: {e}", path=path) from e
        if not isinstance(data, list):
            raise DecodeError(
                f"Expected a JSON array in {path}, got {type(data).__name__}",
                path=path,
            )
        records: list[Record] = []
        for index, item in enumerate(data):
            try:
                record = self.model.model_validate(item)
            except ValidationError as e:
                logger.warning(
                    "Dropping invalid record #%d in %s: %s",
                    index,
                    path,
                    describe_validation_error(e),
                )
                continue
            if not self.accepts(record):
                logger.warning(
                    "Dropping record #%d in %s: not storable remotely",
                    index,
                    path,
                )
                continue
            records.append(record)
        return records

    def accepts(self, record: Record) -> bool:
        """Whether *record* may appear in a remote partition."""
        return True


class FixedPathCodec(JsonArrayCodec):
    """Codec for collections stored in one file."""

    path: str

    def discover(self, client: RemoteDocumentClient) -> list[str]:
        return [self.path]

    def partition_path(self, record: Record) -> str | None:
        return self.path


class TaskCodec(JsonArrayCodec):
    """Active tasks in one file, completed tasks by completion month."""

    collection = Collection.TASKS
    model = Task

    ACTIVE_PATH = "todos/active.json"
    COMPLETED_DIR = "todos/completed"

    def discover(self, client: RemoteDocumentClient) -> list[str]:
        paths = [self.ACTIVE_PATH]
        for entry in client.list_directory(self.COMPLETED_DIR):
            if entry.type == "file" and entry.name.endswith(".json"):
                paths.append(entry.path)
        return paths

    def partition_path(self, record: Record) -> str | None:
        completed_at = cast(Task, record).completed_at
        if completed_at is None:
            return self.ACTIVE_PATH
        month = completed_at.astimezone(timezone.utc).strftime("%Y-%m")
        return f"{self.COMPLETED_DIR}/{month}.json"

    def sort_key(self, record: Record) -> tuple:
        task = cast(Task, record)
        return (task.created_at, task.id)

    def partition(
        self,
        records: Iterable[Record],
        fetched: dict[str, FetchedPartition] | None = None,
    ) -> dict[str, list[Record]]:
        """Group tasks, keeping completed history the batch does not mention.

        A completed task found in a fetched month file whose id appears
        nowhere in *records* is carried over, so history that was never
        loaded locally is not erased by the rewrite.
        """
        records = list(records)
        groups = super().partition(records, fetched)
        known_ids = {r.id for r in records}  # type: ignore[attr-defined]
        for path, partition in (fetched or {}).items():
            if not path.startswith(self.COMPLETED_DIR + "/"):
                continue
            for record in partition.records:
                if record.id not in known_ids:  # type: ignore[attr-defined]
                    groups[path].append(record)
                    known_ids.add(record.id)  # type: ignore[attr-defined]
        return groups


class TimeEntryCodec(JsonArrayCodec):
    """Finished time entries, one file per UTC start day."""

    collection = Collection.TIME_ENTRIES
    model = TimeEntry

    ROOT = "timeentries"

    def discover(self, client: RemoteDocumentClient) -> list[str]:
        return [
            entry.path
            for entry in client.list_directory(self.ROOT)
            if entry.type == "file" and entry.name.endswith(".json")
        ]

    def partition_path(self, record: Record) -> str | None:
        entry = cast(TimeEntry, record)
        if entry.is_running:
            return None
        day = entry.start.astimezone(timezone.utc).strftime("%Y-%m-%d")
        return f"{self.ROOT}/{day}.json"

    def sort_key(self, record: Record) -> tuple:
        entry = cast(TimeEntry, record)
        return (entry.start, entry.id)

    def accepts(self, record: Record) -> bool:
        return not cast(TimeEntry, record).is_running


class CustomerCodec(FixedPathCodec):
    collection = Collection.CUSTOMERS
    model = Customer
    path = "customers/customers.json"


class ProjectCodec(FixedPathCodec):
    collection = Collection.PROJECTS
    model = Project
    path = "customers/projects.json"


class WikiCodec(SnapshotCodec):
    """One Markdown file per note under ``wiki/``.

    Args:
        clock: Timestamps notes first seen remotely.
    """

    collection = Collection.WIKI
    model = WikiEntry

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self.clock = clock

    def discover(self, client: RemoteDocumentClient) -> list[str]:
        paths: list[str] = []
        pending = [WIKI_ROOT]
        while pending:
            directory = pending.pop()
            for entry in client.list_directory(directory):
                if entry.type == "dir":
                    pending.append(entry.path)
                elif entry.name.endswith(".md"):
                    paths.append(entry.path)
        return sorted(paths)

    def partition_path(self, record: Record) -> str | None:
        return f"{WIKI_ROOT}/{cast(WikiEntry, record).filename}"

    def sort_key(self, record: Record) -> tuple:
        return (cast(WikiEntry, record).filename,)

    def encode(self, records: list[Record]) -> str | None:
        if not records:
            return None
        return wiki_file_content(cast(WikiEntry, records[0]))

    def decode(self, path: str, content: str) -> list[Record]:
        filename = path[len(WIKI_ROOT) + 1 :]
        now = self.clock()
        try:
            entry = WikiEntry(
                id=wiki_id_for(filename),
                title=extract_title(content, default=filename_stem(filename)),
                filename=filename,
                content=content,
                created_at=now,
                updated_at=now,
                synced_at=now,
            )
        except ValidationError as e:
            raise DecodeError(
                f"Invalid wiki file {path}: {describe_validation_error(e)}",
                path=path,
            ) from e
        return [entry]


def default_codecs(
    clock: Callable[[], datetime] = utc_now,
) -> dict[Collection, SnapshotCodec]:
    """One codec instance per synced collection."""
    return {
        Collection.TASKS: TaskCodec(),
        Collection.TIME_ENTRIES: TimeEntryCodec(),
        Collection.CUSTOMERS: CustomerCodec(),
        Collection.PROJECTS: ProjectCodec(),
        Collection.WIKI: WikiCodec(clock),
    }
