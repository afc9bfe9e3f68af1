"""Record-level merge of a local snapshot with a remote snapshot.

``reconcile()`` is pure: it takes two lists of records and returns the
merged set plus statistics.  It never touches the store or the network.

Resolution rules, per key present on both sides:

* tasks: a local completion beats a remote copy that is still open;
* everything else: last-writer-wins on the record's merge timestamp
  (``updated_at``, falling back to ``created_at``/``start``), with the tie
  breaker deciding equal timestamps;
* wiki notes: equal content keeps the local entry; otherwise a note edited
  since its last sync wins, else the remote content is adopted.

Records present on one side only are always kept.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import cast

from pydantic import ValidationError

from ..models import (
    COLLECTION_MODELS,
    Collection,
    Record,
    Task,
    TimeEntry,
    WikiEntry,
    utc_now,
)
from ..validators import describe_validation_error
from .codec import FetchedPartition, SnapshotCodec, wiki_file_content
from .models import MergeStats
from .resolver import RemoteWinsTieBreaker, TieBreaker

logger = logging.getLogger(__name__)

# Resolution labels counted into MergeStats.
UNCHANGED = "unchanged"
LOCAL = "local_wins"
REMOTE = "remote_wins"
COMPLETION = "completion_wins"


@dataclass(frozen=True)
class MergeOutcome:
    """Result of reconciling two snapshots.

    Attributes:
        merged: Deduplicated, deterministically ordered records.
        stats: How each record was resolved.
        dropped: Descriptions of records discarded as invalid.
    """

    merged: list[Record]
    stats: MergeStats
    dropped: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class DirtyPartition:
    """A partition whose merged content differs from the remote file."""

    path: str
    content: str
    version_tag: str | None
    record_count: int


class RecordMergePolicy:
    """Last-writer-wins keyed on ``id``."""

    def __init__(self, model: type[Record]) -> None:
        self.model = model

    def key(self, record: Record) -> str:
        return record.id  # type: ignore[attr-defined]

    def sort_key(self, record: Record) -> tuple:
        return (self.key(record),)

    def normalize(self, record: Record) -> Record:
        return record

    def resolve(
        self,
        local: Record,
        remote: Record,
        tie_breaker: TieBreaker,
        now: datetime,
    ) -> tuple[Record, str]:
        """Pick the surviving copy and the label describing why."""
        if local == remote:
            return local, UNCHANGED
        local_ts = local.merge_timestamp
        remote_ts = remote.merge_timestamp
        # A missing timestamp compares lower than any present one
        if local_ts is None and remote_ts is None:
            winner = tie_breaker.choose(local, remote)
        elif local_ts is None:
            winner = remote
        elif remote_ts is None:
            winner = local
        elif remote_ts > local_ts:
            winner = remote
        elif local_ts > remote_ts:
            winner = local
        else:
            winner = tie_breaker.choose(local, remote)
        return winner, (LOCAL if winner is local else REMOTE)


class TaskMergePolicy(RecordMergePolicy):
    """Last-writer-wins, except that a local completion is never undone."""

    def __init__(self) -> None:
        super().__init__(Task)

    def sort_key(self, record: Record) -> tuple:
        task = cast(Task, record)
        return (task.created_at, task.id)

    def resolve(
        self,
        local: Record,
        remote: Record,
        tie_breaker: TieBreaker,
        now: datetime,
    ) -> tuple[Record, str]:
        if cast(Task, local).is_completed and not cast(Task, remote).is_completed:
            return local, COMPLETION
        return super().resolve(local, remote, tie_breaker, now)


class TimeEntryMergePolicy(RecordMergePolicy):
    """Last-writer-wins with duration upkeep.

    A winner whose span differs from the losing copy gets its duration
    recomputed from start and end; so does a finished entry with no
    duration.  Durations of untouched spans are kept, since a stopped
    timer excludes paused time from them.
    """

    def __init__(self) -> None:
        super().__init__(TimeEntry)

    def sort_key(self, record: Record) -> tuple:
        entry = cast(TimeEntry, record)
        return (entry.start, entry.id)

    def resolve(
        self,
        local: Record,
        remote: Record,
        tie_breaker: TieBreaker,
        now: datetime,
    ) -> tuple[Record, str]:
        winner, label = super().resolve(local, remote, tie_breaker, now)
        kept = cast(TimeEntry, winner)
        lost = cast(TimeEntry, remote if winner is local else local)
        if (kept.start, kept.end) != (lost.start, lost.end):
            winner = _with_duration(kept)
        return winner, label

    def normalize(self, record: Record) -> Record:
        entry = cast(TimeEntry, record)
        if entry.duration_minutes is None:
            return _with_duration(entry)
        return record


def _with_duration(entry: TimeEntry) -> TimeEntry:
    duration = entry.computed_duration()
    if duration is None or duration == entry.duration_minutes:
        return entry
    return entry.model_copy(update={"duration_minutes": duration})


class WikiMergePolicy(RecordMergePolicy):
    """Notes are matched by filename and resolved on content."""

    def __init__(self) -> None:
        super().__init__(WikiEntry)

    def key(self, record: Record) -> str:
        return cast(WikiEntry, record).filename

    def resolve(
        self,
        local: Record,
        remote: Record,
        tie_breaker: TieBreaker,
        now: datetime,
    ) -> tuple[Record, str]:
        if local == remote:
            return local, UNCHANGED
        mine = cast(WikiEntry, local)
        theirs = cast(WikiEntry, remote)
        # Compare what each side writes; a blank note is written as its heading
        if wiki_file_content(mine) == wiki_file_content(theirs):
            if mine.has_unsynced_changes:
                return mine.model_copy(update={"synced_at": now}), UNCHANGED
            return mine, UNCHANGED
        if mine.has_unsynced_changes:
            return mine, LOCAL
        adopted = mine.model_copy(
            update={
                "title": theirs.title,
                "content": theirs.content,
                "updated_at": now,
                "synced_at": now,
            }
        )
        return adopted, REMOTE


_POLICIES = {
    Collection.TASKS: TaskMergePolicy,
    Collection.TIME_ENTRIES: TimeEntryMergePolicy,
    Collection.WIKI: WikiMergePolicy,
}


def policy_for(collection: Collection | str) -> RecordMergePolicy:
    collection = Collection(collection)
    factory = _POLICIES.get(collection)
    if factory is not None:
        return factory()
    return RecordMergePolicy(COLLECTION_MODELS[collection])


def _validated(
    records: Iterable[Record],
    policy: RecordMergePolicy,
    side: str,
    dropped: list[str],
) -> list[Record]:
    """Re-validate *records*, moving invalid ones into *dropped*."""
    valid: list[Record] = []
    for record in records:
        try:
            valid.append(policy.model.model_validate(record.model_dump()))
        except ValidationError as e:
            description = (
                f"{side} {policy.model.__name__} "
                f"{getattr(record, 'id', '?')}: {describe_validation_error(e)}"
            )
            logger.warning("Dropping invalid record: %s", description)
            dropped.append(description)
    return valid


def reconcile(
    local: Iterable[Record],
    remote: Iterable[Record],
    policy: RecordMergePolicy,
    tie_breaker: TieBreaker | None = None,
    now: datetime | None = None,
) -> MergeOutcome:
    """Merge a local and a remote snapshot of one collection.

    Args:
        local: Records from the local store.
        remote: Records decoded from every fetched partition.
        policy: Collection-specific key and resolution rules.
        tie_breaker: Decides equal timestamps (default: remote wins).
        now: Timestamp used for wiki sync bookkeeping.

    Returns:
        ``MergeOutcome`` whose ``merged`` list is keyed uniquely and sorted.
    """
    tie_breaker = tie_breaker or RemoteWinsTieBreaker()
    now = now or utc_now()
    dropped: list[str] = []
    counts: Counter[str] = Counter()

    by_key: dict[str, Record] = {}
    for record in _validated(local, policy, "local", dropped):
        by_key[policy.key(record)] = record
    local_keys = set(by_key)
    remote_keys: set[str] = set()

    for remote_record in _validated(remote, policy, "remote", dropped):
        key = policy.key(remote_record)
        remote_keys.add(key)
        existing = by_key.get(key)
        if existing is None:
            by_key[key] = remote_record
            counts["adopted"] += 1
            continue
        winner, label = policy.resolve(existing, remote_record, tie_breaker, now)
        by_key[key] = winner
        counts[label] += 1

    counts["retained"] = len(local_keys - remote_keys)

    merged: list[Record] = []
    for record in by_key.values():
        normalized = policy.normalize(record)
        if normalized is not record:
            counts["normalized"] += 1
        merged.append(normalized)
    merged.sort(key=policy.sort_key)

    stats = MergeStats(dropped=len(dropped), **counts)
    logger.debug("Merged %d records: %s", len(merged), stats.model_dump())
    return MergeOutcome(merged=merged, stats=stats, dropped=dropped)


def snapshots_equal(
    left: Iterable[Record], right: Iterable[Record], policy: RecordMergePolicy
) -> bool:
    """Whether two snapshots hold the same records, ignoring order."""
    left_map = {policy.key(r): r for r in left}
    right_map = {policy.key(r): r for r in right}
    return left_map == right_map


def find_dirty_partitions(
    merged: list[Record],
    fetched: dict[str, FetchedPartition],
    codec: SnapshotCodec,
) -> list[DirtyPartition]:
    """Partitions whose merged encoding differs from what was fetched.

    A partition absent remotely is dirty only if it now has records.  A
    partition that existed remotely but ends up empty is rewritten (as
    ``[]`` for JSON collections).
    """
    dirty: list[DirtyPartition] = []
    for path, records in sorted(codec.partition(merged, fetched).items()):
        content = codec.encode(records)
        if content is None:
            continue
        previous = fetched.get(path)
        if previous is None:
            if records:
                dirty.append(DirtyPartition(path, content, None, len(records)))
            continue
        if content != codec.encode(previous.records):
            dirty.append(
                DirtyPartition(path, content, previous.version_tag, len(records))
            )
    return dirty
