"""Pydantic models for sync runs.

Defines the data contracts produced by the sync orchestrator:

- ``SyncStage``: Per-collection state machine stage.
- ``SyncStatus``: Overall outcome of one run.
- ``MergeStats``: How the merge resolved each record.
- ``PartitionResult``: Outcome of writing one remote partition.
- ``SyncReport``: Aggregate result of one collection's sync run.

All models are frozen (immutable) for safety.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

from ..models import Collection


class SyncStage(str, Enum):
    """Stage of a collection's sync state machine."""

    IDLE = "idle"
    FETCHING = "fetching"
    MERGING = "merging"
    COMMITTING_LOCAL = "committing_local"
    COMMITTING_REMOTE = "committing_remote"
    FAILED = "failed"


class SyncStatus(str, Enum):
    """Overall outcome of a sync run.

    ``PARTIAL`` means the merge was committed locally but at least one
    remote partition could not be written.
    """

    OK = "ok"
    PARTIAL = "partial"
    FAILED = "failed"


class MergeStats(BaseModel):
    """Counts of how records were resolved during a merge.

    Attributes:
        adopted: Remote-only records added locally.
        retained: Local-only records kept as-is.
        unchanged: Records identical (or equivalent) on both sides.
        local_wins: Conflicts resolved in favour of the local copy.
        remote_wins: Conflicts resolved in favour of the remote copy.
        completion_wins: Local completions kept over an open remote copy.
        normalized: Records rewritten by normalisation (e.g. durations).
        dropped: Records discarded because they failed validation.
    """

    adopted: int = 0
    retained: int = 0
    unchanged: int = 0
    local_wins: int = 0
    remote_wins: int = 0
    completion_wins: int = 0
    normalized: int = 0
    dropped: int = 0

    model_config = {"frozen": True}


class PartitionResult(BaseModel):
    """Result of pushing one dirty partition.

    Attributes:
        path: Remote file path.
        written: Whether the write succeeded.
        record_count: Number of records in the partition.
        version_tag: New version tag after a successful write.
        error: Error message if the write failed.
    """

    path: str
    written: bool
    record_count: int = 0
    version_tag: str | None = None
    error: str | None = None

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Aggregate report for one collection's sync run.

    Attributes:
        collection: The synced collection.
        status: ``ok``, ``partial`` or ``failed``.
        started_at: ISO 8601 timestamp when the run started.
        completed_at: ISO 8601 timestamp when the run ended.
        failed_stage: Stage where the run stopped, if it failed.
        error_type: Exception class name of the failure.
        error: Error message of the failure.
        stats: Merge statistics of the last attempt.
        local_changed: Whether the local store was rewritten.
        partitions: Per-partition write results.
        attempts: Fetch/merge attempts (more than one after conflicts).
    """

    collection: Collection
    status: SyncStatus
    started_at: str
    completed_at: str | None = None
    failed_stage: SyncStage | None = None
    error_type: str | None = None
    error: str | None = None
    stats: MergeStats = MergeStats()
    local_changed: bool = False
    partitions: list[PartitionResult] = []
    attempts: int = 0

    model_config = {"frozen": True}

    @property
    def written(self) -> list[PartitionResult]:
        """Partitions successfully pushed."""
        return [p for p in self.partitions if p.written]

    @property
    def failed_partitions(self) -> list[PartitionResult]:
        """Partitions whose write failed."""
        return [p for p in self.partitions if not p.written]

    @property
    def is_noop(self) -> bool:
        """True when nothing changed locally or remotely."""
        return (
            self.status == SyncStatus.OK
            and not self.local_changed
            and not self.partitions
        )
