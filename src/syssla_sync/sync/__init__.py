"""Snapshot sync engine.

Public API for reconciling the local store with a remote document store
(a GitHub repository holding JSON and Markdown files).

Architecture
------------
Every run works on **full snapshots**: all remote partitions of a
collection are fetched, merged record by record with the local collection,
and only the partitions whose canonical encoding changed are written back,
each guarded by the version tag read at the start of the run.

Modules:

- ``engine``    -- ``SyncOrchestrator``: per-collection sync cycle.
- ``codec``     -- ``SnapshotCodec`` subclasses: records <-> partition files.
- ``merger``    -- ``reconcile()`` and ``find_dirty_partitions()``.
- ``resolver``  -- Tie-break strategies (remote-wins, local-wins).
- ``state``     -- ``SyncState``: load/save JSON state files.
- ``models``    -- ``SyncStage``, ``SyncStatus``, ``MergeStats``,
  ``PartitionResult``, ``SyncReport``.
- ``reporter``  -- Human-readable and JSON report formatting.

Usage example
-------------
::

    from syssla_sync.core import GitHubContentsClient, env_credentials
    from syssla_sync.storage import LocalStore
    from syssla_sync.sync import SyncOrchestrator, SyncState, format_sync_report

    with LocalStore(".syssla/syssla.db") as store:
        orchestrator = SyncOrchestrator(
            store,
            lambda target: GitHubContentsClient(target, env_credentials()),
            state_store=SyncState(".syssla"),
        )
        for report in orchestrator.sync_all():
            print(format_sync_report(report))
"""

from .codec import FetchedPartition, SnapshotCodec, default_codecs
from .engine import SYNC_ORDER, SyncOrchestrator
from .merger import MergeOutcome, find_dirty_partitions, policy_for, reconcile
from .models import (
    MergeStats,
    PartitionResult,
    SyncReport,
    SyncStage,
    SyncStatus,
)
from .reporter import (
    format_sync_report,
    format_sync_reports,
    format_sync_status,
    report_to_json,
)
from .resolver import create_tie_breaker
from .state import SyncState

__all__ = [
    "FetchedPartition",
    "MergeOutcome",
    "MergeStats",
    "PartitionResult",
    "SYNC_ORDER",
    "SnapshotCodec",
    "SyncOrchestrator",
    "SyncReport",
    "SyncStage",
    "SyncState",
    "SyncStatus",
    "create_tie_breaker",
    "default_codecs",
    "find_dirty_partitions",
    "format_sync_report",
    "format_sync_reports",
    "format_sync_status",
    "policy_for",
    "reconcile",
    "report_to_json",
]
