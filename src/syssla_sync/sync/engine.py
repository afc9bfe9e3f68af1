"""Sync orchestrator: one fetch/merge/commit cycle per collection.

``SyncOrchestrator.sync(collection)`` walks a collection through

    IDLE -> FETCHING -> MERGING -> COMMITTING_LOCAL -> COMMITTING_REMOTE -> IDLE

1. Fetch every remote partition with its version tag.
2. Merge the remote snapshot with the local one (pure, in memory).
3. Replace the local collection in one transaction if the merge changed it.
4. Push only dirty partitions, each guarded by the tag read in step 1.
5. Persist the outcome in the collection's sync state file.

A version-tag conflict re-runs the cycle from step 1, a bounded number of
times.  Local commits are never rolled back: the remote store is a copy,
the local store is the source of truth.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from datetime import datetime

from ..core.client import RemoteDocumentClient
from ..errors import (
    Conflict,
    LocalStoreError,
    NotConfigured,
    RemoteError,
    RemoteUnavailable,
    SyncAlreadyInProgress,
    SysslaError,
    Unauthenticated,
)
from ..models import Collection, SyncTarget, format_timestamp, utc_now
from ..storage import LocalStore
from .codec import FetchedPartition, SnapshotCodec, default_codecs
from .merger import (
    DirtyPartition,
    find_dirty_partitions,
    policy_for,
    reconcile,
    snapshots_equal,
)
from .models import (
    MergeStats,
    PartitionResult,
    SyncReport,
    SyncStage,
    SyncStatus,
)
from .resolver import TieBreaker, create_tie_breaker
from .state import SyncState

logger = logging.getLogger(__name__)

ClientFactory = Callable[[SyncTarget], RemoteDocumentClient]

# Customers before projects before time entries, so references resolve
# in the order a reader of the remote repository would expect.
SYNC_ORDER = (
    Collection.CUSTOMERS,
    Collection.PROJECTS,
    Collection.TASKS,
    Collection.TIME_ENTRIES,
    Collection.WIKI,
)


class _Failure(Exception):
    """Internal signal carrying the stage and cause of a failed cycle."""

    def __init__(self, stage: SyncStage, cause: Exception):
        super().__init__(str(cause))
        self.stage = stage
        self.cause = cause


class SyncOrchestrator:
    """Drive sync cycles for the synced collections.

    Args:
        store: Open local store.
        client_factory: Builds a remote client for the persisted target.
        state_store: Where per-collection sync state is kept (optional).
        tie_breaker: ``"remote-wins"``, ``"local-wins"`` or an instance.
        max_conflict_retries: Re-fetch/re-merge rounds after a conflict.
        clock: Returns the current UTC time.
        codecs: Codec per collection (defaults to ``default_codecs()``).
    """

    def __init__(
        self,
        store: LocalStore,
        client_factory: ClientFactory,
        state_store: SyncState | None = None,
        tie_breaker: str | TieBreaker = "remote-wins",
        max_conflict_retries: int = 1,
        clock: Callable[[], datetime] = utc_now,
        codecs: dict[Collection, SnapshotCodec] | None = None,
    ) -> None:
        self.store = store
        self.client_factory = client_factory
        self.state_store = state_store
        self.tie_breaker = (
            create_tie_breaker(tie_breaker)
            if isinstance(tie_breaker, str)
            else tie_breaker
        )
        self.max_conflict_retries = max_conflict_retries
        self.clock = clock
        self.codecs = codecs or default_codecs(clock)
        self._locks = {c: threading.Lock() for c in Collection}
        self._stages = {c: SyncStage.IDLE for c in Collection}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def stage(self, collection: Collection | str) -> SyncStage:
        """Current state-machine stage of *collection*."""
        return self._stages[Collection(collection)]

    def sync_all(
        self, collections: Iterable[Collection | str] | None = None
    ) -> list[SyncReport]:
        """Sync collections one after another.

        A failure in one collection does not stop the others.

        Raises:
            NotConfigured: If no sync target is set.
        """
        self._require_target()
        reports: list[SyncReport] = []
        for collection in collections or SYNC_ORDER:
            try:
                reports.append(self.sync(collection))
            except SyncAlreadyInProgress as e:
                now = format_timestamp(self.clock())
                reports.append(
                    SyncReport(
                        collection=Collection(collection),
                        status=SyncStatus.FAILED,
                        started_at=now,
                        completed_at=now,
                        error_type=type(e).__name__,
                        error=str(e),
                    )
                )
        return reports

    def sync(self, collection: Collection | str) -> SyncReport:
        """Run one sync cycle for *collection*.

        Raises:
            NotConfigured: If no sync target is set.
            SyncAlreadyInProgress: If the collection is already syncing.
        """
        collection = Collection(collection)
        target = self._require_target()
        lock = self._locks[collection]
        if not lock.acquire(blocking=False):
            raise SyncAlreadyInProgress(collection.value)
        try:
            return self._run(collection, target)
        finally:
            self._stages[collection] = SyncStage.IDLE
            lock.release()

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def _require_target(self) -> SyncTarget:
        target = self.store.get_sync_target()
        if target is None:
            raise NotConfigured(
                "No sync target configured. Use sync_configure or set "
                "SYSSLA_REPO_OWNER and SYSSLA_REPO_NAME."
            )
        return target

    def _enter(self, collection: Collection, stage: SyncStage) -> None:
        logger.debug("%s: %s", collection.value, stage.value)
        self._stages[collection] = stage

    def _run(self, collection: Collection, target: SyncTarget) -> SyncReport:
        started_at = format_timestamp(self.clock())
        codec = self.codecs[collection]
        policy = policy_for(collection)
        state = self._load_state(collection)
        logger.info(
            "Syncing %s with %s@%s",
            collection.value,
            target.full_name,
            target.branch,
        )

        results: dict[str, PartitionResult] = {}
        stats = MergeStats()
        local_changed = False
        attempts = 0
        error: Exception | None = None
        failed_stage: SyncStage | None = None

        try:
            client = self.client_factory(target)
            while True:
                attempts += 1

                self._enter(collection, SyncStage.FETCHING)
                try:
                    fetched = codec.fetch(client)
                except SysslaError as e:
                    raise _Failure(SyncStage.FETCHING, e) from e

                self._enter(collection, SyncStage.MERGING)
                try:
                    local = self.store.list(collection)
                except LocalStoreError as e:
                    raise _Failure(SyncStage.MERGING, e) from e
                remote = [r for p in fetched.values() for r in p.records]
                outcome = reconcile(
                    local, remote, policy, self.tie_breaker, self.clock()
                )
                stats = outcome.stats

                self._enter(collection, SyncStage.COMMITTING_LOCAL)
                if not snapshots_equal(local, outcome.merged, policy):
                    try:
                        self.store.replace_all(collection, outcome.merged)
                    except LocalStoreError as e:
                        raise _Failure(SyncStage.COMMITTING_LOCAL, e) from e
                    local_changed = True
                    logger.info(
                        "%s: local store updated (%d records)",
                        collection.value,
                        len(outcome.merged),
                    )

                self._enter(collection, SyncStage.COMMITTING_REMOTE)
                self._record_fetched(state, fetched, codec)
                dirty = find_dirty_partitions(outcome.merged, fetched, codec)
                conflict, error = self._push(
                    client, collection, dirty, results, state
                )
                if error is None and conflict is not None:
                    if attempts <= self.max_conflict_retries:
                        logger.info(
                            "%s: %s changed remotely, re-merging (attempt %d)",
                            collection.value,
                            conflict.path,
                            attempts + 1,
                        )
                        continue
                    error = conflict
                if error is not None:
                    failed_stage = SyncStage.COMMITTING_REMOTE
                break
        except _Failure as failure:
            failed_stage = failure.stage
            error = failure.cause

        if failed_stage is not None:
            self._stages[collection] = SyncStage.FAILED
            committed = local_changed or any(r.written for r in results.values())
            status = SyncStatus.PARTIAL if committed else SyncStatus.FAILED
            logger.error(
                "%s: sync %s during %s: %s",
                collection.value,
                status.value,
                failed_stage.value,
                error,
            )
        else:
            status = SyncStatus.OK

        report = SyncReport(
            collection=collection,
            status=status,
            started_at=started_at,
            completed_at=format_timestamp(self.clock()),
            failed_stage=failed_stage,
            error_type=type(error).__name__ if error is not None else None,
            error=str(error) if error is not None else None,
            stats=stats,
            local_changed=local_changed,
            partitions=list(results.values()),
            attempts=attempts,
        )
        self._save_state(collection, state, report)
        if status == SyncStatus.OK:
            logger.info(
                "%s: sync ok (%d partitions written, local %s)",
                collection.value,
                len(report.written),
                "updated" if local_changed else "unchanged",
            )
        return report

    def _push(
        self,
        client: RemoteDocumentClient,
        collection: Collection,
        dirty: list[DirtyPartition],
        results: dict[str, PartitionResult],
        state: dict,
    ) -> tuple[Conflict | None, Exception | None]:
        """Write dirty partitions.

        Returns:
            ``(conflict, error)``: the first version conflict seen and the
            error that stopped (or spoiled) the push, if any.
        """
        conflict: Conflict | None = None
        error: Exception | None = None
        synced_wiki: list[str] = []

        for part in dirty:
            try:
                new_tag = client.write_file(
                    part.path,
                    part.content,
                    part.version_tag,
                    message=f"sync({collection.value}): update {part.path}",
                )
            except Conflict as e:
                logger.warning("Version conflict on %s", part.path)
                results[part.path] = PartitionResult(
                    path=part.path,
                    written=False,
                    record_count=part.record_count,
                    error=str(e),
                )
                conflict = conflict or e
                continue
            except (Unauthenticated, RemoteUnavailable) as e:
                results[part.path] = PartitionResult(
                    path=part.path,
                    written=False,
                    record_count=part.record_count,
                    error=str(e),
                )
                error = e
                logger.error("Aborting remaining writes: %s", e)
                break
            except (RemoteError, ValueError) as e:
                logger.error("Failed to write %s: %s", part.path, e)
                results[part.path] = PartitionResult(
                    path=part.path,
                    written=False,
                    record_count=part.record_count,
                    error=str(e),
                )
                error = error or e
                continue

            results[part.path] = PartitionResult(
                path=part.path,
                written=True,
                record_count=part.record_count,
                version_tag=new_tag,
            )
            if self.state_store is not None:
                self.state_store.update_partition(
                    state,
                    part.path,
                    {
                        "version_tag": new_tag,
                        "content_hash": SyncState.content_hash(part.content),
                    },
                )
            if collection == Collection.WIKI:
                synced_wiki.append(part.path.split("/", 1)[1])

        if synced_wiki:
            try:
                self.store.mark_wiki_synced(synced_wiki, self.clock())
            except LocalStoreError as e:
                logger.warning("Could not mark wiki entries synced: %s", e)
                error = error or e
        return conflict, error

    # ------------------------------------------------------------------
    # State bookkeeping
    # ------------------------------------------------------------------

    def _load_state(self, collection: Collection) -> dict:
        if self.state_store is None:
            return {}
        return self.state_store.load(collection.value)

    def _record_fetched(
        self,
        state: dict,
        fetched: dict[str, FetchedPartition],
        codec: SnapshotCodec,
    ) -> None:
        if self.state_store is None:
            return
        for path, partition in fetched.items():
            if partition.decode_failed:
                continue
            content = codec.encode(partition.records)
            self.state_store.update_partition(
                state,
                path,
                {
                    "version_tag": partition.version_tag,
                    "content_hash": SyncState.content_hash(content or ""),
                },
            )

    def _save_state(
        self, collection: Collection, state: dict, report: SyncReport
    ) -> None:
        if self.state_store is None:
            return
        state["status"] = report.status.value
        state["error"] = report.error
        state["failed_stage"] = (
            report.failed_stage.value if report.failed_stage else None
        )
        try:
            self.state_store.save(collection.value, state)
        except OSError as e:
            logger.warning(
                "Could not save sync state for %s: %s", collection.value, e
            )
