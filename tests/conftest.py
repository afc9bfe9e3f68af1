"""Shared pytest fixtures for syssla-sync tests."""

from __future__ import annotations

import hashlib
import itertools
from datetime import datetime, timedelta, timezone

import pytest

from syssla_sync.core.client import RemoteEntry, RemoteFile
from syssla_sync.errors import Conflict
from syssla_sync.models import SyncTarget
from syssla_sync.storage import LocalStore


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live GitHub repository",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live GitHub repository"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


def ts(value: str) -> datetime:
    """Parse ``2024-03-01T10:00:00`` style strings as UTC datetimes."""
    return datetime.fromisoformat(value).replace(tzinfo=timezone.utc)


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | str = "2024-03-01T12:00:00"):
        self.now = ts(start) if isinstance(start, str) else start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeDocumentStore:
    """In-memory remote document store with SHA version tags.

    Mirrors the GitHub contents API semantics the sync engine relies on:
    writes must carry the current tag of an existing file and no tag for a
    new one, otherwise ``Conflict`` is raised.

    Attributes:
        files: path -> (content, version_tag)
        writes: Paths written, in order.
        write_errors: path -> exception raised instead of writing.
        before_write: Optional hook called with the path before each write.
    """

    def __init__(self):
        self.files: dict[str, tuple[str, str]] = {}
        self.writes: list[str] = []
        self.deletes: list[str] = []
        self.write_errors: dict[str, Exception] = {}
        self.read_errors: dict[str, Exception] = {}
        self.before_write = None

    @staticmethod
    def _tag(content: str) -> str:
        return hashlib.sha1(content.encode("utf-8")).hexdigest()

    def put(self, path: str, content: str) -> str:
        """Seed or overwrite a file without version checks."""
        tag = self._tag(content)
        self.files[path] = (content, tag)
        return tag

    def content(self, path: str) -> str | None:
        entry = self.files.get(path)
        return entry[0] if entry else None

    def read_file(self, path: str) -> RemoteFile | None:
        if path in self.read_errors:
            raise self.read_errors[path]
        entry = self.files.get(path)
        if entry is None:
            return None
        return RemoteFile(path=path, content=entry[0], version_tag=entry[1])

    def write_file(
        self,
        path: str,
        content: str,
        expected_version_tag: str | None = None,
        message: str | None = None,
    ) -> str:
        if self.before_write is not None:
            self.before_write(path)
        if path in self.write_errors:
            raise self.write_errors[path]
        current = self.files.get(path)
        current_tag = current[1] if current else None
        if current_tag != expected_version_tag:
            raise Conflict(
                f"{path}: expected {expected_version_tag}, found {current_tag}",
                path=path,
                status_code=409,
            )
        self.writes.append(path)
        return self.put(path, content)

    def list_directory(self, path: str) -> list[RemoteEntry]:
        prefix = path.rstrip("/") + "/"
        seen: dict[str, RemoteEntry] = {}
        for file_path, (_, tag) in sorted(self.files.items()):
            if not file_path.startswith(prefix):
                continue
            rest = file_path[len(prefix) :]
            name = rest.split("/", 1)[0]
            if "/" in rest:
                seen.setdefault(
                    name, RemoteEntry(prefix + name, name, "dir", "")
                )
            else:
                seen[name] = RemoteEntry(file_path, name, "file", tag)
        return list(seen.values())

    def delete_file(
        self, path: str, version_tag: str, message: str | None = None
    ) -> None:
        current = self.files.get(path)
        if current is None:
            return
        if current[1] != version_tag:
            raise Conflict(f"{path}: stale tag", path=path, status_code=409)
        del self.files[path]
        self.deletes.append(path)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def store():
    """Open in-memory LocalStore, closed after the test."""
    local = LocalStore(":memory:").open()
    yield local
    local.close()


@pytest.fixture
def target():
    return SyncTarget(owner="alice", repo="syssla-data", branch="main")


@pytest.fixture
def remote():
    return FakeDocumentStore()


@pytest.fixture
def configured_store(store, target):
    """LocalStore with a sync target already set."""
    store.set_sync_target(target)
    return store


@pytest.fixture
def app_context(store, remote, clock, tmp_path):
    """AppContext over an in-memory store, a fake remote and a fixed clock."""
    from syssla_sync.config import Config
    from syssla_sync.customers import CustomerService
    from syssla_sync.mcp.lifespan import AppContext
    from syssla_sync.sync import SyncOrchestrator, SyncState
    from syssla_sync.tasks import TaskService
    from syssla_sync.timer import TimerSessionManager
    from syssla_sync.wiki import WikiService

    state_store = SyncState(tmp_path / "state")
    factory = lambda target: remote  # noqa: E731
    task_ids = itertools.count(1)
    record_ids = itertools.count(1)
    return AppContext(
        config=Config(db_path=":memory:", state_dir=str(tmp_path / "state")),
        store=store,
        state_store=state_store,
        orchestrator=SyncOrchestrator(
            store, factory, state_store=state_store, clock=clock
        ),
        tasks=TaskService(
            store, clock, id_factory=lambda: f"personal-{next(task_ids)}"
        ),
        customers=CustomerService(
            store, clock, id_factory=lambda: f"rec-{next(record_ids)}"
        ),
        timer=TimerSessionManager(store, clock, id_factory=lambda: "entry-1"),
        wiki=WikiService(store, clock),
        client_factory=factory,
    )
