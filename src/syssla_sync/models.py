"""Pydantic models for the records syssla_sync stores and syncs.

Defines the data contracts shared by the local store, the snapshot codecs
and the merge engine:

- ``Task``: a personal todo or a task materialised from a GitHub issue.
- ``TimeEntry``: a finished (or running) span of work for a customer.
- ``Customer`` / ``Project``: billing targets for time entries.
- ``WikiEntry``: a Markdown note stored as one file per entry.
- ``ActiveTimerSession``: the local-only running timer.
- ``SyncTarget``: the GitHub repository used as remote document store.

All models are frozen (immutable).  Field names are snake_case in Python and
camelCase on the wire so files written by the mobile app decode unchanged.
Timestamps are timezone-aware UTC datetimes truncated to millisecond
precision and serialised as ``YYYY-MM-DDTHH:MM:SS.sssZ``.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Annotated, Any

from pydantic import (
    AfterValidator,
    BaseModel,
    Field,
    PlainSerializer,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .validators import validate_wiki_filename

# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------


def normalize_timestamp(value: datetime) -> datetime:
    """Return *value* as an aware UTC datetime with millisecond precision.

    Naive datetimes are interpreted as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def format_timestamp(value: datetime) -> str:
    """Format *value* the way JavaScript's ``toISOString()`` does."""
    value = normalize_timestamp(value)
    return (
        value.strftime("%Y-%m-%dT%H:%M:%S.")
        + f"{value.microsecond // 1000:03d}Z"
    )


def utc_now() -> datetime:
    """Current time as a normalised UTC datetime (default clock)."""
    return normalize_timestamp(datetime.now(timezone.utc))


def round_minutes(span: timedelta) -> int:
    """Round a time span to whole minutes, halves rounding up."""
    millis = span // timedelta(milliseconds=1)
    return (millis + 30_000) // 60_000


Timestamp = Annotated[
    datetime,
    AfterValidator(normalize_timestamp),
    PlainSerializer(format_timestamp, return_type=str, when_used="json"),
]


# ---------------------------------------------------------------------------
# Base record
# ---------------------------------------------------------------------------


class Record(BaseModel):
    """Common configuration for every synced record."""

    model_config = {
        "frozen": True,
        "populate_by_name": True,
        "alias_generator": to_camel,
        "extra": "ignore",
    }

    def to_wire(self) -> dict[str, Any]:
        """Dump the record as the JSON object written to the remote store."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @property
    def merge_timestamp(self) -> datetime | None:
        """Timestamp compared by last-writer-wins merging."""
        return getattr(self, "updated_at", None)


def _require_text(value: str, field_name: str) -> str:
    if not value or not value.strip():
        raise ValueError(f"{field_name} cannot be empty")
    return value


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class TaskSource(str, Enum):
    """Provenance of a task."""

    PERSONAL = "personal"
    EXTERNAL_ISSUE = "external-issue"


# The mobile app writes issue-backed todos as "github-issue".
_WIRE_SOURCE_NAMES = {TaskSource.EXTERNAL_ISSUE: "github-issue"}
_LEGACY_SOURCE_NAMES = {v: k.value for k, v in _WIRE_SOURCE_NAMES.items()}


class TaskStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in-progress"
    BLOCKED = "blocked"


class IssueState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class ExternalIssueRef(Record):
    """Reference to the GitHub issue an external-issue task mirrors."""

    owner: str
    repo: str
    issue_number: int
    state: IssueState | None = None
    url: str | None = None


class Task(Record):
    """A unit of work.

    Attributes:
        id: Stable, globally unique identifier.
        source: ``personal`` or ``external-issue``.
        title: Non-empty title.
        created_at: Creation timestamp.
        updated_at: Last local modification, if any.
        completed_at: Completion timestamp; its presence means completed.
        external: Issue reference, present iff source is external-issue.
        reopened_from: Id of the completed task this one was reopened from.
    """

    id: str = Field(min_length=1)
    source: TaskSource = TaskSource.PERSONAL
    title: str
    description: str | None = None
    created_at: Timestamp
    updated_at: Timestamp | None = None
    completed_at: Timestamp | None = None
    status: TaskStatus | None = None
    labels: list[str] | None = None
    due_date: str | None = None
    icon: str | None = None
    reopened_from: str | None = None
    external: ExternalIssueRef | None = Field(default=None, alias="github")

    @field_validator("source", mode="before")
    @classmethod
    def _accept_legacy_source(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _LEGACY_SOURCE_NAMES.get(value, value)
        return value

    @field_validator("title")
    @classmethod
    def _title_not_empty(cls, value: str) -> str:
        return _require_text(value, "title")

    @field_serializer("source", when_used="json")
    def _serialize_source(self, source: TaskSource) -> str:
        return _WIRE_SOURCE_NAMES.get(source, source.value)

    @model_validator(mode="after")
    def _check_invariants(self) -> Task:
        if self.completed_at is not None and self.completed_at < self.created_at:
            raise ValueError(
                f"task {self.id}: completedAt precedes createdAt"
            )
        has_ref = self.external is not None
        is_external = self.source == TaskSource.EXTERNAL_ISSUE
        if has_ref != is_external:
            raise ValueError(
                f"task {self.id}: issue reference must be present "
                "exactly when source is external-issue"
            )
        return self

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    @property
    def merge_timestamp(self) -> datetime:
        """Last modification; completing a task counts as one."""
        modified = self.updated_at or self.created_at
        if self.completed_at is not None and self.completed_at > modified:
            return self.completed_at
        return modified


# ---------------------------------------------------------------------------
# Time tracking
# ---------------------------------------------------------------------------


class Customer(Record):
    """A billing customer.  Archiving hides it from default listings."""

    id: str = Field(min_length=1)
    name: str
    invoice_ref: str | None = None
    rate: float | None = None
    currency: str | None = None
    vat: float | None = None
    billing_address: str | None = None
    cost_place: str | None = None
    notes: str | None = None
    archived: bool = False
    updated_at: Timestamp | None = None

    @field_validator("name")
    @classmethod
    def _name_not_empty(cls, value: str) -> str:
        return _require_text(value, "name")


class Project(Record):
    id: str = Field(min_length=1)
    customer_id: str = Field(min_length=1)
    name: str
    code: str | None = None
    notes: str | None = None
    updated_at: Timestamp | None = None

    @field_validator("name")
    @classmethod
    def _name_not_empty(cls, value: str) -> str:
        return _require_text(value, "name")


class TimeEntry(Record):
    """A span of work against a customer (and optionally a project).

    An entry without ``end`` is still running and stays local.
    """

    id: str = Field(min_length=1)
    customer_id: str = Field(min_length=1)
    project_id: str | None = None
    start: Timestamp
    end: Timestamp | None = None
    duration_minutes: int | None = Field(default=None, ge=0)
    note: str | None = None
    updated_at: Timestamp | None = None

    @model_validator(mode="after")
    def _check_span(self) -> TimeEntry:
        if self.end is not None and self.end < self.start:
            raise ValueError(f"time entry {self.id}: end precedes start")
        return self

    @property
    def is_running(self) -> bool:
        return self.end is None

    def computed_duration(self) -> int | None:
        """Duration in whole minutes derived from start and end."""
        if self.end is None:
            return None
        return round_minutes(self.end - self.start)

    @property
    def merge_timestamp(self) -> datetime:
        return self.updated_at or self.start


class ActiveTimerSession(Record):
    """The single running (or paused) timer.  Never synced."""

    customer_id: str = Field(min_length=1)
    project_id: str | None = None
    note: str | None = None
    start_time: Timestamp
    paused_at: Timestamp | None = None
    paused_duration_ms: int = Field(default=0, ge=0, alias="pausedDuration")

    @property
    def is_paused(self) -> bool:
        return self.paused_at is not None


# ---------------------------------------------------------------------------
# Wiki
# ---------------------------------------------------------------------------


class WikiEntry(Record):
    """A Markdown note.  ``filename`` is the merge key and never changes."""

    id: str = Field(min_length=1)
    title: str
    filename: str
    content: str
    created_at: Timestamp
    updated_at: Timestamp
    synced_at: Timestamp | None = None

    @field_validator("filename")
    @classmethod
    def _valid_filename(cls, value: str) -> str:
        is_valid, error_msg = validate_wiki_filename(value)
        if not is_valid:
            raise ValueError(error_msg)
        return value

    @property
    def has_unsynced_changes(self) -> bool:
        return self.synced_at is None or self.updated_at > self.synced_at


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------


class Collection(str, Enum):
    """Synced record collections."""

    TASKS = "tasks"
    TIME_ENTRIES = "time_entries"
    CUSTOMERS = "customers"
    PROJECTS = "projects"
    WIKI = "wiki"


COLLECTION_MODELS: dict[Collection, type[Record]] = {
    Collection.TASKS: Task,
    Collection.TIME_ENTRIES: TimeEntry,
    Collection.CUSTOMERS: Customer,
    Collection.PROJECTS: Project,
    Collection.WIKI: WikiEntry,
}


def collection_of(record: Record) -> Collection:
    """Return the collection a record instance belongs to."""
    for collection, model in COLLECTION_MODELS.items():
        if type(record) is model:
            return collection
    raise ValueError(f"Unsupported record type: {type(record).__name__}")


# ---------------------------------------------------------------------------
# Remote target
# ---------------------------------------------------------------------------


class SyncTarget(BaseModel):
    """GitHub repository holding the remote copy of the data."""

    owner: str = Field(min_length=1)
    repo: str = Field(min_length=1)
    branch: str = Field(default="main", min_length=1)

    model_config = {"frozen": True}

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"
