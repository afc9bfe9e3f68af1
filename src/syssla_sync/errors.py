"""
Exception hierarchy for syssla_sync.

Every error raised on purpose by the store, the remote client, the sync
engine or the timer derives from ``SysslaError`` so that outer layers (the
MCP tool registry in particular) can translate them into structured
responses without catching unrelated exceptions.
"""


class SysslaError(Exception):
    """Base exception for all syssla_sync errors."""


class NotConfigured(SysslaError):
    """Raised when no remote sync target (owner/repo/branch) is set."""

    def __init__(self, message: str = "No sync target configured"):
        super().__init__(message)


class Unauthenticated(SysslaError):
    """Raised when no credential is available or the remote rejects it."""

    def __init__(self, message: str = "No credential available"):
        super().__init__(message)


class RemoteError(SysslaError):
    """Raised when the remote document store returns an unexpected answer."""

    def __init__(
        self,
        message: str,
        path: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.path = path
        self.status_code = status_code


class Conflict(RemoteError):
    """Raised when a write's expected version tag no longer matches."""


class RemoteUnavailable(RemoteError):
    """Raised on transport failures, timeouts, rate limits and 5xx answers."""


class DecodeError(SysslaError):
    """Raised when a remote partition cannot be parsed."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path


class NotFound(SysslaError):
    """Raised when a local record is missing on update or delete."""

    def __init__(self, collection: str, record_id: str):
        super().__init__(f"{collection} record '{record_id}' not found")
        self.collection = collection
        self.record_id = record_id


class LocalStoreError(SysslaError):
    """Raised when the local SQLite store fails to commit."""


class SyncAlreadyInProgress(SysslaError):
    """Raised when a collection is already being synced."""

    def __init__(self, collection: str):
        super().__init__(f"Sync of '{collection}' is already in progress")
        self.collection = collection


class TimerError(SysslaError):
    """Base exception for timer session state errors."""


class AlreadyRunning(TimerError):
    """Raised when starting a timer while a session exists."""


class InvalidTransition(TimerError):
    """Raised when pause/resume/stop is called from the wrong state."""
