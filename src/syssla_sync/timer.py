"""Timer session manager.

Owns the single local-only ``ActiveTimerSession`` and its state machine:

    STOPPED -> RUNNING -> PAUSED -> RUNNING -> STOPPED

Stopping converts the session into a finished ``TimeEntry`` whose duration
excludes every paused span.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from enum import Enum
from typing import cast

from .errors import AlreadyRunning, InvalidTransition
from .models import ActiveTimerSession, TimeEntry, round_minutes, utc_now
from .storage import LocalStore

logger = logging.getLogger(__name__)


class TimerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    PAUSED = "paused"


def _millis(span: timedelta) -> int:
    return max(span // timedelta(milliseconds=1), 0)


class TimerSessionManager:
    """Start, pause, resume and stop the active timer.

    Args:
        store: Open local store holding the session and time entries.
        clock: Returns the current UTC time.
        id_factory: Generates ids for stopped entries.
    """

    def __init__(
        self,
        store: LocalStore,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self.store = store
        self.clock = clock
        self.id_factory = id_factory

    @property
    def session(self) -> ActiveTimerSession | None:
        return self.store.get_active_timer()

    @property
    def state(self) -> TimerState:
        return self.state_of(self.session)

    def _require(self, expected: TimerState, action: str) -> ActiveTimerSession:
        session = self.session
        current = self.state_of(session)
        if current != expected:
            raise InvalidTransition(
                f"Cannot {action} timer: it is {current.value}"
            )
        return cast(ActiveTimerSession, session)

    @staticmethod
    def state_of(session: ActiveTimerSession | None) -> TimerState:
        if session is None:
            return TimerState.STOPPED
        return TimerState.PAUSED if session.is_paused else TimerState.RUNNING

    def start(
        self,
        customer_id: str,
        project_id: str | None = None,
        note: str | None = None,
    ) -> ActiveTimerSession:
        """Start a new session.

        Raises:
            AlreadyRunning: If a session (running or paused) exists.
        """
        existing = self.session
        if existing is not None:
            raise AlreadyRunning(
                f"A timer for customer '{existing.customer_id}' is already "
                f"{self.state_of(existing).value}"
            )
        session = ActiveTimerSession(
            customer_id=customer_id,
            project_id=project_id,
            note=note,
            start_time=self.clock(),
        )
        logger.info("Timer started for customer %s", customer_id)
        return self.store.save_active_timer(session)

    def pause(self) -> ActiveTimerSession:
        """Pause a running session."""
        session = self._require(TimerState.RUNNING, "pause")
        paused = session.model_copy(update={"paused_at": self.clock()})
        return self.store.save_active_timer(paused)

    def resume(self) -> ActiveTimerSession:
        """Resume a paused session, accumulating the paused span."""
        session = self._require(TimerState.PAUSED, "resume")
        paused_at = cast(datetime, session.paused_at)
        paused_ms = session.paused_duration_ms + _millis(self.clock() - paused_at)
        resumed = session.model_copy(
            update={"paused_at": None, "paused_duration_ms": paused_ms}
        )
        return self.store.save_active_timer(resumed)

    def paused_millis(self, session: ActiveTimerSession, now: datetime) -> int:
        """Total paused time, counting an open pause up to *now*."""
        total = session.paused_duration_ms
        if session.paused_at is not None:
            total += _millis(now - session.paused_at)
        return total

    def elapsed_seconds(self, session: ActiveTimerSession, now: datetime) -> int:
        """Worked seconds so far (paused time excluded)."""
        worked = _millis(now - session.start_time) - self.paused_millis(
            session, now
        )
        return max(worked, 0) // 1000

    def stop(self, note: str | None = None) -> TimeEntry:
        """Stop the session and persist it as a finished time entry.

        Args:
            note: Replaces the session note when given.

        Raises:
            InvalidTransition: If no session exists.
        """
        session = self.session
        if session is None:
            raise InvalidTransition("Cannot stop timer: it is stopped")
        now = self.clock()
        worked_ms = max(
            _millis(now - session.start_time)
            - self.paused_millis(session, now),
            0,
        )
        entry = TimeEntry(
            id=self.id_factory(),
            customer_id=session.customer_id,
            project_id=session.project_id,
            start=session.start_time,
            end=now,
            duration_minutes=round_minutes(timedelta(milliseconds=worked_ms)),
            note=note if note is not None else session.note,
            updated_at=now,
        )
        self.store.finish_timer(entry)
        logger.info(
            "Timer stopped: %d minutes for customer %s",
            entry.duration_minutes,
            entry.customer_id,
        )
        return entry

    def status(self) -> dict:
        """Current state, session fields and elapsed seconds."""
        session = self.session
        state = self.state_of(session)
        if session is None:
            return {"state": state.value, "session": None, "elapsed_seconds": 0}
        return {
            "state": state.value,
            "session": session.model_dump(mode="json"),
            "elapsed_seconds": self.elapsed_seconds(session, self.clock()),
        }
