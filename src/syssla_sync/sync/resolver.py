"""Tie-break strategies for the merge engine.

When a record exists on both sides with the same modification timestamp,
last-writer-wins cannot decide; a tie breaker picks the winner:

- ``RemoteWinsTieBreaker``: keep the remote copy (default).
- ``LocalWinsTieBreaker``: keep the local copy.

The ``create_tie_breaker()`` factory maps config strategy strings to
instances.
"""

from __future__ import annotations

import logging
from typing import Protocol

from ..models import Record

logger = logging.getLogger(__name__)


class TieBreaker(Protocol):
    """Protocol that all tie breakers must satisfy."""

    name: str

    def choose(self, local: Record, remote: Record) -> Record:
        """Return the winning copy for two equally recent records."""
        ...  # pragma: no cover


class RemoteWinsTieBreaker:
    """Resolve ties in favour of the remote copy."""

    name = "remote-wins"

    def choose(self, local: Record, remote: Record) -> Record:
        return remote


class LocalWinsTieBreaker:
    """Resolve ties in favour of the local copy."""

    name = "local-wins"

    def choose(self, local: Record, remote: Record) -> Record:
        return local


_STRATEGY_MAP: dict[str, type] = {
    "remote-wins": RemoteWinsTieBreaker,
    "local-wins": LocalWinsTieBreaker,
}


def create_tie_breaker(strategy: str) -> TieBreaker:
    """Create a tie breaker for the given strategy string.

    Args:
        strategy: ``"remote-wins"`` or ``"local-wins"``.

    Raises:
        ValueError: If the strategy string is not recognised.
    """
    cls = _STRATEGY_MAP.get(strategy)
    if cls is None:
        raise ValueError(
            f"Unknown tie break strategy: '{strategy}'. Valid strategies: {sorted(_STRATEGY_MAP.keys())}"
        )
    return cls()
