"""Sync state persistence layer.

Manages the JSON state files that record, per collection, when the last
sync ran, how it ended and which version tag and content hash each remote
partition had afterwards.  Files live in the state directory (``.syssla/``
by default) as ``sync_{collection}.json``.

Key design choices:

* **Atomic writes** -- ``save()`` writes to a temp file then calls
  ``os.replace()`` so readers never see partial data.
* **Content hashing** -- ``content_hash()`` normalises content (BOM,
  line-endings, trailing whitespace) before SHA-256 so hashes are stable
  across platforms.
* **Dict-based state** -- state is a plain ``dict`` so the orchestrator can
  mutate it during a run and persist once at the end.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from pathlib import Path

from ..models import format_timestamp, utc_now

logger = logging.getLogger(__name__)


class SyncState:
    """Load, save, and query sync state per collection.

    Args:
        state_dir: Directory where state files are stored.
    """

    def __init__(self, state_dir: Path | str) -> None:
        self._state_dir = Path(state_dir)

    @property
    def state_dir(self) -> Path:
        return self._state_dir

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self, collection: str) -> dict:
        """Load sync state from disk.

        Returns:
            The state dict.  A missing or unreadable file yields an empty
            state with ``version=1``.
        """
        path = self._state_path(collection)
        if not path.exists():
            return self._empty(collection)
        try:
            with open(path, encoding="utf-8") as fh:
                return json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable sync state %s: %s", path, e)
            return self._empty(collection)

    def save(self, collection: str, state: dict) -> None:
        """Persist sync state to disk atomically.

        ``last_sync`` is set to the current UTC timestamp before writing.
        Creates the state directory if needed.
        """
        self._state_dir.mkdir(parents=True, exist_ok=True)
        state["last_sync"] = format_timestamp(utc_now())

        target = self._state_path(collection)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self._state_dir), suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(state, fh, indent=2, sort_keys=True)
            os.replace(tmp_path, target)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def load_all(self, collections: list[str]) -> dict[str, dict]:
        return {name: self.load(name) for name in collections}

    # ------------------------------------------------------------------
    # Partition helpers
    # ------------------------------------------------------------------

    def get_partition(self, state: dict, path: str) -> dict | None:
        """Return the entry for remote *path*, or ``None`` if absent."""
        return state.get("partitions", {}).get(path)

    def update_partition(self, state: dict, path: str, entry: dict) -> None:
        """Upsert *entry* under ``state["partitions"][path]``."""
        state.setdefault("partitions", {})[path] = entry

    def remove_partition(self, state: dict, path: str) -> None:
        state.get("partitions", {}).pop(path, None)

    # ------------------------------------------------------------------
    # Content hashing
    # ------------------------------------------------------------------

    @staticmethod
    def content_hash(content: str) -> str:
        """Compute a normalised SHA-256 hex digest of *content*.

        Normalisation steps (applied in order):

        1. Strip BOM (``\\ufeff``).
        2. Replace ``\\r\\n`` with ``\\n``.
        3. Right-strip each line.
        4. Strip trailing empty lines.
        """
        text = content.lstrip("\ufeff")
        text = text.replace("\r\n", "\n")
        lines = [line.rstrip() for line in text.split("\n")]
        while lines and lines[-1] == "":
            lines.pop()
        normalised = "\n".join(lines)
        return hashlib.sha256(normalised.encode("utf-8")).hexdigest()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _empty(collection: str) -> dict:
        return {
            "version": 1,
            "last_sync": None,
            "collection": collection,
            "status": None,
            "error": None,
            "partitions": {},
        }

    def _state_path(self, collection: str) -> Path:
        return self._state_dir / f"sync_{collection}.json"
