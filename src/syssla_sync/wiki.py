"""Wiki notes: filename/title helpers and the local editing service.

A note's filename is generated once from its title and never changes; it
is the key that ties a local entry to ``wiki/<filename>`` in the remote
repository.  Titles containing ``/`` map to nested paths.
"""

from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Callable
from datetime import datetime
from pathlib import PurePosixPath
from typing import cast

from .core.client import RemoteDocumentClient
from .errors import NotFound
from .models import Collection, WikiEntry, utc_now
from .storage import LocalStore

logger = logging.getLogger(__name__)

WIKI_ROOT = "wiki"

_HEADING_RE = re.compile(r"^#\s+(.+)$")
_SLUG_RE = re.compile(r"[^a-z0-9]+")

# Namespace for ids of notes first seen remotely; the same file always
# decodes to the same id.
WIKI_NAMESPACE = uuid.UUID("6f1d8a52-3c0e-4b8e-9a57-2f5c3a1e9b74")


def extract_title(content: str, default: str = "Untitled") -> str:
    """Return the text of the first ``# `` heading in *content*."""
    for line in content.splitlines():
        match = _HEADING_RE.match(line)
        if match:
            return match.group(1).strip()
    return default


def slugify(text: str) -> str:
    return _SLUG_RE.sub("-", text.lower()).strip("-")


def generate_filename(title: str, today: datetime | None = None) -> str:
    """Derive a note filename from its title.

    ``"Weekly review"`` becomes ``"2026-03-01-weekly-review.md"``;
    ``"clients/acme/setup"`` becomes ``"clients/acme/setup.md"``.
    """
    if "/" in title:
        parts = [part.strip() for part in title.split("/") if part.strip()]
        if not parts:
            return "untitled.md"
        return "/".join(parts) + ".md"
    day = (today or utc_now()).strftime("%Y-%m-%d")
    slug = slugify(title) or "untitled"
    return f"{day}-{slug}.md"


def filename_stem(filename: str) -> str:
    """Last path segment without the ``.md`` suffix."""
    return PurePosixPath(filename).stem


def wiki_id_for(filename: str) -> str:
    """Deterministic id for a note identified only by its filename."""
    return str(uuid.uuid5(WIKI_NAMESPACE, filename))


def remote_path(filename: str) -> str:
    return f"{WIKI_ROOT}/{filename}"


class WikiService:
    """Create, edit, delete and search wiki notes in the local store.

    Args:
        store: Open local store.
        clock: Returns the current UTC time.
    """

    def __init__(
        self, store: LocalStore, clock: Callable[[], datetime] = utc_now
    ) -> None:
        self.store = store
        self.clock = clock

    def _require(self, entry_id: str) -> WikiEntry:
        entry = self.store.get(Collection.WIKI, entry_id)
        if entry is None:
            raise NotFound(Collection.WIKI.value, entry_id)
        return cast(WikiEntry, entry)

    def _unique_filename(self, filename: str) -> str:
        candidate = filename
        base = filename[: -len(".md")]
        counter = 2
        while self.store.get_wiki_by_filename(candidate) is not None:
            candidate = f"{base}-{counter}.md"
            counter += 1
        return candidate

    def create(self, title: str, content: str) -> WikiEntry:
        """Create a note; its filename is derived from *title* once."""
        if not title or not title.strip():
            raise ValueError("title cannot be empty")
        now = self.clock()
        filename = self._unique_filename(generate_filename(title, now))
        entry = WikiEntry(
            id=str(uuid.uuid4()),
            title=title.strip(),
            filename=filename,
            content=content,
            created_at=now,
            updated_at=now,
        )
        logger.info("Created wiki note %s", filename)
        return self.store.insert(entry)

    def edit(
        self,
        entry_id: str,
        title: str | None = None,
        content: str | None = None,
    ) -> WikiEntry:
        """Change title and/or content.  The filename stays the same."""
        entry = self._require(entry_id)
        changes: dict = {"updated_at": self.clock()}
        if title is not None:
            if not title.strip():
                raise ValueError("title cannot be empty")
            changes["title"] = title.strip()
        if content is not None:
            changes["content"] = content
        updated = WikiEntry.model_validate(
            {**entry.model_dump(), **changes}
        )
        return self.store.update(updated)

    def delete(
        self, entry_id: str, client: RemoteDocumentClient | None = None
    ) -> WikiEntry:
        """Delete a note locally and, with *client*, its remote file too.

        The remote file is removed first so a failed remote delete leaves
        the local note in place.
        """
        entry = self._require(entry_id)
        if client is not None:
            path = remote_path(entry.filename)
            remote = client.read_file(path)
            if remote is not None:
                client.delete_file(
                    path, remote.version_tag, message=f"Delete {entry.filename}"
                )
        return self.store.delete(Collection.WIKI, entry_id)

    def get(self, entry_id: str) -> WikiEntry:
        return self._require(entry_id)

    def search(
        self, query: str, limit: int = 50
    ) -> list[tuple[WikiEntry, str | None]]:
        """Full-text search; an empty query lists every note."""
        return self.store.search_wiki(query, limit=limit)
