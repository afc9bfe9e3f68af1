"""Remote document store client.

``RemoteDocumentClient`` is the narrow capability the sync engine consumes:
read a file with its version tag, write a file guarded by the expected tag,
list a directory and delete a file.  ``GitHubContentsClient`` implements it
on top of the GitHub contents API, where the version tag is the blob SHA.
"""

from __future__ import annotations

import base64
import logging
import os
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import quote

import requests

from .. import __version__
from ..errors import (
    Conflict,
    DecodeError,
    RemoteError,
    RemoteUnavailable,
    Unauthenticated,
)
from ..models import SyncTarget
from ..validators import validate_content, validate_remote_path

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"

CredentialProvider = Callable[[], str | None]


@dataclass(frozen=True, slots=True)
class RemoteFile:
    path: str
    content: str
    version_tag: str


@dataclass(frozen=True, slots=True)
class RemoteEntry:
    """One item of a directory listing.

    Attributes:
        path: Repository-relative path.
        name: Last path segment.
        type: ``"file"`` or ``"dir"``.
        version_tag: Blob SHA (tree SHA for directories).
    """

    path: str
    name: str
    type: str
    version_tag: str


class RemoteDocumentClient(Protocol):
    """File-level capability of a remote document store."""

    def read_file(self, path: str) -> RemoteFile | None:
        """Return the file and its version tag, or ``None`` if absent."""
        ...  # pragma: no cover

    def write_file(
        self,
        path: str,
        content: str,
        expected_version_tag: str | None = None,
        message: str | None = None,
    ) -> str:
        """Create or replace a file and return its new version tag.

        Raises:
            Conflict: If *expected_version_tag* does not match the file.
        """
        ...  # pragma: no cover

    def list_directory(self, path: str) -> list[RemoteEntry]:
        """List a directory; an absent directory is an empty list."""
        ...  # pragma: no cover

    def delete_file(
        self, path: str, version_tag: str, message: str | None = None
    ) -> None:
        ...  # pragma: no cover


def static_credentials(token: str | None) -> CredentialProvider:
    """Credential provider that always returns *token*."""
    return lambda: token


def env_credentials(var: str = "GITHUB_TOKEN") -> CredentialProvider:
    """Credential provider reading the token from an environment variable."""
    return lambda: os.getenv(var) or None


def _error_message(response: requests.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or response.reason or ""
    if isinstance(data, dict):
        return str(data.get("message", ""))
    return ""


class GitHubContentsClient:
    """GitHub contents API client bound to one repository branch.

    Args:
        target: Repository owner, name and branch.
        credentials: Called before every request; returning ``None`` makes
            the request fail with ``Unauthenticated`` without network I/O.
        api_url: API base URL (GitHub Enterprise uses ``https://host/api/v3``).
        timeout: Read timeout in seconds.
        connect_timeout: Connect timeout in seconds.
    """

    def __init__(
        self,
        target: SyncTarget,
        credentials: CredentialProvider,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        connect_timeout: float = 10.0,
    ):
        self.target = target
        self._credentials = credentials
        self.api_url = api_url.rstrip("/")
        self.timeout = (connect_timeout, timeout)
        self._thread_local = threading.local()

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    @property
    def session(self) -> requests.Session:
        """Current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
                "User-Agent": f"syssla-sync/{__version__}",
            }
        )
        return session

    def _repo_url(self, suffix: str) -> str:
        return (
            f"{self.api_url}/repos/{quote(self.target.owner)}/"
            f"{quote(self.target.repo)}/{suffix}"
        )

    def _contents_url(self, path: str) -> str:
        return self._repo_url(f"contents/{quote(path)}")

    def _request(
        self, method: str, url: str, path: str | None = None, **kwargs: Any
    ) -> requests.Response:
        """Send an authenticated request, mapping transport errors.

        Raises:
            Unauthenticated: If no credential is available.
            RemoteUnavailable: On timeouts and connection failures.
        """
        token = self._credentials()
        if not token:
            raise Unauthenticated(
                "No GitHub token available. Set GITHUB_TOKEN or add "
                "'token' to the remote config section."
            )
        headers = {"Authorization": f"Bearer {token}"}
        logger.debug("%s %s", method, url)
        try:
            return self._get_session().request(
                method, url, headers=headers, timeout=self.timeout, **kwargs
            )
        except requests.Timeout as e:
            raise RemoteUnavailable(
                f"Request to GitHub timed out: {e}", path=path
            ) from e
        except requests.RequestException as e:
            raise RemoteUnavailable(
                f"Cannot reach GitHub: {e}", path=path
            ) from e

    def _raise_for_status(
        self, response: requests.Response, path: str | None = None
    ) -> None:
        status = response.status_code
        if status < 400:
            return
        message = _error_message(response)
        detail = f"GitHub returned {status} for {path or response.url}: {message}"
        if status == 401:
            raise Unauthenticated(detail)
        if status == 429 or (
            status == 403
            and response.headers.get("X-RateLimit-Remaining") == "0"
        ):
            reset = response.headers.get("X-RateLimit-Reset", "unknown")
            raise RemoteUnavailable(
                f"GitHub API rate limit exceeded (resets at {reset})",
                path=path,
                status_code=status,
            )
        if status == 403:
            raise Unauthenticated(detail)
        if status == 409 or (status == 422 and "sha" in message.lower()):
            raise Conflict(detail, path=path, status_code=status)
        if status >= 500:
            raise RemoteUnavailable(detail, path=path, status_code=status)
        raise RemoteError(detail, path=path, status_code=status)

    @staticmethod
    def _check_path(path: str) -> None:
        is_valid, error_msg = validate_remote_path(path)
        if not is_valid:
            raise ValueError(f"Invalid path: {error_msg}")

    # ------------------------------------------------------------------
    # Document operations
    # ------------------------------------------------------------------

    def read_file(self, path: str) -> RemoteFile | None:
        """Read a file from the configured branch.

        Returns:
            ``RemoteFile`` or ``None`` when the file does not exist.

        Raises:
            DecodeError: If the file is not UTF-8 text.
            RemoteError: If *path* names a directory.
        """
        self._check_path(path)
        response = self._request(
            "GET",
            self._contents_url(path),
            path,
            params={"ref": self.target.branch},
        )
        if response.status_code == 404:
            return None
        self._raise_for_status(response, path)

        data = response.json()
        if not isinstance(data, dict) or data.get("type") != "file":
            raise RemoteError(f"Not a file: {path}", path=path)

        sha = data["sha"]
        if data.get("encoding") == "base64":
            raw = base64.b64decode(data.get("content") or "")
        else:
            # Files over 1 MB come back without inline content
            raw = self._read_blob(sha, path)
        try:
            content = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"{path} is not UTF-8 text: {e}", path=path) from e
        return RemoteFile(path=path, content=content, version_tag=sha)

    def _read_blob(self, sha: str, path: str) -> bytes:
        response = self._request("GET", self._repo_url(f"git/blobs/{sha}"), path)
        self._raise_for_status(response, path)
        data = response.json()
        return base64.b64decode(data.get("content") or "")

    def write_file(
        self,
        path: str,
        content: str,
        expected_version_tag: str | None = None,
        message: str | None = None,
    ) -> str:
        """Create or replace a file.

        Without *expected_version_tag* the file must not exist yet; GitHub
        refuses to overwrite an existing file without its SHA, which is
        reported as ``Conflict``.

        Returns:
            The new version tag.

        Raises:
            Conflict: On a stale or missing version tag.
            ValueError: If path or content fail validation.
        """
        self._check_path(path)
        is_valid, error_msg = validate_content(content)
        if not is_valid:
            raise ValueError(f"Invalid content for {path}: {error_msg}")

        body: dict[str, Any] = {
            "message": message or f"Update {path}",
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": self.target.branch,
        }
        if expected_version_tag:
            body["sha"] = expected_version_tag

        response = self._request("PUT", self._contents_url(path), path, json=body)
        self._raise_for_status(response, path)
        new_sha = response.json()["content"]["sha"]
        logger.info("Wrote %s (%s)", path, new_sha[:7])
        return new_sha

    def list_directory(self, path: str) -> list[RemoteEntry]:
        """List one directory level.  Absent directories yield ``[]``."""
        self._check_path(path)
        response = self._request(
            "GET",
            self._contents_url(path),
            path,
            params={"ref": self.target.branch},
        )
        if response.status_code == 404:
            return []
        self._raise_for_status(response, path)

        data = response.json()
        items = data if isinstance(data, list) else [data]
        return [
            RemoteEntry(
                path=item["path"],
                name=item["name"],
                type=item.get("type", "file"),
                version_tag=item.get("sha", ""),
            )
            for item in items
        ]

    def delete_file(
        self, path: str, version_tag: str, message: str | None = None
    ) -> None:
        """Delete a file.  Deleting an absent file is a no-op.

        Raises:
            Conflict: If *version_tag* is stale.
        """
        self._check_path(path)
        body = {
            "message": message or f"Delete {path}",
            "sha": version_tag,
            "branch": self.target.branch,
        }
        response = self._request(
            "DELETE", self._contents_url(path), path, json=body
        )
        if response.status_code == 404:
            logger.debug("Delete of absent file %s ignored", path)
            return
        self._raise_for_status(response, path)
        logger.info("Deleted %s", path)

    # ------------------------------------------------------------------
    # Issues
    # ------------------------------------------------------------------

    def list_assigned_issues(self, max_pages: int = 10) -> list[dict[str, Any]]:
        """Issues assigned to or created by the authenticated user.

        Pull requests are skipped.  Results are deduplicated by issue id.
        """
        seen: dict[int, dict[str, Any]] = {}
        for issue_filter in ("assigned", "created"):
            url: str | None = f"{self.api_url}/issues"
            params: dict[str, Any] | None = {
                "filter": issue_filter,
                "state": "all",
                "per_page": 100,
            }
            for _ in range(max_pages):
                if url is None:
                    break
                response = self._request("GET", url, params=params)
                self._raise_for_status(response)
                for issue in response.json():
                    if "pull_request" in issue:
                        continue
                    seen.setdefault(issue["id"], issue)
                url = response.links.get("next", {}).get("url")
                params = None
        return list(seen.values())
