"""Tests for GitHubContentsClient.

HTTP traffic is intercepted at ``requests.Session.request``; no network.

Covers:
- Credential handling (missing token, bearer header)
- read_file: base64 decoding, 404 -> None, directories, non-UTF-8, large blobs
- write_file: sha guard, Conflict mapping, content validation
- list_directory / delete_file
- Status code mapping (401, 403 rate limit, 5xx, timeouts)
- list_assigned_issues pagination and PR filtering
"""

import base64
from unittest.mock import MagicMock, patch

import pytest
import requests

from syssla_sync.core.client import (
    GitHubContentsClient,
    env_credentials,
    static_credentials,
)
from syssla_sync.errors import (
    Conflict,
    DecodeError,
    RemoteError,
    RemoteUnavailable,
    Unauthenticated,
)
from syssla_sync.models import SyncTarget


def _response(status=200, json_data=None, headers=None, links=None, text=""):
    response = MagicMock(spec=requests.Response)
    response.status_code = status
    response.headers = headers or {}
    response.links = links or {}
    response.url = "https://api.github.com/x"
    response.reason = "reason"
    response.text = text
    if json_data is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = json_data
    return response


def _file_payload(content: str, sha: str = "abc123", path: str = "todos/active.json"):
    return {
        "type": "file",
        "path": path,
        "sha": sha,
        "encoding": "base64",
        "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
    }


@pytest.fixture
def client():
    target = SyncTarget(owner="alice", repo="data", branch="sync")
    return GitHubContentsClient(target, static_credentials("tok"))


class TestCredentials:
    def test_missing_token_raises_without_request(self):
        target = SyncTarget(owner="alice", repo="data")
        client = GitHubContentsClient(target, static_credentials(None))
        with patch.object(requests.Session, "request") as request:
            with pytest.raises(Unauthenticated, match="GITHUB_TOKEN"):
                client.read_file("todos/active.json")
        request.assert_not_called()

    def test_env_credentials(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "from-env")
        assert env_credentials()() == "from-env"
        monkeypatch.setenv("GITHUB_TOKEN", "")
        assert env_credentials()() is None

    def test_bearer_header_and_branch_ref(self, client):
        with patch.object(
            requests.Session, "request", return_value=_response(404)
        ) as request:
            client.read_file("todos/active.json")
        args, kwargs = request.call_args
        assert args[0] == "GET"
        assert args[1] == "https://api.github.com/repos/alice/data/contents/todos/active.json"
        assert kwargs["headers"]["Authorization"] == "Bearer tok"
        assert kwargs["params"] == {"ref": "sync"}

    def test_session_is_reused_per_thread(self, client):
        assert client.session is client.session
        assert client.session.headers["Accept"] == "application/vnd.github+json"


class TestReadFile:
    def test_decodes_base64_content(self, client):
        with patch.object(
            requests.Session,
            "request",
            return_value=_response(200, _file_payload("[]\n", sha="s1")),
        ):
            remote = client.read_file("todos/active.json")
        assert remote.content == "[]\n"
        assert remote.version_tag == "s1"

    def test_missing_file_returns_none(self, client):
        with patch.object(requests.Session, "request", return_value=_response(404)):
            assert client.read_file("todos/active.json") is None

    def test_directory_is_an_error(self, client):
        with patch.object(
            requests.Session, "request", return_value=_response(200, [{"type": "file"}])
        ):
            with pytest.raises(RemoteError, match="Not a file"):
                client.read_file("todos")

    def test_non_utf8_raises_decode_error(self, client):
        payload = _file_payload("")
        payload["content"] = base64.b64encode(b"\xff\xfe\x00").decode("ascii")
        with patch.object(requests.Session, "request", return_value=_response(200, payload)):
            with pytest.raises(DecodeError):
                client.read_file("wiki/a.md")

    def test_large_file_is_read_through_blob_api(self, client):
        payload = {"type": "file", "sha": "big", "encoding": "none", "content": ""}
        blob = {"content": base64.b64encode(b"# Big\n").decode("ascii")}
        with patch.object(
            requests.Session,
            "request",
            side_effect=[_response(200, payload), _response(200, blob)],
        ) as request:
            remote = client.read_file("wiki/big.md")
        assert remote.content == "# Big\n"
        assert request.call_args_list[1][0][1].endswith("/git/blobs/big")

    def test_invalid_path_rejected(self, client):
        with pytest.raises(ValueError, match="Invalid path"):
            client.read_file("../etc/passwd")


class TestWriteFile:
    def test_sends_sha_and_branch(self, client):
        with patch.object(
            requests.Session,
            "request",
            return_value=_response(200, {"content": {"sha": "new-sha"}}),
        ) as request:
            tag = client.write_file("todos/active.json", "[]\n", "old-sha")
        assert tag == "new-sha"
        args, kwargs = request.call_args
        assert args[0] == "PUT"
        body = kwargs["json"]
        assert body["sha"] == "old-sha"
        assert body["branch"] == "sync"
        assert base64.b64decode(body["content"]) == b"[]\n"

    def test_create_omits_sha(self, client):
        with patch.object(
            requests.Session,
            "request",
            return_value=_response(201, {"content": {"sha": "s"}}),
        ) as request:
            client.write_file("todos/active.json", "[]\n")
        assert "sha" not in request.call_args[1]["json"]

    def test_409_is_conflict(self, client):
        with patch.object(
            requests.Session,
            "request",
            return_value=_response(409, {"message": "is at abc but expected def"}),
        ):
            with pytest.raises(Conflict) as exc:
                client.write_file("todos/active.json", "[]\n", "def")
        assert exc.value.status_code == 409
        assert exc.value.path == "todos/active.json"

    def test_422_missing_sha_is_conflict(self, client):
        with patch.object(
            requests.Session,
            "request",
            return_value=_response(422, {"message": "Invalid request. \"sha\" wasn't supplied."}),
        ):
            with pytest.raises(Conflict):
                client.write_file("todos/active.json", "[]\n")

    def test_empty_content_rejected(self, client):
        with pytest.raises(ValueError, match="Content cannot be empty"):
            client.write_file("wiki/a.md", "")


class TestStatusMapping:
    @pytest.mark.parametrize(
        "status,headers,error",
        [
            (401, {}, Unauthenticated),
            (403, {}, Unauthenticated),
            (403, {"X-RateLimit-Remaining": "0"}, RemoteUnavailable),
            (429, {}, RemoteUnavailable),
            (502, {}, RemoteUnavailable),
            (400, {}, RemoteError),
        ],
    )
    def test_error_statuses(self, client, status, headers, error):
        with patch.object(
            requests.Session,
            "request",
            return_value=_response(status, {"message": "nope"}, headers=headers),
        ):
            with pytest.raises(error):
                client.read_file("todos/active.json")

    def test_timeout_is_remote_unavailable(self, client):
        with patch.object(
            requests.Session, "request", side_effect=requests.Timeout("slow")
        ):
            with pytest.raises(RemoteUnavailable, match="timed out"):
                client.read_file("todos/active.json")

    def test_connection_error_is_remote_unavailable(self, client):
        with patch.object(
            requests.Session,
            "request",
            side_effect=requests.ConnectionError("refused"),
        ):
            with pytest.raises(RemoteUnavailable, match="Cannot reach GitHub"):
                client.list_directory("timeentries")


class TestDirectoryAndDelete:
    def test_list_directory(self, client):
        items = [
            {"path": "todos/completed/2024-03.json", "name": "2024-03.json", "type": "file", "sha": "a"},
            {"path": "todos/completed/old", "name": "old", "type": "dir", "sha": "b"},
        ]
        with patch.object(requests.Session, "request", return_value=_response(200, items)):
            entries = client.list_directory("todos/completed")
        assert [(e.name, e.type, e.version_tag) for e in entries] == [
            ("2024-03.json", "file", "a"),
            ("old", "dir", "b"),
        ]

    def test_missing_directory_is_empty(self, client):
        with patch.object(requests.Session, "request", return_value=_response(404)):
            assert client.list_directory("timeentries") == []

    def test_delete_sends_sha(self, client):
        with patch.object(
            requests.Session, "request", return_value=_response(200, {})
        ) as request:
            client.delete_file("wiki/a.md", "sha-a")
        args, kwargs = request.call_args
        assert args[0] == "DELETE"
        assert kwargs["json"]["sha"] == "sha-a"

    def test_delete_missing_file_is_noop(self, client):
        with patch.object(requests.Session, "request", return_value=_response(404)):
            client.delete_file("wiki/a.md", "sha-a")


class TestIssues:
    def test_paginates_and_skips_pull_requests(self, client):
        page1 = _response(
            200,
            [{"id": 1, "number": 1}, {"id": 2, "number": 2, "pull_request": {}}],
            links={"next": {"url": "https://api.github.com/issues?page=2"}},
        )
        page2 = _response(200, [{"id": 3, "number": 3}])
        created = _response(200, [{"id": 1, "number": 1}])
        with patch.object(
            requests.Session, "request", side_effect=[page1, page2, created]
        ):
            issues = client.list_assigned_issues()
        assert sorted(i["id"] for i in issues) == [1, 3]


@pytest.mark.live
class TestLiveRepository:
    """Runs against a real repository named by SYSSLA_REPO_OWNER/NAME."""

    def test_list_root(self):
        import os

        target = SyncTarget(
            owner=os.environ["SYSSLA_REPO_OWNER"],
            repo=os.environ["SYSSLA_REPO_NAME"],
        )
        client = GitHubContentsClient(target, env_credentials())
        assert isinstance(client.list_directory("todos"), list)
