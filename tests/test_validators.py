"""Tests for input validation helpers."""

import pytest
from pydantic import ValidationError

from syssla_sync.models import Task
from syssla_sync.validators import (
    describe_validation_error,
    validate_content,
    validate_remote_path,
    validate_wiki_filename,
)


class TestValidateRemotePath:
    @pytest.mark.parametrize(
        "path", ["todos/active.json", "wiki/clients/acme.md", "timeentries/"]
    )
    def test_valid(self, path):
        assert validate_remote_path(path) == (True, "")

    @pytest.mark.parametrize(
        "path,reason",
        [
            ("", "cannot be empty"),
            ("   ", "cannot be empty"),
            ("/etc/passwd", "must be relative"),
            ("wiki/../secrets", "cannot contain '..'"),
            ("wiki//note.md", "empty path segments"),
        ],
    )
    def test_invalid(self, path, reason):
        valid, message = validate_remote_path(path)
        assert not valid
        assert reason in message


class TestValidateWikiFilename:
    def test_valid(self):
        assert validate_wiki_filename("2024-03-01-standup.md") == (True, "")

    def test_requires_md_suffix(self):
        assert validate_wiki_filename("notes.txt") == (
            False,
            "Wiki filename must end with '.md'",
        )
        assert not validate_wiki_filename(".md")[0]

    def test_path_errors_are_renamed(self):
        valid, message = validate_wiki_filename("../x.md")
        assert not valid
        assert message.startswith("Wiki filename")


class TestValidateContent:
    def test_valid(self):
        assert validate_content("[]\n") == (True, "")

    def test_empty(self):
        assert validate_content("") == (False, "Content cannot be empty")

    def test_too_large_counts_bytes(self):
        valid, message = validate_content("å" * 6, max_size=10)
        assert not valid
        assert "10 bytes" in message


def test_describe_validation_error():
    with pytest.raises(ValidationError) as exc:
        Task.model_validate({"id": "t1", "title": " "})
    text = describe_validation_error(exc.value)
    assert "title cannot be empty" in text
    assert "createdAt" in text or "created_at" in text
