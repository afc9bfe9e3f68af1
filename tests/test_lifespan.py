"""Tests for syssla_sync.mcp.lifespan: server startup/shutdown lifecycle.

Tests the server_lifespan() async context manager which:
- Loads config from env vars, YAML fallbacks and CLI overrides
- Opens the local store and seeds the sync target from configuration
- Fails fast on config errors or an unusable database path
- Closes the store on shutdown
"""

import asyncio
from pathlib import Path
from unittest.mock import patch

import pytest

from syssla_sync.config import Config
from syssla_sync.core.client import GitHubContentsClient
from syssla_sync.mcp.lifespan import AppContext, build_context, server_lifespan
from syssla_sync.models import SyncTarget

# -------------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------------


def _make_config(tmp_path, **overrides):
    """Create a valid Config for testing."""
    defaults = {
        "db_path": str(tmp_path / "data" / "syssla.db"),
        "state_dir": str(tmp_path / "state"),
    }
    defaults.update(overrides)
    return Config(**defaults)


def _enter(config_overrides=None, capture=None):
    """Run server_lifespan once, returning what it yielded."""

    async def main():
        async with server_lifespan(config_overrides) as ctx:
            if capture is not None:
                capture(ctx["context"])
            return ctx["context"]

    return asyncio.run(main())


@pytest.fixture
def no_files():
    """Keep .env and YAML discovery away from the developer's machine."""
    with (
        patch("syssla_sync.mcp.lifespan.load_dotenv"),
        patch("syssla_sync.mcp.lifespan.discover_config_files", return_value=[]),
    ):
        yield


# -------------------------------------------------------------------------
# server_lifespan(): successful startup
# -------------------------------------------------------------------------


class TestServerLifespanSuccess:
    def test_successful_startup(self, tmp_path, no_files, capsys):
        config = _make_config(tmp_path)
        seen = {}
        with patch("syssla_sync.mcp.lifespan.load_config", return_value=config):
            ctx = _enter(capture=lambda c: seen.update(open=c.store.is_open))

        assert isinstance(ctx, AppContext)
        assert seen["open"]
        assert not ctx.store.is_open
        assert Path(config.db_path).exists()
        err = capsys.readouterr().err
        assert "Sync target: not configured" in err
        assert "GITHUB_TOKEN not set" in err

    def test_target_seeded_from_config(self, tmp_path, no_files):
        config = _make_config(tmp_path, owner="alice", repo="data", branch="sync")
        seen = {}
        with patch("syssla_sync.mcp.lifespan.load_config", return_value=config):
            _enter(capture=lambda c: seen.update(target=c.store.get_sync_target()))
        assert seen["target"] == SyncTarget(owner="alice", repo="data", branch="sync")

    def test_overrides_reach_load_config(self, tmp_path, no_files):
        config = _make_config(tmp_path)
        with patch(
            "syssla_sync.mcp.lifespan.load_config", return_value=config
        ) as mock_load:
            _enter({"db_path": "/x.db", "owner": "o", "repo": "r", "debug": True})
        kwargs = mock_load.call_args[1]
        assert kwargs["db_path"] == "/x.db"
        assert kwargs["owner"] == "o"
        assert kwargs["debug"] is True
        assert kwargs["yaml_fallbacks"] is None

    def test_yaml_fallbacks_used_when_config_file_exists(self, tmp_path):
        config = _make_config(tmp_path)
        with (
            patch("syssla_sync.mcp.lifespan.load_dotenv"),
            patch(
                "syssla_sync.mcp.lifespan.discover_config_files",
                return_value=[tmp_path / "config.yml"],
            ),
            patch(
                "syssla_sync.mcp.lifespan.load_hierarchical_config",
                return_value={"remote": {"owner": "yaml-owner", "repo": "yaml-repo"}},
            ),
            patch(
                "syssla_sync.mcp.lifespan.load_config", return_value=config
            ) as mock_load,
        ):
            _enter()
        fallbacks = mock_load.call_args[1]["yaml_fallbacks"]
        assert fallbacks["owner"] == "yaml-owner"
        assert fallbacks["repo"] == "yaml-repo"


# -------------------------------------------------------------------------
# server_lifespan(): failures
# -------------------------------------------------------------------------


class TestServerLifespanFailure:
    def test_config_error_raises_runtime_error(self, no_files):
        with patch(
            "syssla_sync.mcp.lifespan.load_config",
            side_effect=ValueError("Invalid tie break 'x'"),
        ):
            with pytest.raises(RuntimeError, match="Configuration error: Invalid tie break"):
                _enter()

    def test_unusable_db_path_raises_runtime_error(self, tmp_path, no_files):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("", encoding="utf-8")
        config = _make_config(tmp_path, db_path=str(blocker / "syssla.db"))
        with patch("syssla_sync.mcp.lifespan.load_config", return_value=config):
            with pytest.raises(RuntimeError, match="Cannot open local store"):
                _enter()


# -------------------------------------------------------------------------
# build_context()
# -------------------------------------------------------------------------


class TestBuildContext:
    def test_wires_services_around_store(self, tmp_path, store):
        config = _make_config(tmp_path, tie_break="local-wins", conflict_retries=3)
        ctx = build_context(config, store)
        assert ctx.orchestrator.store is store
        assert ctx.orchestrator.tie_breaker.name == "local-wins"
        assert ctx.orchestrator.max_conflict_retries == 3
        assert ctx.state_store.state_dir == Path(config.state_dir)
        assert ctx.timer.store is store
        assert ctx.wiki.store is store
        assert ctx.tasks.store is store
        assert ctx.customers.store is store

    def test_client_factory_uses_config(self, tmp_path, store):
        config = _make_config(
            tmp_path, token="tok", api_url="https://ghe.example.com/api/v3", timeout=5.0
        )
        client = build_context(config, store).client_factory(
            SyncTarget(owner="alice", repo="data")
        )
        assert isinstance(client, GitHubContentsClient)
        assert client.api_url == "https://ghe.example.com/api/v3"
        assert client.timeout[1] == 5.0
        assert client._credentials() == "tok"

    def test_env_credentials_without_token(self, tmp_path, store, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "from-env")
        client = build_context(_make_config(tmp_path), store).client_factory(
            SyncTarget(owner="alice", repo="data")
        )
        assert client._credentials() == "from-env"

