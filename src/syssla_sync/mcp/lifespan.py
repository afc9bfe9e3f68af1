"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from ..config import Config, load_config
from ..config_loader import (
    discover_config_files,
    load_hierarchical_config,
)
from ..config_schema import build_config, to_fallbacks
from ..core.async_utils import run_sync
from ..core.client import (
    CredentialProvider,
    GitHubContentsClient,
    env_credentials,
    static_credentials,
)
from ..customers import CustomerService
from ..models import SyncTarget
from ..storage import LocalStore
from ..sync.engine import ClientFactory, SyncOrchestrator
from ..sync.state import SyncState
from ..tasks import TaskService
from ..timer import TimerSessionManager
from ..wiki import WikiService

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@dataclass
class AppContext:
    """Everything tool handlers need, built once per server run."""

    config: Config
    store: LocalStore
    state_store: SyncState
    orchestrator: SyncOrchestrator
    tasks: TaskService
    customers: CustomerService
    timer: TimerSessionManager
    wiki: WikiService
    client_factory: ClientFactory


def make_client_factory(
    config: Config, credentials: CredentialProvider
) -> ClientFactory:
    """Build GitHub clients for whatever target is persisted at call time."""

    def factory(target: SyncTarget) -> GitHubContentsClient:
        return GitHubContentsClient(
            target,
            credentials,
            api_url=config.api_url,
            timeout=config.timeout,
        )

    return factory


def build_context(config: Config, store: LocalStore) -> AppContext:
    """Wire services around an open store."""
    credentials = (
        static_credentials(config.token) if config.token else env_credentials()
    )
    client_factory = make_client_factory(config, credentials)
    state_store = SyncState(Path(config.state_dir))
    orchestrator = SyncOrchestrator(
        store,
        client_factory,
        state_store=state_store,
        tie_breaker=config.tie_break,
        max_conflict_retries=config.conflict_retries,
    )
    return AppContext(
        config=config,
        store=store,
        state_store=state_store,
        orchestrator=orchestrator,
        tasks=TaskService(store),
        customers=CustomerService(store),
        timer=TimerSessionManager(store),
        wiki=WikiService(store),
        client_factory=client_factory,
    )


def _open_store(config: Config) -> LocalStore:
    if config.db_path != ":memory:":
        Path(config.db_path).parent.mkdir(parents=True, exist_ok=True)
    store = LocalStore(config.db_path).open()
    target = config.sync_target
    if target is not None and store.get_sync_target() != target:
        store.set_sync_target(target)
        logger.info("Sync target set from configuration: %s", target.full_name)
    return store


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load YAML config file if present (as fallback values)
    - Merge all sources via load_config(): CLI > env vars > .env > YAML > defaults
    - Open the local store and seed the sync target from configuration

    On shutdown:
    - Close the local store

    Args:
        config_overrides: Optional dict with config values from CLI
            (db_path, owner, repo, branch, debug)

    Yields:
        Dict with 'context' key containing the initialized AppContext

    Raises:
        RuntimeError: If configuration is invalid or the store cannot open.
    """
    logger.info("MCP server starting...")
    _stderr_print("syssla-sync MCP server starting...")

    try:
        # .env first so ${VAR} interpolation in YAML can use its values
        load_dotenv()

        yaml_fallbacks: dict[str, Any] | None = None
        config_files = discover_config_files()
        sources = []

        if config_files:
            raw = load_hierarchical_config()
            yaml_fallbacks = to_fallbacks(build_config(raw))
            sources.append(f"config file: {config_files[0]}")

        overrides = config_overrides or {}
        config = load_config(
            db_path=overrides.get("db_path"),
            owner=overrides.get("owner"),
            repo=overrides.get("repo"),
            branch=overrides.get("branch"),
            debug=overrides.get("debug", False),
            yaml_fallbacks=yaml_fallbacks,
        )

        if overrides:
            sources.append("CLI arguments")
        sources.append("environment variables")
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        raise RuntimeError(f"Configuration error: {e}") from e

    try:
        store = await run_sync(_open_store, config)
    except Exception as e:
        logger.error("Failed to open local store %s: %s", config.db_path, e)
        _stderr_print(f"ERROR: Cannot open local store {config.db_path}: {e}")
        raise RuntimeError(f"Cannot open local store: {e}") from e

    _stderr_print(f"  Local store: {config.db_path}")
    target = store.get_sync_target()
    if target is None:
        _stderr_print("  Sync target: not configured (use sync_configure)")
    else:
        _stderr_print(f"  Sync target: {target.full_name}@{target.branch}")
    if not config.token:
        _stderr_print("  GITHUB_TOKEN not set; sync will fail until it is.")
    _stderr_print("Server ready. Waiting for MCP client connection...")

    try:
        yield {"context": build_context(config, store)}
    finally:
        store.close()
        logger.info("MCP server shutting down")
        _stderr_print("syssla-sync MCP server shutting down.")
