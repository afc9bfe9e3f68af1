"""Typed schema for the YAML configuration file.

Sections:

- ``remote``: GitHub repository used as remote document store.
- ``storage``: local database and sync state locations.
- ``sync``: merge tie-break and conflict retry policy.
- ``logging``: log level and file.

``to_fallbacks()`` flattens a validated config into the dict that
``config.load_config()`` consults after CLI args and environment variables.

Usage:
    from syssla_sync.config_schema import build_config, to_fallbacks

    unified = build_config(load_hierarchical_config())
    config = load_config(yaml_fallbacks=to_fallbacks(unified))
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class RemoteConfig(BaseModel):
    """GitHub repository settings.

    All fields are optional: without owner/repo the store works fully
    offline and sync calls fail with ``NotConfigured``.
    """

    owner: str | None = Field(default=None, description="Repository owner")
    repo: str | None = Field(default=None, description="Repository name")
    branch: str | None = Field(default=None, description="Branch to sync")
    token: str | None = Field(
        default=None, description="Personal access token"
    )
    api_url: str | None = Field(default=None, description="GitHub API base URL")
    timeout: float = Field(
        default=30.0, gt=0, le=600, description="Read timeout in seconds"
    )

    model_config = {"frozen": True}


class StorageConfig(BaseModel):
    db_path: str | None = Field(default=None, description="SQLite database path")
    state_dir: str | None = Field(
        default=None, description="Directory for sync state JSON files"
    )

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Merge policy settings.

    Attributes:
        tie_break: Which side wins when both copies carry the same
            modification timestamp.
        conflict_retries: How many times a sync re-fetches and re-merges
            after a version tag conflict on write.
    """

    tie_break: Literal["remote-wins", "local-wins"] = "remote-wins"
    conflict_retries: int = Field(default=1, ge=0, le=10)

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level configuration.  ``UnifiedConfig()`` is always valid."""

    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from ``load_hierarchical_config()`` output.

    Missing sections get defaults.

    Raises:
        pydantic.ValidationError: If a section holds invalid values.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


def to_fallbacks(unified: UnifiedConfig) -> dict[str, Any]:
    """Flatten *unified* into ``load_config(yaml_fallbacks=...)`` form.

    ``None`` values are dropped so they never shadow built-in defaults.
    """
    flat: dict[str, Any] = {}
    for section in (unified.remote, unified.storage, unified.sync):
        for key, value in section.model_dump().items():
            if value is not None:
                flat[key] = value
    return flat
