"""Runtime configuration for syssla_sync.

Reads the local database location, the GitHub sync target and sync tuning
from CLI args, environment variables, .env files, and YAML config file
fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    SYSSLA_DB_PATH: SQLite database file (optional, default: .syssla/syssla.db)
    SYSSLA_STATE_DIR: Directory for sync state files (optional, default: .syssla)
    SYSSLA_REPO_OWNER: GitHub owner of the sync repository (optional)
    SYSSLA_REPO_NAME: GitHub repository name (optional)
    SYSSLA_REPO_BRANCH: Branch to sync against (optional, default: main)
    SYSSLA_API_URL: GitHub API base URL (optional, default: https://api.github.com)
    SYSSLA_TIMEOUT: Remote read timeout in seconds (optional, default: 30)
    SYSSLA_TIE_BREAK: remote-wins or local-wins on equal timestamps (optional)
    SYSSLA_CONFLICT_RETRIES: Re-fetch attempts after a write conflict (optional, default: 1)
    GITHUB_TOKEN: Personal access token (optional; sync fails Unauthenticated without it)
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

from .models import SyncTarget

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = ".syssla/syssla.db"
DEFAULT_STATE_DIR = ".syssla"
DEFAULT_API_URL = "https://api.github.com"
TIE_BREAK_CHOICES = ("remote-wins", "local-wins")


@dataclass
class Config:
    db_path: str = DEFAULT_DB_PATH
    state_dir: str = DEFAULT_STATE_DIR
    owner: str | None = None
    repo: str | None = None
    branch: str = "main"
    token: str | None = None
    api_url: str = DEFAULT_API_URL
    timeout: float = 30.0
    tie_break: str = "remote-wins"
    conflict_retries: int = 1
    debug: bool = False

    @property
    def sync_target(self) -> SyncTarget | None:
        """Sync target from configuration, or ``None`` when not set."""
        if not self.owner or not self.repo:
            return None
        return SyncTarget(owner=self.owner, repo=self.repo, branch=self.branch)


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the API URL is malformed, the sync target is only
            half specified, or a tuning value is out of range.
    """
    config.api_url = config.api_url.strip()

    if not config.api_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid API URL '{config.api_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.api_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid API URL '{config.api_url}': URL must include a hostname"
        )

    config.api_url = config.api_url.removesuffix("/")

    if bool(config.owner) != bool(config.repo):
        raise ValueError(
            "Sync target needs both owner and repository. "
            "Set SYSSLA_REPO_OWNER and SYSSLA_REPO_NAME together."
        )

    if not config.branch.strip():
        raise ValueError("Sync branch cannot be empty.")

    if config.tie_break not in TIE_BREAK_CHOICES:
        raise ValueError(
            f"Invalid tie break '{config.tie_break}': "
            f"must be one of {', '.join(TIE_BREAK_CHOICES)}"
        )

    if not (0 <= config.conflict_retries <= 10):
        raise ValueError(
            f"Invalid conflict retries {config.conflict_retries}: must be between 0 and 10"
        )

    if config.timeout <= 0:
        raise ValueError(f"Invalid timeout {config.timeout}: must be positive")

    if config.api_url.startswith("http://"):
        logger.warning(
            "WARNING: GitHub API URL uses plain http; the token is sent unencrypted."
        )


def load_config(
    db_path: str | None = None,
    owner: str | None = None,
    repo: str | None = None,
    branch: str | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        db_path: Override database path.
        owner: Override repository owner.
        repo: Override repository name.
        branch: Override branch.
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Flat dict of values from the YAML config file.
            Used as fallback when CLI arg and env var are both unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If any value fails validation.
    """
    fb = yaml_fallbacks or {}

    # --- String fields: CLI > env > YAML > default ---

    final_db_path = (
        db_path
        or os.getenv("SYSSLA_DB_PATH")
        or fb.get("db_path")
        or DEFAULT_DB_PATH
    )
    final_state_dir = (
        os.getenv("SYSSLA_STATE_DIR") or fb.get("state_dir") or DEFAULT_STATE_DIR
    )
    final_owner = owner or os.getenv("SYSSLA_REPO_OWNER") or fb.get("owner")
    final_repo = repo or os.getenv("SYSSLA_REPO_NAME") or fb.get("repo")
    final_branch = (
        branch or os.getenv("SYSSLA_REPO_BRANCH") or fb.get("branch") or "main"
    )
    final_token = os.getenv("GITHUB_TOKEN") or fb.get("token")
    final_api_url = (
        os.getenv("SYSSLA_API_URL") or fb.get("api_url") or DEFAULT_API_URL
    )
    final_tie_break = (
        os.getenv("SYSSLA_TIE_BREAK") or fb.get("tie_break") or "remote-wins"
    )

    # --- Boolean fields: CLI > env > YAML > default ---

    def get_bool_env(key: str) -> bool | None:
        """Return True/False from env var, or None if unset."""
        val = os.getenv(key)
        if val is None:
            return None
        return val.lower() in ("true", "1", "yes", "on")

    if debug:
        final_debug = True
    else:
        env_debug = get_bool_env("SYSSLA_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    # --- Numeric fields: env > YAML > default ---

    timeout_raw = os.getenv("SYSSLA_TIMEOUT")
    if timeout_raw is not None:
        try:
            final_timeout = float(timeout_raw)
        except ValueError:
            raise ValueError(
                f"Invalid SYSSLA_TIMEOUT '{timeout_raw}': must be a number of seconds"
            ) from None
    else:
        final_timeout = float(fb.get("timeout", 30.0))

    retries_raw = os.getenv("SYSSLA_CONFLICT_RETRIES")
    if retries_raw is not None:
        try:
            final_retries = int(retries_raw)
        except ValueError:
            raise ValueError(
                f"Invalid SYSSLA_CONFLICT_RETRIES '{retries_raw}': must be a number between 0 and 10"
            ) from None
    else:
        final_retries = int(fb.get("conflict_retries", 1))

    config = Config(
        db_path=str(final_db_path).strip(),
        state_dir=str(final_state_dir).strip(),
        owner=final_owner.strip() if final_owner else None,
        repo=final_repo.strip() if final_repo else None,
        branch=str(final_branch).strip(),
        token=final_token.strip() if final_token else None,
        api_url=final_api_url,
        timeout=final_timeout,
        tie_break=final_tie_break,
        conflict_retries=final_retries,
        debug=final_debug,
    )

    validate_config(config)

    return config
