"""Runtime configuration for docsync.

Reads GitHub connection and sync settings from CLI args, environment
variables, .env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    GITHUB_TOKEN: Personal access token (required)
    DOCSYNC_OWNER: Repository owner (required)
    DOCSYNC_REPO: Repository name (required)
    DOCSYNC_BRANCH: Branch to sync (optional, default: main)
    DOCSYNC_REMOTE_PATH: Sub-path inside the repository (optional, default: "")
    DOCSYNC_CONFLICT_POLICY: local, remote, merge or ask (optional, default: ask)
    DOCSYNC_INTERVAL: Auto sync interval in seconds (optional, default: 300)
    DOCSYNC_AUTO_SYNC: Enable periodic sync in watch mode (optional, default: true)
"""

import logging
import os
from dataclasses import dataclass

from .core.errors import ConfigurationError

logger = logging.getLogger(__name__)

CONFLICT_POLICIES = ("local", "remote", "merge", "ask")
VERBOSITY_LEVELS = ("quiet", "standard", "verbose")


@dataclass
class Config:
    token: str
    owner: str
    repo: str
    branch: str = "main"
    api_url: str = "https://api.github.com"
    remote_path: str = ""
    local_root: str = "."
    state_dir: str = ".docsync"
    auto_sync: bool = True
    sync_interval: int = 300
    conflict_policy: str = "ask"
    verbosity: str = "standard"
    timeout: float = 30.0
    max_retries: int = 3
    retry_delay: float = 1.0
    debug: bool = False


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ConfigurationError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ConfigurationError: If the token, owner or repository is empty, or an
            enumerated setting has an unknown value.
    """
    if not config.token.strip():
        raise ConfigurationError(
            "GitHub token cannot be empty. Set GITHUB_TOKEN environment variable."
        )
    if not config.owner.strip():
        raise ConfigurationError(
            "Repository owner cannot be empty. Set DOCSYNC_OWNER environment variable."
        )
    if not config.repo.strip():
        raise ConfigurationError(
            "Repository name cannot be empty. Set DOCSYNC_REPO environment variable."
        )

    config.token = config.token.strip()
    config.owner = config.owner.strip()
    config.repo = config.repo.strip()
    config.branch = config.branch.strip() or "main"
    config.api_url = config.api_url.strip().removesuffix("/")

    if not config.api_url.startswith(("http://", "https://")):
        raise ConfigurationError(
            f"Invalid API URL '{config.api_url}': must start with http:// or https://"
        )

    if config.conflict_policy not in CONFLICT_POLICIES:
        raise ConfigurationError(
            f"Invalid conflict policy '{config.conflict_policy}': "
            f"expected one of {', '.join(CONFLICT_POLICIES)}"
        )

    if config.verbosity not in VERBOSITY_LEVELS:
        raise ConfigurationError(
            f"Invalid verbosity '{config.verbosity}': "
            f"expected one of {', '.join(VERBOSITY_LEVELS)}"
        )

    if config.sync_interval < 10:
        raise ConfigurationError(
            f"Invalid sync interval {config.sync_interval}: must be at least 10 seconds"
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def load_config(
    token: str | None = None,
    owner: str | None = None,
    repo: str | None = None,
    branch: str | None = None,
    remote_path: str | None = None,
    local_root: str | None = None,
    conflict_policy: str | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        token: Override access token.
        owner: Override repository owner.
        repo: Override repository name.
        branch: Override branch.
        remote_path: Override remote sub-path.
        local_root: Override local document root.
        conflict_policy: Override conflict policy.
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Flattened ``github`` and ``sync`` values from the
            YAML config. Used when CLI arg and env var are both unset.

    Returns:
        Validated Config instance.

    Raises:
        ConfigurationError: If required config (token, owner, repo) is
            missing after checking all sources, or a value is invalid.
    """
    fb = yaml_fallbacks or {}

    # --- Required string fields: CLI > env > YAML > error ---

    final_token = token or os.getenv("GITHUB_TOKEN") or fb.get("token")
    if not final_token:
        raise ConfigurationError(
            "GitHub token not found. Set GITHUB_TOKEN environment variable, "
            "pass --token CLI argument, or add 'token' to config.yml."
        )

    final_owner = owner or os.getenv("DOCSYNC_OWNER") or fb.get("owner")
    if not final_owner:
        raise ConfigurationError(
            "Repository owner not found. Set DOCSYNC_OWNER environment variable, "
            "pass --owner CLI argument, or add 'owner' to config.yml."
        )

    final_repo = repo or os.getenv("DOCSYNC_REPO") or fb.get("repo")
    if not final_repo:
        raise ConfigurationError(
            "Repository name not found. Set DOCSYNC_REPO environment variable, "
            "pass --repo CLI argument, or add 'repo' to config.yml."
        )

    # --- Optional string fields: CLI > env > YAML > default ---

    final_branch = (
        branch or os.getenv("DOCSYNC_BRANCH") or fb.get("branch") or "main"
    )

    if remote_path is not None:
        final_remote_path = remote_path
    elif os.getenv("DOCSYNC_REMOTE_PATH") is not None:
        final_remote_path = os.getenv("DOCSYNC_REMOTE_PATH", "")
    else:
        final_remote_path = fb.get("remote_path", "")

    final_policy = (
        conflict_policy
        or os.getenv("DOCSYNC_CONFLICT_POLICY")
        or fb.get("conflict_policy")
        or "ask"
    )

    # --- Boolean fields: CLI > env > YAML > default ---

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("DOCSYNC_DEBUG")
        final_debug = env_debug if env_debug is not None else False

    env_auto = _get_bool_env("DOCSYNC_AUTO_SYNC")
    if env_auto is not None:
        final_auto = env_auto
    else:
        final_auto = bool(fb.get("auto_sync", True))

    # --- Numeric fields: env > YAML > default ---

    interval_raw = os.getenv("DOCSYNC_INTERVAL")
    if interval_raw is not None:
        try:
            final_interval = int(interval_raw)
        except ValueError:
            raise ConfigurationError(
                f"Invalid DOCSYNC_INTERVAL '{interval_raw}': must be a number of seconds"
            ) from None
    else:
        final_interval = int(fb.get("interval", 300))

    config = Config(
        token=final_token,
        owner=final_owner,
        repo=final_repo,
        branch=final_branch,
        api_url=fb.get("api_url", "https://api.github.com"),
        remote_path=final_remote_path,
        local_root=local_root or fb.get("local_root", "."),
        state_dir=fb.get("state_dir", ".docsync"),
        auto_sync=final_auto,
        sync_interval=final_interval,
        conflict_policy=final_policy,
        verbosity=fb.get("verbosity", "standard"),
        timeout=float(fb.get("timeout", 30.0)),
        max_retries=int(fb.get("max_retries", 3)),
        retry_delay=float(fb.get("retry_delay", 1.0)),
        debug=final_debug,
    )

    validate_config(config)

    return config
