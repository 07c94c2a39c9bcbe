"""
YAML config files for docsync.

Files are discovered by convention, merged section by section (the
project file wins over the global one), may pull in other files with
``!include`` and reference environment variables as ``${VAR}`` or
``${VAR:-default}``.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

PROJECT_CONFIG = Path(".docsync") / "config.yml"

# ${VAR} or ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")

_STARTER_CONFIG = """\
# docsync configuration
#
# Connection settings can also be set via environment variables:
#   GITHUB_TOKEN, DOCSYNC_OWNER, DOCSYNC_REPO, DOCSYNC_BRANCH,
#   DOCSYNC_REMOTE_PATH
#
# github:
#   token: ${GITHUB_TOKEN}
#   owner: my-user
#   repo: my-notes
#   branch: main
#   max_retries: 3
#   retry_delay: 1.0
#
# sync:
#   local_root: .
#   remote_path: notes
#   state_dir: .docsync
#   auto_sync: true
#   interval: 300
#   conflict_policy: ask      # local | remote | merge | ask
#   verbosity: standard       # quiet | standard | verbose
#
# logging:
#   level: INFO
#   file: null
"""


def interpolate_env_vars(value: str) -> str:
    """Substitute ``${VAR}`` and ``${VAR:-default}`` from the environment.

    An unset or empty variable becomes its default, or ``""`` without one.
    """

    def _replace(match: re.Match) -> str:
        return os.environ.get(match.group(1)) or match.group(2) or ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate_sections(data: dict[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, dict):
            result[key] = _interpolate_sections(value)
        elif isinstance(value, str):
            result[key] = interpolate_env_vars(value)
        else:
            result[key] = value
    return result


class ConfigLoader(yaml.SafeLoader):
    """SafeLoader with ``!include``; ``yaml.SafeLoader`` itself is untouched."""

    include_stack: tuple[Path, ...] = ()


def _include_constructor(loader: ConfigLoader, node: yaml.ScalarNode) -> Any:
    include_path = Path(loader.construct_scalar(node))
    if not include_path.is_absolute():
        include_path = Path(loader.name).resolve().parent / include_path
    include_path = include_path.resolve()

    if include_path in loader.include_stack:
        chain = " -> ".join(str(p) for p in (*loader.include_stack, include_path))
        raise ValueError(f"Circular include detected: {chain}")
    if not include_path.exists():
        raise FileNotFoundError(f"Include file not found: {include_path}")

    return _load_yaml_with_includes(include_path, loader.include_stack)


ConfigLoader.add_constructor("!include", _include_constructor)


def _load_yaml_with_includes(
    path: Path, include_stack: tuple[Path, ...] = ()
) -> Any:
    path = path.resolve()
    with open(path, "r", encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader.include_stack = (*include_stack, path)
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


def discover_config_files() -> list[Path]:
    """Existing config files, highest precedence first.

    ``DOCSYNC_CONFIG``, then ``.docsync/config.yml`` (or ``.yaml``) in the
    working directory, then ``~/.config/docsync/config.yml``.
    """
    candidates: list[Path] = []
    env_path = os.environ.get("DOCSYNC_CONFIG")
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())

    cwd = Path.cwd()
    candidates.append(cwd / PROJECT_CONFIG)
    candidates.append(cwd / PROJECT_CONFIG.with_suffix(".yaml"))
    candidates.append(Path.home() / ".config" / "docsync" / "config.yml")

    return [p for p in candidates if p.exists()]


def ensure_config() -> Path:
    """Return the config file in effect, writing a commented starter into
    the working directory when there is none."""
    existing = discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    config_path = Path.cwd() / PROJECT_CONFIG
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)
    return config_path


def load_hierarchical_config() -> dict[str, Any]:
    """Merge every discovered config file; ``{}`` when there are none.

    Top-level sections of a higher-precedence file replace those of lower
    ones. Interpolation runs after the merge.
    """
    merged: dict[str, Any] = {}
    for path in reversed(discover_config_files()):
        logger.debug("Loading config: %s", path)
        data = _load_yaml_with_includes(path)
        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )
    return _interpolate_sections(merged)
