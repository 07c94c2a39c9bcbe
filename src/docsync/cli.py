"""Command-line interface for docsync.

Bootstraps configuration the same way for every command:

    .env (python-dotenv) -> YAML config files -> ``load_config()``

then builds the client, local store and engine and runs one command.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from . import __version__
from .config import Config, load_config
from .config_loader import discover_config_files, ensure_config, load_hierarchical_config
from .config_schema import UnifiedConfig, build_config
from .core.client import GitHubClient
from .core.errors import ConfigurationError, DocSyncError
from .file_handler import LocalStore
from .logger import setup_logging
from .sync.engine import SyncEngine
from .sync.history import HistoryBrowser
from .sync.interface import ConsoleInterface
from .sync.models import SyncKind, SyncReport
from .sync.reporter import (
    format_history,
    format_status,
    format_sync_report,
    report_to_json,
)
from .sync.state import StateStore

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1


def _stderr_print(msg: str) -> None:
    print(msg, file=sys.stderr, flush=True)


# ---------------------------------------------------------------------------
# Bootstrap
# ---------------------------------------------------------------------------


def load_unified() -> UnifiedConfig:
    """Load ``.env`` and the YAML config files into a ``UnifiedConfig``.

    Raises:
        ConfigurationError: If a config file cannot be read or parsed.
    """
    load_dotenv()

    config_files = discover_config_files()
    if not config_files:
        return UnifiedConfig()
    try:
        unified = build_config(load_hierarchical_config())
    except (ValueError, OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Invalid config file: {e}") from e
    logger.debug("Configuration loaded from: %s", config_files[0])
    return unified


def bootstrap(
    overrides: dict[str, Any] | None = None,
    unified: UnifiedConfig | None = None,
) -> Config:
    """Load configuration with unified precedence.

    CLI args > env vars (.env loaded first) > YAML config > defaults

    Raises:
        ConfigurationError: If required settings are missing or invalid.
    """
    if unified is None:
        unified = load_unified()

    overrides = overrides or {}
    return load_config(
        token=overrides.get("token"),
        owner=overrides.get("owner"),
        repo=overrides.get("repo"),
        branch=overrides.get("branch"),
        remote_path=overrides.get("remote_path"),
        local_root=overrides.get("local_root"),
        conflict_policy=overrides.get("conflict_policy"),
        debug=overrides.get("debug", False),
        yaml_fallbacks=unified.fallbacks(),
    )


def build_engine(
    config: Config,
    interface: ConsoleInterface,
    client: GitHubClient | None = None,
) -> SyncEngine:
    local_store = LocalStore(config.local_root)
    state_dir = Path(config.state_dir)
    if not state_dir.is_absolute():
        state_dir = local_store.root / state_dir
    return SyncEngine(
        config=config,
        client=client or GitHubClient(config),
        local_store=local_store,
        interface=interface,
        state_store=StateStore(state_dir),
    )


def _print_report(report: SyncReport, as_json: bool) -> int:
    if as_json:
        print(json.dumps(report_to_json(report), indent=2))
    else:
        print(format_sync_report(report))
    if report.status == "failed" or report.errors:
        return EXIT_FAILED
    return EXIT_OK


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_sync(args, engine: SyncEngine, history: HistoryBrowser) -> int:
    report = engine.run(SyncKind.MANUAL, path=args.path)
    return _print_report(report, args.json)


def cmd_watch(
    args,
    engine: SyncEngine,
    history: HistoryBrowser,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Startup sync, then one automatic sync every interval."""
    report = engine.run(SyncKind.STARTUP)
    logger.info(report.summary())
    if not engine.config.auto_sync:
        _stderr_print("Automatic sync is disabled (sync.auto_sync: false).")
        return EXIT_OK

    interval = engine.config.sync_interval
    _stderr_print(f"Watching; syncing every {interval}s. Press Ctrl+C to stop.")
    runs = 0
    while args.max_runs is None or runs < args.max_runs:
        sleep(interval)
        report = engine.run(SyncKind.AUTO)
        logger.info(report.summary())
        runs += 1
    return EXIT_OK


def cmd_force_pull(args, engine: SyncEngine, history: HistoryBrowser) -> int:
    return _print_report(engine.force_pull(), args.json)


def cmd_force_push(args, engine: SyncEngine, history: HistoryBrowser) -> int:
    return _print_report(engine.force_push(), args.json)


def cmd_status(args, engine: SyncEngine, history: HistoryBrowser) -> int:
    status = engine.status()
    if args.json:
        print(json.dumps(status, indent=2))
    else:
        print(format_status(status))
    return EXIT_OK


def cmd_history(args, engine: SyncEngine, history: HistoryBrowser) -> int:
    commits = history.file_history(args.path)
    if args.json:
        print(json.dumps([c.model_dump() for c in commits], indent=2))
    else:
        print(format_history(commits))
    return EXIT_OK


def cmd_folder_history(args, engine: SyncEngine, history: HistoryBrowser) -> int:
    commits = history.folder_history(args.folder)
    changes = {}
    if args.changes:
        changes = {c.sha: history.folder_changes(c.sha, args.folder) for c in commits}
    if args.json:
        print(
            json.dumps(
                [
                    {
                        **c.model_dump(),
                        "files": [f.model_dump() for f in changes.get(c.sha, [])],
                    }
                    for c in commits
                ],
                indent=2,
            )
        )
    else:
        print(format_history(commits, changes))
    return EXIT_OK


def cmd_show(args, engine: SyncEngine, history: HistoryBrowser) -> int:
    sys.stdout.write(history.version_content(args.path, args.sha))
    return EXIT_OK


def cmd_restore(args, engine: SyncEngine, history: HistoryBrowser) -> int:
    if history.restore(args.path, args.sha):
        engine.note_modified(args.path)
        engine.state_store.save(engine.state)
        _stderr_print(
            f"Restored {args.path} from {args.sha[:7]}; it will be pushed on the next sync."
        )
    else:
        _stderr_print("Restore cancelled.")
    return EXIT_OK


def cmd_test_connection(args, engine: SyncEngine, history: HistoryBrowser) -> int:
    repo = engine.client.get_repository()
    name = repo.get("full_name") or f"{engine.config.owner}/{engine.config.repo}"
    _stderr_print(f"Connected to {name} (branch {engine.config.branch}).")
    return EXIT_OK


COMMANDS: dict[str, Callable[..., int]] = {
    "sync": cmd_sync,
    "watch": cmd_watch,
    "force-pull": cmd_force_pull,
    "force-push": cmd_force_push,
    "status": cmd_status,
    "history": cmd_history,
    "folder-history": cmd_folder_history,
    "show": cmd_show,
    "restore": cmd_restore,
    "test-connection": cmd_test_connection,
}


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docsync",
        description="Keep a local Markdown folder in sync with a GitHub repository",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Write a starter config to .docsync/config.yml
  docsync init

  # One manual sync (prompts on conflicts when policy is 'ask')
  docsync sync

  # Sync a sub-folder of the repository, resolving conflicts by merging
  docsync --remote-path notes --policy merge sync

  # Keep syncing every sync.interval seconds
  docsync watch

  # History of one document, then restore an older version
  docsync history daily/2024-01-01.md
  docsync restore daily/2024-01-01.md 1a2b3c4

Connection settings come from CLI flags, GITHUB_TOKEN / DOCSYNC_* environment
variables (a .env file is loaded), or .docsync/config.yml.
        """,
    )
    parser.add_argument("--token", help="GitHub token (prefer GITHUB_TOKEN)")
    parser.add_argument("--owner", help="Repository owner")
    parser.add_argument("--repo", help="Repository name")
    parser.add_argument("--branch", help="Branch to sync (default: main)")
    parser.add_argument(
        "--remote-path", help="Sub-path inside the repository (default: root)"
    )
    parser.add_argument(
        "--local-root", help="Local document folder (default: current directory)"
    )
    parser.add_argument(
        "--policy",
        choices=["local", "remote", "merge", "ask"],
        help="Conflict policy (default: ask)",
    )
    parser.add_argument(
        "--json", action="store_true", help="Machine-readable output"
    )
    parser.add_argument(
        "-y", "--yes", action="store_true", help="Answer yes to confirmations"
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--debug-format",
        choices=["text", "json"],
        default="text",
        help="Log format (default: text)",
    )
    parser.add_argument("--log-file", help="Also log to this file")
    parser.add_argument(
        "--version",
        action="version",
        version=f"docsync version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("sync", help="Run one synchronisation")
    p.add_argument("path", nargs="?", help="Only sync this local document")

    p = sub.add_parser("watch", help="Sync at startup, then every interval")
    p.add_argument("--max-runs", type=int, default=None, help=argparse.SUPPRESS)

    sub.add_parser("force-pull", help="Overwrite local documents with remote ones")
    sub.add_parser("force-push", help="Overwrite remote documents with local ones")
    sub.add_parser("status", help="Show pending work and tracked documents")

    p = sub.add_parser("history", help="Commits touching one document")
    p.add_argument("path")

    p = sub.add_parser("folder-history", help="Commits touching a folder")
    p.add_argument("folder", nargs="?", default="")
    p.add_argument(
        "--changes", action="store_true", help="List changed documents per commit"
    )

    p = sub.add_parser("show", help="Print a document as of a commit")
    p.add_argument("path")
    p.add_argument("sha")

    p = sub.add_parser("restore", help="Restore a document to a commit's version")
    p.add_argument("path")
    p.add_argument("sha")

    sub.add_parser("test-connection", help="Check credentials and repository access")
    sub.add_parser("init", help="Write a starter .docsync/config.yml")

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "init":
        setup_logging(debug=args.debug, debug_format=args.debug_format)
        path = ensure_config()
        _stderr_print(f"Config file: {path}")
        return EXIT_OK

    try:
        unified = load_unified()
    except ConfigurationError as e:
        _stderr_print(f"ERROR: {e}")
        return EXIT_FAILED

    setup_logging(
        mode="watch" if args.command == "watch" else "cli",
        debug=args.debug,
        log_file=args.log_file or unified.logging.file,
        debug_format=args.debug_format,
        level=unified.logging.level,
    )

    overrides = {
        "token": args.token,
        "owner": args.owner,
        "repo": args.repo,
        "branch": args.branch,
        "remote_path": args.remote_path,
        "local_root": args.local_root,
        "conflict_policy": args.policy,
        "debug": args.debug,
    }
    try:
        config = bootstrap(overrides, unified)
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        return EXIT_FAILED

    interface = ConsoleInterface(assume_yes=args.yes)
    engine = build_engine(config, interface)
    history = HistoryBrowser(
        engine.client, engine.mapper, engine.local_store, interface
    )

    try:
        return COMMANDS[args.command](args, engine, history)
    except DocSyncError as e:
        logger.error("%s failed: %s", args.command, e)
        _stderr_print(f"ERROR: {e}")
        return EXIT_FAILED


def run() -> None:
    """Entry point that handles errors gracefully."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
