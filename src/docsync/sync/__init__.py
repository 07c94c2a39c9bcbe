"""Bidirectional document sync engine.

Public API for synchronising a local folder of Markdown documents with a
folder of a GitHub repository.

Architecture
------------
The engine uses **metadata-based reconciliation**: every tracked document
has a ``DocumentMetadata`` record holding the blob sha and content hash of
the last synchronised version.  Local content is compared with the cached
hash, the listed remote sha with the cached sha; the two sides are never
compared with each other directly.

Modules:

- ``engine``    -- ``SyncEngine``: orchestrates a full sync run.
- ``detector``  -- ``ConflictDetector``: classifies every document.
- ``resolver``  -- ``ConflictResolver``: applies local/remote/merge/ask.
- ``state``     -- ``SyncState`` and ``StateStore``: JSON state file.
- ``mapper``    -- ``PathMapper``: local path to repository path.
- ``grace``     -- ``GracePeriodCache``: recent pushes and deletions.
- ``merger``    -- Line-membership merge with conflict markers.
- ``interface`` -- Prompts and verbosity-filtered notices.
- ``history``   -- ``HistoryBrowser``: commit history and restore.
- ``reporter``  -- Human-readable and JSON report formatting.

Usage example
-------------
::

    from docsync.config import load_config
    from docsync.core.client import GitHubClient
    from docsync.file_handler import LocalStore
    from docsync.sync import ConsoleInterface, StateStore, SyncEngine
    from docsync.sync import format_sync_report

    config = load_config(owner="me", repo="notes")
    store = LocalStore(config.local_root)
    engine = SyncEngine(
        config=config,
        client=GitHubClient(config),
        local_store=store,
        interface=ConsoleInterface(),
        state_store=StateStore(store.root / config.state_dir),
    )
    print(format_sync_report(engine.run()))
"""

from .checksum import content_hash
from .detector import ConflictDetector, Detection
from .engine import SyncEngine
from .grace import GracePeriodCache
from .history import HistoryBrowser
from .interface import ConsoleInterface, Notifier, SyncInterface
from .mapper import PathMapper
from .merger import merge_lines
from .models import (
    ConflictInfo,
    ConflictPolicy,
    DocumentMetadata,
    Resolution,
    SyncAction,
    SyncKind,
    SyncReport,
    SyncResult,
)
from .reporter import (
    format_history,
    format_status,
    format_sync_report,
    report_to_json,
)
from .resolver import ConflictResolver
from .state import StateStore, SyncState

__all__ = [
    "ConflictDetector",
    "ConflictInfo",
    "ConflictPolicy",
    "ConflictResolver",
    "ConsoleInterface",
    "Detection",
    "DocumentMetadata",
    "GracePeriodCache",
    "HistoryBrowser",
    "Notifier",
    "PathMapper",
    "Resolution",
    "StateStore",
    "SyncAction",
    "SyncEngine",
    "SyncInterface",
    "SyncKind",
    "SyncReport",
    "SyncResult",
    "SyncState",
    "content_hash",
    "format_history",
    "format_status",
    "format_sync_report",
    "merge_lines",
    "report_to_json",
]
