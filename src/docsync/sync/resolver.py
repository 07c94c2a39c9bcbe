"""Conflict resolution for the sync engine.

A conflict is a document whose local content and remote revision both
moved since the last sync. Resolution happens in two steps:

- ``decide()`` turns the configured ``ConflictPolicy`` into a concrete
  ``Resolution``. ``ask`` prompts the human only on interactive runs;
  automated runs never block and keep the local version with a warning.
- ``apply()`` makes the local side and the metadata reflect that
  resolution. Uploading is left to the engine's push phase.

Post-resolution state per resolution:

- ``local``  -- local content untouched, marked for push.
- ``remote`` -- remote content written locally (created if missing), both
  hashes set to the remote hash, revision id set to the remote sha, push
  mark cleared.
- ``merge``  -- ``merge_lines(local, remote)`` written locally, marked for
  push.

For ``local`` and ``merge`` the metadata adopts the remote sha and hash, so
the follow-up push updates exactly the revision the human looked at.
"""

from __future__ import annotations

import logging

from ..core.errors import LocalStoreError
from ..file_handler import LocalStore
from .checksum import content_hash
from .interface import Notifier, SyncInterface
from .merger import has_conflict_markers, merge_lines
from .models import (
    ConflictInfo,
    ConflictPolicy,
    Resolution,
    SyncAction,
    SyncKind,
    SyncResult,
    Verbosity,
)
from .state import SyncState

logger = logging.getLogger(__name__)


class ConflictResolver:
    """Decide and apply resolutions for conflicted documents.

    Args:
        policy: Configured conflict policy.
        interface: Human-facing collaborator used for ``ask``.
        local_store: Where resolved content is written.
        state: Engine state whose metadata and pending sets are updated.
        notifier: Verbosity-filtered notices; defaults to standard verbosity
            on *interface*.
    """

    def __init__(
        self,
        policy: ConflictPolicy | str,
        interface: SyncInterface,
        local_store: LocalStore,
        state: SyncState,
        notifier: Notifier | None = None,
    ) -> None:
        self.policy = ConflictPolicy(policy)
        self.interface = interface
        self.local_store = local_store
        self.state = state
        self.notifier = notifier or Notifier(interface, Verbosity.STANDARD)

    def decide(self, conflict: ConflictInfo, kind: SyncKind) -> Resolution:
        if self.policy is not ConflictPolicy.ASK:
            logger.info(
                "Resolving %s with policy %s",
                conflict.local_path,
                self.policy.value,
            )
            return Resolution(self.policy.value)

        if not kind.interactive:
            self.notifier.warning(
                f"Conflict in {conflict.local_path} during {kind.value} sync: "
                "kept local version"
            )
            return Resolution.LOCAL

        resolution = self.interface.choose_resolution(
            conflict.local_path,
            conflict.local_content or "",
            conflict.remote_content,
        )
        logger.info(
            "User chose %s for %s", Resolution(resolution).value, conflict.local_path
        )
        return Resolution(resolution)

    def apply(
        self, conflict: ConflictInfo, resolution: Resolution
    ) -> SyncResult:
        """Apply *resolution* locally. Never raises for local I/O failures.

        Returns:
            A ``CONFLICT`` result; unsuccessful when the local write failed,
            in which case the document stays conflicted for the next run.
        """
        path = conflict.local_path
        local = conflict.local_content or ""
        remote_hash = content_hash(conflict.remote_content)
        self.state.update(path, conflicted=True)

        try:
            if resolution is Resolution.REMOTE:
                self.local_store.write(path, conflict.remote_content)
                self.state.update(
                    path,
                    remote_revision_id=conflict.remote_sha,
                    local_content_hash=remote_hash,
                    remote_content_hash=remote_hash,
                    last_modified_at=self.local_store.mtime(path),
                    conflicted=False,
                )
                self.state.pending_push.discard(path)
                self.state.deferred_pull_for_active.discard(path)
            else:
                content = local
                if resolution is Resolution.MERGE:
                    content = merge_lines(local, conflict.remote_content)
                    if content != local or conflict.local_content is None:
                        self.local_store.write(path, content)
                    if has_conflict_markers(content):
                        self.notifier.warning(
                            f"{path} was merged with conflict markers; review it"
                        )
                self.state.update(
                    path,
                    remote_revision_id=conflict.remote_sha,
                    local_content_hash=content_hash(content),
                    remote_content_hash=remote_hash,
                    conflicted=False,
                )
                self.state.pending_push.add(path)
        except LocalStoreError as e:
            self.notifier.error(f"Could not resolve conflict in {path}: {e}")
            return SyncResult(
                local_path=path,
                remote_path=conflict.remote_path,
                action=SyncAction.CONFLICT,
                success=False,
                error=str(e),
            )

        self.notifier.progress(
            f"Resolved conflict in {path} ({resolution.value})"
        )
        return SyncResult(
            local_path=path,
            remote_path=conflict.remote_path,
            action=SyncAction.CONFLICT,
            success=True,
        )
