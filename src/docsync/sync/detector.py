"""Conflict detection: classify every document into one sync action.

Each side is compared against the last synchronised metadata, never
directly against the other side:

- **localChanged**  -- local hash != cached ``remote_content_hash``.
- **remoteChanged** -- listed remote sha != cached ``remote_revision_id``.

=============  ==============  ==========================================
localChanged   remoteChanged   action
=============  ==============  ==========================================
yes            yes             conflict (remote content fetched)
yes            no              push
no             yes             pull
no             no              skip (stale pending-push mark cleared)
=============  ==============  ==========================================

Documents missing on one side, documents without metadata, and the
degraded mode used when the remote listing is unavailable are handled
before the table applies. Push marks are recorded directly in
``SyncState.pending_push``; conflicts and fetch failures are returned in a
``Detection``. Pulls and local deletions are planned by the engine after
the push phase, against a fresh listing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..core.client import GitHubClient
from ..core.errors import DocSyncError, NotFoundError
from .checksum import content_hash
from .grace import GracePeriodCache
from .mapper import PathMapper
from .models import ConflictInfo, LocalDocument, SyncAction
from .state import SyncState

logger = logging.getLogger(__name__)


@dataclass
class Detection:
    """Outcome of one detection pass.

    Attributes:
        actions: Local path -> classified action.
        conflicts: Documents changed on both sides, with both contents.
        failures: Local path -> error for documents whose classification
            needed a remote fetch that failed.
    """

    actions: dict[str, SyncAction] = field(default_factory=dict)
    conflicts: list[ConflictInfo] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)

    def paths_with(self, action: SyncAction) -> list[str]:
        return sorted(p for p, a in self.actions.items() if a == action)


class ConflictDetector:
    """Classify documents by comparing both sides against metadata.

    Args:
        state: Engine state (metadata, pending sets).
        client: Used to fetch remote content for seeding and conflicts.
        mapper: Local/remote path translation.
        grace: Recent pushes are never classified delete-local.
    """

    def __init__(
        self,
        state: SyncState,
        client: GitHubClient,
        mapper: PathMapper,
        grace: GracePeriodCache,
    ) -> None:
        self.state = state
        self.client = client
        self.mapper = mapper
        self.grace = grace

    def detect(
        self,
        local_docs: dict[str, LocalDocument],
        remote_docs: dict[str, str] | None,
    ) -> Detection:
        """Classify documents.

        Args:
            local_docs: Local path -> document as read at the start of the run.
            remote_docs: Remote path -> blob sha, or ``None`` when the remote
                listing is unavailable.
        """
        if remote_docs is None:
            return self._detect_degraded(local_docs)

        detection = Detection()
        for path in sorted(local_docs):
            remote_sha = remote_docs.get(self.mapper.to_remote(path))
            if remote_sha is None:
                action = self._local_only(local_docs[path])
            else:
                action = self._both_sides(
                    local_docs[path], remote_sha, detection
                )
            detection.actions[path] = action
            meta = self.state.get(path)
            if (
                action is not SyncAction.CONFLICT
                and meta is not None
                and meta.conflicted
            ):
                # A failed fetch or write last run left the flag behind
                self.state.update(path, conflicted=False)

        for remote_path in sorted(remote_docs):
            path = self.mapper.to_local(remote_path)
            if not path or path in local_docs:
                continue
            if path in self.state.pending_delete:
                detection.actions[path] = SyncAction.SKIP
                continue
            detection.actions[path] = SyncAction.PULL

        logger.debug(
            "Detection: %d push, %d pull, %d conflict, %d delete-local",
            len(detection.paths_with(SyncAction.PUSH)),
            len(detection.paths_with(SyncAction.PULL)),
            len(detection.conflicts),
            len(detection.paths_with(SyncAction.DELETE_LOCAL)),
        )
        return detection

    # ------------------------------------------------------------------
    # Degraded mode
    # ------------------------------------------------------------------

    def _detect_degraded(
        self, local_docs: dict[str, LocalDocument]
    ) -> Detection:
        """Local-metadata-only heuristics: mark push candidates, nothing else."""
        logger.warning("Remote listing unavailable; only marking local changes")
        detection = Detection()
        for path, doc in sorted(local_docs.items()):
            meta = self.state.get(path)
            if meta is None or doc.content_hash != meta.remote_content_hash:
                self.state.pending_push.add(path)
                detection.actions[path] = SyncAction.PUSH
            else:
                detection.actions[path] = SyncAction.SKIP
        return detection

    # ------------------------------------------------------------------
    # Per-document rules
    # ------------------------------------------------------------------

    def _local_only(self, doc: LocalDocument) -> SyncAction:
        path = doc.path
        meta = self.state.get(path)
        if path in self.state.pending_delete:
            return SyncAction.SKIP

        if meta is None or not meta.remote_revision_id:
            self.state.pending_push.add(path)
            return SyncAction.PUSH

        if self.grace.was_recently_pushed(path):
            return SyncAction.SKIP

        if doc.content_hash != meta.remote_content_hash:
            # Deleted remotely but edited locally: keep the edit and
            # re-create the remote document.
            logger.info(
                "%s was deleted remotely but changed locally; re-creating it",
                path,
            )
            self.state.update(
                path, remote_revision_id="", remote_content_hash=""
            )
            self.state.pending_push.add(path)
            return SyncAction.PUSH

        return SyncAction.DELETE_LOCAL

    def _both_sides(
        self, doc: LocalDocument, remote_sha: str, detection: Detection
    ) -> SyncAction:
        path = doc.path
        meta = self.state.get(path)

        if meta is None:
            if not self._seed(doc, remote_sha, detection):
                return SyncAction.PUSH
            meta = self.state.get(path)

        local_changed = doc.content_hash != meta.remote_content_hash
        remote_changed = remote_sha != meta.remote_revision_id
        if remote_changed and self.grace.was_recently_pushed(path):
            # Listing still shows the revision our push replaced
            remote_changed = False

        if local_changed and remote_changed:
            return self._conflict(doc, detection)

        if local_changed:
            self.state.pending_push.add(path)
            return SyncAction.PUSH

        self.state.pending_push.discard(path)
        if remote_changed:
            return SyncAction.PULL
        return SyncAction.SKIP

    def _seed(
        self, doc: LocalDocument, remote_sha: str, detection: Detection
    ) -> bool:
        """Create metadata for a document that exists remotely but was never
        synchronised here. Returns False when the fetch failed."""
        path = doc.path
        remote_path = self.mapper.to_remote(path)
        try:
            remote = self.client.get_file(remote_path)
        except DocSyncError as e:
            logger.warning(
                "Could not fetch %s to seed metadata: %s", remote_path, e
            )
            self.state.pending_push.add(path)
            detection.failures[path] = str(e)
            return False

        self.state.update(
            path,
            remote_revision_id=remote.sha,
            remote_content_hash=content_hash(remote.content),
            local_content_hash=doc.content_hash,
            last_modified_at=doc.mtime,
        )
        if remote.sha != remote_sha:
            logger.debug(
                "Listing sha for %s is stale (%s != %s)",
                remote_path,
                remote_sha,
                remote.sha,
            )
        return True

    def _conflict(
        self, doc: LocalDocument, detection: Detection
    ) -> SyncAction:
        path = doc.path
        remote_path = self.mapper.to_remote(path)
        try:
            remote = self.client.get_file(remote_path)
        except NotFoundError:
            # Vanished between listing and fetch; next run decides again
            detection.failures[path] = f"{remote_path} disappeared during sync"
            return SyncAction.SKIP
        except DocSyncError as e:
            logger.warning(
                "Could not fetch %s for conflict resolution: %s", remote_path, e
            )
            self.state.update(path, conflicted=True)
            detection.failures[path] = str(e)
            return SyncAction.CONFLICT

        remote_hash = content_hash(remote.content)
        if remote_hash == doc.content_hash:
            # Both sides made the same change
            self.state.update(
                path,
                remote_revision_id=remote.sha,
                remote_content_hash=remote_hash,
                local_content_hash=doc.content_hash,
                last_modified_at=doc.mtime,
                conflicted=False,
            )
            self.state.pending_push.discard(path)
            return SyncAction.SKIP

        detection.conflicts.append(
            ConflictInfo(
                local_path=path,
                remote_path=remote_path,
                local_content=doc.content,
                remote_content=remote.content,
                remote_sha=remote.sha,
            )
        )
        return SyncAction.CONFLICT
