"""Sync engine: orchestrates one synchronisation run between the local
document store and a GitHub repository.

A run executes these phases in order, under a single in-progress guard:

0. Note documents removed locally since the last run (queue remote deletes).
1. Process ``pending_delete``: delete remotely with a freshly fetched sha.
2. Fetch the remote document listing.
3. Detect changes and resolve conflicts.
4. Push every ``pending_push`` document that still exists locally.
5. Re-fetch the remote listing (pushes changed it).
6. Plan pulls: new remote documents and remotely changed ones, except
   documents with unpushed local changes and locked (open) documents,
   whose pull is deferred.
7. Plan local deletions: unchanged documents that disappeared remotely.
8. Execute pulls and local deletions, expire grace-period entries.
9. Persist state (always, even when the run failed).

Error handling is per document: a failed push, pull or delete becomes an
unsuccessful ``SyncResult`` and the run continues. Anything unexpected
fails the whole run with a ``failed`` report.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone

from ..config import Config, validate_config
from ..core.client import GitHubClient
from ..core.errors import (
    ConfigurationError,
    DocSyncError,
    LocalStoreError,
    NotFoundError,
    RemoteError,
    StaleRevisionError,
)
from ..file_handler import LocalStore
from ..validators import validate_content, validate_document_path
from .checksum import content_hash
from .detector import ConflictDetector
from .grace import GracePeriodCache
from .interface import Notifier, SyncInterface
from .mapper import PathMapper
from .merger import merge_lines
from .models import (
    ConflictInfo,
    ConflictPolicy,
    LocalDocument,
    Resolution,
    SyncAction,
    SyncKind,
    SyncReport,
    SyncResult,
)
from .resolver import ConflictResolver
from .state import StateStore

logger = logging.getLogger(__name__)


class SyncEngine:
    """Keep the local store convergent with the remote store.

    Args:
        config: Runtime configuration.
        client: GitHub API client.
        local_store: Local document store.
        interface: Human-facing collaborator (prompts and notices).
        state_store: Loads and saves the persisted sync state.
        is_locked: Predicate telling whether a local document is currently
            open for editing; pulls of locked documents are deferred.
        clock: Time source (epoch seconds).
        sleep: Used for backoff between stale-revision retries.
    """

    def __init__(
        self,
        config: Config,
        client: GitHubClient,
        local_store: LocalStore,
        interface: SyncInterface,
        state_store: StateStore,
        is_locked: Callable[[str], bool] | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.client = client
        self.local_store = local_store
        self.interface = interface
        self.state_store = state_store
        self.is_locked = is_locked or (lambda path: False)
        self._clock = clock
        self._sleep = sleep

        self.mapper = PathMapper(config.remote_path)
        self.notifier = Notifier(interface, config.verbosity)
        self.grace = GracePeriodCache(clock=clock)
        self.state = state_store.load()
        self.detector = ConflictDetector(
            self.state, client, self.mapper, self.grace
        )
        self.resolver = ConflictResolver(
            config.conflict_policy,
            interface,
            local_store,
            self.state,
            self.notifier,
        )
        self.policy = ConflictPolicy(config.conflict_policy)
        self._decisions: dict[str, Resolution] = {}
        self._config_error_reported = False

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    def run(
        self, kind: SyncKind = SyncKind.MANUAL, path: str | None = None
    ) -> SyncReport:
        """Execute one synchronisation run.

        Args:
            kind: What triggered the run; decides whether prompts are allowed.
            path: Restrict the run to a single local document.

        Returns:
            A ``SyncReport``; ``skipped`` when refused, ``failed`` when an
            unexpected error aborted the run.
        """
        return self._guarded(
            kind, lambda results: self._run_phases(kind, path, results)
        )

    def force_pull(self) -> SyncReport:
        """Overwrite local documents with every remote document."""
        return self._guarded(
            SyncKind.MANUAL,
            self._force_pull,
            confirm=(
                "Force pull",
                "Every local document will be overwritten with its remote version.",
            ),
        )

    def force_push(self) -> SyncReport:
        """Overwrite remote documents with every local document."""
        return self._guarded(
            SyncKind.MANUAL,
            self._force_push,
            confirm=(
                "Force push",
                "Every remote document will be overwritten with its local version.",
            ),
        )

    def release(self, path: str) -> SyncReport | None:
        """Signal that *path* is no longer open; run its deferred pull.

        Returns ``None`` when nothing was deferred for *path* or a run is
        in progress (the next run pulls it instead).
        """
        if path not in self.state.deferred_pull_for_active:
            return None
        if self.state.in_progress:
            logger.info("Deferred pull for %s waits for the current run", path)
            return None
        return self._guarded(
            SyncKind.MANUAL,
            lambda results: results.append(self._pull_result(path)),
        )

    def status(self) -> dict:
        """Read-only snapshot of the engine state for display."""
        return {
            "in_progress": self.state.in_progress,
            "last_sync": self.state.last_sync,
            "tracked": len(self.state),
            "pending_push": sorted(self.state.pending_push),
            "pending_delete": sorted(self.state.pending_delete),
            "deferred_pull_for_active": sorted(
                self.state.deferred_pull_for_active
            ),
            "conflicted": [m.path for m in self.state if m.conflicted],
        }

    # ------------------------------------------------------------------
    # Local change events
    # ------------------------------------------------------------------

    def note_modified(self, path: str) -> None:
        """Record a local edit: refresh the local hash and the push mark."""
        if not self.mapper.is_document(path):
            return
        try:
            content = self.local_store.read(path)
        except LocalStoreError as e:
            logger.warning("Cannot read modified document %s: %s", path, e)
            return
        digest = content_hash(content)
        meta = self.state.update(
            path,
            local_content_hash=digest,
            last_modified_at=self._mtime(path),
        )
        if digest != meta.remote_content_hash:
            self.state.pending_push.add(path)
        else:
            self.state.pending_push.discard(path)

    def note_created(self, path: str) -> None:
        self.state.pending_delete.pop(path, None)
        self.note_modified(path)

    def note_deleted(self, path: str) -> None:
        """Queue a remote deletion for a document deleted locally."""
        meta = self.state.get(path)
        if meta is not None and meta.remote_revision_id:
            self.state.pending_delete[path] = meta.remote_revision_id
        self.state.forget(path)

    def note_renamed(self, old_path: str, new_path: str) -> None:
        """A rename is a remote delete of the old path plus a new document."""
        self.note_deleted(old_path)
        self.note_created(new_path)

    # ------------------------------------------------------------------
    # Guard, persistence, reporting
    # ------------------------------------------------------------------

    def _guarded(
        self,
        kind: SyncKind,
        body: Callable[[list[SyncResult]], None],
        confirm: tuple[str, str] | None = None,
    ) -> SyncReport:
        started_at = self._now()

        if self.state.in_progress:
            self.notifier.info("Sync already in progress")
            return self._report(kind, "skipped", [], started_at, "already running")

        try:
            validate_config(self.config)
        except ConfigurationError as e:
            if not self._config_error_reported:
                self.notifier.error(f"Sync not started: {e}")
                self._config_error_reported = True
            return self._report(kind, "skipped", [], started_at, str(e))

        if confirm is not None and not self.interface.confirm(*confirm):
            self.notifier.info(f"{confirm[0]} cancelled")
            return self._report(kind, "skipped", [], started_at, "cancelled")

        self.state.in_progress = True
        self._decisions = {}
        results: list[SyncResult] = []
        status, error = "succeeded", None
        try:
            body(results)
            self.state.last_sync = self._clock()
        except Exception as exc:
            logger.exception("Sync run failed")
            status, error = "failed", str(exc)
            self.notifier.error(f"Sync failed: {exc}")
        finally:
            self.state.in_progress = False
            persist_error = self._persist()

        if persist_error and status == "succeeded":
            status, error = "failed", persist_error

        report = self._report(kind, status, results, started_at, error)
        if status == "succeeded":
            if report.changed:
                self.notifier.success(report.summary())
            else:
                self.notifier.progress(report.summary())
        return report

    def _persist(self) -> str | None:
        try:
            self.state_store.save(self.state)
        except OSError as e:
            logger.error("Could not save sync state: %s", e)
            self.notifier.error(f"Could not save sync state: {e}")
            return f"Could not save sync state: {e}"
        return None

    def _report(
        self,
        kind: SyncKind,
        status: str,
        results: list[SyncResult],
        started_at: str,
        error: str | None,
    ) -> SyncReport:
        return SyncReport(
            kind=kind,
            status=status,
            results=results,
            started_at=started_at,
            completed_at=self._now(),
            error=error,
        )

    def _now(self) -> str:
        return datetime.fromtimestamp(self._clock(), timezone.utc).isoformat()

    def _mtime(self, path: str) -> float:
        try:
            return self.local_store.mtime(path)
        except LocalStoreError:
            return 0.0

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _run_phases(
        self, kind: SyncKind, only: str | None, results: list[SyncResult]
    ) -> None:
        def in_scope(path: str) -> bool:
            return only is None or path == only

        local_paths = [p for p in self.local_store.list_documents() if in_scope(p)]

        # 0. Documents removed while nobody was watching
        self._note_missing(set(local_paths), in_scope)

        # 1. Pending remote deletions
        for path in sorted(self.state.pending_delete):
            if in_scope(path):
                results.append(self._delete_remote_result(path))

        # 2. Remote listing
        remote = self._fetch_remote_state()
        if remote is not None and only is not None:
            remote = {
                rp: sha for rp, sha in remote.items()
                if self.mapper.to_local(rp) == only
            }

        # 3. Detection and conflict resolution
        local_docs = self._read_local_documents(local_paths, results)
        detection = self.detector.detect(local_docs, remote)
        for path, error in detection.failures.items():
            action = detection.actions.get(path, SyncAction.SKIP)
            results.append(
                SyncResult(
                    local_path=path,
                    remote_path=self.mapper.to_remote(path),
                    action=action,
                    success=False,
                    error=error,
                )
            )
            self.notifier.warning(f"Could not check {path}: {error}")
        for conflict in detection.conflicts:
            resolution = self.resolver.decide(conflict, kind)
            self._decisions[conflict.local_path] = resolution
            results.append(self.resolver.apply(conflict, resolution))

        # 4. Pushes
        for path in sorted(self.state.pending_push):
            if not in_scope(path):
                continue
            if not self.local_store.exists(path):
                self.state.pending_push.discard(path)
                continue
            meta = self.state.get(path)
            if meta is not None and meta.conflicted:
                continue
            if (
                kind.proactive_pull
                and remote is not None
                and not self.is_locked(path)
                and self._push_mark_is_stale(path, remote)
            ):
                results.append(self._pull_result(path))
                continue
            results.append(self._push_result(path, kind))

        # 5. Fresh listing
        remote = self._fetch_remote_state()
        if remote is None:
            self.notifier.warning(
                "Remote listing unavailable: pulls and local deletions skipped"
            )
            self.grace.expire()
            return

        # 6-7. Plan incoming changes
        current = {p for p in self.local_store.list_documents() if in_scope(p)}
        pulls = self._plan_pulls(remote, current, in_scope)
        deletions = self._plan_local_deletions(remote, current)

        # 8. Execute
        for path in pulls:
            results.append(self._pull_result(path))
        for path in deletions:
            results.append(self._delete_local_result(path))
        self.grace.expire()

    def _note_missing(
        self, local_paths: set[str], in_scope: Callable[[str], bool]
    ) -> None:
        for meta in list(self.state):
            path = meta.path
            if not in_scope(path) or path in local_paths:
                continue
            if path in self.state.pending_delete:
                continue
            if meta.remote_revision_id:
                logger.info("%s was deleted locally; queueing remote delete", path)
            self.note_deleted(path)

    def _read_local_documents(
        self, paths: list[str], results: list[SyncResult]
    ) -> dict[str, LocalDocument]:
        docs: dict[str, LocalDocument] = {}
        for path in paths:
            try:
                content = self.local_store.read(path)
            except LocalStoreError as e:
                self.notifier.error(f"Could not read {path}: {e}")
                results.append(
                    SyncResult(
                        local_path=path,
                        remote_path=self.mapper.to_remote(path),
                        action=SyncAction.SKIP,
                        success=False,
                        error=str(e),
                    )
                )
                continue
            docs[path] = LocalDocument(
                path=path,
                content=content,
                content_hash=content_hash(content),
                mtime=self._mtime(path),
            )
        return docs

    def _fetch_remote_state(self) -> dict[str, str] | None:
        """Remote path -> blob sha for tracked documents, or ``None``.

        Recently deleted documents are left out, and recently pushed ones
        report the sha of our push when the listing still lags behind.
        """
        try:
            listing = self._walk_remote(self.mapper.prefix)
        except DocSyncError as e:
            logger.warning("Could not list remote documents: %s", e)
            return None

        remote: dict[str, str] = {}
        for remote_path, sha in listing.items():
            path = self.mapper.to_local(remote_path)
            if not path:
                continue
            if self.grace.was_recently_deleted(path):
                continue
            meta = self.state.get(path)
            if (
                meta is not None
                and meta.remote_revision_id
                and sha != meta.remote_revision_id
                and self.grace.was_recently_pushed(path)
            ):
                sha = meta.remote_revision_id
            remote[remote_path] = sha
        return remote

    def _walk_remote(self, directory: str) -> dict[str, str]:
        found: dict[str, str] = {}
        for entry in self.client.list_directory(directory):
            if entry.type == "dir":
                found.update(self._walk_remote(entry.path))
            elif entry.type == "file" and self.mapper.is_tracked_remote(
                entry.path
            ):
                found[entry.path] = entry.sha
        return found

    def _push_mark_is_stale(self, path: str, remote: dict[str, str]) -> bool:
        """True when the remote moved on but the local content did not."""
        meta = self.state.get(path)
        listed = remote.get(self.mapper.to_remote(path))
        if meta is None or listed is None or listed == meta.remote_revision_id:
            return False
        try:
            local = self.local_store.read(path)
        except LocalStoreError:
            return False
        return content_hash(local) == meta.remote_content_hash

    def _local_unchanged(self, path: str) -> bool:
        meta = self.state.get(path)
        if meta is None:
            return False
        try:
            local = self.local_store.read(path)
        except LocalStoreError:
            return False
        return content_hash(local) == meta.remote_content_hash

    def _plan_pulls(
        self,
        remote: dict[str, str],
        local_paths: set[str],
        in_scope: Callable[[str], bool],
    ) -> list[str]:
        pulls: list[str] = []
        overwrite = self.policy is ConflictPolicy.REMOTE
        for remote_path, sha in sorted(remote.items()):
            path = self.mapper.to_local(remote_path)
            if not path or not in_scope(path):
                continue
            if path in self.state.pending_delete:
                continue
            if path not in local_paths:
                pulls.append(path)
                continue

            meta = self.state.get(path)
            if meta is None or sha == meta.remote_revision_id:
                continue
            if not overwrite and (
                path in self.state.pending_push or not self._local_unchanged(path)
            ):
                # Unpushed local edits: next run treats it as a conflict
                continue
            if self.is_locked(path):
                if path not in self.state.deferred_pull_for_active:
                    self.notifier.info(
                        f"{path} changed remotely; pull deferred until it is closed"
                    )
                self.state.deferred_pull_for_active.add(path)
                continue
            pulls.append(path)
        return pulls

    def _plan_local_deletions(
        self, remote: dict[str, str], local_paths: set[str]
    ) -> list[str]:
        deletions: list[str] = []
        for path in sorted(local_paths):
            if self.mapper.to_remote(path) in remote:
                continue
            meta = self.state.get(path)
            if meta is None or not meta.remote_revision_id:
                continue
            if (
                self.grace.was_recently_pushed(path)
                or path in self.state.pending_delete
                or path in self.state.pending_push
                or self.is_locked(path)
            ):
                continue
            if not self._local_unchanged(path):
                # Edited locally; detection re-creates it remotely next run
                continue
            deletions.append(path)
        return deletions

    # ------------------------------------------------------------------
    # Force operations
    # ------------------------------------------------------------------

    def _force_pull(self, results: list[SyncResult]) -> None:
        remote = self._fetch_remote_state()
        if remote is None:
            raise RemoteError("Could not retrieve remote documents")
        for remote_path in sorted(remote):
            path = self.mapper.to_local(remote_path)
            if path:
                results.append(self._pull_result(path))

    def _force_push(self, results: list[SyncResult]) -> None:
        for path in self.local_store.list_documents():
            self._decisions[path] = Resolution.LOCAL
            results.append(self._push_result(path, SyncKind.MANUAL, attempts=1))

    # ------------------------------------------------------------------
    # Push protocol
    # ------------------------------------------------------------------

    def _push_result(
        self, path: str, kind: SyncKind, attempts: int | None = None
    ) -> SyncResult:
        remote_path = self.mapper.to_remote(path)
        try:
            action = self._push(path, remote_path, kind, attempts)
        except DocSyncError as e:
            self.notifier.error(f"Failed to push {path}: {e}")
            return SyncResult(
                local_path=path,
                remote_path=remote_path,
                action=SyncAction.PUSH,
                success=False,
                error=str(e),
            )
        if action is SyncAction.PUSH:
            self.notifier.progress(f"Pushed {path}")
        return SyncResult(local_path=path, remote_path=remote_path, action=action)

    def _push(
        self,
        path: str,
        remote_path: str,
        kind: SyncKind,
        attempts: int | None = None,
    ) -> SyncAction:
        """Upload one document; returns the action actually performed.

        Each attempt refetches the current remote sha and content. A remote
        version that moved since the last sync is a live conflict; the
        decision is taken once and reused for later attempts.
        """
        valid, reason = validate_document_path(remote_path)
        if not valid:
            raise DocSyncError(reason)
        content = self.local_store.read(path)
        valid, reason = validate_content(content)
        if not valid:
            raise DocSyncError(reason)

        attempts = attempts or self.config.max_retries
        decision = self._decisions.get(path)

        for attempt in range(1, attempts + 1):
            try:
                current = self.client.get_file(remote_path)
            except NotFoundError:
                current = None

            local_hash = content_hash(content)
            sha = None
            if current is not None:
                sha = current.sha
                remote_hash = content_hash(current.content)
                if remote_hash == local_hash:
                    self._record_synced(path, current.sha, local_hash)
                    return SyncAction.SKIP

                meta = self.state.get(path)
                if meta is None or remote_hash != meta.remote_content_hash:
                    logger.warning(
                        "Remote %s changed since last sync (attempt %d/%d)",
                        remote_path,
                        attempt,
                        attempts,
                    )
                    conflict = ConflictInfo(
                        local_path=path,
                        remote_path=remote_path,
                        local_content=content,
                        remote_content=current.content,
                        remote_sha=current.sha,
                    )
                    if decision is None:
                        decision = self.resolver.decide(conflict, kind)
                        self._decisions[path] = decision
                    if decision is Resolution.REMOTE:
                        result = self.resolver.apply(conflict, decision)
                        if not result.success:
                            raise LocalStoreError(result.error or "", path)
                        return SyncAction.PULL
                    if decision is Resolution.MERGE:
                        merged = merge_lines(content, current.content)
                        if merged != content:
                            self.local_store.write(path, merged)
                            content = merged
                            local_hash = content_hash(merged)

            message = f"Update {remote_path}" if sha else f"Add {remote_path}"
            try:
                new_sha = self.client.put_file(
                    remote_path, content, message, sha=sha
                )
            except StaleRevisionError:
                if attempt >= attempts:
                    raise
                logger.warning(
                    "Stale revision for %s (attempt %d/%d), retrying",
                    remote_path,
                    attempt,
                    attempts,
                )
                self._sleep(self.config.retry_delay * attempt)
                continue

            self._record_synced(path, new_sha, local_hash)
            self.grace.mark_pushed(path)
            logger.info("Pushed %s as %s", remote_path, new_sha)
            return SyncAction.PUSH

        raise StaleRevisionError(f"Gave up pushing {remote_path}", path=remote_path)

    def _record_synced(self, path: str, sha: str, digest: str) -> None:
        self.state.update(
            path,
            remote_revision_id=sha,
            local_content_hash=digest,
            remote_content_hash=digest,
            last_modified_at=self._mtime(path),
            conflicted=False,
        )
        self.state.pending_push.discard(path)
        self.state.deferred_pull_for_active.discard(path)

    # ------------------------------------------------------------------
    # Pull
    # ------------------------------------------------------------------

    def _pull_result(self, path: str) -> SyncResult:
        remote_path = self.mapper.to_remote(path)
        try:
            self._pull(path, remote_path)
        except NotFoundError:
            logger.info("%s disappeared before it could be pulled", remote_path)
            self.state.deferred_pull_for_active.discard(path)
            return SyncResult(
                local_path=path, remote_path=remote_path, action=SyncAction.SKIP
            )
        except DocSyncError as e:
            self.notifier.error(f"Failed to pull {path}: {e}")
            return SyncResult(
                local_path=path,
                remote_path=remote_path,
                action=SyncAction.PULL,
                success=False,
                error=str(e),
            )
        self.notifier.progress(f"Pulled {path}")
        return SyncResult(
            local_path=path, remote_path=remote_path, action=SyncAction.PULL
        )

    def _pull(self, path: str, remote_path: str) -> None:
        remote = self.client.get_file(remote_path)
        if (
            not self.local_store.exists(path)
            or self.local_store.read(path) != remote.content
        ):
            self.local_store.write(path, remote.content)
        self._record_synced(path, remote.sha, content_hash(remote.content))
        logger.info("Pulled %s at %s", remote_path, remote.sha)

    # ------------------------------------------------------------------
    # Delete protocols
    # ------------------------------------------------------------------

    def _delete_remote_result(self, path: str) -> SyncResult:
        remote_path = self.mapper.to_remote(path)
        try:
            self._delete_remote(path, remote_path)
        except DocSyncError as e:
            self.notifier.error(f"Failed to delete remote {remote_path}: {e}")
            return SyncResult(
                local_path=path,
                remote_path=remote_path,
                action=SyncAction.DELETE_REMOTE,
                success=False,
                error=str(e),
            )
        self.state.pending_delete.pop(path, None)
        self.state.forget(path)
        self.notifier.progress(f"Deleted remote {remote_path}")
        return SyncResult(
            local_path=path,
            remote_path=remote_path,
            action=SyncAction.DELETE_REMOTE,
        )

    def _delete_remote(self, path: str, remote_path: str) -> None:
        """Delete with a freshly fetched sha; absent counts as deleted."""
        attempts = self.config.max_retries
        for attempt in range(1, attempts + 1):
            try:
                current = self.client.get_file(remote_path)
            except NotFoundError:
                logger.info("%s already absent remotely", remote_path)
                break
            try:
                self.client.delete_file(
                    remote_path, current.sha, f"Delete {remote_path}"
                )
                break
            except NotFoundError:
                break
            except StaleRevisionError:
                if attempt >= attempts:
                    raise
                logger.warning(
                    "Stale revision deleting %s (attempt %d/%d), retrying",
                    remote_path,
                    attempt,
                    attempts,
                )
                self._sleep(self.config.retry_delay * attempt)
        self.grace.mark_deleted(path)

    def _delete_local_result(self, path: str) -> SyncResult:
        remote_path = self.mapper.to_remote(path)
        try:
            self.local_store.delete(path)
        except LocalStoreError as e:
            self.notifier.error(f"Failed to delete {path}: {e}")
            return SyncResult(
                local_path=path,
                remote_path=remote_path,
                action=SyncAction.DELETE_LOCAL,
                success=False,
                error=str(e),
            )
        self.state.forget(path)
        self.notifier.progress(f"Deleted {path} (removed remotely)")
        return SyncResult(
            local_path=path,
            remote_path=remote_path,
            action=SyncAction.DELETE_LOCAL,
        )
