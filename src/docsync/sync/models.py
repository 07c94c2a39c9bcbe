"""Pydantic models for the sync engine.

Defines the data contracts used across all sync modules:

- ``SyncAction``: Enum of possible sync operations.
- ``SyncKind``: What triggered a run (manual, auto, startup...).
- ``ConflictPolicy`` / ``Resolution``: configured policy and the concrete
  outcome chosen for one conflict.
- ``Verbosity``: notification level.
- ``DocumentMetadata``: last known local/remote state of one document.
- ``LocalDocument``: a local document as read at the start of a run.
- ``ConflictInfo``: both versions of a conflicted document.
- ``SyncResult``: Outcome of one operation on one document.
- ``SyncReport``: Aggregate results for a full sync run.

All models are frozen (immutable); updates go through ``model_copy``.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class SyncAction(str, Enum):
    """Possible sync operations for one document."""

    SKIP = "skip"
    PUSH = "push"
    PULL = "pull"
    CONFLICT = "conflict"
    DELETE_LOCAL = "delete_local"
    DELETE_REMOTE = "delete_remote"


class SyncKind(str, Enum):
    """What triggered a run."""

    MANUAL = "manual"
    AUTO = "auto"
    STARTUP = "startup"
    REALTIME = "realtime"
    SAVE_ON_CLOSE = "save_on_close"

    @property
    def interactive(self) -> bool:
        """Only manual runs may block on a human decision."""
        return self is SyncKind.MANUAL

    @property
    def proactive_pull(self) -> bool:
        return self in (SyncKind.REALTIME, SyncKind.SAVE_ON_CLOSE)


class ConflictPolicy(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"
    MERGE = "merge"
    ASK = "ask"


class Resolution(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"
    MERGE = "merge"


class Verbosity(str, Enum):
    QUIET = "quiet"
    STANDARD = "standard"
    VERBOSE = "verbose"


class DocumentMetadata(BaseModel):
    """Last known state of one tracked document.

    Attributes:
        path: Local path (relative to the local root).
        remote_revision_id: Blob sha last associated with this path;
            ``""`` when it was never associated with a remote revision.
        local_content_hash: Hash of the local content at last refresh.
        remote_content_hash: Hash of the content of ``remote_revision_id``.
            A cache, not a live value.
        last_modified_at: Local mtime (epoch seconds) at last refresh.
        conflicted: True only while a conflict is unresolved.
    """

    path: str
    remote_revision_id: str = ""
    local_content_hash: str = ""
    remote_content_hash: str = ""
    last_modified_at: float = 0.0
    conflicted: bool = False

    model_config = {"frozen": True}


class LocalDocument(BaseModel):
    path: str
    content: str
    content_hash: str
    mtime: float = 0.0

    model_config = {"frozen": True}


class ConflictInfo(BaseModel):
    """Both versions of a document that changed on both sides.

    Attributes:
        local_path: Local document path.
        remote_path: Repository path.
        local_content: Current local content (``None`` if absent locally).
        remote_content: Current remote content.
        remote_sha: Blob sha of ``remote_content``.
    """

    local_path: str
    remote_path: str
    local_content: str | None
    remote_content: str
    remote_sha: str

    model_config = {"frozen": True}


class SyncResult(BaseModel):
    """Result of one operation on one document.

    Attributes:
        local_path: Local document path.
        remote_path: Repository path.
        action: Sync action that was performed.
        success: Whether the operation succeeded.
        error: Error message if the operation failed.
    """

    local_path: str
    remote_path: str
    action: SyncAction
    success: bool = True
    error: str | None = None

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Aggregate report for one run.

    Attributes:
        kind: What triggered the run.
        status: ``succeeded``, ``failed`` or ``skipped`` (refused run).
        results: Individual operation results.
        started_at: ISO 8601 timestamp when the run started.
        completed_at: ISO 8601 timestamp when the run finished.
        error: Run-level error message for failed/skipped runs.
    """

    kind: SyncKind = SyncKind.MANUAL
    status: str = "succeeded"
    results: list[SyncResult] = []
    started_at: str
    completed_at: str | None = None
    error: str | None = None

    model_config = {"frozen": True}

    def _done(self, action: SyncAction) -> list[SyncResult]:
        return [r for r in self.results if r.action == action and r.success]

    @property
    def pushed(self) -> list[SyncResult]:
        return self._done(SyncAction.PUSH)

    @property
    def pulled(self) -> list[SyncResult]:
        return self._done(SyncAction.PULL)

    @property
    def deleted_locally(self) -> list[SyncResult]:
        return self._done(SyncAction.DELETE_LOCAL)

    @property
    def deleted_remotely(self) -> list[SyncResult]:
        return self._done(SyncAction.DELETE_REMOTE)

    @property
    def pushed_count(self) -> int:
        return len(self.pushed)

    @property
    def pulled_count(self) -> int:
        return len(self.pulled)

    @property
    def deleted_locally_count(self) -> int:
        return len(self.deleted_locally)

    @property
    def deleted_remotely_count(self) -> int:
        return len(self.deleted_remotely)

    @property
    def conflicts(self) -> list[SyncResult]:
        """Results where action is CONFLICT (resolved or not)."""
        return [r for r in self.results if r.action == SyncAction.CONFLICT]

    @property
    def errors(self) -> list[SyncResult]:
        """Results where success is False."""
        return [r for r in self.results if not r.success]

    @property
    def changed(self) -> bool:
        return bool(
            self.pushed_count
            or self.pulled_count
            or self.deleted_locally_count
            or self.deleted_remotely_count
        )

    def summary(self) -> str:
        """One-line human-readable summary of the run."""
        if self.status == "skipped":
            return f"Sync skipped: {self.error or 'not started'}"
        if self.status == "failed":
            return f"Sync failed: {self.error or 'unknown error'}"
        if not self.changed and not self.errors and not self.conflicts:
            return "Sync complete: everything up to date"
        parts = [
            f"{self.pushed_count} pushed",
            f"{self.pulled_count} pulled",
            f"{self.deleted_locally_count} deleted locally",
            f"{self.deleted_remotely_count} deleted remotely",
        ]
        if self.conflicts:
            parts.append(f"{len(self.conflicts)} conflicts")
        if self.errors:
            parts.append(f"{len(self.errors)} errors")
        return "Sync complete: " + ", ".join(parts)
