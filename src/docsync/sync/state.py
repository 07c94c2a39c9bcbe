"""Sync state: the runtime record owned by the engine, and its persistence.

``SyncState`` holds everything a run reads and mutates: per-document
metadata, the pending-push and pending-delete queues, deferred pulls for
locked documents, and the run guard. ``StateStore`` loads and saves it as
``<state_dir>/state.json``.

Key design choices:

* **Atomic writes** -- ``save()`` writes to a temp file then calls
  ``os.replace()`` so readers never see partial data.
* **Legacy field migration** -- older camelCase metadata field names are
  folded into the current shape on load.
* ``pending_push`` is not persisted; detection rebuilds it every run.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Iterator
from pathlib import Path

from .models import DocumentMetadata

logger = logging.getLogger(__name__)

STATE_VERSION = 1
STATE_FILENAME = "state.json"

# Current field -> accepted legacy names, most specific first
_LEGACY_FIELDS: dict[str, tuple[str, ...]] = {
    "remote_revision_id": ("githubBlobSha", "sha", "remoteRevisionId"),
    "local_content_hash": ("localChecksum", "localContentHash"),
    "remote_content_hash": (
        "remoteContentChecksum",
        "remoteChecksum",
        "remoteContentHash",
    ),
    "last_modified_at": ("lastModified", "lastModifiedAt"),
}


def migrate_entry(path: str, raw: dict) -> DocumentMetadata:
    """Build metadata from a stored entry, accepting legacy field names.

    Missing fields default to empty/zero/false.
    """
    fields: dict = {"path": raw.get("path") or path}
    for name, legacy in _LEGACY_FIELDS.items():
        value = raw.get(name)
        if not value:
            value = next((raw[k] for k in legacy if raw.get(k)), None)
        if value is not None:
            fields[name] = value
    fields["conflicted"] = bool(raw.get("conflicted", False))
    if "last_modified_at" in fields:
        # Legacy timestamps were milliseconds
        ts = float(fields["last_modified_at"])
        fields["last_modified_at"] = ts / 1000 if ts > 1e11 else ts
    return DocumentMetadata(**fields)


class SyncState:
    """Runtime sync state for one engine.

    Attributes:
        in_progress: Run guard; only one run executes at a time.
        last_sync: Epoch seconds of the last finished run, or ``None``.
        metadata: Per-document metadata keyed by local path.
        pending_push: Paths with local changes not yet uploaded.
        pending_delete: Local path -> last known remote revision id, for
            documents deleted locally but not yet remotely.
        deferred_pull_for_active: Paths whose pull waits for the document
            to be released by the editor.
    """

    def __init__(
        self,
        metadata: dict[str, DocumentMetadata] | None = None,
        pending_delete: dict[str, str] | None = None,
        deferred_pull_for_active: set[str] | None = None,
        last_sync: float | None = None,
    ) -> None:
        self.in_progress = False
        self.last_sync = last_sync
        self.metadata: dict[str, DocumentMetadata] = dict(metadata or {})
        self.pending_push: set[str] = set()
        self.pending_delete: dict[str, str] = dict(pending_delete or {})
        self.deferred_pull_for_active: set[str] = set(
            deferred_pull_for_active or ()
        )

    # ------------------------------------------------------------------
    # Metadata access
    # ------------------------------------------------------------------

    def get(self, path: str) -> DocumentMetadata | None:
        return self.metadata.get(path)

    def set(self, metadata: DocumentMetadata) -> None:
        self.metadata[metadata.path] = metadata

    def update(self, path: str, **changes) -> DocumentMetadata:
        """Upsert fields on the metadata for *path* and return the new record."""
        current = self.metadata.get(path) or DocumentMetadata(path=path)
        updated = current.model_copy(update=changes)
        self.metadata[path] = updated
        return updated

    def delete(self, path: str) -> None:
        self.metadata.pop(path, None)

    def paths(self) -> list[str]:
        return sorted(self.metadata)

    def __iter__(self) -> Iterator[DocumentMetadata]:
        return iter([self.metadata[p] for p in self.paths()])

    def __len__(self) -> int:
        return len(self.metadata)

    def forget(self, path: str) -> None:
        """Drop every trace of *path* except a pending remote deletion."""
        self.metadata.pop(path, None)
        self.pending_push.discard(path)
        self.deferred_pull_for_active.discard(path)

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        return {
            "version": STATE_VERSION,
            "last_sync": self.last_sync,
            "metadata": {
                p: m.model_dump() for p, m in sorted(self.metadata.items())
            },
            "pending_delete": dict(sorted(self.pending_delete.items())),
            "deferred_pull_for_active": sorted(self.deferred_pull_for_active),
        }

    @classmethod
    def from_dict(cls, data: dict) -> SyncState:
        raw_meta = data.get("metadata") or data.get("fileMetadata") or {}
        metadata = {
            path: migrate_entry(path, entry)
            for path, entry in raw_meta.items()
            if isinstance(entry, dict)
        }
        pending_delete = data.get("pending_delete")
        if pending_delete is None:
            pending_delete = data.get("pendingDeletions", {})
        deferred = data.get("deferred_pull_for_active")
        if deferred is None:
            deferred = data.get("deferredPullForActive", [])
        last_sync = data.get("last_sync", data.get("lastSync"))
        if last_sync:
            last_sync = float(last_sync)
            if last_sync > 1e11:
                last_sync /= 1000
        return cls(
            metadata=metadata,
            pending_delete={str(k): str(v or "") for k, v in pending_delete.items()},
            deferred_pull_for_active=set(deferred),
            last_sync=last_sync or None,
        )


class StateStore:
    """Load and save ``SyncState`` under *state_dir*.

    Args:
        state_dir: Directory holding ``state.json`` (typically ``.docsync/``).
    """

    def __init__(self, state_dir: str | Path) -> None:
        self._state_dir = Path(state_dir)

    @property
    def path(self) -> Path:
        return self._state_dir / STATE_FILENAME

    def load(self) -> SyncState:
        """Load state from disk; an absent file yields an empty state."""
        if not self.path.exists():
            return SyncState()
        with open(self.path, encoding="utf-8") as fh:
            data = json.load(fh)
        if data.get("version", STATE_VERSION) > STATE_VERSION:
            logger.warning(
                "State file %s has newer version %s; loading what is understood",
                self.path,
                data.get("version"),
            )
        return SyncState.from_dict(data)

    def save(self, state: SyncState) -> None:
        """Persist *state* atomically, creating ``state_dir`` if needed."""
        self._state_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self._state_dir), suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(state.to_dict(), fh, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            # Clean up temp file on any failure.
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
