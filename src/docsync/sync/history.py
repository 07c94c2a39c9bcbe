"""Browse and restore historical versions of synchronised documents.

History comes from the Commits API on the configured branch. Restoring a
version only writes it locally: the restored content differs from the
cached remote hash, so the next sync run pushes it as a new revision.
"""

from __future__ import annotations

import logging

from ..core.client import CommitSummary, FileChange, GitHubClient
from ..file_handler import LocalStore
from .interface import SyncInterface
from .mapper import PathMapper, normalise_path

logger = logging.getLogger(__name__)

CHANGE_STATUSES = ("added", "modified", "removed", "renamed")


class HistoryBrowser:
    """File and folder history, version viewing, and restore.

    Args:
        client: GitHub API client.
        mapper: Local/remote path translation.
        local_store: Where restored versions are written.
        interface: Asked to confirm a restore.
    """

    def __init__(
        self,
        client: GitHubClient,
        mapper: PathMapper,
        local_store: LocalStore,
        interface: SyncInterface,
    ) -> None:
        self.client = client
        self.mapper = mapper
        self.local_store = local_store
        self.interface = interface

    def file_history(self, local_path: str) -> list[CommitSummary]:
        """Commits touching one document, newest first."""
        return self.client.list_commits(self.mapper.to_remote(local_path))

    def folder_history(self, local_folder: str = "") -> list[CommitSummary]:
        """Commits touching anything under a folder (``""`` = local root)."""
        return self.client.list_commits(self.mapper.to_remote(local_folder))

    def folder_changes(
        self, commit_sha: str, local_folder: str = ""
    ) -> list[FileChange]:
        """Markdown documents under *local_folder* changed by one commit.

        Paths in the returned changes are local paths. For renames,
        ``previous_path`` is the local path before the rename (or the
        repository path when it lay outside the synced prefix).
        """
        folder = self.mapper.to_remote(local_folder)
        head = f"{folder}/" if folder else ""
        changes: list[FileChange] = []
        for change in self.client.get_commit(commit_sha).files:
            remote_path = normalise_path(change.path)
            if head and not remote_path.startswith(head):
                continue
            if not self.mapper.is_document(remote_path):
                continue
            if change.status not in CHANGE_STATUSES:
                logger.debug(
                    "Treating status %r of %s as modified",
                    change.status,
                    remote_path,
                )
            previous = None
            if change.previous_path:
                previous = (
                    self.mapper.to_local(change.previous_path)
                    or change.previous_path
                )
            changes.append(
                FileChange(
                    path=self.mapper.to_local(remote_path) or remote_path,
                    status=(
                        change.status
                        if change.status in CHANGE_STATUSES
                        else "modified"
                    ),
                    previous_path=previous,
                )
            )
        return changes

    def version_content(self, local_path: str, commit_sha: str) -> str:
        """Content of a document as of *commit_sha*."""
        remote_path = self.mapper.to_remote(local_path)
        return self.client.get_file(remote_path, ref=commit_sha).content

    def restore(self, local_path: str, commit_sha: str) -> bool:
        """Overwrite the local document with its version at *commit_sha*.

        Returns:
            True when restored, False when the user declined.
        """
        content = self.version_content(local_path, commit_sha)
        if not self.interface.confirm(
            "Restore version",
            f"Replace local {local_path} with its version from {commit_sha[:7]}?",
        ):
            return False
        self.local_store.write(local_path, content)
        logger.info("Restored %s from %s", local_path, commit_sha)
        return True
