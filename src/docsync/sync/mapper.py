"""Path mapper between local document paths and repository paths.

Local paths are relative to the local root; remote paths are relative to
the repository root. The configured remote prefix is the only difference:

    local  ``daily/2024-01-01.md``
    remote ``notes/daily/2024-01-01.md``   (prefix ``notes``)

An empty prefix maps the local root onto the repository root. Remote paths
outside the prefix are not tracked.
"""

from __future__ import annotations

DOCUMENT_EXTENSIONS = (".md", ".markdown")


def normalise_path(path: str) -> str:
    """Use forward slashes, collapse repeats, and drop edge separators."""
    parts = [p for p in path.replace("\\", "/").split("/") if p]
    return "/".join(parts)


class PathMapper:
    """Map local document paths to repository paths and back.

    Args:
        remote_prefix: Sub-path inside the repository (``""`` for the root).
    """

    def __init__(self, remote_prefix: str = "") -> None:
        self._prefix = normalise_path(remote_prefix)

    @property
    def prefix(self) -> str:
        return self._prefix

    def to_remote(self, local_path: str) -> str:
        local = normalise_path(local_path)
        if not self._prefix:
            return local
        if not local:
            return self._prefix
        return f"{self._prefix}/{local}"

    def to_local(self, remote_path: str) -> str | None:
        """Reverse of ``to_remote``; ``None`` when outside the prefix."""
        remote = normalise_path(remote_path)
        if not self._prefix:
            return remote
        if remote == self._prefix:
            return ""
        head = f"{self._prefix}/"
        if not remote.startswith(head):
            return None
        return remote[len(head):]

    def is_tracked_remote(self, remote_path: str) -> bool:
        local = self.to_local(remote_path)
        return bool(local) and self.is_document(remote_path)

    @staticmethod
    def is_document(path: str) -> bool:
        return path.lower().endswith(DOCUMENT_EXTENSIONS)
