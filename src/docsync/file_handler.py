"""Local document store: encoding-aware read/write rooted at one directory.

All paths handed to ``LocalStore`` are relative, slash-separated document
paths. Resolution rejects anything that escapes the root.
"""

import logging
import os
from pathlib import Path

from charset_normalizer import from_bytes

from .core.errors import LocalStoreError

logger = logging.getLogger(__name__)

DOCUMENT_EXTENSIONS = (".md", ".markdown")


# =============================================================================
# File Read/Write
# =============================================================================


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a file with automatic encoding detection.

    Reads raw bytes first, then uses charset-normalizer to detect encoding.
    Defaults to UTF-8 for empty files or when detection fails.

    Args:
        path: Path to the file to read.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    raw = path.read_bytes()
    if not raw:
        return ("", "utf-8")

    try:
        return (raw.decode("utf-8"), "utf-8")
    except UnicodeDecodeError:
        pass

    result = from_bytes(raw).best()
    if result is None:
        return (raw.decode("utf-8", errors="replace"), "utf-8")
    return (str(result), result.encoding)


def write_file(path: Path, content: str, encoding: str = "utf-8") -> int:
    """Write content to a file, creating parent directories as needed.

    Returns:
        Number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    encoded = content.encode(encoding)
    path.write_bytes(encoded)
    return len(encoded)


# =============================================================================
# LocalStore
# =============================================================================


class LocalStore:
    """Document files under a single root directory.

    Hidden directories (``.docsync``, ``.git``...) are never listed.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()

    def resolve(self, path: str) -> Path:
        """Map a relative document path to an absolute path under the root.

        Raises:
            LocalStoreError: If the path is absolute or escapes the root.
        """
        if not path or path.startswith("/"):
            raise LocalStoreError(f"Invalid document path: {path!r}", path)
        resolved = (self.root / path).resolve()
        if not resolved.is_relative_to(self.root):
            raise LocalStoreError(
                f"Path is outside the local root: {path}", path
            )
        return resolved

    def exists(self, path: str) -> bool:
        return self.resolve(path).is_file()

    def read(self, path: str) -> str:
        target = self.resolve(path)
        try:
            content, encoding = read_file_with_encoding(target)
        except OSError as e:
            raise LocalStoreError(f"Cannot read {path}: {e}", path) from e
        if encoding != "utf-8":
            logger.debug("Read %s as %s", path, encoding)
        return content

    def write(self, path: str, content: str) -> int:
        """Create or overwrite ``path`` (parents included) with UTF-8 text."""
        target = self.resolve(path)
        try:
            return write_file(target, content)
        except OSError as e:
            raise LocalStoreError(f"Cannot write {path}: {e}", path) from e

    def delete(self, path: str) -> bool:
        """Remove ``path``. Returns False when it was already absent."""
        target = self.resolve(path)
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise LocalStoreError(f"Cannot delete {path}: {e}", path) from e
        return True

    def mtime(self, path: str) -> float:
        try:
            return self.resolve(path).stat().st_mtime
        except OSError as e:
            raise LocalStoreError(f"Cannot stat {path}: {e}", path) from e

    def list_documents(self) -> list[str]:
        """Return all markdown documents as sorted relative POSIX paths."""
        found: list[str] = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            for name in filenames:
                if name.lower().endswith(DOCUMENT_EXTENSIONS):
                    rel = Path(dirpath, name).relative_to(self.root)
                    found.append(rel.as_posix())
        return sorted(found)
