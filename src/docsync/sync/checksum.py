"""Content hashing for change detection.

``content_hash()`` normalises content before SHA-256 so the same document
hashes identically whether it was read from disk on Windows or decoded from
the GitHub API:

1. Strip a leading BOM (``\\ufeff``).
2. Replace ``\\r\\n`` and lone ``\\r`` with ``\\n``.

Whitespace is otherwise significant: a trailing-space edit is a real change
that must be pushed.
"""

from __future__ import annotations

import hashlib


def normalise(content: str) -> str:
    text = content.removeprefix("\ufeff")
    return text.replace("\r\n", "\n").replace("\r", "\n")


def content_hash(content: str) -> str:
    """Return the SHA-256 hex digest of the normalised UTF-8 content."""
    return hashlib.sha256(normalise(content).encode("utf-8")).hexdigest()
