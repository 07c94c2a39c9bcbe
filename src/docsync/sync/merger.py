"""Line-membership merge and diff utilities for the sync engine.

``merge_lines`` is deliberately simple: it does not align the two versions,
it only checks whether the remote version contains any line the local one
lacks. Repeated lines are therefore invisible to it, and a merged result
always keeps the local version first.

Conflict markers follow Git convention with custom labels:
``<<<<<<< local``, ``=======``, ``>>>>>>> remote``.
"""

from __future__ import annotations

import difflib

START_MARKER = "<<<<<<< local"
MID_MARKER = "======="
END_MARKER = ">>>>>>> remote"


def merge_lines(local_content: str, remote_content: str) -> str:
    """Merge two versions of a document.

    If every remote line already occurs somewhere in the local version the
    local content is returned unchanged. Otherwise both versions are kept,
    wrapped in conflict markers, local first.
    """
    local_lines = set(local_content.splitlines())
    if all(line in local_lines for line in remote_content.splitlines()):
        return local_content
    return (
        f"{START_MARKER}\n{local_content}\n{MID_MARKER}\n"
        f"{remote_content}\n{END_MARKER}\n"
    )


def has_conflict_markers(content: str) -> bool:
    return START_MARKER in content and END_MARKER in content


def generate_diff(
    old_content: str,
    new_content: str,
    label_old: str = "old",
    label_new: str = "new",
) -> str:
    """Generate a unified diff between two strings.

    Args:
        old_content: The original content.
        new_content: The modified content.
        label_old: Label for the old file in the diff header.
        label_new: Label for the new file in the diff header.

    Returns:
        A unified diff string.  Empty string if the contents are identical.
    """
    diff_lines = difflib.unified_diff(
        old_content.splitlines(True),
        new_content.splitlines(True),
        fromfile=label_old,
        tofile=label_new,
    )
    return "".join(diff_lines)
