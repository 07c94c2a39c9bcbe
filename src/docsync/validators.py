"""
Input validation functions for docsync.

Provides validation for document paths and content so bad inputs are
rejected before any GitHub API call is made.
"""

DEFAULT_MAX_CONTENT_SIZE = 1_000_000


# ---------------------------------------------------------------------------
# Error message formatting helpers
# ---------------------------------------------------------------------------


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "Document path")
        reason: Description of validation failure (e.g., "cannot be empty")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def validate_document_path(path: str) -> tuple[bool, str]:
    """
    Validate a relative document path (local or remote).

    Args:
        path: Slash-separated path to validate

    Returns:
        Tuple of (is_valid, error_message).
        Returns (True, "") if valid, (False, reason) if invalid.

    Validation rules:
        - Cannot be empty or whitespace-only
        - Cannot be absolute
        - Cannot contain '..' segments (path traversal protection)
        - Cannot have empty path segments (e.g., 'notes//a.md')
    """
    if not path or not path.strip():
        return (
            False,
            format_validation_error("Document path", "cannot be empty"),
        )

    if path.startswith("/"):
        return (
            False,
            format_validation_error("Document path", "must be relative"),
        )

    if ".." in path.split("/"):
        return (
            False,
            format_validation_error("Document path", "cannot contain '..'"),
        )

    if "//" in path:
        return (
            False,
            format_validation_error(
                "Document path", "cannot have empty path segments"
            ),
        )

    return (True, "")


def validate_content(
    content: str, max_size: int = DEFAULT_MAX_CONTENT_SIZE
) -> tuple[bool, str]:
    """
    Validate document content before it is uploaded.

    Empty documents are allowed; only the encoded size is limited.

    Args:
        content: The content to validate
        max_size: Maximum size in bytes (default: 1,000,000)

    Returns:
        Tuple of (is_valid, error_message).
    """
    content_bytes = len(content.encode("utf-8"))
    if content_bytes > max_size:
        return (
            False,
            format_validation_error(
                "Content", f"exceeds maximum size of {max_size} bytes"
            ),
        )

    return (True, "")
