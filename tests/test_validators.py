"""Tests for document path and content validation."""

import pytest

from docsync.validators import (
    format_validation_error,
    validate_content,
    validate_document_path,
)


class TestValidateDocumentPath:
    @pytest.mark.parametrize(
        "path",
        ["a.md", "notes/daily/2026-01-01.md", "with space.md", "v1.2/notes.md"],
    )
    def test_valid(self, path):
        assert validate_document_path(path) == (True, "")

    @pytest.mark.parametrize(
        "path, reason",
        [
            ("", "cannot be empty"),
            ("   ", "cannot be empty"),
            ("/notes/a.md", "must be relative"),
            ("notes/../a.md", "cannot contain '..'"),
            ("notes//a.md", "cannot have empty path segments"),
        ],
    )
    def test_invalid(self, path, reason):
        valid, message = validate_document_path(path)

        assert not valid
        assert message == f"Document path {reason}"

    def test_dots_inside_names_are_fine(self):
        assert validate_document_path("notes/..hidden.md")[0]


class TestValidateContent:
    def test_empty_content_allowed(self):
        assert validate_content("") == (True, "")

    def test_size_limit_counts_utf8_bytes(self):
        # Three two-byte characters exceed a five-byte limit
        valid, message = validate_content("ééé", max_size=5)

        assert not valid
        assert message == "Content exceeds maximum size of 5 bytes"

    def test_at_limit(self):
        assert validate_content("x" * 10, max_size=10) == (True, "")


def test_format_validation_error():
    assert format_validation_error("Content", "is bad") == "Content is bad"
