"""GitHub REST client for the Contents and Commits APIs.

One public method is one logical operation. Every call goes through
``_request``, which retries transport failures and HTTP 500/502/503/504/409
up to ``max_retries`` attempts with a delay that starts at ``retry_delay``
and grows by 1.5x per attempt, then maps the final response onto the
``core.errors`` taxonomy.
"""

from __future__ import annotations

import base64
import binascii
import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import requests
from pydantic import BaseModel, Field

from .. import __version__
from .errors import (
    AuthenticationError,
    DecodeError,
    NotFoundError,
    RemoteError,
    StaleRevisionError,
    TransientRemoteError,
)

if TYPE_CHECKING:
    from ..config import Config

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({409, 500, 502, 503, 504})
BACKOFF_FACTOR = 1.5


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class RemoteEntry(BaseModel):
    """One item of a directory listing."""

    path: str
    sha: str
    type: str = "file"

    model_config = {"frozen": True}


class RemoteFile(BaseModel):
    """A single file at a given ref, with its decoded text."""

    path: str
    sha: str
    content: str

    model_config = {"frozen": True}


class CommitSummary(BaseModel):
    sha: str
    message: str = ""
    author: str = ""
    date: str = ""

    model_config = {"frozen": True}


class FileChange(BaseModel):
    """A file touched by a commit (repository path)."""

    path: str
    status: str
    previous_path: str | None = None

    model_config = {"frozen": True}


class CommitDetail(CommitSummary):
    files: list[FileChange] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def encode_path(path: str) -> str:
    """Percent-encode each segment of a repository path."""
    return "/".join(quote(seg, safe="") for seg in path.strip("/").split("/"))


def decode_content(data: str, path: str) -> str:
    """Decode a base64 (possibly line-wrapped) UTF-8 payload."""
    try:
        raw = base64.b64decode("".join(data.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Malformed base64 content for {path}: {e}") from e
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"Content of {path} is not valid UTF-8: {e}") from e


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.reason or f"HTTP {response.status_code}"


def _commit_summary(item: dict) -> dict:
    commit = item.get("commit") or {}
    author = commit.get("author") or {}
    return {
        "sha": item.get("sha", ""),
        "message": commit.get("message", ""),
        "author": author.get("name", ""),
        "date": author.get("date", ""),
    }


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class GitHubClient:
    def __init__(
        self,
        config: Config,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.base_url = (
            f"{config.api_url.rstrip('/')}/repos/{config.owner}/{config.repo}"
        )
        self.max_retries = max(1, config.max_retries)
        self.retry_delay = config.retry_delay
        self._sleep = sleep
        self._session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "Authorization": f"token {self.config.token}",
                "Accept": "application/vnd.github.v3+json",
                "User-Agent": f"docsync/{__version__}",
            }
        )
        return session

    # -------------------------------------------------------------------------
    # Core request method
    # -------------------------------------------------------------------------

    def _request(
        self,
        method: str,
        endpoint: str,
        path: str | None = None,
        **kwargs: Any,
    ) -> Any:
        """Make a request with retry and return the decoded JSON body.

        Raises:
            RemoteError: Or one of its subclasses once retries are exhausted
                or the failure is not retryable.
        """
        url = f"{self.base_url}/{endpoint}" if endpoint else self.base_url
        kwargs.setdefault("timeout", self.config.timeout)
        delay = self.retry_delay

        for attempt in range(1, self.max_retries):
            try:
                response = self._session.request(method, url, **kwargs)
            except (
                requests.exceptions.ConnectionError,
                requests.exceptions.Timeout,
            ) as e:
                logger.warning(
                    "Network error on %s %s (attempt %d/%d), retrying in %.2fs: %s",
                    method,
                    endpoint,
                    attempt,
                    self.max_retries,
                    delay,
                    e,
                )
            else:
                if response.status_code not in RETRYABLE_STATUS_CODES:
                    return self._handle_response(response, method, path)
                logger.warning(
                    "Retryable status %d on %s %s (attempt %d/%d), retrying in %.2fs",
                    response.status_code,
                    method,
                    endpoint,
                    attempt,
                    self.max_retries,
                    delay,
                )
            self._sleep(delay)
            delay *= BACKOFF_FACTOR

        # Last attempt: every failure surfaces
        try:
            response = self._session.request(method, url, **kwargs)
        except (
            requests.exceptions.ConnectionError,
            requests.exceptions.Timeout,
        ) as e:
            raise TransientRemoteError(
                f"{method} {endpoint} failed after "
                f"{self.max_retries} attempts: {e}",
                path=path,
            ) from e
        return self._handle_response(response, method, path)

    def _handle_response(
        self, response: requests.Response, method: str, path: str | None
    ) -> Any:
        status = response.status_code
        if response.ok:
            if not response.content:
                return {}
            try:
                return response.json()
            except ValueError as e:
                raise RemoteError(
                    f"Malformed JSON response: {e}", status, path
                ) from e

        message = _error_message(response)
        logger.debug("%s %s -> %d %s", method, path, status, message)
        if status == 404:
            raise NotFoundError(message, status, path)
        if status in (401, 403):
            raise AuthenticationError(message, status, path)
        if status == 409:
            raise StaleRevisionError(message, status, path)
        if status == 422 and "sha" in message.lower():
            raise StaleRevisionError(message, status, path)
        if status in RETRYABLE_STATUS_CODES:
            raise TransientRemoteError(message, status, path)
        raise RemoteError(message, status, path)

    # -------------------------------------------------------------------------
    # Contents API
    # -------------------------------------------------------------------------

    def list_directory(self, path: str) -> list[RemoteEntry]:
        """List one directory level at the configured branch.

        An empty ``path`` lists the repository root.
        """
        endpoint = f"contents/{encode_path(path)}" if path else "contents"
        data = self._request(
            "GET", endpoint, path=path, params={"ref": self.config.branch}
        )
        if not isinstance(data, list):
            raise RemoteError(f"Not a directory: {path}", path=path)
        return [
            RemoteEntry(path=item["path"], sha=item["sha"], type=item["type"])
            for item in data
        ]

    def get_file(self, path: str, ref: str | None = None) -> RemoteFile:
        """Fetch a file's sha and decoded content at ``ref`` (default branch)."""
        data = self._request(
            "GET",
            f"contents/{encode_path(path)}",
            path=path,
            params={"ref": ref or self.config.branch},
        )
        if not isinstance(data, dict) or data.get("type", "file") != "file":
            raise RemoteError(f"Not a file: {path}", path=path)

        sha = data["sha"]
        if data.get("encoding") == "none" or (
            not data.get("content") and data.get("size", 0) > 0
        ):
            # Files over 1 MB come back without inline content
            blob = self._request("GET", f"git/blobs/{sha}", path=path)
            content = decode_content(blob.get("content", ""), path)
        else:
            content = decode_content(data.get("content", ""), path)
        return RemoteFile(path=data.get("path", path), sha=sha, content=content)

    def put_file(
        self,
        path: str,
        content: str,
        message: str,
        sha: str | None = None,
    ) -> str:
        """Create (no ``sha``) or update (``sha`` = precondition) a file.

        Returns:
            The new blob sha.

        Raises:
            StaleRevisionError: If ``sha`` is stale, or a creation finds the
                file already present.
        """
        body = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": self.config.branch,
        }
        if sha:
            body["sha"] = sha
        data = self._request(
            "PUT", f"contents/{encode_path(path)}", path=path, json=body
        )
        return data["content"]["sha"]

    def delete_file(self, path: str, sha: str, message: str) -> None:
        self._request(
            "DELETE",
            f"contents/{encode_path(path)}",
            path=path,
            json={
                "message": message,
                "sha": sha,
                "branch": self.config.branch,
            },
        )

    # -------------------------------------------------------------------------
    # Commits API
    # -------------------------------------------------------------------------

    def list_commits(self, path: str) -> list[CommitSummary]:
        """Commits on the configured branch touching ``path``, newest first."""
        data = self._request(
            "GET",
            "commits",
            path=path,
            params={"path": path, "sha": self.config.branch},
        )
        return [CommitSummary(**_commit_summary(item)) for item in data]

    def get_commit(self, sha: str) -> CommitDetail:
        data = self._request("GET", f"commits/{sha}")
        files = [
            FileChange(
                path=f["filename"],
                status=f.get("status", "modified"),
                previous_path=f.get("previous_filename"),
            )
            for f in data.get("files", [])
        ]
        return CommitDetail(**_commit_summary(data), files=files)

    def get_repository(self) -> dict:
        """Fetch repository metadata; used as a connection test."""
        return self._request("GET", "")
