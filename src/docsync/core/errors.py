"""Error taxonomy for docsync.

Every error raised by the client, the local store, or configuration loading
derives from ``DocSyncError`` so the engine can isolate per-document failures
from run-level ones:

- ``ConfigurationError``   -- missing credentials or repository identity.
- ``RemoteError``          -- non-2xx response from the GitHub API.

  - ``NotFoundError``        -- 404; treated as "already absent" on delete paths.
  - ``AuthenticationError``  -- 401/403.
  - ``StaleRevisionError``   -- 409, or a creation that found an existing object.
  - ``TransientRemoteError`` -- transport failure or 5xx after retries ran out.

- ``DecodeError``          -- malformed base64 / UTF-8 content from the remote.
- ``LocalStoreError``      -- read/write/delete failure on the local store.
"""

from __future__ import annotations


class DocSyncError(Exception):
    """Base class for all docsync errors."""


class ConfigurationError(DocSyncError, ValueError):
    """Configuration is incomplete or invalid; no network call was made."""


class RemoteError(DocSyncError):
    """The remote store answered with a non-success status.

    Attributes:
        status: HTTP status code, or ``None`` for transport failures.
        path: Request path the error relates to, when known.
    """

    def __init__(
        self,
        message: str,
        status: int | None = None,
        path: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.path = path


class NotFoundError(RemoteError):
    """HTTP 404."""


class AuthenticationError(RemoteError):
    """HTTP 401 or 403."""


class StaleRevisionError(RemoteError):
    """The revision id used as a precondition no longer matches the remote."""


class TransientRemoteError(RemoteError):
    """Network or server-side failure that survived every retry."""


class DecodeError(DocSyncError):
    """Remote content could not be decoded from base64 / UTF-8."""


class LocalStoreError(DocSyncError):
    """A local read, write, or delete failed."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path
