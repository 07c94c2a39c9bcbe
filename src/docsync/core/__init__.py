"""GitHub REST client and error taxonomy shared by the sync engine and CLI."""

from .client import (
    CommitDetail,
    CommitSummary,
    FileChange,
    GitHubClient,
    RemoteEntry,
    RemoteFile,
)
from .errors import (
    AuthenticationError,
    ConfigurationError,
    DecodeError,
    DocSyncError,
    LocalStoreError,
    NotFoundError,
    RemoteError,
    StaleRevisionError,
    TransientRemoteError,
)

__all__ = [
    "AuthenticationError",
    "CommitDetail",
    "CommitSummary",
    "ConfigurationError",
    "DecodeError",
    "DocSyncError",
    "FileChange",
    "GitHubClient",
    "LocalStoreError",
    "NotFoundError",
    "RemoteEntry",
    "RemoteError",
    "RemoteFile",
    "StaleRevisionError",
    "TransientRemoteError",
]
