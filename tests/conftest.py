"""Shared pytest fixtures for docsync tests."""

from __future__ import annotations

from typing import Callable, Dict, List, Optional

import pytest
from dotenv import load_dotenv

from docsync.config import Config
from docsync.core.client import (
    CommitDetail,
    CommitSummary,
    RemoteEntry,
    RemoteFile,
)
from docsync.core.errors import NotFoundError, StaleRevisionError
from docsync.file_handler import LocalStore
from docsync.sync.engine import SyncEngine
from docsync.sync.models import Resolution
from docsync.sync.state import StateStore

load_dotenv()


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live GitHub repository",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live GitHub repository"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeGitHubClient:
    """In-memory repository standing in for ``GitHubClient``.

    Files are stored as ``path -> (sha, content)``; every write gets a fresh
    sha. ``seed()`` simulates an edit made by another client.
    """

    def __init__(self, files: Optional[Dict[str, str]] = None) -> None:
        self.files: Dict[str, tuple[str, str]] = {}
        self.versions: Dict[tuple[str, str], str] = {}
        self.commits: List[CommitDetail] = []
        self.calls: List[tuple] = []
        self.puts: List[tuple[str, str, str]] = []
        self.deletes: List[str] = []
        self.listing_error: Optional[Exception] = None
        self.listing_overrides: Dict[str, str] = {}
        self.hidden_from_listing: set[str] = set()
        self.get_errors: List[Exception] = []
        self.put_errors: List[Exception] = []
        self.delete_errors: List[Exception] = []
        self._counter = 0
        for path, content in (files or {}).items():
            self.seed(path, content)

    # -- test helpers -------------------------------------------------------

    def _next_sha(self) -> str:
        self._counter += 1
        return f"sha{self._counter:04d}"

    def seed(self, path: str, content: str) -> str:
        sha = self._next_sha()
        self.files[path] = (sha, content)
        self.versions[(path, sha)] = content
        return sha

    def remove(self, path: str) -> None:
        self.files.pop(path, None)

    def sha(self, path: str) -> str:
        return self.files[path][0]

    def content(self, path: str) -> str:
        return self.files[path][1]

    # -- client surface -----------------------------------------------------

    def list_directory(self, path: str) -> List[RemoteEntry]:
        self.calls.append(("list", path))
        if self.listing_error is not None:
            raise self.listing_error
        prefix = f"{path}/" if path else ""
        entries: Dict[str, RemoteEntry] = {}
        for file_path, (sha, _) in self.files.items():
            if file_path in self.hidden_from_listing:
                continue
            if not file_path.startswith(prefix):
                continue
            head, sep, _ = file_path[len(prefix):].partition("/")
            if sep:
                dir_path = prefix + head
                entries[dir_path] = RemoteEntry(
                    path=dir_path, sha="tree", type="dir"
                )
            else:
                entries[file_path] = RemoteEntry(
                    path=file_path,
                    sha=self.listing_overrides.get(file_path, sha),
                    type="file",
                )
        if path and not entries:
            raise NotFoundError("Not Found", 404, path)
        return [entries[p] for p in sorted(entries)]

    def get_file(self, path: str, ref: Optional[str] = None) -> RemoteFile:
        self.calls.append(("get", path, ref))
        if ref is not None:
            if (path, ref) not in self.versions:
                raise NotFoundError("No commit found for the ref", 404, path)
            return RemoteFile(path=path, sha=ref, content=self.versions[(path, ref)])
        if self.get_errors:
            raise self.get_errors.pop(0)
        if path not in self.files:
            raise NotFoundError("Not Found", 404, path)
        sha, content = self.files[path]
        return RemoteFile(path=path, sha=sha, content=content)

    def put_file(
        self, path: str, content: str, message: str, sha: Optional[str] = None
    ) -> str:
        self.calls.append(("put", path, sha))
        if self.put_errors:
            raise self.put_errors.pop(0)
        current = self.files.get(path)
        if (current is None and sha is not None) or (
            current is not None and current[0] != sha
        ):
            raise StaleRevisionError("sha does not match", 409, path)
        new_sha = self.seed(path, content)
        self.puts.append((path, content, message))
        return new_sha

    def delete_file(self, path: str, sha: str, message: str) -> None:
        self.calls.append(("delete", path, sha))
        if self.delete_errors:
            raise self.delete_errors.pop(0)
        if path not in self.files:
            raise NotFoundError("Not Found", 404, path)
        if self.files[path][0] != sha:
            raise StaleRevisionError("sha does not match", 409, path)
        del self.files[path]
        self.deletes.append(path)

    def list_commits(self, path: str) -> List[CommitSummary]:
        self.calls.append(("commits", path))
        head = f"{path}/" if path else ""
        return [
            CommitSummary(
                sha=c.sha, message=c.message, author=c.author, date=c.date
            )
            for c in self.commits
            if not path
            or any(f.path == path or f.path.startswith(head) for f in c.files)
        ]

    def get_commit(self, sha: str) -> CommitDetail:
        for commit in self.commits:
            if commit.sha == sha:
                return commit
        raise NotFoundError("No commit found for SHA", 422, sha)

    def get_repository(self) -> dict:
        return {"full_name": "octo/notes", "default_branch": "main"}


class FakeInterface:
    """Records prompts, confirmations and notices; answers from attributes."""

    def __init__(
        self,
        resolution: Resolution = Resolution.LOCAL,
        confirm: bool = True,
    ) -> None:
        self.resolution = resolution
        self.confirm_answer = confirm
        self.prompts: List[tuple[str, str, str]] = []
        self.confirms: List[str] = []
        self.notices: List[tuple[str, str]] = []

    def choose_resolution(
        self, path: str, local_content: str, remote_content: str
    ) -> Resolution:
        self.prompts.append((path, local_content, remote_content))
        return self.resolution

    def confirm(self, title: str, message: str) -> bool:
        self.confirms.append(title)
        return self.confirm_answer

    def notify(self, message: str, level: str = "info") -> None:
        self.notices.append((level, message))

    def messages(self, level: str) -> List[str]:
        return [m for lvl, m in self.notices if lvl == level]


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_config(tmp_path):
    """Create a Config instance for testing."""
    return Config(
        token="ghp_testtoken",
        owner="octo",
        repo="notes",
        local_root=str(tmp_path / "docs"),
        state_dir=str(tmp_path / "state"),
        conflict_policy="local",
        retry_delay=0.0,
    )


@pytest.fixture
def fake_client():
    return FakeGitHubClient()


@pytest.fixture
def interface():
    return FakeInterface()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def local_store(tmp_path):
    root = tmp_path / "docs"
    root.mkdir(exist_ok=True)
    return LocalStore(root)


@pytest.fixture
def make_engine(
    tmp_path, fake_client, interface, clock, sleeps
) -> Callable[..., SyncEngine]:
    """Factory for engines sharing one local root, state dir and fakes.

    Calling it twice simulates a restart: the second engine reloads the
    state persisted by the first.
    """

    def _make(
        local_files: Optional[Dict[str, str]] = None,
        is_locked: Optional[Callable[[str], bool]] = None,
        **config_overrides,
    ) -> SyncEngine:
        root = tmp_path / "docs"
        root.mkdir(exist_ok=True)
        for rel_path, content in (local_files or {}).items():
            fp = root / rel_path
            fp.parent.mkdir(parents=True, exist_ok=True)
            fp.write_text(content, encoding="utf-8")

        settings = {
            "token": "ghp_testtoken",
            "owner": "octo",
            "repo": "notes",
            "local_root": str(root),
            "conflict_policy": "local",
            "verbosity": "verbose",
            "retry_delay": 0.0,
        }
        settings.update(config_overrides)
        return SyncEngine(
            config=Config(**settings),
            client=fake_client,  # type: ignore[arg-type]
            local_store=LocalStore(root),
            interface=interface,
            state_store=StateStore(tmp_path / "state"),
            is_locked=is_locked,
            clock=clock,
            sleep=sleeps.append,
        )

    return _make


