import base64
from unittest.mock import Mock, patch

import pytest
import requests

from docsync.config import Config
from docsync.core.client import (
    GitHubClient,
    decode_content,
    encode_path,
)
from docsync.core.errors import (
    AuthenticationError,
    DecodeError,
    NotFoundError,
    RemoteError,
    StaleRevisionError,
    TransientRemoteError,
)


def _b64(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def _response(status=200, body=None, reason="OK"):
    response = Mock()
    response.status_code = status
    response.ok = 200 <= status < 300
    response.reason = reason
    response.content = b"" if body is None else b"{...}"
    if isinstance(body, Exception):
        response.json.side_effect = body
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def session():
    return Mock(spec=requests.Session)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def client(mock_config, session, sleeps):
    return GitHubClient(mock_config, session=session, sleep=sleeps.append)


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


def test_base_url_construction(mock_config):
    client = GitHubClient(mock_config)
    assert client.base_url == "https://api.github.com/repos/octo/notes"


def test_base_url_with_trailing_slash():
    config = Config(
        token="t", owner="o", repo="r", api_url="https://ghe.example.com/api/v3/"
    )
    client = GitHubClient(config)
    assert client.base_url == "https://ghe.example.com/api/v3/repos/o/r"


def test_session_headers(mock_config):
    client = GitHubClient(mock_config)
    headers = client._session.headers
    assert headers["Authorization"] == "token ghp_testtoken"
    assert headers["Accept"] == "application/vnd.github.v3+json"
    assert headers["User-Agent"].startswith("docsync/")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def test_encode_path_escapes_segments():
    assert encode_path("notes/my file#1.md") == "notes/my%20file%231.md"
    assert encode_path("/a/b.md/") == "a/b.md"


def test_decode_content_handles_wrapped_base64():
    wrapped = _b64("héllo\nworld\n")
    wrapped = wrapped[:4] + "\n" + wrapped[4:]
    assert decode_content(wrapped, "a.md") == "héllo\nworld\n"


def test_decode_content_rejects_bad_base64():
    with pytest.raises(DecodeError, match="Malformed base64"):
        decode_content("!!!not base64", "a.md")


def test_decode_content_rejects_non_utf8():
    data = base64.b64encode(b"\xff\xfe\xfa").decode("ascii")
    with pytest.raises(DecodeError, match="not valid UTF-8"):
        decode_content(data, "a.md")


# ---------------------------------------------------------------------------
# Contents API
# ---------------------------------------------------------------------------


def test_list_directory(client, session):
    session.request.return_value = _response(
        body=[
            {"path": "notes/a.md", "sha": "s1", "type": "file"},
            {"path": "notes/sub", "sha": "s2", "type": "dir"},
        ]
    )

    entries = client.list_directory("notes")

    assert [(e.path, e.type) for e in entries] == [
        ("notes/a.md", "file"),
        ("notes/sub", "dir"),
    ]
    method, url = session.request.call_args[0]
    assert method == "GET"
    assert url == "https://api.github.com/repos/octo/notes/contents/notes"
    assert session.request.call_args[1]["params"] == {"ref": "main"}


def test_list_root_directory(client, session):
    session.request.return_value = _response(body=[])

    assert client.list_directory("") == []
    assert session.request.call_args[0][1].endswith("/repos/octo/notes/contents")


def test_list_directory_on_a_file_is_an_error(client, session):
    session.request.return_value = _response(
        body={"path": "a.md", "sha": "s1", "type": "file"}
    )

    with pytest.raises(RemoteError, match="Not a directory"):
        client.list_directory("a.md")


def test_get_file(client, session):
    session.request.return_value = _response(
        body={
            "path": "notes/a.md",
            "sha": "s1",
            "type": "file",
            "encoding": "base64",
            "content": _b64("# Hello\n"),
            "size": 8,
        }
    )

    remote = client.get_file("notes/a.md", ref="abc123")

    assert remote.sha == "s1"
    assert remote.content == "# Hello\n"
    assert session.request.call_args[1]["params"] == {"ref": "abc123"}


def test_get_large_file_falls_back_to_blob(client, session):
    session.request.side_effect = [
        _response(
            body={
                "path": "big.md",
                "sha": "s9",
                "type": "file",
                "encoding": "none",
                "content": "",
                "size": 2_000_000,
            }
        ),
        _response(body={"sha": "s9", "content": _b64("big\n")}),
    ]

    remote = client.get_file("big.md")

    assert remote.content == "big\n"
    assert session.request.call_args[0][1].endswith("/git/blobs/s9")


def test_put_file_update_sends_sha(client, session):
    session.request.return_value = _response(
        status=200, body={"content": {"sha": "new-sha"}}
    )

    sha = client.put_file("notes/a.md", "text", "Update notes/a.md", sha="old")

    assert sha == "new-sha"
    body = session.request.call_args[1]["json"]
    assert body == {
        "message": "Update notes/a.md",
        "content": _b64("text"),
        "branch": "main",
        "sha": "old",
    }


def test_put_file_create_omits_sha(client, session):
    session.request.return_value = _response(
        status=201, body={"content": {"sha": "new-sha"}}
    )

    client.put_file("notes/a.md", "text", "Add notes/a.md")

    assert "sha" not in session.request.call_args[1]["json"]


def test_delete_file(client, session):
    session.request.return_value = _response(body={"commit": {}})

    client.delete_file("notes/a.md", "s1", "Delete notes/a.md")

    method = session.request.call_args[0][0]
    assert method == "DELETE"
    assert session.request.call_args[1]["json"]["sha"] == "s1"


# ---------------------------------------------------------------------------
# Commits API
# ---------------------------------------------------------------------------


def test_list_commits(client, session):
    session.request.return_value = _response(
        body=[
            {
                "sha": "c1",
                "commit": {
                    "message": "Edit a",
                    "author": {"name": "Ada", "date": "2026-01-01T00:00:00Z"},
                },
            }
        ]
    )

    commits = client.list_commits("notes/a.md")

    assert commits[0].sha == "c1"
    assert commits[0].author == "Ada"
    assert session.request.call_args[1]["params"] == {
        "path": "notes/a.md",
        "sha": "main",
    }


def test_get_commit_files(client, session):
    session.request.return_value = _response(
        body={
            "sha": "c1",
            "commit": {"message": "Move", "author": {"name": "Ada"}},
            "files": [
                {
                    "filename": "notes/b.md",
                    "status": "renamed",
                    "previous_filename": "notes/a.md",
                },
                {"filename": "notes/c.md", "status": "added"},
            ],
        }
    )

    detail = client.get_commit("c1")

    assert [f.path for f in detail.files] == ["notes/b.md", "notes/c.md"]
    assert detail.files[0].previous_path == "notes/a.md"
    assert detail.files[1].previous_path is None


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "status, message, error",
    [
        (404, "Not Found", NotFoundError),
        (401, "Bad credentials", AuthenticationError),
        (403, "Resource not accessible", AuthenticationError),
        (422, "Invalid request.\n\n\"sha\" wasn't supplied.", StaleRevisionError),
        (422, "Validation Failed", RemoteError),
        (400, "Problems parsing JSON", RemoteError),
    ],
)
def test_error_mapping(client, session, status, message, error):
    session.request.return_value = _response(
        status=status, body={"message": message}, reason="Error"
    )

    with pytest.raises(error) as excinfo:
        client.get_file("notes/a.md")

    assert excinfo.value.status == status
    assert excinfo.value.path == "notes/a.md"
    assert session.request.call_count == 1


def test_error_without_json_body_uses_reason(client, session):
    session.request.return_value = _response(
        status=400, body=ValueError("no json"), reason="Bad Request"
    )

    with pytest.raises(RemoteError, match="Bad Request"):
        client.get_repository()


def test_malformed_success_body(client, session):
    session.request.return_value = _response(body=ValueError("bad json"))

    with pytest.raises(RemoteError, match="Malformed JSON"):
        client.get_repository()


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------


def test_retries_server_errors_with_backoff(client, session, sleeps):
    session.request.side_effect = [
        _response(status=502, body={"message": "Bad Gateway"}),
        _response(status=503, body={"message": "Unavailable"}),
        _response(body={"full_name": "octo/notes"}),
    ]

    assert client.get_repository() == {"full_name": "octo/notes"}
    assert sleeps == [0.0, 0.0]
    assert session.request.call_count == 3


def test_backoff_grows_by_factor(session, sleeps):
    config = Config(token="t", owner="o", repo="r", retry_delay=2.0)
    client = GitHubClient(config, session=session, sleep=sleeps.append)
    session.request.side_effect = requests.exceptions.ConnectionError("reset")

    with pytest.raises(TransientRemoteError, match="after 3 attempts"):
        client.get_repository()

    assert sleeps == [2.0, 3.0]


def test_conflict_retried_then_surfaced_as_stale(client, session):
    session.request.return_value = _response(
        status=409, body={"message": "is at abc but expected def"}
    )

    with pytest.raises(StaleRevisionError):
        client.put_file("a.md", "x", "Update a.md", sha="def")

    assert session.request.call_count == 3


def test_server_error_after_retries_is_transient(client, session):
    session.request.return_value = _response(
        status=500, body={"message": "Server Error"}
    )

    with pytest.raises(TransientRemoteError):
        client.get_repository()


@pytest.mark.parametrize(
    "outcome, error",
    [
        (requests.exceptions.Timeout("slow"), TransientRemoteError),
        (_response(status=503, body={"message": "Unavailable"}), TransientRemoteError),
        (_response(status=409, body={"message": "sha mismatch"}), StaleRevisionError),
    ],
)
def test_single_attempt_surfaces_first_failure(session, sleeps, outcome, error):
    config = Config(token="t", owner="o", repo="r", max_retries=1)
    client = GitHubClient(config, session=session, sleep=sleeps.append)
    session.request.side_effect = [outcome]

    with pytest.raises(error):
        client.get_repository()

    assert session.request.call_count == 1
    assert sleeps == []


def test_not_found_is_not_retried(client, session, sleeps):
    session.request.return_value = _response(
        status=404, body={"message": "Not Found"}
    )

    with pytest.raises(NotFoundError):
        client.get_file("missing.md")

    assert sleeps == []


def test_timeout_then_success(client, session):
    session.request.side_effect = [
        requests.exceptions.Timeout("slow"),
        _response(body={"full_name": "octo/notes"}),
    ]

    assert client.get_repository()["full_name"] == "octo/notes"


@patch("docsync.core.client.requests.Session.request")
def test_default_session_used(mock_request, mock_config):
    mock_request.return_value = _response(body={"full_name": "octo/notes"})
    client = GitHubClient(mock_config, sleep=lambda s: None)

    client.get_repository()

    assert mock_request.call_args[0][1] == (
        "https://api.github.com/repos/octo/notes"
    )
    assert mock_request.call_args[1]["timeout"] == 30.0
