"""
Tests for the GitHub client.

Run with: pytest tests/
"""

import base64

import pytest
import requests

from pr_reviewer.errors import GitHubError
from pr_reviewer.github import GitHubClient, is_analyzable_file


class FakeResponse:
    def __init__(self, payload=None, status_code=200, reason="OK"):
        self.payload = payload
        self.status_code = status_code
        self.reason = reason

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return self.payload


class FakeSession:
    """Routes (method, path) to canned responses."""

    def __init__(self, routes):
        self.routes = routes
        self.headers = {}
        self.calls = []

    def request(self, method, url, timeout=None, params=None, json=None):
        path = url.replace("https://api.github.com", "")
        self.calls.append((method, path, params, json))
        key = (method, path, (params or {}).get("page"))
        outcome = self.routes.get(key, self.routes.get((method, path, None)))
        if outcome is None:
            return FakeResponse({"message": "Not Found"}, status_code=404, reason="Not Found")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def encoded(text):
    return {"content": base64.b64encode(text.encode("utf-8")).decode("ascii"), "encoding": "base64"}


REPO = "acme/web"
FILES_PATH = f"/repos/{REPO}/pulls/7/files"


def test_is_analyzable_file():
    """Only web source extensions are analyzed."""
    assert is_analyzable_file("src/App.tsx")
    assert is_analyzable_file("styles/site.scss")
    assert not is_analyzable_file("README.md")
    assert not is_analyzable_file("logo.png")


def test_client_sets_auth_headers():
    """Bearer token and API version headers are set on the session."""
    session = FakeSession({})
    GitHubClient("ghp_token", session=session)
    assert session.headers["Authorization"] == "Bearer ghp_token"
    assert session.headers["Accept"] == "application/vnd.github+json"


def test_list_changed_files_filters_and_fetches():
    """Large, binary and removed files are handled; contents are decoded."""
    session = FakeSession({
        ("GET", FILES_PATH, 1): FakeResponse([
            {"filename": "src/App.tsx", "status": "modified", "changes": 12, "patch": "@@ -1 +1 @@"},
            {"filename": "src/New.jsx", "status": "added", "changes": 40},
            {"filename": "src/Old.js", "status": "removed", "changes": 30},
            {"filename": "src/Renamed.ts", "status": "renamed", "changes": 2},
            {"filename": "src/huge.js", "status": "modified", "changes": 5000},
            {"filename": "docs/logo.png", "status": "added", "changes": 0},
        ]),
        ("GET", f"/repos/{REPO}/contents/src/App.tsx", None): FakeResponse(encoded("<img src='a'>")),
        ("GET", f"/repos/{REPO}/contents/src/New.jsx", None): FakeResponse(encoded("eval(x)")),
        ("GET", f"/repos/{REPO}/contents/src/Renamed.ts", None): FakeResponse(encoded("export {}")),
    })
    client = GitHubClient("token", session=session)

    files = client.list_changed_files(REPO, 7, "abc123")

    assert [(f.filename, f.status) for f in files] == [
        ("src/App.tsx", "modified"),
        ("src/New.jsx", "added"),
        ("src/Old.js", "removed"),
        ("src/Renamed.ts", "modified"),
    ]
    assert files[0].contents == "<img src='a'>"
    assert files[0].patch == "@@ -1 +1 @@"
    assert files[1].contents == "eval(x)"
    assert files[2].contents is None

    content_calls = [call for call in session.calls if "/contents/" in call[1]]
    assert all(call[2] == {"ref": "abc123"} for call in content_calls)
    assert not any("Old.js" in call[1] for call in content_calls)


def test_list_changed_files_paginates():
    """A full page triggers a request for the next one."""
    first_page = [{"filename": f"src/f{n}.css", "status": "removed", "changes": 1} for n in range(100)]
    session = FakeSession({
        ("GET", FILES_PATH, 1): FakeResponse(first_page),
        ("GET", FILES_PATH, 2): FakeResponse([{"filename": "src/last.css", "status": "removed", "changes": 1}]),
    })

    files = GitHubClient("token", session=session).list_changed_files(REPO, 7, "sha")

    assert len(files) == 101
    assert files[-1].filename == "src/last.css"


def test_content_fetch_failure_leaves_contents_empty(caplog):
    """A file whose contents cannot be fetched is kept without contents."""
    session = FakeSession({
        ("GET", FILES_PATH, 1): FakeResponse([{"filename": "src/App.tsx", "status": "modified", "changes": 1}]),
    })

    files = GitHubClient("token", session=session).list_changed_files(REPO, 7, "sha")

    assert files[0].contents is None
    assert "Failed to get contents for src/App.tsx" in caplog.text


def test_request_errors_raise_github_error():
    """HTTP errors and connection failures become GitHubError."""
    session = FakeSession({
        ("GET", FILES_PATH, 1): FakeResponse({"message": "Bad credentials"}, status_code=401, reason="Unauthorized"),
    })
    with pytest.raises(GitHubError) as excinfo:
        GitHubClient("token", session=session).list_changed_files(REPO, 7, "sha")
    assert excinfo.value.status_code == 401

    session = FakeSession({("GET", FILES_PATH, 1): requests.ConnectionError("dns")})
    with pytest.raises(GitHubError):
        GitHubClient("token", session=session).list_changed_files(REPO, 7, "sha")


def test_get_head_sha():
    """Head SHA comes from the pull request resource."""
    session = FakeSession({("GET", f"/repos/{REPO}/pulls/7", None): FakeResponse({"head": {"sha": "deadbeef"}})})
    assert GitHubClient("token", session=session).get_head_sha(REPO, 7) == "deadbeef"


def test_post_comment():
    """The review body is posted to the PR's issue comments."""
    session = FakeSession({
        ("POST", f"/repos/{REPO}/issues/7/comments", None): FakeResponse(
            {"html_url": "https://github.com/acme/web/pull/7#issuecomment-1"}, status_code=201, reason="Created"
        ),
    })

    url = GitHubClient("token", session=session).post_comment(REPO, 7, "## Review")

    assert url.endswith("#issuecomment-1")
    assert session.calls[-1][3] == {"body": "## Review"}


def test_get_file_contents_escapes_path():
    """Reserved URL characters in filenames are percent-encoded; slashes are kept."""
    session = FakeSession({
        ("GET", f"/repos/{REPO}/contents/src/50%25%20off%23promo.tsx", None): FakeResponse(encoded("ok")),
    })

    contents = GitHubClient("token", session=session).get_file_contents(REPO, "src/50% off#promo.tsx", "sha")

    assert contents == "ok"
    assert session.calls[-1][1] == f"/repos/{REPO}/contents/src/50%25%20off%23promo.tsx"
