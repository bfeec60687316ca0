"""
Thin GitHub REST client: fetches a PR's changed files and posts the review.
"""

import base64
import logging
from typing import List, Optional
from urllib.parse import quote

import requests

from pr_reviewer.errors import GitHubError
from pr_reviewer.models import ChangedFile

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"

ANALYZABLE_EXTENSIONS = (
    ".ts", ".tsx", ".js", ".jsx", ".vue", ".svelte", ".html", ".css", ".scss", ".less",
)

# Files with more changed lines than this are skipped
MAX_FILE_CHANGES = 1000


def is_analyzable_file(filename: str) -> bool:
    return filename.endswith(ANALYZABLE_EXTENSIONS)


class GitHubClient:
    """Read changed files and write comments for one token."""

    def __init__(self, token: str, api_url: str = GITHUB_API_URL,
                 session: Optional[requests.Session] = None, timeout: float = 30.0):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        })

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.api_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise GitHubError(f"GitHub request failed: {method} {path}: {e}") from e
        if not response.ok:
            raise GitHubError(
                f"GitHub API error: {response.status_code} {response.reason} ({method} {path})",
                status_code=response.status_code,
            )
        return response

    def get_head_sha(self, repo: str, pr_number: int) -> str:
        data = self._request("GET", f"/repos/{repo}/pulls/{pr_number}").json()
        return data["head"]["sha"]

    def get_file_contents(self, repo: str, path: str, ref: str) -> Optional[str]:
        """Fetch a file at ref and decode it; None when the API returns no content."""
        data = self._request("GET", f"/repos/{repo}/contents/{quote(path)}", params={"ref": ref}).json()
        if not isinstance(data, dict) or not data.get("content"):
            return None
        return base64.b64decode(data["content"]).decode("utf-8")

    def list_changed_files(self, repo: str, pr_number: int, head_sha: str) -> List[ChangedFile]:
        """
        Changed files of a PR with their contents at head_sha.

        Skips non-analyzable extensions and files over MAX_FILE_CHANGES.
        Removed files carry no contents; a failed content fetch is logged and
        leaves contents empty.
        """
        changed_files = []
        page = 1
        while True:
            batch = self._request(
                "GET",
                f"/repos/{repo}/pulls/{pr_number}/files",
                params={"per_page": 100, "page": page},
            ).json()
            if not batch:
                break

            for entry in batch:
                filename = entry["filename"]
                if entry.get("changes", 0) > MAX_FILE_CHANGES:
                    logger.info("Skipping %s: %d changes", filename, entry["changes"])
                    continue
                if not is_analyzable_file(filename):
                    continue

                status = entry.get("status", "modified")
                if status not in ("added", "removed"):
                    status = "modified"

                contents = None
                if status != "removed":
                    try:
                        contents = self.get_file_contents(repo, filename, head_sha)
                    except (GitHubError, UnicodeDecodeError, ValueError) as e:
                        logger.warning("Failed to get contents for %s: %s", filename, e)

                changed_files.append(ChangedFile(
                    filename=filename,
                    status=status,
                    patch=entry.get("patch"),
                    contents=contents,
                ))

            if len(batch) < 100:
                break
            page += 1

        return changed_files

    def post_comment(self, repo: str, pr_number: int, body: str) -> str:
        """Post body as a PR conversation comment; returns the comment URL."""
        data = self._request(
            "POST", f"/repos/{repo}/issues/{pr_number}/comments", json={"body": body}
        ).json()
        return data.get("html_url", "")
