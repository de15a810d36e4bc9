"""
GitHub collaborators: repository listing, source fetching, PR data and comments.
"""

import base64
import logging
import shutil
import tempfile
from pathlib import Path
from urllib.parse import quote

import git
import httpx

from .errors import DiscoveryError
from .models import RepositoryRef

logger = logging.getLogger(__name__)

PER_PAGE = 100


class GitHubClient:
    """
    Thin synchronous GitHub REST client built on httpx.

    Only the calls the orchestration core needs are implemented.
    """

    def __init__(
        self,
        token: str = "",
        api_url: str = "https://api.github.com",
        timeout: float = 15.0,
        transport: httpx.BaseTransport | None = None,
    ):
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "codescribe",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=api_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings) -> "GitHubClient":
        return cls(token=settings.github_token, api_url=settings.github_api_url)

    def close(self) -> None:
        self._client.close()

    def _get(self, url: str, **params) -> httpx.Response:
        response = self._client.get(url, params=params or None)
        response.raise_for_status()
        return response

    # ---------------- Listing ----------------

    def list_files(self, repository: RepositoryRef) -> list[str]:
        """Repository lister entry point: PR changed files or the branch tree."""
        if repository.pull_number is not None:
            return [f["filename"] for f in self.list_pull_files(repository)]
        return self.list_tree(repository)

    def list_tree(self, repository: RepositoryRef) -> list[str]:
        url = f"/repos/{repository.owner}/{repository.repo}/git/trees/{repository.branch}"
        data = self._get(url, recursive="1").json()
        if data.get("truncated"):
            logger.warning(f"[GITHUB] Tree listing for {repository} was truncated by the API")
        return [entry["path"] for entry in data.get("tree", []) if entry.get("type") == "blob"]

    def list_pull_files(self, repository: RepositoryRef) -> list[dict]:
        if repository.pull_number is None:
            raise ValueError(f"{repository} is not a pull request reference")
        url = f"/repos/{repository.owner}/{repository.repo}/pulls/{repository.pull_number}/files"
        files: list[dict] = []
        page = 1
        while True:
            batch = self._get(url, per_page=PER_PAGE, page=page).json()
            files.extend(batch)
            if len(batch) < PER_PAGE:
                return files
            page += 1

    # ---------------- Source ----------------

    def fetch_files(self, repository: RepositoryRef, paths: list[str]) -> dict[str, str]:
        """Fetch decoded file contents for paths at the repository's branch."""
        contents: dict[str, str] = {}
        for path in paths:
            url = f"/repos/{repository.owner}/{repository.repo}/contents/{quote(path)}"
            response = self._client.get(url, params={"ref": repository.branch})
            if response.status_code == 404:
                logger.warning(f"[GITHUB] {path} not found on {repository}")
                contents[path] = f"// Empty file or unable to retrieve content for {path}"
                continue
            response.raise_for_status()
            data = response.json()
            if data.get("encoding") == "base64" and data.get("content"):
                contents[path] = base64.b64decode(data["content"]).decode("utf-8", errors="ignore")
            else:
                contents[path] = ""
        return contents

    def fetch_pull_changes(self, repository: RepositoryRef, paths: list[str]) -> dict:
        """Pull request details plus the patches of the requested changed files."""
        url = f"/repos/{repository.owner}/{repository.repo}/pulls/{repository.pull_number}"
        pull = self._get(url).json()
        wanted = set(paths)
        changes = [
            {
                "filename": f["filename"],
                "status": f.get("status", "modified"),
                "patch": f.get("patch") or "Binary file changed",
                "additions": f.get("additions", 0),
                "deletions": f.get("deletions", 0),
            }
            for f in self.list_pull_files(repository)
            if f["filename"] in wanted
        ]
        return {
            "pull_request": {
                "number": pull.get("number", repository.pull_number),
                "title": pull.get("title", ""),
                "description": pull.get("body") or "No description provided",
                "base": (pull.get("base") or {}).get("ref", ""),
                "head": (pull.get("head") or {}).get("ref", ""),
                "additions": pull.get("additions", 0),
                "deletions": pull.get("deletions", 0),
            },
            "changes": changes,
        }

    # ---------------- Comments ----------------

    def post_issue_comment(self, repository: RepositoryRef, number: int, body: str) -> str:
        url = f"/repos/{repository.owner}/{repository.repo}/issues/{number}/comments"
        response = self._client.post(url, json={"body": body})
        response.raise_for_status()
        return response.json().get("html_url", "")


class GitCloneLister:
    """
    Lists repository files from a shallow clone.

    Used when no API token is configured. The clone lives only for the
    duration of one listing call.
    """

    def __init__(self, base_url: str = "https://github.com", token: str = ""):
        self.base_url = base_url.rstrip("/")
        self.token = token

    def clone_url(self, repository: RepositoryRef) -> str:
        if self.token:
            host = self.base_url.split("://", 1)[-1]
            return f"https://x-access-token:{self.token}@{host}/{repository.full_name}.git"
        return f"{self.base_url}/{repository.full_name}.git"

    def list_files(self, repository: RepositoryRef) -> list[str]:
        temp_dir = tempfile.mkdtemp(prefix=f"codescribe_{repository.owner}_{repository.repo}_")
        try:
            try:
                git.Repo.clone_from(
                    self.clone_url(repository),
                    temp_dir,
                    depth=1,
                    branch=repository.branch,
                )
            except git.GitCommandError as e:
                raise DiscoveryError(f"Failed to clone repository {repository}: {str(e)}") from e

            root = Path(temp_dir)
            files = []
            for file_path in root.rglob("*"):
                if file_path.is_dir() or ".git" in file_path.relative_to(root).parts:
                    continue
                files.append(file_path.relative_to(root).as_posix())
            logger.info(f"[CLONE] Listed {len(files)} files from {repository}")
            return sorted(files)
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)
