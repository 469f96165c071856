"""Site pages stored in a GitHub repository (contents and trees APIs)."""

from __future__ import annotations

import base64
import logging
from typing import Any

import httpx

from core.config import Settings
from core.exceptions import InvalidPagePathError, PageNotFoundError, RepositoryError
from schemas.pages import DeployResult, PageSource, SiteMap


logger = logging.getLogger(__name__)

GITHUB_ACCEPT = "application/vnd.github.v3+json"
DEFAULT_PAGE_FILENAME = "index.html"


def clean_site_path(path: str) -> str:
    return path.strip().strip("/")


def resolve_file_path(
    path: str, *, root_dir: str, filename: str = DEFAULT_PAGE_FILENAME
) -> str:
    """Map a site path onto the repository file that serves it.

    The site root (``""``, ``/`` or the root directory name) always maps to
    ``<root>/index.html``; anything else lives under ``<root>/<path>/``.
    Paths with ``..`` segments are rejected.
    """
    root = root_dir.strip("/")
    clean = clean_site_path(path)
    if ".." in clean.split("/"):
        raise InvalidPagePathError(f"Path '{path}' leaves the site directory")
    if clean in ("", root):
        return f"{root}/{DEFAULT_PAGE_FILENAME}"
    return f"{root}/{clean}/{filename}"


def _encode(html: str) -> str:
    return base64.b64encode(html.encode("utf-8")).decode("ascii")


def _decode(content: str) -> str:
    # The contents API wraps base64 at 60 columns
    return base64.b64decode("".join(content.split())).decode("utf-8")


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return response.reason_phrase


class GitHubPageRepository:
    """Reads, publishes and lists the HTML pages of the family site."""

    def __init__(self, http_client: httpx.AsyncClient, settings: Settings) -> None:
        self._http = http_client
        self._settings = settings

    @property
    def _repo_url(self) -> str:
        s = self._settings
        return f"{s.GITHUB_API_URL.rstrip('/')}/repos/{s.GITHUB_REPO_OWNER}/{s.GITHUB_REPO_NAME}"

    @property
    def _headers(self) -> dict[str, str]:
        headers = {"Accept": GITHUB_ACCEPT, "User-Agent": self._settings.APP_NAME}
        if self._settings.GITHUB_TOKEN:
            headers["Authorization"] = f"Bearer {self._settings.GITHUB_TOKEN}"
        return headers

    def file_path_for(self, path: str, filename: str = DEFAULT_PAGE_FILENAME) -> str:
        return resolve_file_path(
            path, root_dir=self._settings.SITE_ROOT_DIR, filename=filename
        )

    async def _get_contents(self, file_path: str) -> dict[str, Any] | None:
        try:
            response = await self._http.get(
                f"{self._repo_url}/contents/{file_path}",
                params={"ref": self._settings.GITHUB_BRANCH},
                headers=self._headers,
            )
        except httpx.HTTPError as exc:
            raise RepositoryError(
                f"Could not reach repository: {type(exc).__name__}"
            ) from exc

        if response.status_code == 404:
            return None
        if not response.is_success:
            raise RepositoryError(
                f"Repository returned {response.status_code}: {_error_message(response)}"
            )
        return response.json()

    async def read_page(self, path: str) -> PageSource:
        """Fetch the current HTML of the page served at `path`.

        Raises:
            PageNotFoundError: If no file exists for the path
            RepositoryError: If the repository can't be read
        """
        file_path = self.file_path_for(path)
        data = await self._get_contents(file_path)
        if data is None or not isinstance(data.get("content"), str):
            raise PageNotFoundError(f"Page not found: {file_path}")

        try:
            html = _decode(data["content"])
        except (ValueError, UnicodeDecodeError) as exc:
            raise RepositoryError(f"Could not decode {file_path}") from exc

        return PageSource(html=html, path=path, file_path=file_path, sha=data.get("sha"))

    async def deploy_page(
        self, html: str, path: str, filename: str = DEFAULT_PAGE_FILENAME
    ) -> DeployResult:
        """Create or update the page file and commit it to the branch."""
        file_path = self.file_path_for(path, filename)
        existing = await self._get_contents(file_path)

        body: dict[str, Any] = {
            "message": f"Deploy {file_path} via admin panel",
            "content": _encode(html),
            "branch": self._settings.GITHUB_BRANCH,
        }
        if existing and existing.get("sha"):
            body["sha"] = existing["sha"]

        try:
            response = await self._http.put(
                f"{self._repo_url}/contents/{file_path}",
                json=body,
                headers=self._headers,
            )
        except httpx.HTTPError as exc:
            raise RepositoryError(
                f"Could not reach repository: {type(exc).__name__}"
            ) from exc

        if not response.is_success:
            raise RepositoryError(f"GitHub API error: {_error_message(response)}")

        commit = response.json().get("commit") or {}
        clean = clean_site_path(path)
        logger.info("Deployed %s (%s)", file_path, "update" if "sha" in body else "create")
        return DeployResult(
            path=file_path,
            commit_url=commit.get("html_url"),
            message=f"Deployed to {self._settings.SITE_BASE_URL.rstrip('/')}/{clean}",
        )

    async def list_pages(self) -> SiteMap:
        """Every `.html` file on the branch."""
        try:
            response = await self._http.get(
                f"{self._repo_url}/git/trees/{self._settings.GITHUB_BRANCH}",
                params={"recursive": "1"},
                headers=self._headers,
            )
        except httpx.HTTPError as exc:
            raise RepositoryError(
                f"Could not reach repository: {type(exc).__name__}"
            ) from exc

        if not response.is_success:
            raise RepositoryError(
                f"Repository returned {response.status_code}: {_error_message(response)}"
            )

        tree = response.json().get("tree") or []
        return SiteMap(
            files=[
                entry["path"]
                for entry in tree
                if entry.get("type", "blob") == "blob"
                and str(entry.get("path", "")).endswith(".html")
            ]
        )
