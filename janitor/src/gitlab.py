"""GitLab REST v4 source provider.

Only the three calls the configuration sync needs are implemented:
resolving an instance's project, listing a repository tree and reading a
raw file at a fixed revision.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import requests

from janitor.src.config import JanitorConfig
from janitor.src.errors import AmbiguousSourceError, NotFoundError, RemoteIOError

LOGGER = logging.getLogger(__name__)

PER_PAGE = 100


@dataclass(frozen=True)
class TreeEntry:
    """One node of a repository listing."""

    name: str
    path: str
    kind: str

    @property
    def is_blob(self) -> bool:
        return self.kind == "blob"

    @property
    def is_tree(self) -> bool:
        return self.kind == "tree"


class GitLabSource:
    """Synchronous GitLab client built on a shared :class:`requests.Session`."""

    def __init__(
        self,
        api_url: str,
        token: str,
        *,
        group_prefix: str = "groups-",
        timeout_seconds: float = 30,
        verify_tls: bool = True,
        session: requests.Session | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.group_prefix = group_prefix
        self.timeout_seconds = timeout_seconds
        self.verify_tls = verify_tls
        self.session = session or requests.Session()
        self.session.headers.update({"PRIVATE-TOKEN": token, "Accept": "application/json"})

    @classmethod
    def from_config(cls, config: JanitorConfig) -> GitLabSource:
        return cls(
            config.gitlab_api_url,
            config.gitlab_token,
            group_prefix=config.gitlab_group_prefix,
            timeout_seconds=config.gitlab_timeout_seconds,
            verify_tls=config.gitlab_verify_tls,
        )

    def _get(self, endpoint: str, params: dict[str, Any] | None = None) -> requests.Response:
        url = f"{self.api_url}{endpoint}"
        try:
            response = self.session.get(
                url,
                params=params,
                timeout=self.timeout_seconds,
                verify=self.verify_tls,
            )
        except requests.RequestException as exc:
            raise RemoteIOError(f"GitLab request to {endpoint} failed: {exc}") from exc

        if response.status_code == 404:
            raise NotFoundError(f"GitLab resource {endpoint} not found")
        if response.status_code >= 400:
            raise RemoteIOError(
                f"GitLab request to {endpoint} failed with status {response.status_code}"
            )
        return response

    def _get_json(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        response = self._get(endpoint, params)
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteIOError(f"GitLab returned invalid JSON for {endpoint}") from exc

    def _get_paginated(self, endpoint: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        """Follow ``X-Next-Page`` headers and concatenate every page."""
        items: list[dict[str, Any]] = []
        page: str | None = "1"
        while page:
            response = self._get(endpoint, {**params, "per_page": PER_PAGE, "page": page})
            try:
                chunk = response.json()
            except ValueError as exc:
                raise RemoteIOError(f"GitLab returned invalid JSON for {endpoint}") from exc
            if not isinstance(chunk, list):
                raise RemoteIOError(f"GitLab returned a non-list page for {endpoint}")
            items.extend(chunk)
            page = response.headers.get("X-Next-Page") or None
        return items

    def project_path(self, domain: str, uid: str) -> str:
        return f"{self.group_prefix}{domain}/{uid}"

    def resolve_project(self, domain: str, uid: str) -> int:
        """Return the id of the project holding the configuration of *uid*.

        The GitLab group search by *domain* must return exactly one group;
        zero or several matches raise :class:`AmbiguousSourceError`.
        """
        LOGGER.info("Searching for GitLab group by domain %s", domain)
        groups = self._get_json("/groups", {"search": domain})
        if not isinstance(groups, list) or len(groups) != 1:
            count = len(groups) if isinstance(groups, list) else 0
            LOGGER.warning("Found %d groups in domain %s", count, domain)
            raise AmbiguousSourceError("GitLab group for given domain does not exist")

        project_name = self.project_path(domain, uid)
        LOGGER.info("Using project name %s to obtain project id", project_name)
        try:
            project = self._get_json(f"/projects/{quote(project_name, safe='')}")
        except NotFoundError as exc:
            raise NotFoundError("GitLab project for given uid does not exist") from exc

        try:
            return int(project["id"])
        except (KeyError, TypeError, ValueError) as exc:
            raise RemoteIOError(f"GitLab project {project_name} has no usable id") from exc

    def list_tree(
        self,
        project_id: int,
        path: str | None = None,
        recursive: bool = False,
        ref: str | None = None,
    ) -> list[TreeEntry]:
        params: dict[str, Any] = {"recursive": "true" if recursive else "false"}
        if path:
            params["path"] = path
        if ref:
            params["ref"] = ref
        raw = self._get_paginated(f"/projects/{project_id}/repository/tree", params)
        try:
            return [
                TreeEntry(name=str(item["name"]), path=str(item["path"]), kind=str(item["type"]))
                for item in raw
            ]
        except (KeyError, TypeError) as exc:
            raise RemoteIOError(
                f"GitLab returned a malformed tree entry for project {project_id}"
            ) from exc

    def read_file(self, project_id: int, path: str, ref: str) -> bytes:
        endpoint = f"/projects/{project_id}/repository/files/{quote(path, safe='')}/raw"
        try:
            return self._get(endpoint, {"ref": ref}).content
        except NotFoundError as exc:
            # A blob that was just listed but cannot be read is a read failure.
            raise RemoteIOError(f"Error while reading file {path} from GitLab") from exc
