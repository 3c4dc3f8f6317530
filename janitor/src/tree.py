from __future__ import annotations

import logging
from typing import Protocol

from janitor.src.errors import NotFoundError, RemoteIOError
from janitor.src.gitlab import TreeEntry
from janitor.src.models import ConfigTree

LOGGER = logging.getLogger(__name__)

ROOT_GROUP = ""


class SourceTree(Protocol):
    def list_tree(
        self,
        project_id: int,
        path: str | None = None,
        recursive: bool = False,
        ref: str | None = None,
    ) -> list[TreeEntry]: ...

    def read_file(self, project_id: int, path: str, ref: str) -> bytes: ...


def _read_group(
    source: SourceTree,
    project_id: int,
    ref: str,
    group: str,
    entries: list[TreeEntry],
) -> dict[str, bytes]:
    """Read every blob of *entries* into a file map keyed by base name.

    Blobs are read in lexicographic path order, so when two files of one
    group share a base name the one with the greater path wins.
    """
    files: dict[str, bytes] = {}
    origin: dict[str, str] = {}
    for entry in sorted((e for e in entries if e.is_blob), key=lambda e: e.path):
        LOGGER.debug("Reading %s for group %r", entry.path, group)
        content = source.read_file(project_id, entry.path, ref)
        if entry.name in files:
            LOGGER.warning(
                "File name %s in group %r appears more than once; %s overrides %s",
                entry.name,
                group,
                entry.path,
                origin[entry.name],
            )
        files[entry.name] = content
        origin[entry.name] = entry.path
    return files


def flatten(source: SourceTree, project_id: int, ref: str) -> ConfigTree:
    """Flatten the repository of *project_id* at *ref* into a :data:`ConfigTree`.

    Root blobs land in the ``""`` group.  Each top-level directory becomes
    one group containing every blob found beneath it at any depth.  Any
    failed read aborts the whole flatten, so a partial tree is never
    returned.
    """
    LOGGER.info("Processing files in root directory of project %s", project_id)
    try:
        root = source.list_tree(project_id, ref=ref)
    except NotFoundError as exc:
        raise NotFoundError(
            f"Repository tree of project {project_id} at {ref} not found"
        ) from exc

    tree: ConfigTree = {ROOT_GROUP: _read_group(source, project_id, ref, ROOT_GROUP, root)}

    for directory in sorted((e for e in root if e.is_tree), key=lambda e: e.path):
        LOGGER.info(
            "Processing directory from repository (name: %s, path: %s)",
            directory.name,
            directory.path,
        )
        try:
            entries = source.list_tree(project_id, path=directory.path, recursive=True, ref=ref)
        except NotFoundError as exc:
            raise RemoteIOError(f"Listing directory {directory.path} failed") from exc
        tree[directory.name] = _read_group(source, project_id, ref, directory.name, entries)

    return tree
