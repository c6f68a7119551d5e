"""
Project root discovery.

A project root is the nearest directory, at or above a file, that contains
the marker file. The upward walk never leaves the file's workspace folder.
"""

from __future__ import annotations

import asyncio
import os
from typing import Iterator, List, Optional

from ide_purescript.lsp.lsp_types import TextDocument, WorkspaceFolders
from ide_purescript.utils.logger import setup_logger

logger = setup_logger(__name__)


def iter_candidate_dirs(file_path: str, boundary: str) -> Iterator[str]:
    """Yield the file's directory and its ancestors, ending at ``boundary``.

    Stops early at the filesystem root if ``boundary`` is never reached.
    """
    current = os.path.dirname(os.path.normpath(os.path.abspath(file_path)))
    boundary = os.path.normpath(boundary)
    if current != boundary and not current.startswith(boundary.rstrip(os.sep) + os.sep):
        return
    while True:
        yield current
        if current == boundary:
            return
        parent = os.path.dirname(current)
        if parent == current:
            return
        current = parent


async def _list_dir(path: str) -> Optional[List[str]]:
    try:
        return await asyncio.to_thread(os.listdir, path)
    except OSError as exc:
        logger.warning(f"Could not read directory {path}: {exc}")
        return None


async def find_project_root(
    file_path: str,
    workspace_folders: WorkspaceFolders,
    marker: str,
) -> Optional[str]:
    """Return the nearest directory containing ``marker``, or None.

    Files outside every workspace folder have no root. Unreadable
    directories count as not containing the marker.
    """
    boundary = workspace_folders.get_workspace_folder(file_path)
    if boundary is None:
        logger.debug(f"{file_path} is outside every workspace folder")
        return None

    for directory in iter_candidate_dirs(file_path, boundary):
        entries = await _list_dir(directory)
        if entries is not None and marker in entries:
            return directory
    return None


class ProjectRootResolver:
    """Resolves editor documents to project roots.

    Only file: documents can have a root; untitled buffers resolve to None.
    """

    def __init__(self, workspace_folders: WorkspaceFolders, marker: str) -> None:
        self.workspace_folders = workspace_folders
        self.marker = marker

    async def resolve(self, document: TextDocument) -> Optional[str]:
        path = document.fs_path
        if path is None:
            return None
        root = await find_project_root(path, self.workspace_folders, self.marker)
        if root:
            logger.debug(f"Found {self.marker} at {root}")
        else:
            logger.debug(f"No {self.marker} found for {path}")
        return root
