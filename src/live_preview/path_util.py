"""Path helpers for mapping workspace files to server paths."""

import logging
import os
import pathlib
import posixpath

logger = logging.getLogger(__name__)


def convert_to_posix_path(path: str) -> str:
    """Use forward slashes regardless of platform."""
    return path.replace("\\", "/")


def normalize_path(path: str) -> str:
    return os.path.normpath(path)


def path_begins_with(path: str, root: str) -> bool:
    """Check whether `path` is `root` itself or lies underneath it.

    Both sides are normalized first. The test is on path strings, it does
    not touch the file system.
    """
    if not root:
        return False
    path = convert_to_posix_path(normalize_path(path))
    root = convert_to_posix_path(normalize_path(root))
    if path == root:
        return True
    prefix = root if root.endswith("/") else root + "/"
    return path.startswith(prefix)


def valid_server_root(workspace_path: pathlib.Path, server_root: str) -> str:
    """Return `server_root` as a workspace-relative prefix, or "" if unusable.

    The prefix must name an existing directory inside the workspace.
    """
    if not server_root:
        return ""

    prefix = convert_to_posix_path(server_root).strip("/")
    if not prefix:
        return ""
    candidate = (workspace_path / prefix).resolve()
    if not path_begins_with(str(candidate), str(workspace_path.resolve())):
        logger.warning(f"Server root {server_root!r} is outside the workspace")
        return ""
    if not candidate.is_dir():
        logger.warning(f"Server root {server_root!r} is not a directory")
        return ""
    return posixpath.normpath(prefix)
