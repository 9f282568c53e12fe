"""Resolution of caller-supplied relative paths inside the shared root."""

import logging
import os
import posixpath

from fileserver.exceptions import AccessDeniedError, BadRequestError

logger = logging.getLogger(__name__)


def normalize_relative_path(relative_path: str) -> str:
    """
    Normalize an untrusted relative path and clamp upward traversal.

    Backslashes are treated as separators, "." and ".." segments are
    collapsed, and any ".." left at the front is dropped instead of being
    rejected, so "../../etc/passwd" becomes "etc/passwd".

    Args:
        relative_path: Path as received from the client

    Returns:
        Normalized POSIX-style relative path ("." for the root)

    Raises:
        BadRequestError: If the path contains a NUL byte
    """
    if not relative_path:
        return "."

    if "\x00" in relative_path:
        raise BadRequestError("Invalid path")

    normalized = posixpath.normpath(relative_path.replace("\\", "/"))
    segments = [segment for segment in normalized.split("/") if segment]

    while segments and segments[0] == "..":
        segments.pop(0)

    return "/".join(segments) or "."


def is_within_root(root: str, absolute_path: str) -> bool:
    """
    Lexical containment check; does not touch the filesystem.
    """
    root = os.path.normpath(root)
    if absolute_path == root:
        return True
    return absolute_path.startswith(root.rstrip(os.sep) + os.sep)


def resolve_path(root: str, relative_path: str) -> str:
    """
    Turn a relative path into an absolute path inside the shared root.

    Args:
        root: Absolute path of the shared root
        relative_path: Untrusted relative path (either separator style)

    Returns:
        Absolute, normalized path inside the root

    Raises:
        AccessDeniedError: If the joined path is not contained in the root
        BadRequestError: If the path contains a NUL byte
    """
    safe_path = normalize_relative_path(relative_path)
    absolute_path = os.path.normpath(os.path.join(root, *safe_path.split("/")))

    if not is_within_root(root, absolute_path):
        logger.warning(f"Rejected path outside shared root: {relative_path!r}")
        raise AccessDeniedError("Access denied")

    return absolute_path


def to_relative(root: str, absolute_path: str) -> str:
    """
    Express an absolute path inside the root as a forward-slash relative path.
    """
    relative = os.path.relpath(absolute_path, root)
    if relative == ".":
        return ""
    return relative.replace(os.sep, "/")
