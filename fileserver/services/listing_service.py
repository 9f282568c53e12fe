"""Listing of a directory's immediate children."""

import asyncio
import logging
import os
import stat as stat_module
from datetime import datetime, timezone
from typing import List, Tuple

import aiofiles.os

from common.types import EPOCH, DirectoryEntry, EntryKind
from fileserver.exceptions import InternalError, PathNotFoundError
from fileserver.path_resolver import normalize_relative_path, resolve_path
from fileserver.size_cache import DirectorySizeCache

logger = logging.getLogger(__name__)


def _scan_children(path: str) -> List[Tuple[str, bool]]:
    children = []
    with os.scandir(path) as entries:
        for entry in entries:
            try:
                is_dir = entry.is_dir(follow_symlinks=False)
            except OSError:
                is_dir = False
            children.append((entry.name, is_dir))
    return children


class ListingService:
    def __init__(self, root: str, size_cache: DirectorySizeCache):
        self.root = root
        self.size_cache = size_cache

    async def list_directory(self, relative_path: str) -> List[DirectoryEntry]:
        """
        List the immediate children of a directory in the shared root.

        Directory sizes come from the size cache. A child that cannot be
        stat'ed is still listed, with size 0 and the epoch as mtime.
        Entries are returned in filesystem enumeration order.

        Args:
            relative_path: Directory relative to the shared root ("" for the root)

        Returns:
            List of DirectoryEntry

        Raises:
            AccessDeniedError: If the path escapes the shared root
            PathNotFoundError: If the directory does not exist
            InternalError: If the directory cannot be enumerated
        """
        absolute_path = resolve_path(self.root, relative_path)

        try:
            children = await asyncio.to_thread(_scan_children, absolute_path)
        except (FileNotFoundError, NotADirectoryError):
            raise PathNotFoundError("Directory not found")
        except OSError as e:
            logger.error(f"Unable to scan directory {absolute_path}: {e}")
            raise InternalError("Unable to scan directory")

        base = normalize_relative_path(relative_path)
        prefix = "" if base == "." else base

        return list(await asyncio.gather(*(
            self._describe(absolute_path, prefix, name, is_dir)
            for name, is_dir in children
        )))

    async def _describe(self, parent: str, prefix: str, name: str, is_dir: bool) -> DirectoryEntry:
        full_path = os.path.join(parent, name)
        kind = EntryKind.DIRECTORY if is_dir else EntryKind.FILE
        entry_path = f"{prefix}/{name}" if prefix else name

        try:
            stats = await aiofiles.os.stat(full_path)
            if is_dir:
                size = await self.size_cache.size_of(full_path)
            elif stat_module.S_ISREG(stats.st_mode):
                size = stats.st_size
            else:
                size = 0
            mtime = datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc)
        except OSError as e:
            logger.debug(f"Could not stat {full_path}: {e}")
            size = 0
            mtime = EPOCH

        return DirectoryEntry(name=name, kind=kind, path=entry_path, size=size, mtime=mtime)
