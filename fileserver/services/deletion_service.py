"""Recursive, idempotent deletion inside the shared root."""

import asyncio
import logging
import os
import shutil

import aiofiles.os

from fileserver.exceptions import AccessDeniedError, InternalError
from fileserver.path_resolver import resolve_path

logger = logging.getLogger(__name__)


class DeletionService:
    def __init__(self, root: str):
        self.root = root

    async def delete(self, relative_path: str) -> bool:
        """
        Remove a file or a whole directory tree.

        Args:
            relative_path: Path relative to the shared root

        Returns:
            True if something was removed, False if it did not exist

        Raises:
            AccessDeniedError: If the path escapes the shared root or is the root itself
            InternalError: If removal fails for another reason
        """
        absolute_path = resolve_path(self.root, relative_path)

        if absolute_path == os.path.normpath(self.root):
            logger.warning("Refusing to delete the shared root")
            raise AccessDeniedError("Access denied")

        try:
            if await aiofiles.os.path.isdir(absolute_path) and not await aiofiles.os.path.islink(absolute_path):
                await asyncio.to_thread(shutil.rmtree, absolute_path)
            else:
                await aiofiles.os.remove(absolute_path)
        except (FileNotFoundError, NotADirectoryError):
            logger.info(f"Delete of missing path {relative_path} treated as success")
            return False
        except OSError as e:
            logger.error(f"Error deleting {absolute_path}: {e}")
            raise InternalError("Error deleting file")

        logger.info(f"Deleted {relative_path}")
        return True
