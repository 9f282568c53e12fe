"""Single-file download pipeline."""

import logging
import os
import stat as stat_module
from typing import AsyncIterator, Dict
from urllib.parse import quote

import aiofiles
import aiofiles.os

from common.constants import DOWNLOAD_BUFFER_SIZE
from fileserver.exceptions import PathNotFoundError, StreamError
from fileserver.path_resolver import resolve_path

logger = logging.getLogger(__name__)


def attachment_header(filename: str) -> str:
    return f'attachment; filename="{quote(filename)}"'


class FileStream:
    """
    An opened file ready to be streamed to one client.

    The first buffer is read before the response starts so that an early
    read failure can still be reported with a status code. close() must be
    called once the response is done; iterating to the end does not close
    the handle.
    """

    def __init__(self, path: str, size: int, handle, first_chunk: bytes, buffer_size: int):
        self.path = path
        self.size = size
        self.filename = os.path.basename(path)
        self._handle = handle
        self._first_chunk = first_chunk
        self._buffer_size = buffer_size
        self.bytes_sent = 0

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Content-Length": str(self.size),
            "Content-Disposition": attachment_header(self.filename),
            "Cache-Control": "public, max-age=3600",
            "Connection": "keep-alive",
            "X-Content-Type-Options": "nosniff",
        }

    async def chunks(self) -> AsyncIterator[bytes]:
        chunk = self._first_chunk
        self._first_chunk = b""
        try:
            while chunk:
                self.bytes_sent += len(chunk)
                yield chunk
                # never send more than the Content-Length announced from stat
                remaining = self.size - self.bytes_sent
                if remaining <= 0:
                    break
                chunk = await self._handle.read(min(self._buffer_size, remaining))
        except OSError as e:
            logger.error(
                f"Stream error on {self.filename} after {self.bytes_sent}/{self.size} bytes: {e}"
            )
            raise

    async def close(self) -> None:
        await self._handle.close()


class DownloadService:
    def __init__(self, root: str, buffer_size: int = DOWNLOAD_BUFFER_SIZE):
        self.root = root
        self.buffer_size = buffer_size

    async def open(self, relative_path: str) -> FileStream:
        """
        Resolve, stat and open a file for streaming.

        Args:
            relative_path: File path relative to the shared root

        Returns:
            FileStream positioned after its first buffer

        Raises:
            AccessDeniedError: If the path escapes the shared root (no stat is made)
            PathNotFoundError: If the path is missing or not a regular file
            StreamError: If the file cannot be opened or its first read fails
        """
        absolute_path = resolve_path(self.root, relative_path)

        try:
            stats = await aiofiles.os.stat(absolute_path)
        except OSError:
            raise PathNotFoundError("File not found")

        if not stat_module.S_ISREG(stats.st_mode):
            raise PathNotFoundError("File not found")

        try:
            handle = await aiofiles.open(absolute_path, "rb")
        except OSError as e:
            logger.error(f"Cannot open {absolute_path} for download: {e}")
            raise StreamError("Stream error")

        try:
            first_chunk = await handle.read(min(self.buffer_size, stats.st_size))
        except OSError as e:
            await handle.close()
            logger.error(f"Stream error on {absolute_path}: {e}")
            raise StreamError("Stream error")

        logger.info(f"Starting download of {relative_path} ({stats.st_size} bytes)")
        return FileStream(absolute_path, stats.st_size, handle, first_chunk, self.buffer_size)
