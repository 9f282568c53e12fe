"""Directory download as a ZIP archive generated on the fly."""

import asyncio
import logging
import os
import threading
import zipfile
from typing import AsyncIterator, Dict, Iterator, Optional, Tuple

import aiofiles.os

from common.constants import ARCHIVE_CHUNK_SIZE, ARCHIVE_COMPRESSION_LEVEL, ARCHIVE_QUEUE_DEPTH
from fileserver.exceptions import PathNotFoundError, StreamError
from fileserver.path_resolver import resolve_path
from fileserver.services.download_service import attachment_header

logger = logging.getLogger(__name__)

_END = object()


class ArchiveAborted(Exception):
    """Raised inside the producer thread once the consumer has gone away."""


def iter_archive_entries(directory: str) -> Iterator[Tuple[str, str]]:
    """
    Yield (absolute_path, archive_name) pairs for everything below a directory.

    Archive names are relative to the directory itself. Empty directories
    are yielded too so they survive in the archive.
    """
    for current, dirnames, filenames in os.walk(directory):
        dirnames.sort()
        relative_dir = os.path.relpath(current, directory)

        if current != directory and not dirnames and not filenames:
            yield current, relative_dir.replace(os.sep, "/") + "/"

        for filename in sorted(filenames):
            absolute = os.path.join(current, filename)
            yield absolute, os.path.relpath(absolute, directory).replace(os.sep, "/")


class _QueueWriter:
    """
    File-like sink handed to zipfile.ZipFile from the producer thread.

    Output is grouped into chunks and pushed to a bounded asyncio.Queue on
    the event loop; a full queue blocks the producer thread. It has no
    tell()/seek(), so zipfile writes data descriptors instead of seeking back.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue,
                 cancelled: threading.Event, chunk_size: int):
        self._loop = loop
        self._queue = queue
        self._cancelled = cancelled
        self._chunk_size = chunk_size
        self._buffer = bytearray()
        self._abandoned = False

    def write(self, data) -> int:
        if self._abandoned:
            return len(data)
        if self._cancelled.is_set():
            raise ArchiveAborted()
        self._buffer += data
        if len(self._buffer) >= self._chunk_size:
            self._emit()
        return len(data)

    def flush(self) -> None:
        if self._buffer and not self._abandoned:
            self._emit()

    def abandon(self) -> None:
        self._abandoned = True
        self._buffer.clear()

    def put(self, item) -> None:
        if self._cancelled.is_set():
            raise ArchiveAborted()
        asyncio.run_coroutine_threadsafe(self._queue.put(item), self._loop).result()

    def _emit(self) -> None:
        data = bytes(self._buffer)
        self._buffer.clear()
        self.put(data)


class ArchiveStream:
    """
    A ZIP archive of one directory, produced while it is being sent.

    A worker thread compresses files into a bounded queue and chunks()
    drains it, so memory use is capped at roughly
    ARCHIVE_QUEUE_DEPTH * ARCHIVE_CHUNK_SIZE no matter how large the
    directory is. close() stops the worker if the client went away.
    """

    def __init__(self, directory: str, filename: Optional[str] = None,
                 compression_level: int = ARCHIVE_COMPRESSION_LEVEL,
                 chunk_size: int = ARCHIVE_CHUNK_SIZE, queue_depth: int = ARCHIVE_QUEUE_DEPTH):
        self.directory = directory
        self.filename = filename or (os.path.basename(directory) or "archive") + ".zip"
        self.compression_level = compression_level
        self.chunk_size = chunk_size
        self.queue_depth = queue_depth
        self.bytes_sent = 0
        self._queue: Optional[asyncio.Queue] = None
        self._cancelled = threading.Event()
        self._producer: Optional[asyncio.Future] = None

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Content-Disposition": attachment_header(self.filename),
            "X-Content-Type-Options": "nosniff",
        }

    async def chunks(self) -> AsyncIterator[bytes]:
        loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue(maxsize=self.queue_depth)
        writer = _QueueWriter(loop, self._queue, self._cancelled, self.chunk_size)
        self._producer = asyncio.ensure_future(asyncio.to_thread(self._build, writer))

        while True:
            item = await self._queue.get()
            if item is _END:
                break
            if isinstance(item, BaseException):
                raise StreamError("Archive construction failed") from item
            self.bytes_sent += len(item)
            yield item

        await self._producer
        logger.info(f"Finished archive {self.filename} ({self.bytes_sent} bytes)")

    async def close(self) -> None:
        if self._producer is None or self._producer.done():
            return

        self._cancelled.set()
        # unblock a producer waiting on a full queue
        while not self._queue.empty():
            self._queue.get_nowait()
        try:
            await self._producer
        except Exception as e:
            logger.debug(f"Archive producer for {self.filename} ended with {e!r}")

    def _build(self, writer: _QueueWriter) -> None:
        archive = zipfile.ZipFile(
            writer,
            mode="w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=self.compression_level,
            allowZip64=True,
            strict_timestamps=False
        )
        try:
            for absolute_path, arcname in iter_archive_entries(self.directory):
                archive.write(absolute_path, arcname)
        except ArchiveAborted:
            writer.abandon()
            archive.close()
            logger.info(f"Archive {self.filename} abandoned by client")
            return
        except Exception as e:
            writer.abandon()
            archive.close()
            logger.error(f"Archive error on {self.filename}: {e}", exc_info=True)
            try:
                writer.put(e)
            except ArchiveAborted:
                pass
            return

        try:
            archive.close()
            writer.flush()
            writer.put(_END)
        except ArchiveAborted:
            logger.info(f"Archive {self.filename} abandoned by client")


class ArchiveService:
    def __init__(self, root: str):
        self.root = root

    async def open(self, relative_path: str) -> ArchiveStream:
        """
        Prepare a streaming ZIP of a directory in the shared root.

        Args:
            relative_path: Directory relative to the shared root

        Returns:
            ArchiveStream; nothing is read until it is iterated

        Raises:
            AccessDeniedError: If the path escapes the shared root
            PathNotFoundError: If the path is missing or not a directory
        """
        absolute_path = resolve_path(self.root, relative_path)

        if not await aiofiles.os.path.isdir(absolute_path):
            raise PathNotFoundError("Folder not found")

        filename = "archive.zip" if absolute_path == os.path.normpath(self.root) else None
        logger.info(f"Starting archive download of {relative_path}")
        return ArchiveStream(absolute_path, filename)
