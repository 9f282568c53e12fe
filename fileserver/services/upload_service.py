"""Upload pipeline: staging of multipart payloads and relocation into the shared tree."""

import asyncio
import logging
import os
import uuid
from typing import List, Optional, Protocol, Sequence

import aiofiles
import aiofiles.os

from common.constants import UPLOAD_PATH_MARKER, UPLOAD_READ_SIZE
from common.types import RelocationOutcome, RelocationStatus, UploadDescriptor
from fileserver.exceptions import BadRequestError, PartialFailureError
from fileserver.path_resolver import is_within_root, resolve_path, to_relative

logger = logging.getLogger(__name__)


class IncomingFile(Protocol):
    """What the pipeline needs from a multipart part (starlette's UploadFile fits)."""
    filename: Optional[str]

    async def read(self, size: int = -1) -> bytes: ...


def decode_upload_name(filename: str, marker: str = UPLOAD_PATH_MARKER) -> str:
    """
    Recover the relative destination path encoded in an uploaded filename.

    Args:
        filename: Multipart filename, e.g. "photos@@@trip@@@img.jpg"
        marker: Separator substitute used by the client

    Returns:
        Relative path with "/" separators and no leading/trailing separators
    """
    decoded = filename.replace(marker, "/").replace("\\", "/")
    return decoded.strip("/")


class UploadService:
    def __init__(self, root: str, staging_dir: str):
        self.root = root
        self.staging_dir = staging_dir

    async def accept(self, destination: str, uploads: Sequence[IncomingFile]) -> List[RelocationOutcome]:
        """
        Store a batch of uploaded files below a destination directory.

        Files whose target escapes the shared root are skipped; the rest of
        the batch continues. All files are processed concurrently and the
        call returns once every one of them has settled.

        Args:
            destination: Destination directory relative to the shared root
            uploads: Multipart parts, filenames in the marker encoding

        Returns:
            One RelocationOutcome per upload, in request order

        Raises:
            BadRequestError: If the batch is empty
            AccessDeniedError: If the destination escapes the shared root
            PartialFailureError: If any file could not be relocated
        """
        if not uploads:
            raise BadRequestError("No files uploaded.")

        destination_path = resolve_path(self.root, destination)

        outcomes = await asyncio.gather(*(
            self._process(destination_path, upload) for upload in uploads
        ))

        failed = [outcome for outcome in outcomes if outcome.status is RelocationStatus.FAILED]
        if failed:
            raise PartialFailureError(
                f"{len(failed)} of {len(outcomes)} uploads could not be stored",
                outcomes
            )

        moved = sum(1 for outcome in outcomes if outcome.status is RelocationStatus.MOVED)
        logger.info(f"Upload batch stored {moved}/{len(outcomes)} files")
        return list(outcomes)

    def target_for(self, destination_path: str, relative_path: str) -> Optional[str]:
        """
        Absolute target of one upload, or None when it would leave the shared root.
        """
        if not relative_path or "\x00" in relative_path:
            return None

        target = os.path.normpath(os.path.join(destination_path, *relative_path.split("/")))
        parent = os.path.dirname(target)

        if target == os.path.normpath(self.root):
            return None
        if not is_within_root(self.root, parent) or not is_within_root(self.root, target):
            return None
        return target

    async def stage(self, upload: IncomingFile, relative_path: str) -> UploadDescriptor:
        """
        Copy a multipart payload into the staging directory.
        """
        await aiofiles.os.makedirs(self.staging_dir, exist_ok=True)
        staged_path = os.path.join(self.staging_dir, f"{uuid.uuid4().hex}.part")

        try:
            async with aiofiles.open(staged_path, "wb") as staged:
                while True:
                    chunk = await upload.read(UPLOAD_READ_SIZE)
                    if not chunk:
                        break
                    await staged.write(chunk)
        except BaseException:
            await self._discard(staged_path)
            raise

        return UploadDescriptor(relative_path=relative_path, staged_path=staged_path)

    async def relocate(self, descriptor: UploadDescriptor, target: str) -> None:
        """
        Move a staged payload to its target, creating parent directories.

        os.replace is a rename, so readers never see a partially written
        target file.
        """
        await aiofiles.os.makedirs(os.path.dirname(target), exist_ok=True)
        await aiofiles.os.replace(descriptor.staged_path, target)

    async def _process(self, destination_path: str, upload: IncomingFile) -> RelocationOutcome:
        relative_path = decode_upload_name(upload.filename or "")
        target = self.target_for(destination_path, relative_path)

        if target is None:
            logger.warning(f"Skipping upload outside shared root: {upload.filename!r}")
            return RelocationOutcome(relative_path=relative_path, status=RelocationStatus.SKIPPED)

        descriptor = None
        try:
            descriptor = await self.stage(upload, relative_path)
            await self.relocate(descriptor, target)
        except OSError as e:
            logger.error(f"Upload processing error for {relative_path}: {e}")
            if descriptor is not None:
                await self._discard(descriptor.staged_path)
            return RelocationOutcome(
                relative_path=relative_path,
                status=RelocationStatus.FAILED,
                error=e.strerror or str(e)
            )

        logger.debug(f"Stored upload at {to_relative(self.root, target)}")
        return RelocationOutcome(relative_path=relative_path, status=RelocationStatus.MOVED)

    async def _discard(self, staged_path: str) -> None:
        try:
            await aiofiles.os.remove(staged_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove staged upload {staged_path}: {e}")
