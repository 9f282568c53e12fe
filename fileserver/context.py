"""Per-process transfer state shared by every request handler."""

import logging
import os
from dataclasses import dataclass, field

from fileserver.services import (
    ArchiveService,
    DeletionService,
    DownloadService,
    ListingService,
    UploadService,
)
from fileserver.size_cache import DirectorySizeCache
from fileserver.transfer_counter import TransferCounter

logger = logging.getLogger(__name__)


@dataclass
class TransferContext:
    """
    Owns the shared root, the size cache and the transfer counter.

    Built once per application and handed to route handlers through the
    get_context dependency, so there is exactly one cache and one counter
    per process without module globals.
    """
    shared_root: str
    upload_temp: str
    counter: TransferCounter = field(default_factory=TransferCounter)

    def __post_init__(self):
        self.shared_root = os.path.abspath(self.shared_root)
        self.upload_temp = os.path.abspath(self.upload_temp)
        self.size_cache = DirectorySizeCache(self.counter)
        self.listing = ListingService(self.shared_root, self.size_cache)
        self.uploads = UploadService(self.shared_root, self.upload_temp)
        self.downloads = DownloadService(self.shared_root)
        self.archives = ArchiveService(self.shared_root)
        self.deletion = DeletionService(self.shared_root)

    def ensure_directories(self) -> None:
        """Create the shared root and the upload staging directory if absent."""
        for directory in (self.shared_root, self.upload_temp):
            os.makedirs(directory, exist_ok=True)
        logger.info(f"Shared folder: {self.shared_root}")
