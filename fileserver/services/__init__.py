"""Service layer for file operations."""

from fileserver.services.archive_service import ArchiveService, ArchiveStream
from fileserver.services.deletion_service import DeletionService
from fileserver.services.download_service import DownloadService, FileStream
from fileserver.services.listing_service import ListingService
from fileserver.services.upload_service import UploadService, decode_upload_name

__all__ = [
    "ArchiveService",
    "ArchiveStream",
    "DeletionService",
    "DownloadService",
    "FileStream",
    "ListingService",
    "UploadService",
    "decode_upload_name",
]
