"""Pydantic schemas for API responses."""

from fileserver.schemas.files import (
    DirectoryEntryResponse,
    ListFilesResponse,
    UploadResponse
)
from fileserver.schemas.system import ConnectionInfoResponse, ShutdownResponse
from fileserver.schemas.common import ErrorResponse

__all__ = [
    "DirectoryEntryResponse",
    "ListFilesResponse",
    "UploadResponse",
    "ConnectionInfoResponse",
    "ShutdownResponse",
    "ErrorResponse"
]
