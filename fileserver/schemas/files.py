"""Pydantic schemas for file operation endpoints."""

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field

from common.types import DirectoryEntry, RelocationOutcome, RelocationStatus


class DirectoryEntryResponse(BaseModel):
    """One child of a listed directory."""
    name: str
    kind: str
    isDirectory: bool
    path: str
    size: int
    mtime: datetime

    @classmethod
    def from_entry(cls, entry: DirectoryEntry) -> "DirectoryEntryResponse":
        return cls(
            name=entry.name,
            kind=entry.kind.value,
            isDirectory=entry.is_directory,
            path=entry.path,
            size=entry.size,
            mtime=entry.mtime,
        )


class ListFilesResponse(BaseModel):
    """Response model for directory listing."""
    path: str
    files: List[DirectoryEntryResponse]


class UploadResponse(BaseModel):
    """Response model for an upload batch."""
    message: str
    uploaded: int
    skipped: List[str] = Field(default_factory=list)

    @classmethod
    def from_outcomes(cls, outcomes: List[RelocationOutcome]) -> "UploadResponse":
        uploaded = sum(1 for outcome in outcomes if outcome.status is RelocationStatus.MOVED)
        skipped = [outcome.relative_path for outcome in outcomes if outcome.status is RelocationStatus.SKIPPED]
        return cls(message="Files uploaded successfully!", uploaded=uploaded, skipped=skipped)
