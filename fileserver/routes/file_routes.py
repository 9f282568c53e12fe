"""File operation API routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import PlainTextResponse

from fileserver.context import TransferContext
from fileserver.dependencies import get_context
from fileserver.exceptions import BadRequestError
from fileserver.responses import TransferStreamingResponse
from fileserver.schemas.files import DirectoryEntryResponse, ListFilesResponse, UploadResponse

router = APIRouter(prefix="/api", tags=["Files"])


@router.get("/files", response_model=ListFilesResponse)
async def list_files(
    path: str = Query("", description="Directory relative to the shared root"),
    context: TransferContext = Depends(get_context)
):
    """
    List the immediate children of a directory.

    Returns:
        - path: The requested path, echoed back
        - files: name, kind, isDirectory, path, size and mtime per child,
                 in filesystem order (clients sort)

    Raises:
        - 403: Path escapes the shared root
        - 404: Directory not found
        - 500: Directory could not be scanned
    """
    entries = await context.listing.list_directory(path)
    return ListFilesResponse(
        path=path,
        files=[DirectoryEntryResponse.from_entry(entry) for entry in entries]
    )


@router.delete("/files", response_class=PlainTextResponse)
async def delete_file(
    path: Optional[str] = Query(None, description="File or folder to delete"),
    context: TransferContext = Depends(get_context)
):
    """
    Delete a file or folder recursively. Deleting a missing path succeeds.

    Raises:
        - 400: No path given
        - 403: Path escapes the shared root
        - 500: Removal failed
    """
    if not path:
        raise BadRequestError("No file specified")

    await context.deletion.delete(path)
    return PlainTextResponse("File deleted")


@router.post("/upload", response_model=UploadResponse)
async def upload_files(
    files: Optional[List[UploadFile]] = File(None),
    path: str = Form(""),
    context: TransferContext = Depends(get_context)
):
    """
    Upload a batch of files below a destination folder.

    Parameters:
        - path: Destination folder relative to the shared root
        - files: Parts whose filenames carry the relative path, with "/"
                 replaced by the upload path marker

    Returns:
        - message, number of files stored, relative paths skipped because
          they pointed outside the shared root

    Raises:
        - 400: No files in the request
        - 403: Destination escapes the shared root
        - 500: One or more files could not be stored
    """
    try:
        outcomes = await context.uploads.accept(path, files or [])
    finally:
        for upload in files or []:
            await upload.close()

    return UploadResponse.from_outcomes(outcomes)


@router.get("/download")
async def download_file(
    path: Optional[str] = Query(None, description="File relative to the shared root"),
    context: TransferContext = Depends(get_context)
):
    """
    Stream a single file as an attachment.

    Raises:
        - 400: No path given
        - 403: Path escapes the shared root
        - 404: File not found
        - 500: File could not be read
    """
    if not path:
        raise BadRequestError("No file specified")

    stream = await context.downloads.open(path)
    return TransferStreamingResponse(stream, context.counter)


@router.get("/download-zip")
async def download_folder(
    path: Optional[str] = Query(None, description="Folder relative to the shared root"),
    context: TransferContext = Depends(get_context)
):
    """
    Stream a folder as a ZIP archive built while it is sent.

    Raises:
        - 400: No path given
        - 403: Path escapes the shared root
        - 404: Folder not found
    """
    if not path:
        raise BadRequestError("No folder specified")

    stream = await context.archives.open(path)
    return TransferStreamingResponse(stream, context.counter, media_type="application/zip")
