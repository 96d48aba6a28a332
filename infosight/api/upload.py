"""
File upload handling utilities.

Every file of a request is validated and read before any of them is
stored, so a rejected request leaves nothing behind in the bucket.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Set

from fastapi import UploadFile, HTTPException, status

from infosight.storage import BlobStore, StorageError, build_object_path
from infosight.worker.transcriber import SUPPORTED_FORMATS

logger = logging.getLogger(__name__)

# Accept exactly what the transcription API takes
VIDEO_EXTENSIONS = SUPPORTED_FORMATS
DOCUMENT_EXTENSIONS = {".pdf", ".docx"}

CHUNK_SIZE = 1024 * 1024


@dataclass
class PendingUpload:
    """A validated upload held in memory until the whole request checks out."""
    filename: str
    kind: str
    extension: str
    data: bytes
    index: Optional[int] = None

    @property
    def size(self) -> int:
        return len(self.data)


def validate_extension(file: UploadFile, allowed: Set[str]) -> str:
    """
    Validate an uploaded file's extension.

    Returns:
        The lowercase extension including the dot

    Raises:
        HTTPException: If the extension is not allowed
    """
    file_ext = Path(file.filename or "").suffix.lower()
    if file_ext not in allowed:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid file type for {file.filename!r}. Allowed: {', '.join(sorted(allowed))}"
        )
    return file_ext


def read_with_limit(file: UploadFile, max_bytes: int) -> bytes:
    """Read an upload in chunks, rejecting it once it exceeds max_bytes."""
    chunks = []
    bytes_read = 0
    try:
        while chunk := file.file.read(CHUNK_SIZE):
            bytes_read += len(chunk)
            if bytes_read > max_bytes:
                raise HTTPException(
                    status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                    detail=f"File too large. Maximum size: {max_bytes // (1024 * 1024)}MB"
                )
            chunks.append(chunk)
    finally:
        file.file.close()
    data = b"".join(chunks)
    if not data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File {file.filename!r} is empty"
        )
    return data


def read_upload(
    file: UploadFile,
    kind: str,
    allowed: Set[str],
    max_bytes: int,
    index: Optional[int] = None,
) -> PendingUpload:
    """Check the extension first, then read the body within the size limit."""
    extension = validate_extension(file, allowed)
    data = read_with_limit(file, max_bytes)
    return PendingUpload(filename=file.filename or "", kind=kind, extension=extension, data=data, index=index)


def discard_uploads(store: BlobStore, paths: List[str]) -> None:
    """Remove objects stored for a request that did not go through."""
    if not paths:
        return
    try:
        store.remove(paths)
        logger.info(f"Removed {len(paths)} orphaned upload(s)")
    except StorageError as e:
        logger.error(f"Could not remove orphaned uploads {paths}: {e}")


def store_uploads(store: BlobStore, user_id: str, uploads: List[PendingUpload]) -> List[str]:
    """
    Store validated uploads under the user's folder.

    Returns:
        Object paths, in the order of ``uploads``

    Raises:
        HTTPException: 500 if any write fails; objects already written are removed
    """
    paths: List[str] = []
    try:
        for upload in uploads:
            object_path = build_object_path(user_id, upload.kind, upload.extension, index=upload.index)
            paths.append(store.upload(object_path, upload.data))
    except StorageError as e:
        discard_uploads(store, paths)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to save file: {e}"
        )
    return paths
