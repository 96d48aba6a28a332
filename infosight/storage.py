"""
Blob storage for uploaded videos and documents.

Objects live under ``<storage_dir>/<bucket>/`` and are addressed by
user-scoped relative paths such as ``<user_id>/video_1_20250715-093000.webm``.
"""

import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)

_SAFE_SEGMENT = re.compile(r"[^a-zA-Z0-9_\-]")


class StorageError(Exception):
    """Exception raised for blob store failures."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class BlobStore:
    """Interface for the blob store used by the pipeline and the API."""

    def upload(self, path: str, data: bytes) -> str:
        raise NotImplementedError

    def download(self, path: str) -> bytes:
        raise NotImplementedError

    def remove(self, paths: Iterable[str]) -> List[str]:
        raise NotImplementedError

    def exists(self, path: str) -> bool:
        raise NotImplementedError


def build_object_path(user_id: str, kind: str, extension: str, index: Optional[int] = None) -> str:
    """
    Build a user-scoped object path.

    Args:
        user_id: Owner of the object; becomes the top-level folder.
        kind: Object kind, e.g. "video" or "document".
        extension: File extension with or without the leading dot.
        index: Optional 1-based position (question number for videos).

    Returns:
        Relative object path like ``<user>/video_1_<timestamp>.webm``.
    """
    safe_user = _SAFE_SEGMENT.sub("", user_id)
    if not safe_user:
        raise StorageError("Invalid user id for storage path")
    ext = _SAFE_SEGMENT.sub("", extension.lstrip(".").lower()) or "bin"
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S-%f")
    name = f"{kind}_{index}_{timestamp}" if index is not None else f"{kind}_{timestamp}"
    return f"{safe_user}/{name}.{ext}"


class LocalBlobStore(BlobStore):
    """Filesystem-backed blob store."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        if not path:
            raise StorageError("Empty storage path", path=path)
        root = self.root.resolve()
        target = (root / path).resolve()
        # Keep every object inside the bucket
        if target != root and root not in target.parents:
            raise StorageError(f"Invalid storage path: {path}", path=path)
        return target

    def upload(self, path: str, data: bytes) -> str:
        target = self._resolve(path)
        if target.exists():
            raise StorageError(f"Object already exists: {path}", path=path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.info(f"Stored {path} ({len(data)} bytes)")
        return path

    def download(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except FileNotFoundError:
            raise StorageError(f"Object not found: {path}", path=path)
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}", path=path)

    def remove(self, paths: Iterable[str]) -> List[str]:
        """Delete objects; returns the paths that were actually removed."""
        removed = []
        for path in paths:
            target = self._resolve(path)
            try:
                target.unlink()
                removed.append(path)
            except FileNotFoundError:
                logger.warning(f"Object already gone: {path}")
            except OSError as e:
                raise StorageError(f"Failed to delete {path}: {e}", path=path)
        return removed

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()
