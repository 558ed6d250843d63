"""Local-disk storage for uploaded files."""
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import get_settings
from .errors import NotFoundError, StorageError, ValidationError

logger = logging.getLogger("faae-core.file_storage")

TEXT_PREVIEW_CHARS = 1000


@dataclass
class StoredObject:
    """Where an upload ended up on disk."""

    filename: str
    path: str
    size: int


class FileStorage:
    """
    Stores upload bytes under a base directory.

    Stored names are ``<epoch-ms>_<original name>``; the original name is
    reduced to its last path component first.
    """

    def __init__(self, base_dir: str, max_size_bytes: Optional[int] = None):
        self.base_dir = Path(base_dir)
        self.max_size_bytes = max_size_bytes

    def _ensure_dir(self) -> None:
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create upload directory {self.base_dir}: {e}")

    def save(self, content: bytes, original_name: str) -> StoredObject:
        """
        Write an upload to disk.

        Raises:
            ValidationError: Empty name or content over the size limit
            StorageError: The bytes could not be written
        """
        safe_name = os.path.basename(original_name or "").strip()
        if not safe_name:
            raise ValidationError("File name is required", field="file")
        if self.max_size_bytes is not None and len(content) > self.max_size_bytes:
            raise ValidationError(
                f"File exceeds the maximum size of {self.max_size_bytes // (1024 * 1024)} MB",
                field="file",
            )

        self._ensure_dir()
        filename = f"{int(time.time() * 1000)}_{safe_name}"
        path = self.base_dir / filename
        try:
            path.write_bytes(content)
        except OSError as e:
            logger.error(f"Failed to write upload {filename}: {e}", exc_info=True)
            raise StorageError(f"Cannot write file {filename}: {e}")

        logger.info(f"Stored upload {filename} ({len(content)} bytes)")
        return StoredObject(filename=filename, path=str(path), size=len(content))

    def delete(self, path: str) -> None:
        """
        Remove a stored object. A missing object counts as already deleted.

        Raises:
            StorageError: The object exists but could not be removed
        """
        try:
            os.remove(path)
            logger.info(f"Deleted stored file {path}")
        except FileNotFoundError:
            logger.debug(f"Stored file already gone: {path}")
        except OSError as e:
            logger.error(f"Failed to delete stored file {path}: {e}", exc_info=True)
            raise StorageError(f"Cannot delete file {path}: {e}")

    def resolve(self, path: str, file_id: Optional[int] = None) -> Path:
        """Return the on-disk path of a stored object, NotFoundError if absent."""
        resolved = Path(path)
        if not resolved.is_file():
            raise NotFoundError("File", file_id if file_id is not None else path)
        return resolved

    def preview(self, path: str, mime_type: str, download_url: str) -> dict:
        """Describe how a client may preview a stored file."""
        mime_type = mime_type or ""
        if mime_type.startswith("image/"):
            return {"type": "image", "url": download_url}
        if mime_type == "application/pdf":
            return {"type": "pdf", "url": download_url}
        if mime_type.startswith("text/"):
            try:
                with open(path, "r", encoding="utf-8", errors="replace") as f:
                    return {"type": "text", "content": f.read(TEXT_PREVIEW_CHARS)}
            except OSError:
                return {"type": "other"}
        return {"type": "other"}


def format_file_size(size: int) -> str:
    """Human-readable size, e.g. ``1.5 MB``."""
    if size == 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {units[index]}"


def get_file_storage() -> FileStorage:
    """Storage configured from settings (FastAPI dependency)."""
    settings = get_settings()
    return FileStorage(settings.upload_dir, settings.max_upload_size_bytes)
