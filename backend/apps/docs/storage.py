"""
File storage for document uploads.

Uploaded files are kept on a local volume under UPLOAD_ROOT, named after the
document id so two uploads with the same filename never collide.
"""
import logging
from pathlib import Path
from typing import BinaryIO, Optional

from django.conf import settings

logger = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 8192


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class FileStorage:
    """
    Simple file storage for uploaded documents.

    Files are stored at: {UPLOAD_ROOT}/{document_id}{extension}
    """

    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root or settings.UPLOAD_ROOT)
        self._ensure_root_exists()

    def _ensure_root_exists(self) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to create upload root {self.root}: {e}")
            raise StorageError(f"Cannot create upload directory: {e}")

    def save(self, document_id: str, extension: str, file: BinaryIO) -> str:
        """
        Save a file to storage.

        Args:
            document_id: UUID of the document
            extension: File extension (e.g., '.pdf'), may be empty
            file: File-like object with read()

        Returns:
            Relative storage path (e.g., 'abc123.pdf')

        Raises:
            StorageError: If the file cannot be written
        """
        if extension and not extension.startswith('.'):
            extension = f'.{extension}'

        filename = f"{document_id}{extension}"
        filepath = self.root / filename

        try:
            with open(filepath, 'wb') as dest:
                while True:
                    chunk = file.read(COPY_CHUNK_SIZE)
                    if not chunk:
                        break
                    dest.write(chunk)
        except OSError as e:
            logger.error(f"Failed to save file {filename}: {e}")
            raise StorageError(f"Failed to save file: {e}")

        logger.info(f"Saved file: {filename} ({filepath.stat().st_size} bytes)")
        return filename

    def get_path(self, storage_path: str) -> Path:
        """Full filesystem path for a relative storage path."""
        return self.root / storage_path

    def exists(self, storage_path: str) -> bool:
        return bool(storage_path) and (self.root / storage_path).is_file()

    def delete(self, storage_path: str) -> bool:
        """
        Delete a file from storage.

        Returns:
            True if deleted, False if the file did not exist
        """
        if not storage_path:
            return False

        filepath = self.root / storage_path
        try:
            if filepath.exists():
                filepath.unlink()
                logger.info(f"Deleted file: {storage_path}")
                return True
            return False
        except OSError as e:
            logger.error(f"Failed to delete file {storage_path}: {e}")
            raise StorageError(f"Failed to delete file: {e}")


def get_storage() -> FileStorage:
    """File storage rooted at the configured UPLOAD_ROOT."""
    return FileStorage()
