"""Local-disk storage for chat attachments."""

import logging
import mimetypes
from pathlib import Path, PurePosixPath
from typing import Optional

from app.core.exceptions import UploadError
from app.core.messages import FILE_UPLOAD_FAILED

from .access import UploadedFile


logger = logging.getLogger("app.data.storage")

# Max file size (10MB)
MAX_FILE_SIZE = 10 * 1024 * 1024


class LocalFileStorage:
    """Stores attachments under ``root`` and serves them from ``public_url``."""

    def __init__(self, root: str | Path, public_url: str, max_file_size: int = MAX_FILE_SIZE):
        self.root = Path(root)
        self.public_url = public_url.rstrip("/")
        self.max_file_size = max_file_size

    def resolve(self, destination: str) -> Path:
        """Map a relative destination path to a file under the storage root."""
        relative = PurePosixPath(destination)
        if relative.is_absolute() or ".." in relative.parts or not relative.parts:
            raise UploadError(f"Invalid destination path: {destination}")
        return self.root.joinpath(*relative.parts)

    def save(self, data: bytes, destination: str, content_type: Optional[str] = None) -> UploadedFile:
        if len(data) > self.max_file_size:
            raise UploadError(
                f"File too large. Maximum size: {self.max_file_size / 1024 / 1024:.0f}MB"
            )

        file_path = self.resolve(destination)
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_bytes(data)
        except OSError as e:
            logger.error("Attachment write failed: destination=%s, error=%s", destination, e)
            raise UploadError(FILE_UPLOAD_FAILED) from e

        mime_type = content_type or mimetypes.guess_type(file_path.name)[0]
        logger.info(
            "Attachment stored: destination=%s, size=%d, type=%s",
            destination,
            len(data),
            mime_type,
        )
        return UploadedFile(url=f"{self.public_url}/{destination}", mime_type=mime_type)
