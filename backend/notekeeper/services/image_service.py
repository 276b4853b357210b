"""
Notekeeper Backend - Image Upload Service
==========================================

What:  Validates an uploaded note image, writes it to the image volume and
       hands back the public URL the note stores.
How:   Checks extension, size and magic-byte MIME type, then writes the bytes
       with aiofiles under a date-organized directory with a UUID filename.
Who:   Called by the HTML "add" and "edit" handlers when a form carries a
       non-empty `image` part; the images route uses `resolve()` to serve.
When:  Before the note is written, so the note only ever references a file
       that exists.

Layout on disk:
    storage/
    └── 2024/
        └── 01/
            └── 15/
                └── a1b2c3d4-....jpg    →  {image_base_url}/2024/01/15/a1b2c3d4-....jpg

The note store treats the returned URL as an opaque string.
"""

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Tuple

import aiofiles

from notekeeper.config import Settings, settings as default_settings
from notekeeper.exceptions import FileStorageError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# ── Allowed File Types ────────────────────────────────────────────────────
ALLOWED_MIME_TYPES = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/gif": ".gif",
}

ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif"}

_EXTENSION_MIME = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
}


class ImageService:
    """
    Stores note images on the local image volume.

    Args:
        storage_root: Override settings.storage_root (used in tests).
        base_url: Override settings.image_base_url.
        max_file_size: Override settings.max_file_size.
    """

    def __init__(
        self,
        storage_root: Optional[str] = None,
        base_url: Optional[str] = None,
        max_file_size: Optional[int] = None,
        config: Settings = default_settings,
    ):
        self.storage_root = Path(storage_root or config.storage_root).resolve()
        self.base_url = (base_url if base_url is not None else config.image_base_url).rstrip("/")
        self.max_file_size = max_file_size or config.max_file_size
        self.storage_root.mkdir(parents=True, exist_ok=True)
        logger.info("ImageService initialized with storage_root=%s", self.storage_root)

    # ── Validation ────────────────────────────────────────────────────────

    def validate_extension(self, filename: str) -> str:
        """Return the normalized extension, or raise ValidationError."""
        ext = Path(filename or "").suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                message=(
                    f"File type '{ext}' is not supported. "
                    f"Allowed types: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
                ),
                field="image",
                context={"extension": ext, "allowed": sorted(ALLOWED_EXTENSIONS)},
            )
        return ext

    def validate_size(self, actual_size: int) -> None:
        max_mb = self.max_file_size / (1024 * 1024)
        if actual_size > self.max_file_size:
            raise ValidationError(
                message=f"Image size ({actual_size / (1024 * 1024):.1f}MB) exceeds maximum of {max_mb:.0f}MB.",
                field="image",
                context={"max_size_mb": max_mb, "actual_size": actual_size},
            )

    def validate_mime_type(self, content: bytes, filename: str) -> str:
        """
        Detect the real content type from the file header.

        Falls back to the extension when libmagic is not installed.

        Raises:
            ValidationError: the content is not one of the allowed image types.
            FileStorageError: detection itself failed.
        """
        try:
            import magic
            mime_type = magic.from_buffer(content, mime=True)
        except ImportError:
            logger.warning(
                "python-magic not available, falling back to extension-based type detection"
            )
            mime_type = _EXTENSION_MIME.get(Path(filename).suffix.lower(), "application/octet-stream")
        except Exception as e:
            logger.error("MIME type detection failed: %s", str(e))
            raise FileStorageError(
                message="Could not verify image type. Please try again.",
                context={"error": str(e)},
            ) from e

        if mime_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                message=f"File content type '{mime_type}' is not a supported image.",
                field="image",
                context={"detected_mime": mime_type, "allowed": list(ALLOWED_MIME_TYPES)},
            )
        return mime_type

    # ── Storage ───────────────────────────────────────────────────────────

    def _generate_storage_path(self, extension: str) -> Tuple[Path, str]:
        date_dir = datetime.now(timezone.utc).strftime("%Y/%m/%d")
        relative_path = f"{date_dir}/{uuid.uuid4()}{extension}"
        return self.storage_root / relative_path, relative_path

    def public_url(self, relative_path: str) -> str:
        return f"{self.base_url}/{relative_path}"

    async def store(self, content: bytes, extension: str) -> str:
        """
        Write validated bytes to disk.

        Returns:
            The path relative to the storage root.

        Raises:
            FileStorageError: directory creation or write failed.
        """
        absolute_path, relative_path = self._generate_storage_path(extension)
        try:
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(absolute_path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store image at %s: %s", absolute_path, str(e))
            raise FileStorageError(
                message="Failed to save uploaded image. Please try again.",
                context={"path": str(absolute_path), "os_error": str(e)},
            ) from e

        logger.info("Image stored: %s (%d bytes)", relative_path, len(content))
        return relative_path

    async def upload(self, filename: str, content: bytes) -> str:
        """
        Validate and store an image.

        Returns:
            Public URL of the stored image.
        """
        ext = self.validate_extension(filename)
        self.validate_size(len(content))
        self.validate_mime_type(content, filename)
        relative_path = await self.store(content, ext)
        return self.public_url(relative_path)

    def resolve(self, relative_path: str) -> Path:
        """
        Map a public relative path back to a file under the storage root.

        Raises:
            NotFoundError: the path escapes the root or names no file.
        """
        full_path = (self.storage_root / relative_path).resolve()
        if not full_path.is_relative_to(self.storage_root) or not full_path.is_file():
            raise NotFoundError(resource="image", resource_id=relative_path)
        return full_path

    @staticmethod
    def media_type(path: Path) -> str:
        return _EXTENSION_MIME.get(path.suffix.lower(), "application/octet-stream")
