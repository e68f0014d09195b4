"""
Blob Storage Interface

Key layout shared by every backend:
    {slug}/soul.md       soul document bytes
    {slug}/{filename}    image (avatar.png, avatar.jpg, avatar.webp)
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger("opensoul.blobs")

SOUL_FILENAME = "soul.md"
SOUL_CONTENT_TYPE = "text/markdown; charset=utf-8"

IMAGE_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}


def soul_key(slug: str) -> str:
    return f"{slug}/{SOUL_FILENAME}"


def image_key(slug: str, filename: str) -> str:
    return f"{slug}/{filename}"


def image_filename(content_type: str) -> str:
    """avatar.<ext> for a supported image content type."""
    return f"avatar.{IMAGE_EXTENSIONS.get(content_type, 'jpg')}"


def image_content_type(filename: str) -> str:
    ext = filename.rsplit(".", 1)[-1].lower()
    for content_type, known in IMAGE_EXTENSIONS.items():
        if ext == known:
            return content_type
    return "image/jpeg"


@dataclass
class BlobImage:
    data: bytes
    content_type: str


class BlobStorage(ABC):
    """Object storage for soul documents and their images."""

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        """Store bytes under key. Returns the key. Raises StorageError on failure."""

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """Fetch bytes, or None when absent."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove the object. Deleting a missing key is not an error."""

    # -------------------------------------------------------------------------
    # Soul documents
    # -------------------------------------------------------------------------

    def save_soul(self, slug: str, content: str) -> str:
        return self.put(soul_key(slug), content.encode("utf-8"), SOUL_CONTENT_TYPE)

    def get_soul(self, slug: str) -> Optional[str]:
        data = self.get(soul_key(slug))
        if data is None:
            return None
        return data.decode("utf-8")

    def delete_soul(self, slug: str) -> None:
        self.delete(soul_key(slug))

    # -------------------------------------------------------------------------
    # Images
    # -------------------------------------------------------------------------

    def save_image(self, slug: str, filename: str, data: bytes, content_type: str) -> str:
        return self.put(image_key(slug, filename), data, content_type)

    def get_image(self, slug: str, filename: str) -> Optional[BlobImage]:
        data = self.get(image_key(slug, filename))
        if data is None:
            return None
        return BlobImage(data=data, content_type=image_content_type(filename))

    def delete_image(self, slug: str, filename: str) -> None:
        self.delete(image_key(slug, filename))
