"""
Local filesystem Blob Storage

Same key layout as the S3 backend, rooted at a directory.
Used for development and tests.
"""

import logging
from pathlib import Path
from typing import Optional

from .base import BlobStorage

logger = logging.getLogger("opensoul.blobs.local")


class LocalBlobStorage(BlobStorage):
    """Blob storage under a base directory."""

    def __init__(self, base_dir: str | Path = "./data/registry"):
        self.base_dir = Path(base_dir).expanduser()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        path = (self.base_dir / key).resolve()
        if self.base_dir.resolve() not in path.parents:
            raise ValueError(f"Key escapes storage root: {key}")
        return path

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return key

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not path.is_file():
            return None
        return path.read_bytes()

    def delete(self, key: str) -> None:
        path = self._path(key)
        if path.exists():
            path.unlink()
        # Drop the per-soul directory once it is empty
        parent = path.parent
        if parent != self.base_dir.resolve() and parent.exists() and not any(parent.iterdir()):
            parent.rmdir()
