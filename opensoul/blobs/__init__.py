"""
OpenSoul Blob Storage

Soul documents and images live in object storage, keyed by soul slug.
Backends: local filesystem (development) and any S3-compatible endpoint,
signed with SigV4 without a vendor SDK.
"""

from .base import BlobStorage, BlobImage, soul_key, image_key, image_filename
from .local import LocalBlobStorage
from .s3 import S3BlobStorage
from .signing import sign_request, signing_key, SignedRequest

from ..config import StorageConfig


def create_blob_storage(config: StorageConfig) -> BlobStorage:
    """Build the backend named in the storage config."""
    if config.backend == "s3":
        return S3BlobStorage(
            endpoint=config.endpoint,
            bucket=config.bucket,
            access_key_id=config.access_key_id or "",
            secret_access_key=config.secret_access_key or "",
            region=config.region,
            timeout=config.timeout,
        )
    return LocalBlobStorage(config.local_path)


__all__ = [
    "BlobStorage",
    "BlobImage",
    "LocalBlobStorage",
    "S3BlobStorage",
    "SignedRequest",
    "create_blob_storage",
    "image_filename",
    "image_key",
    "sign_request",
    "signing_key",
    "soul_key",
]
