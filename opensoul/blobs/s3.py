"""
S3-compatible Blob Storage

Signed PUT/GET/DELETE against a single bucket (Cloudflare R2, MinIO, AWS S3)
without a vendor SDK. Each call opens its own HTTP client: there is no
connection pool and no retry state, and every call has a bounded timeout.
"""

import logging
from typing import Optional
from urllib.parse import quote

import httpx

from ..errors import StorageError
from .base import BlobStorage
from .signing import sign_request

logger = logging.getLogger("opensoul.blobs.s3")


class S3BlobStorage(BlobStorage):
    """Path-style S3 client: {endpoint}/{bucket}/{key}."""

    def __init__(
        self,
        endpoint: str,
        bucket: str,
        access_key_id: str,
        secret_access_key: str,
        region: str = "auto",
        service: str = "s3",
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not endpoint or not bucket:
            raise ValueError("S3 storage requires an endpoint and a bucket")

        self.endpoint = endpoint.rstrip("/")
        self.bucket = bucket
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.region = region
        self.service = service
        self.timeout = timeout
        self._transport = transport

    def _url(self, key: str) -> str:
        return f"{self.endpoint}/{self.bucket}/{quote(key, safe='/-_.~')}"

    def _request(
        self,
        method: str,
        key: str,
        body: Optional[bytes] = None,
        content_type: Optional[str] = None,
    ) -> httpx.Response:
        url = self._url(key)
        headers = {}
        if body is not None and content_type:
            headers["content-type"] = content_type

        signed = sign_request(
            method,
            url,
            access_key_id=self.access_key_id,
            secret_access_key=self.secret_access_key,
            headers=headers,
            region=self.region,
            service=self.service,
        )

        with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
            return client.request(method, url, headers=signed.headers, content=body)

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        try:
            response = self._request("PUT", key, body=data, content_type=content_type)
        except httpx.HTTPError as e:
            raise StorageError(f"S3 PUT {key} failed: {e}") from e

        if not response.is_success:
            raise StorageError(
                f"S3 PUT failed ({response.status_code}): {response.text}",
                status=response.status_code,
                body=response.text,
            )
        logger.info(f"Stored {key} ({len(data)} bytes)")
        return key

    def get(self, key: str) -> Optional[bytes]:
        # Any non-2xx, 404 included, means absent
        try:
            response = self._request("GET", key)
        except httpx.HTTPError as e:
            logger.warning(f"S3 GET {key} failed: {e}")
            return None

        if response.status_code == 404:
            logger.debug(f"S3 GET {key} -> 404")
            return None
        if not response.is_success:
            logger.warning(f"S3 GET {key} -> {response.status_code}, treating as absent")
            return None
        return response.content

    def delete(self, key: str) -> None:
        try:
            response = self._request("DELETE", key)
        except httpx.HTTPError as e:
            raise StorageError(f"S3 DELETE {key} failed: {e}") from e

        if response.is_success or response.status_code == 404:
            logger.info(f"Deleted {key}")
            return
        raise StorageError(
            f"S3 DELETE failed ({response.status_code}): {response.text}",
            status=response.status_code,
            body=response.text,
        )
