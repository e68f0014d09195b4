"""
Registry HTTP Client

Async client for the OpenSoul registry API (/api/v1/souls).
"""

import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from ..errors import (
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    RegistryError,
    ValidationError,
)

logger = logging.getLogger("opensoul.client.registry")

API_PREFIX = "/api/v1/souls"

_STATUS_ERRORS = {
    400: ValidationError,
    401: AuthenticationError,
    403: AuthorizationError,
    404: NotFoundError,
}


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or body)
    return str(body)


class RegistryClient:
    """
    Thin wrapper over the registry HTTP API.

    Use as an async context manager so the connection is closed:

        async with RegistryClient(url) as client:
            meta = await client.get_meta("ride-or-die")
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "RegistryClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        logger.debug(f"{method} {self.base_url}{API_PREFIX}{path}")
        try:
            response = await self._client.request(method, f"{API_PREFIX}{path}", **kwargs)
        except httpx.HTTPError as e:
            raise RegistryError(f"Registry unreachable at {self.base_url}: {e}")

        if response.is_success:
            return response

        message = _error_message(response)
        error_cls = _STATUS_ERRORS.get(response.status_code)
        if error_cls:
            raise error_cls(message)
        raise RegistryError(
            f"Registry error ({response.status_code}): {message}",
            status=response.status_code,
        )

    # =========================================================================
    # Read
    # =========================================================================

    async def get_meta(self, slug_or_label: str) -> Dict[str, Any]:
        response = await self._request("GET", f"/{quote(slug_or_label, safe='')}")
        return response.json()

    async def get_content(self, slug_or_label: str) -> str:
        response = await self._request("GET", f"/{quote(slug_or_label, safe='')}/content")
        return response.text

    async def search(
        self,
        query: Optional[str] = None,
        sort: Optional[str] = None,
        tag: Optional[str] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        params = {
            "search": query,
            "sort": sort,
            "tag": tag,
            "page": page,
            "limit": limit,
        }
        response = await self._request(
            "GET", "", params={k: v for k, v in params.items() if v is not None}
        )
        return response.json()

    async def track_download(self, slug_or_label: str) -> None:
        await self._request("POST", f"/{quote(slug_or_label, safe='')}/download")

    # =========================================================================
    # Write (authenticated)
    # =========================================================================

    async def upload(
        self,
        content: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[list] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"content": content, "tags": tags or []}
        if name:
            body["name"] = name
        if description:
            body["description"] = description
        response = await self._request("POST", "", json=body)
        return response.json()

    async def rate(self, slug_or_label: str, rating: int) -> Dict[str, Any]:
        response = await self._request("POST", f"/{quote(slug_or_label, safe='')}/rate", json={"rating": rating})
        return response.json()

    async def delete(self, slug_or_label: str) -> None:
        await self._request("DELETE", f"/{quote(slug_or_label, safe='')}")
