"""Tests for the async registry client."""

import asyncio

import httpx
import pytest

from opensoul.client import RegistryClient
from opensoul.errors import (
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    RegistryError,
    ValidationError,
)


def call(handler, method, *args, token="", **kwargs):
    async def run():
        async with RegistryClient(
            "http://registry.test/", token=token, transport=httpx.MockTransport(handler)
        ) as client:
            return await getattr(client, method)(*args, **kwargs)

    return asyncio.run(run())


@pytest.mark.parametrize("status, error", [
    (400, ValidationError),
    (401, AuthenticationError),
    (403, AuthorizationError),
    (404, NotFoundError),
    (500, RegistryError),
])
def test_status_mapping(status, error):
    handler = lambda request: httpx.Response(status, json={"error": "nope"})
    with pytest.raises(error, match="nope"):
        call(handler, "get_meta", "ride-or-die")


def test_unreachable_registry():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(RegistryError, match="unreachable"):
        call(handler, "get_content", "ride-or-die")


def test_search_params_and_auth_header():
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        seen["auth"] = request.headers.get("authorization")
        seen["path"] = request.url.path
        return httpx.Response(200, json={"data": [], "pagination": {}})

    call(handler, "search", "goblin", sort="top", limit=5, token="tok")

    assert seen["path"] == "/api/v1/souls"
    assert seen["params"] == {"search": "goblin", "sort": "top", "limit": "5"}
    assert seen["auth"] == "Bearer tok"


def test_upload_and_rate_bodies():
    bodies = []

    def handler(request):
        bodies.append((request.method, request.url.path, request.content))
        if request.url.path.endswith("/rate"):
            return httpx.Response(200, json={"rating_avg": 4.0, "rating_count": 1})
        return httpx.Response(201, json={"slug": "s", "label": "l", "name": "n", "hash": "h"})

    assert call(handler, "upload", "# Soul", name="N", tags=["a"])["slug"] == "s"
    assert call(handler, "rate", "l", 4)["rating_count"] == 1

    assert bodies[0][:2] == ("POST", "/api/v1/souls")
    assert b'"tags":["a"]' in bodies[0][2].replace(b" ", b"")
    assert bodies[1][:2] == ("POST", "/api/v1/souls/l/rate")
