"""Tests for the registry HTTP API."""

import asyncio
import time

import httpx
import pytest
from fastapi.testclient import TestClient

from opensoul.blobs import S3BlobStorage
from opensoul.config import OpenSoulConfig, RegistryConfig, StorageConfig
from opensoul.server import create_app

SOUL = "# SOUL.md - Ride or Die\n\nLoyal to a fault.\n"


@pytest.fixture
def app(tmp_path):
    config = OpenSoulConfig(
        registry=RegistryConfig(db_path=str(tmp_path / "souls.db")),
        storage=StorageConfig(backend="local", local_path=str(tmp_path / "blobs")),
    )
    return create_app(config)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def tokens(app):
    storage = app.state.registry.storage
    return {name: storage.create_user(name)[1] for name in ("alice", "bob")}


def auth(token):
    return {"Authorization": f"Bearer {token}"}


def upload(client, token, content=SOUL, **extra):
    response = client.post("/api/v1/souls", json={"content": content, **extra}, headers=auth(token))
    assert response.status_code == 201, response.text
    return response.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}
    assert client.get("/").json()["service"] == "OpenSoul Registry"


def test_upload_requires_auth(client, tokens):
    response = client.post("/api/v1/souls", json={"content": SOUL})
    assert response.status_code == 401
    assert response.json() == {"error": "Authentication required"}

    response = client.post("/api/v1/souls", json={"content": SOUL}, headers=auth("bogus"))
    assert response.status_code == 401


def test_upload_and_read(client, tokens):
    created = upload(client, tokens["alice"])
    assert created["label"] == "ride-or-die"
    assert set(created) == {"slug", "label", "name", "hash"}

    meta = client.get(f"/api/v1/souls/{created['label']}").json()
    assert meta["slug"] == created["slug"]
    assert meta["author"] == "alice"
    assert meta["tags"] == []

    response = client.get(f"/api/v1/souls/{created['slug']}/content")
    assert response.status_code == 200
    assert response.text == SOUL
    assert response.headers["content-type"].startswith("text/markdown")


def test_missing_content_field(client, tokens):
    response = client.post("/api/v1/souls", json={}, headers=auth(tokens["alice"]))
    assert response.status_code == 400
    assert response.json() == {"error": "Missing 'content' field"}


def test_unknown_soul(client):
    response = client.get("/api/v1/souls/nope")
    assert response.status_code == 404
    assert response.json() == {"error": "Soul not found"}
    assert client.get("/api/v1/souls/nope/content").status_code == 404


def test_list_and_search(client, tokens):
    upload(client, tokens["alice"], content="a", name="Chaos Goblin", tags=["funny"])
    upload(client, tokens["bob"], content="b", name="Stoic Sage", tags=["calm"])

    body = client.get("/api/v1/souls").json()
    assert body["pagination"] == {"page": 1, "limit": 20, "total": 2, "totalPages": 1}
    assert [s["name"] for s in body["data"]] == ["Stoic Sage", "Chaos Goblin"]

    body = client.get("/api/v1/souls", params={"tag": "funny"}).json()
    assert [s["name"] for s in body["data"]] == ["Chaos Goblin"]

    body = client.get("/api/v1/souls", params={"search": "sage", "limit": 500, "page": 0}).json()
    assert body["pagination"]["limit"] == 100
    assert body["pagination"]["page"] == 1
    assert [s["name"] for s in body["data"]] == ["Stoic Sage"]


def test_rate(client, tokens):
    slug = upload(client, tokens["alice"])["slug"]

    response = client.post(f"/api/v1/souls/{slug}/rate", json={"rating": 4}, headers=auth(tokens["alice"]))
    assert response.status_code == 200
    response = client.post(f"/api/v1/souls/{slug}/rate", json={"rating": 2}, headers=auth(tokens["bob"]))
    assert response.json() == {"slug": slug, "rating": 2, "rating_avg": 3.0, "rating_count": 2}

    response = client.post(f"/api/v1/souls/{slug}/rate", json={"rating": 4.5}, headers=auth(tokens["bob"]))
    assert response.status_code == 400
    assert response.json() == {"error": "Rating must be an integer between 1 and 5"}

    response = client.post("/api/v1/souls/nope/rate", json={"rating": 3}, headers=auth(tokens["bob"]))
    assert response.status_code == 404


def test_patch_and_ownership(client, tokens):
    slug = upload(client, tokens["alice"])["slug"]

    response = client.patch(f"/api/v1/souls/{slug}", json={"name": "x"}, headers=auth(tokens["bob"]))
    assert response.status_code == 403
    assert response.json() == {"error": "Forbidden"}

    response = client.patch(f"/api/v1/souls/{slug}", json={}, headers=auth(tokens["alice"]))
    assert response.status_code == 400

    response = client.patch(f"/api/v1/souls/{slug}", json={"name": "Best Friend"}, headers=auth(tokens["alice"]))
    assert response.status_code == 200
    assert response.json()["label"] == "best-friend"


def test_label_conflict(client, tokens):
    upload(client, tokens["alice"])
    other = upload(client, tokens["alice"], content="# Other")

    response = client.patch(
        f"/api/v1/souls/{other['slug']}", json={"label": "ride-or-die"}, headers=auth(tokens["alice"])
    )
    assert response.status_code == 409


def test_replace_content_and_delete(client, tokens):
    slug = upload(client, tokens["alice"])["slug"]

    response = client.put(f"/api/v1/souls/{slug}/content", json={"content": "# New"}, headers=auth(tokens["alice"]))
    assert response.json() == {"ok": True}
    assert client.get(f"/api/v1/souls/{slug}/content").text == "# New"

    assert client.delete(f"/api/v1/souls/{slug}", headers=auth(tokens["bob"])).status_code == 403
    assert client.delete(f"/api/v1/souls/{slug}", headers=auth(tokens["alice"])).json() == {"ok": True}
    assert client.get(f"/api/v1/souls/{slug}").status_code == 404


def test_download_counter(client, tokens):
    created = upload(client, tokens["alice"])
    assert client.post(f"/api/v1/souls/{created['label']}/download").json() == {"ok": True}
    assert client.post("/api/v1/souls/nope/download").json() == {"ok": True}
    assert client.get(f"/api/v1/souls/{created['slug']}").json()["downloads_count"] == 1


def test_image_endpoints(client, tokens):
    slug = upload(client, tokens["alice"])["slug"]
    data = b"\xff\xd8\xff" + b"\x00" * 2000

    assert client.get(f"/api/v1/souls/{slug}/image").status_code == 404

    response = client.post(
        f"/api/v1/souls/{slug}/image",
        content=data,
        headers={**auth(tokens["alice"]), "Content-Type": "image/jpeg"},
    )
    assert response.json() == {"image_url": "avatar.jpg"}

    response = client.get(f"/api/v1/souls/{slug}/image")
    assert response.status_code == 200
    assert response.content == data
    assert response.headers["content-type"] == "image/jpeg"

    response = client.post(
        f"/api/v1/souls/{slug}/image",
        content=b"GIF89a" + b"\x00" * 2000,
        headers={**auth(tokens["alice"]), "Content-Type": "image/gif"},
    )
    assert response.status_code == 400

    assert client.delete(f"/api/v1/souls/{slug}/image", headers=auth(tokens["alice"])).json() == {"ok": True}
    assert client.get(f"/api/v1/souls/{slug}/image").status_code == 404


def test_user_listing_and_stats(client, tokens):
    upload(client, tokens["alice"])

    body = client.get("/api/v1/users/alice").json()
    assert body["count"] == 1
    assert body["souls"][0]["label"] == "ride-or-die"
    assert client.get("/api/v1/users/nobody").status_code == 404

    assert client.get("/api/v1/stats").json()["souls"] == 1


def s3_blobs(handler):
    return S3BlobStorage(
        endpoint="https://acct.r2.example.com",
        bucket="souls",
        access_key_id="AKID",
        secret_access_key="secret",
        transport=httpx.MockTransport(handler),
    )


def test_storage_timeout_on_upload_is_a_json_error(app, client, tokens):
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    app.state.registry.blobs = s3_blobs(handler)

    response = client.post("/api/v1/souls", json={"content": SOUL}, headers=auth(tokens["alice"]))

    assert response.status_code == 502
    assert "S3 PUT" in response.json()["error"]
    assert client.get("/api/v1/souls").json()["pagination"]["total"] == 0


def test_slow_blob_read_does_not_stall_other_requests(app, client, tokens):
    slug = upload(client, tokens["alice"])["slug"]

    def slow_get(request):
        time.sleep(1.0)
        return httpx.Response(200, content=SOUL.encode("utf-8"))

    app.state.registry.blobs = s3_blobs(slow_get)

    async def run():
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://registry.test") as http:
            content = asyncio.create_task(http.get(f"/api/v1/souls/{slug}/content"))
            await asyncio.sleep(0.05)

            started = time.monotonic()
            health = await http.get("/health")
            elapsed = time.monotonic() - started

            return elapsed, health, await content

    elapsed, health, content = asyncio.run(run())

    assert health.status_code == 200
    assert elapsed < 0.5
    assert content.status_code == 200
    assert content.text == SOUL
