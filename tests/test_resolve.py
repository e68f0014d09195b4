"""Tests for resolving a user token to soul content."""

import asyncio

import httpx
import pytest

from opensoul.client import RegistryClient, Resolver, SoulCache, SourceKind, normalize, to_label
from opensoul.errors import NotFoundError, ResolutionAmbiguity

META = {"slug": "Ab3_x9Qz", "label": "ride-or-die", "name": "Ride or Die"}
CONTENT = "# SOUL.md - Ride or Die\n"


class FakeRegistry:
    """Registry double answering a handful of API routes."""

    def __init__(self, souls=None, search_results=None):
        self.souls = souls if souls is not None else {"ride-or-die": (META, CONTENT)}
        self.search_results = search_results or []
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append((request.method, request.url.path))
        path = request.url.path.removeprefix("/api/v1/souls")

        if path == "" and request.method == "GET":
            return httpx.Response(200, json={"data": self.search_results, "pagination": {}})

        parts = path.strip("/").split("/")
        label = parts[0]
        if parts[-1] == "download":
            return httpx.Response(200, json={"ok": True})

        if label not in self.souls:
            return httpx.Response(404, json={"error": "Soul not found"})

        meta, content = self.souls[label]
        if len(parts) == 2 and parts[1] == "content":
            return httpx.Response(200, text=content)
        return httpx.Response(200, json=meta)

    def factory(self):
        return lambda: RegistryClient(
            "http://registry.test", transport=httpx.MockTransport(self.handler)
        )


@pytest.fixture
def cache(tmp_path):
    return SoulCache(tmp_path / "cache")


def test_normalize_and_label():
    assert normalize("  Ride_or--Die ") == "ride or die"
    assert to_label("  Ride or   Die ") == "ride-or-die"


def test_local_file_wins(tmp_path, cache):
    fake = FakeRegistry()
    soul_file = tmp_path / "mine.md"
    soul_file.write_text("# Mine", encoding="utf-8")
    cache.put("mine.md", "# Cached", "h")

    resolver = Resolver(cache, fake.factory(), cwd=tmp_path)
    resolution = asyncio.run(resolver.resolve("mine.md"))

    assert resolution.kind == SourceKind.FILE
    assert resolution.content == "# Mine"
    assert fake.requests == []


def test_exact_cache_hit(tmp_path, cache):
    fake = FakeRegistry()
    cache.put("Ride or Die", "# Cached", "h", label="ride-or-die")

    resolver = Resolver(cache, fake.factory(), cwd=tmp_path)

    resolution = asyncio.run(resolver.resolve("ride or die"))
    assert resolution.kind == SourceKind.CACHE
    assert resolution.content == "# Cached"

    resolution = asyncio.run(resolver.resolve("ride-or-die"))
    assert resolution.name == "Ride or Die"
    assert fake.requests == []


def test_fuzzy_cache_match_is_ambiguous(tmp_path, cache):
    fake = FakeRegistry()
    cache.put("Ride or Die", "# A", "h1")
    cache.put("Ride Along", "# B", "h2")
    cache.put("Stoic", "# C", "h3")

    resolver = Resolver(cache, fake.factory(), cwd=tmp_path)
    with pytest.raises(ResolutionAmbiguity) as exc:
        asyncio.run(resolver.resolve("ride"))

    assert sorted(exc.value.candidates) == ["Ride Along", "Ride or Die"]
    assert fake.requests == []


def test_registry_fetch_caches_result(tmp_path, cache):
    fake = FakeRegistry()
    resolver = Resolver(cache, fake.factory(), cwd=tmp_path)

    resolution = asyncio.run(resolver.resolve("Ride or Die"))

    assert resolution.kind == SourceKind.REGISTRY
    assert resolution.content == CONTENT
    assert resolution.label == "ride-or-die"
    assert ("GET", "/api/v1/souls/ride-or-die") in fake.requests
    assert ("GET", "/api/v1/souls/ride-or-die/content") in fake.requests
    assert ("POST", "/api/v1/souls/Ab3_x9Qz/download") in fake.requests

    cached = cache.get("ride-or-die")
    assert cached.content == CONTENT
    assert cached.entry.name == "Ride or Die"


def test_registry_miss_suggests_without_substituting(tmp_path, cache):
    fake = FakeRegistry(
        souls={},
        search_results=[{"label": f"ride-{i}"} for i in range(7)],
    )
    resolver = Resolver(cache, fake.factory(), cwd=tmp_path)

    with pytest.raises(NotFoundError) as exc:
        asyncio.run(resolver.resolve("ride_or_dye"))

    assert exc.value.suggestions == [f"ride-{i}" for i in range(5)]
    assert cache.list() == []


def test_registry_miss_without_suggestions(tmp_path, cache):
    fake = FakeRegistry(souls={})
    resolver = Resolver(cache, fake.factory(), cwd=tmp_path)

    with pytest.raises(NotFoundError) as exc:
        asyncio.run(resolver.resolve("nothing"))

    assert exc.value.suggestions == []
    assert "not found as a local file, in cache, or in the registry" in str(exc.value)
