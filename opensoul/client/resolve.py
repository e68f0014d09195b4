"""
Soul Resolution

Turns what the user typed into soul content, trying in order:

1. a local file path
2. an exact cache entry (name or label)
3. fuzzy cache matches -> ambiguity error listing candidates
4. a registry label, fetched and cached

Nothing is ever substituted automatically: a miss at step 4 fails with
suggestions from a registry search.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from ..errors import NotFoundError, OpenSoulError, ResolutionAmbiguity
from ..registry.labels import content_hash
from .cache import SoulCache
from .registry_client import RegistryClient

logger = logging.getLogger("opensoul.client.resolve")

MAX_SUGGESTIONS = 5


class SourceKind(str, Enum):
    FILE = "file"
    CACHE = "cache"
    REGISTRY = "registry"


@dataclass
class Resolution:
    content: str
    kind: SourceKind
    source: str
    name: Optional[str] = None
    label: Optional[str] = None


def normalize(value: str) -> str:
    """'Ride_or--Die ' -> 'ride or die'."""
    return re.sub(r"[-_\s]+", " ", value.lower()).strip()


def to_label(value: str) -> str:
    """Registry label candidate: lower-case, whitespace runs to hyphens."""
    return re.sub(r"\s+", "-", value.strip().lower())


class Resolver:
    """Resolve a user token to soul content."""

    def __init__(
        self,
        cache: SoulCache,
        client_factory: Callable[[], RegistryClient],
        cwd: Optional[Path] = None,
    ):
        self.cache = cache
        self.client_factory = client_factory
        self.cwd = Path(cwd) if cwd else Path.cwd()

    def _local_file(self, token: str) -> Optional[Path]:
        path = Path(token).expanduser()
        if not path.is_absolute():
            path = self.cwd / path
        return path if path.is_file() else None

    def fuzzy_matches(self, token: str) -> List[str]:
        """Cached names that contain, or are contained in, the token."""
        wanted = normalize(token)
        if not wanted:
            return []

        matches = []
        for entry in self.cache.list():
            name = normalize(entry.name)
            if name and (wanted in name or name in wanted):
                matches.append(entry.name)
        return matches

    async def resolve(self, token: str) -> Resolution:
        path = self._local_file(token)
        if path:
            logger.debug(f"Reading from file: {path}")
            return Resolution(
                content=path.read_text(encoding="utf-8"),
                kind=SourceKind.FILE,
                source=str(path),
            )

        cached = self.cache.get(token)
        if cached:
            logger.debug(f"Reading from cache: {cached.entry.name}")
            return Resolution(
                content=cached.content,
                kind=SourceKind.CACHE,
                source=f"cache:{cached.entry.name}",
                name=cached.entry.name,
                label=cached.entry.label,
            )

        candidates = self.fuzzy_matches(token)
        if candidates:
            raise ResolutionAmbiguity(
                f"Soul '{token}' not found in cache.", candidates=candidates
            )

        return await self.fetch(to_label(token), original=token)

    async def fetch(self, label: str, original: Optional[str] = None) -> Resolution:
        """Fetch metadata and content concurrently, then cache them."""
        original = original or label
        logger.debug(f"Trying registry label: {label}")

        async with self.client_factory() as client:
            try:
                meta, content = await asyncio.gather(
                    client.get_meta(label),
                    client.get_content(label),
                )
            except OpenSoulError as e:
                logger.debug(f"Registry fetch of {label} failed: {e}")
                suggestions = await self._suggest(client, original)
                raise NotFoundError(
                    f"Soul '{original}' not found as a local file, in cache, or in the registry.",
                    suggestions=suggestions,
                )

            try:
                await client.track_download(meta["slug"])
            except OpenSoulError as e:
                logger.debug(f"Download tracking failed: {e}")

        name = meta.get("name") or label
        self.cache.put(name, content, content_hash(content), label=meta.get("label"))
        logger.info(f"Summoned {name} ({meta.get('label')})")

        return Resolution(
            content=content,
            kind=SourceKind.REGISTRY,
            source=f"registry:{meta.get('label')}",
            name=name,
            label=meta.get("label"),
        )

    async def _suggest(self, client: RegistryClient, token: str) -> List[str]:
        """Labels from a search on the token's first word. Best-effort."""
        words = re.sub(r"[-_]", " ", token).split()
        if not words:
            return []

        try:
            page = await client.search(words[0], limit=MAX_SUGGESTIONS)
        except OpenSoulError as e:
            logger.debug(f"Suggestion search failed: {e}")
            return []

        return [soul["label"] for soul in page.get("data", [])][:MAX_SUGGESTIONS]
