"""
Local Soul Cache

Souls fetched from the registry are kept under the cache directory:

    index.json               list of CacheEntry
    <slugified-name>.soul.md document text

Entries are keyed by case-insensitive name. Putting the same name twice
updates the entry in place.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..registry.labels import slugify

logger = logging.getLogger("opensoul.client.cache")

INDEX_FILENAME = "index.json"
CONTENT_SUFFIX = ".soul.md"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class CacheEntry(BaseModel):
    """One cached soul. Serialized with camelCase keys."""
    model_config = ConfigDict(populate_by_name=True)

    name: str
    label: Optional[str] = None
    hash: str
    file: str = ""
    cached_at: str = Field(default_factory=_now, alias="cachedAt")
    last_used_at: Optional[str] = Field(default=None, alias="lastUsedAt")

    @property
    def display_label(self) -> str:
        return self.label or self.name.lower().replace(" ", "-")


@dataclass
class CachedSoul:
    entry: CacheEntry
    content: str
    path: Path


class SoulCache:
    """Index of previously fetched souls."""

    def __init__(self, cache_dir: str | Path):
        self.cache_dir = Path(cache_dir).expanduser()

    @property
    def index_path(self) -> Path:
        return self.cache_dir / INDEX_FILENAME

    # -------------------------------------------------------------------------
    # Index persistence
    # -------------------------------------------------------------------------

    def _load(self) -> List[CacheEntry]:
        if not self.index_path.exists():
            return []

        raw = json.loads(self.index_path.read_text(encoding="utf-8") or "[]")
        entries = [CacheEntry.model_validate(item) for item in raw]
        for entry in entries:
            if not entry.file:
                entry.file = f"{slugify(entry.name)}{CONTENT_SUFFIX}"
        return entries

    def _save(self, entries: List[CacheEntry]) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        data = [e.model_dump(by_alias=True) for e in entries]
        self.index_path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    @staticmethod
    def _find(entries: List[CacheEntry], name: str) -> Optional[CacheEntry]:
        wanted = name.lower()
        for entry in entries:
            if entry.name.lower() == wanted:
                return entry
        return None

    def _content_file(self, entries: List[CacheEntry], name: str) -> str:
        """<slug>.soul.md, suffixed if another entry already owns that file."""
        base = slugify(name)
        owned = {e.file for e in entries}
        candidate = f"{base}{CONTENT_SUFFIX}"
        suffix = 2
        while candidate in owned:
            candidate = f"{base}-{suffix}{CONTENT_SUFFIX}"
            suffix += 1
        return candidate

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def put(self, name: str, content: str, hash: str, label: Optional[str] = None) -> Path:
        """Cache a soul, replacing any entry with the same name."""
        entries = self._load()
        entry = self._find(entries, name)
        now = _now()

        if entry:
            entry.hash = hash
            entry.cached_at = now
            if label:
                entry.label = label
        else:
            entry = CacheEntry(
                name=name,
                label=label,
                hash=hash,
                file=self._content_file(entries, name),
                cached_at=now,
            )
            entries.append(entry)

        path = self.cache_dir / entry.file
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        self._save(entries)

        logger.debug(f"Cached {name} ({hash[:12]}) at {path}")
        return path

    def get(self, name_or_label: str) -> Optional[CachedSoul]:
        """Exact, case-insensitive match on name, then on label."""
        entries = self._load()
        entry = self._find(entries, name_or_label)

        if not entry:
            wanted = name_or_label.lower()
            entry = next(
                (e for e in entries if e.label and e.label.lower() == wanted),
                None,
            )

        if not entry:
            return None

        path = self.cache_dir / entry.file
        if not path.is_file():
            logger.warning(f"Cache entry {entry.name} has no content file at {path}")
            return None

        return CachedSoul(entry=entry, content=path.read_text(encoding="utf-8"), path=path)

    def touch(self, name: str) -> bool:
        """Mark a cached soul as just used."""
        entries = self._load()
        entry = self._find(entries, name)
        if not entry:
            return False

        entry.last_used_at = _now()
        self._save(entries)
        return True

    def list(self) -> List[CacheEntry]:
        """Most recently used first, then most recently fetched."""
        return sorted(
            self._load(),
            key=lambda e: (e.last_used_at or "", e.cached_at or ""),
            reverse=True,
        )

    def remove(self, name: str) -> bool:
        """Drop the entry and its content file."""
        entries = self._load()
        entry = self._find(entries, name)
        if not entry:
            return False

        entries.remove(entry)
        (self.cache_dir / entry.file).unlink(missing_ok=True)
        self._save(entries)

        logger.info(f"Removed {entry.name} from cache")
        return True
