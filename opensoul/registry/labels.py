"""
Soul identity: slugs, labels and content hashes.

A slug is an opaque random id. A label is the human-readable unique
name derived from the soul's display name, suffixed -2, -3, ... on collision.
"""

import hashlib
import re
import secrets
from typing import Iterable

SLUG_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz_-"
SLUG_LENGTH = 8


def new_slug(length: int = SLUG_LENGTH) -> str:
    """Random URL-safe identifier."""
    return "".join(secrets.choice(SLUG_ALPHABET) for _ in range(length))


def slugify(name: str) -> str:
    """'Ride or Die!' -> 'ride-or-die'."""
    label = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return label or "soul"


def next_free_label(base: str, taken: Iterable[str]) -> str:
    """base if unused, else the first free base-2, base-3, ..."""
    taken = set(taken)
    if base not in taken:
        return base

    suffix = 2
    while f"{base}-{suffix}" in taken:
        suffix += 1
    return f"{base}-{suffix}"


def content_hash(content: str) -> str:
    """SHA256 hex digest of the document text."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def fallback_name(content: str) -> str:
    """
    Display name for an upload that did not provide one.
    First markdown heading, else a short first line, else a hash-based name.
    """
    heading = re.search(r"^#\s+(.+)$", content, re.MULTILINE)
    if heading:
        name = re.sub(r"^SOUL\.md\s*[-–—]\s*", "", heading.group(1), flags=re.IGNORECASE)
        if name.strip():
            return name.strip()

    stripped = content.strip()
    first_line = stripped.split("\n")[0].strip() if stripped else ""
    if first_line and len(first_line) <= 60:
        return first_line

    return f"soul-{content_hash(content)[:8]}"
