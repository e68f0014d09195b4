"""
Soul Registry Storage

SQLite-backed storage for users, soul metadata and ratings.
Soul bytes are not stored here; see opensoul.blobs.
"""

import sqlite3
import json
import hashlib
import logging
import secrets
from pathlib import Path
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Iterable, Tuple
from contextlib import contextmanager

from ..errors import ConflictError
from .labels import slugify, next_free_label
from .models import Soul, User
from .ranking import SortMode, order_by_clause, round_rating, weighted_score

logger = logging.getLogger("opensoul.registry.storage")

SOUL_SELECT = (
    "SELECT s.*, u.username AS author FROM souls s JOIN users u ON s.user_id = u.id"
)

# Attempts at minting a free label before giving up under contention
MAX_LABEL_ATTEMPTS = 5


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SoulStorage:
    """SQLite storage for the soul registry."""

    def __init__(self, db_path: str = "./data/souls.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @contextmanager
    def _conn(self):
        """Context manager for database connections."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.create_function("weighted_score", 3, weighted_score, deterministic=True)
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self):
        """Initialize database schema."""
        with self._conn() as conn:
            conn.executescript("""
                -- Registry accounts
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    username TEXT UNIQUE NOT NULL,
                    token_hash TEXT UNIQUE NOT NULL,
                    created_at TEXT NOT NULL
                );

                -- Soul metadata
                CREATE TABLE IF NOT EXISTS souls (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    slug TEXT UNIQUE NOT NULL,
                    label TEXT UNIQUE NOT NULL,
                    name TEXT NOT NULL,
                    user_id INTEGER NOT NULL REFERENCES users(id),
                    description TEXT,
                    tags TEXT NOT NULL DEFAULT '[]',
                    rating_avg REAL NOT NULL DEFAULT 0,
                    rating_count INTEGER NOT NULL DEFAULT 0,
                    downloads_count INTEGER NOT NULL DEFAULT 0,
                    image_url TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                -- One rating per (soul, user)
                CREATE TABLE IF NOT EXISTS soul_ratings (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    soul_id INTEGER NOT NULL REFERENCES souls(id) ON DELETE CASCADE,
                    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    rating INTEGER NOT NULL CHECK(rating >= 1 AND rating <= 5),
                    created_at TEXT NOT NULL,
                    UNIQUE(soul_id, user_id)
                );

                -- Indexes
                CREATE INDEX IF NOT EXISTS idx_souls_user ON souls(user_id);
                CREATE INDEX IF NOT EXISTS idx_souls_updated ON souls(updated_at);
                CREATE INDEX IF NOT EXISTS idx_ratings_soul ON soul_ratings(soul_id);
            """)
            logger.info(f"Soul storage initialized at {self.db_path}")

    # =========================================================================
    # Users
    # =========================================================================

    def create_user(self, username: str) -> Tuple[User, str]:
        """Create an account and return it with its bearer token (shown once)."""
        token = secrets.token_urlsafe(32)
        now = _now()

        with self._conn() as conn:
            try:
                cursor = conn.execute(
                    "INSERT INTO users (username, token_hash, created_at) VALUES (?, ?, ?)",
                    (username, hash_token(token), now),
                )
            except sqlite3.IntegrityError:
                raise ConflictError(f"User '{username}' already exists")
            user_id = cursor.lastrowid

        logger.info(f"Created user {username}")
        return User(id=user_id, username=username, created_at=now), token

    def get_user_by_token(self, token: str) -> Optional[User]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT id, username, created_at FROM users WHERE token_hash = ?",
                (hash_token(token),),
            ).fetchone()
        return User(**dict(row)) if row else None

    def get_user(self, username: str) -> Optional[User]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT id, username, created_at FROM users WHERE username = ?",
                (username,),
            ).fetchone()
        return User(**dict(row)) if row else None

    # =========================================================================
    # Souls
    # =========================================================================

    def _row_to_soul(self, row: sqlite3.Row) -> Soul:
        data = dict(row)
        data["tags"] = json.loads(data.get("tags") or "[]")
        return Soul(**data)

    def _free_label(self, conn: sqlite3.Connection, name: str, exclude_id: Optional[int] = None) -> str:
        base = slugify(name)
        rows = conn.execute(
            "SELECT label FROM souls WHERE (label = ? OR label LIKE ?) AND id != ?",
            (base, f"{base}-%", exclude_id if exclude_id is not None else -1),
        ).fetchall()
        return next_free_label(base, (r["label"] for r in rows))

    def insert_soul(
        self,
        slug: str,
        name: str,
        user_id: int,
        description: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
    ) -> Soul:
        """
        Insert a soul row. The label is minted inside the insert
        transaction and re-minted if a concurrent insert takes it first.
        """
        tags_json = json.dumps(list(tags or []))

        for attempt in range(MAX_LABEL_ATTEMPTS):
            now = _now()
            with self._conn() as conn:
                label = self._free_label(conn, name)
                try:
                    conn.execute("""
                        INSERT INTO souls
                        (slug, label, name, user_id, description, tags, created_at, updated_at)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """, (slug, label, name, user_id, description, tags_json, now, now))
                except sqlite3.IntegrityError as e:
                    if "souls.label" in str(e):
                        logger.debug(f"Label {label} taken concurrently, retrying ({attempt + 1})")
                        continue
                    if "souls.slug" in str(e):
                        raise ConflictError(f"Slug '{slug}' already exists")
                    raise

            logger.info(f"Inserted soul {slug} as {label}")
            return self.get(slug)

        raise ConflictError(f"Could not allocate a label for '{name}'")

    def get(self, slug_or_label: str) -> Optional[Soul]:
        """Look up by slug, falling back to label."""
        with self._conn() as conn:
            row = conn.execute(
                f"{SOUL_SELECT} WHERE s.slug = ? OR s.label = ? ORDER BY (s.slug = ?) DESC LIMIT 1",
                (slug_or_label, slug_or_label, slug_or_label),
            ).fetchone()
        return self._row_to_soul(row) if row else None

    def query(
        self,
        search: Optional[str] = None,
        tag: Optional[str] = None,
        sort: SortMode | str = SortMode.RECENT,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Soul], int]:
        """Filter, rank and page souls. Returns (page, total matching)."""
        clauses: List[str] = []
        params: List[Any] = []

        if tag:
            clauses.append(
                "EXISTS (SELECT 1 FROM json_each(s.tags) WHERE json_each.value = ?)"
            )
            params.append(tag)

        if search:
            pattern = f"%{_escape_like(search)}%"
            clauses.append(
                "(s.name LIKE ? ESCAPE '\\' OR s.description LIKE ? ESCAPE '\\'"
                " OR u.username LIKE ? ESCAPE '\\')"
            )
            params.extend([pattern, pattern, pattern])

        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""

        with self._conn() as conn:
            total = conn.execute(
                f"SELECT COUNT(*) AS total FROM souls s JOIN users u ON s.user_id = u.id{where}",
                params,
            ).fetchone()["total"]

            rows = conn.execute(
                f"{SOUL_SELECT}{where}{order_by_clause(sort)} LIMIT ? OFFSET ?",
                [*params, limit, offset],
            ).fetchall()

        return [self._row_to_soul(r) for r in rows], total

    def list_by_user(self, user_id: int) -> List[Soul]:
        with self._conn() as conn:
            rows = conn.execute(
                f"{SOUL_SELECT} WHERE s.user_id = ?{order_by_clause(SortMode.RECENT)}",
                (user_id,),
            ).fetchall()
        return [self._row_to_soul(r) for r in rows]

    def label_taken(self, label: str, exclude_id: Optional[int] = None) -> bool:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT id FROM souls WHERE label = ? AND id != ?",
                (label, exclude_id if exclude_id is not None else -1),
            ).fetchone()
        return row is not None

    def update(
        self,
        soul_id: int,
        name: Optional[str] = None,
        label: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
    ) -> Soul:
        """
        Update metadata and bump updated_at.
        A new name re-mints the label unless an explicit label is given.
        """
        updates: Dict[str, Any] = {}

        with self._conn() as conn:
            if name:
                updates["name"] = name
                if not label:
                    updates["label"] = self._free_label(conn, name, exclude_id=soul_id)

            if label:
                taken = conn.execute(
                    "SELECT id FROM souls WHERE label = ? AND id != ?", (label, soul_id)
                ).fetchone()
                if taken:
                    raise ConflictError(f"Label '{label}' already taken")
                updates["label"] = label

            if description is not None:
                updates["description"] = description

            if tags is not None:
                updates["tags"] = json.dumps(list(tags))

            updates["updated_at"] = _now()

            assignments = ", ".join(f"{column} = ?" for column in updates)
            try:
                conn.execute(
                    f"UPDATE souls SET {assignments} WHERE id = ?",
                    [*updates.values(), soul_id],
                )
            except sqlite3.IntegrityError:
                raise ConflictError(f"Label '{updates.get('label')}' already taken")

            row = conn.execute(f"{SOUL_SELECT} WHERE s.id = ?", (soul_id,)).fetchone()

        logger.info(f"Updated soul {soul_id}: {sorted(k for k in updates if k != 'updated_at')}")
        return self._row_to_soul(row)

    def set_image(self, soul_id: int, filename: Optional[str]) -> None:
        with self._conn() as conn:
            conn.execute(
                "UPDATE souls SET image_url = ?, updated_at = ? WHERE id = ?",
                (filename, _now(), soul_id),
            )

    def touch(self, soul_id: int) -> None:
        with self._conn() as conn:
            conn.execute("UPDATE souls SET updated_at = ? WHERE id = ?", (_now(), soul_id))

    def delete(self, soul_id: int) -> bool:
        with self._conn() as conn:
            cursor = conn.execute("DELETE FROM souls WHERE id = ?", (soul_id,))
        return cursor.rowcount > 0

    # =========================================================================
    # Ratings & downloads
    # =========================================================================

    def upsert_rating(self, soul_id: int, user_id: int, value: int) -> Tuple[float, int]:
        """
        Record (or replace) a user's rating and recompute the aggregate
        in the same transaction. Returns (rating_avg, rating_count).
        """
        with self._conn() as conn:
            conn.execute("""
                INSERT INTO soul_ratings (soul_id, user_id, rating, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(soul_id, user_id) DO UPDATE SET rating = excluded.rating
            """, (soul_id, user_id, value, _now()))

            row = conn.execute(
                "SELECT COALESCE(SUM(rating), 0) AS total, COUNT(*) AS count "
                "FROM soul_ratings WHERE soul_id = ?",
                (soul_id,),
            ).fetchone()

            avg = round_rating(row["total"], row["count"])
            conn.execute(
                "UPDATE souls SET rating_avg = ?, rating_count = ? WHERE id = ?",
                (avg, row["count"], soul_id),
            )

        logger.info(f"Soul {soul_id} rated {value} by user {user_id}: avg={avg} count={row['count']}")
        return avg, row["count"]

    def increment_downloads(self, slug_or_label: str) -> bool:
        """Count one download for the soul get() resolves to (slug wins over label)."""
        soul = self.get(slug_or_label)
        if not soul:
            return False

        with self._conn() as conn:
            cursor = conn.execute(
                "UPDATE souls SET downloads_count = downloads_count + 1 WHERE id = ?",
                (soul.id,),
            )
        return cursor.rowcount > 0

    # =========================================================================
    # Stats
    # =========================================================================

    def stats(self) -> Dict[str, int]:
        """Registry-wide counters."""
        with self._conn() as conn:
            souls = conn.execute("SELECT COUNT(*) FROM souls").fetchone()[0]
            users = conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]
            ratings = conn.execute("SELECT COUNT(*) FROM soul_ratings").fetchone()[0]
            downloads = conn.execute(
                "SELECT COALESCE(SUM(downloads_count), 0) FROM souls"
            ).fetchone()[0]

        return {
            "souls": souls,
            "users": users,
            "ratings": ratings,
            "downloads": downloads,
        }
