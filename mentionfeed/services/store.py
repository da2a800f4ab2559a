"""Post persistence: schema bootstrap, idempotent upsert, and reads.

Rows are keyed on ``x_post_id``.  The first write stores every field; later
writes of the same id only refresh the engagement counts and ``scraped_at``.
Content, author identity, and ``created_at`` are never overwritten.
"""

import asyncio
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Mapping, Optional, Protocol

import asyncpg

from mentionfeed.errors import ConfigError, StorageError
from mentionfeed.models.post import CanonicalPost

_COLUMNS = (
    "x_post_id",
    "content",
    "author_handle",
    "author_name",
    "author_avatar",
    "author_followers",
    "like_count",
    "repost_count",
    "reply_count",
    "post_url",
    "created_at",
)

_POSTGRES_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS posts (
      id SERIAL PRIMARY KEY,
      x_post_id VARCHAR(255) UNIQUE NOT NULL,
      content TEXT NOT NULL,
      author_handle VARCHAR(255) NOT NULL,
      author_name VARCHAR(255) NOT NULL,
      author_avatar TEXT,
      author_followers INTEGER DEFAULT 0,
      like_count INTEGER DEFAULT 0,
      repost_count INTEGER DEFAULT 0,
      reply_count INTEGER DEFAULT 0,
      post_url TEXT NOT NULL,
      created_at TIMESTAMPTZ NOT NULL,
      scraped_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_posts_created_at ON posts(created_at DESC)",
    "CREATE INDEX IF NOT EXISTS idx_posts_like_count ON posts(like_count DESC)",
)

_SQLITE_SCHEMA = """
CREATE TABLE IF NOT EXISTS posts (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  x_post_id TEXT UNIQUE NOT NULL,
  content TEXT NOT NULL,
  author_handle TEXT NOT NULL,
  author_name TEXT NOT NULL,
  author_avatar TEXT,
  author_followers INTEGER DEFAULT 0,
  like_count INTEGER DEFAULT 0,
  repost_count INTEGER DEFAULT 0,
  reply_count INTEGER DEFAULT 0,
  post_url TEXT NOT NULL,
  created_at TEXT NOT NULL,
  scraped_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_posts_created_at ON posts(created_at DESC);
CREATE INDEX IF NOT EXISTS idx_posts_like_count ON posts(like_count DESC);
"""

_CONFLICT_CLAUSE = """
ON CONFLICT (x_post_id) DO UPDATE SET
  like_count = EXCLUDED.like_count,
  repost_count = EXCLUDED.repost_count,
  reply_count = EXCLUDED.reply_count,
  scraped_at = {now}
"""


class PostStore(Protocol):
    async def ensure_schema(self) -> None: ...

    async def upsert(self, post: CanonicalPost) -> None: ...

    async def list_posts(self, limit: int = 50, offset: int = 0) -> List[CanonicalPost]: ...

    async def count(self) -> int: ...

    async def close(self) -> None: ...


def _post_values(post: CanonicalPost) -> tuple:
    return (
        post.external_id,
        post.content,
        post.author_handle,
        post.author_name,
        post.author_avatar,
        post.author_followers,
        post.like_count,
        post.repost_count,
        post.reply_count,
        post.post_url,
        post.created_at,
    )


def _row_to_post(row: Mapping[str, Any]) -> CanonicalPost:
    created_at = row["created_at"]
    if isinstance(created_at, str):
        created_at = datetime.fromisoformat(created_at)
    return CanonicalPost(
        external_id=row["x_post_id"],
        content=row["content"],
        author_handle=row["author_handle"],
        author_name=row["author_name"],
        author_avatar=row["author_avatar"],
        author_followers=row["author_followers"] or 0,
        like_count=row["like_count"] or 0,
        repost_count=row["repost_count"] or 0,
        reply_count=row["reply_count"] or 0,
        created_at=created_at,
    )


# Failures a pooled connection can surface mid-query, including command_timeout
# expiry and dropped sockets.
_PG_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, asyncio.TimeoutError, OSError)


class PostgresPostStore:
    """asyncpg-backed store for production deployments."""

    def __init__(self, database_url: str, min_pool_size: int = 1, max_pool_size: int = 5) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: Optional[asyncpg.Pool] = None

    async def _get_pool(self) -> asyncpg.Pool:
        if self._pool is not None:
            return self._pool
        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
        except (OSError, asyncpg.PostgresError) as exc:
            raise StorageError(f"database unavailable: {exc}") from exc
        return self._pool

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def ensure_schema(self) -> None:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                for statement in _POSTGRES_SCHEMA:
                    await conn.execute(statement)
        except _PG_ERRORS as exc:
            raise StorageError(f"Failed to initialize schema: {exc}") from exc

    async def upsert(self, post: CanonicalPost) -> None:
        placeholders = ", ".join(f"${i}" for i in range(1, len(_COLUMNS) + 1))
        query = (
            f"INSERT INTO posts ({', '.join(_COLUMNS)}) VALUES ({placeholders})"
            + _CONFLICT_CLAUSE.format(now="CURRENT_TIMESTAMP")
        )
        pool = await self._get_pool()
        try:
            await pool.execute(query, *_post_values(post))
        except _PG_ERRORS as exc:
            raise StorageError(f"Failed to upsert post {post.external_id}: {exc}") from exc

    async def list_posts(self, limit: int = 50, offset: int = 0) -> List[CanonicalPost]:
        pool = await self._get_pool()
        try:
            rows = await pool.fetch(
                "SELECT * FROM posts ORDER BY created_at DESC LIMIT $1 OFFSET $2",
                limit,
                offset,
            )
        except _PG_ERRORS as exc:
            raise StorageError(f"Failed to list posts: {exc}") from exc
        return [_row_to_post(row) for row in rows]

    async def count(self) -> int:
        pool = await self._get_pool()
        try:
            value = await pool.fetchval("SELECT COUNT(*) FROM posts")
        except _PG_ERRORS as exc:
            raise StorageError(f"Failed to count posts: {exc}") from exc
        return int(value or 0)


class SQLitePostStore:
    """SQLite-backed store for local runs and tests.

    Timestamps are stored as UTC ISO-8601 strings so lexical order matches
    chronological order.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._conn.row_factory = sqlite3.Row

    @classmethod
    def open(cls, path: str) -> "SQLitePostStore":
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = sqlite3.connect(path, check_same_thread=False)
        except sqlite3.DatabaseError as exc:
            raise StorageError(f"Failed to open sqlite database: {path}: {exc}") from exc
        return cls(conn)

    async def close(self) -> None:
        self._conn.close()

    async def ensure_schema(self) -> None:
        try:
            with self._conn:
                self._conn.executescript(_SQLITE_SCHEMA)
        except sqlite3.DatabaseError as exc:
            raise StorageError(f"Failed to initialize schema: {exc}") from exc

    async def upsert(self, post: CanonicalPost) -> None:
        now = datetime.now(timezone.utc).isoformat()
        values = _post_values(post)[:-1] + (post.created_at.astimezone(timezone.utc).isoformat(), now)
        placeholders = ", ".join("?" for _ in range(len(_COLUMNS) + 1))
        query = (
            f"INSERT INTO posts ({', '.join(_COLUMNS)}, scraped_at) VALUES ({placeholders})"
            + _CONFLICT_CLAUSE.format(now="EXCLUDED.scraped_at")
        )
        try:
            with self._conn:
                self._conn.execute(query, values)
        except sqlite3.DatabaseError as exc:
            raise StorageError(f"Failed to upsert post {post.external_id}: {exc}") from exc

    async def list_posts(self, limit: int = 50, offset: int = 0) -> List[CanonicalPost]:
        try:
            rows = self._conn.execute(
                "SELECT * FROM posts ORDER BY created_at DESC LIMIT ? OFFSET ?",
                (limit, offset),
            ).fetchall()
        except sqlite3.DatabaseError as exc:
            raise StorageError(f"Failed to list posts: {exc}") from exc
        return [_row_to_post(row) for row in rows]

    async def count(self) -> int:
        try:
            row = self._conn.execute("SELECT COUNT(*) FROM posts").fetchone()
        except sqlite3.DatabaseError as exc:
            raise StorageError(f"Failed to count posts: {exc}") from exc
        return int(row[0])

    def scraped_at(self, external_id: str) -> Optional[str]:
        """Return the last-observed timestamp stored for *external_id*."""
        row = self._conn.execute(
            "SELECT scraped_at FROM posts WHERE x_post_id = ?", (external_id,)
        ).fetchone()
        return row["scraped_at"] if row else None


def open_store(database_url: str) -> PostStore:
    """Return the store matching *database_url*'s scheme.

    ``postgres://`` / ``postgresql://`` → :class:`PostgresPostStore`;
    ``sqlite:///relative.db``, ``sqlite:////absolute.db`` or
    ``sqlite://:memory:`` → :class:`SQLitePostStore`.
    """
    if database_url.startswith(("postgres://", "postgresql://")):
        return PostgresPostStore(database_url)
    if database_url.startswith("sqlite://"):
        rest = database_url[len("sqlite://"):]
        if rest in ("", ":memory:", "/:memory:"):
            return SQLitePostStore.open(":memory:")
        return SQLitePostStore.open(rest[1:] if rest.startswith("/") else rest)
    raise ConfigError(f"Unsupported DATABASE_URL scheme: {database_url.split(':', 1)[0]}")
