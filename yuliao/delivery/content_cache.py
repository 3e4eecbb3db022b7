"""
Generated-content cache.

Maps a key (one item, or a whole batch) plus a topic to generated
content. Entries expire after an hour and are only valid for the topic
they were generated under. Entries live in a pluggable backend so the
cache survives restarts; anything unreadable in the backend is dropped
and reported as a miss.

Persisted entry shape: {"content": ..., "topic": "...", "timestamp": <epoch ms>}
"""

from __future__ import annotations

import json
import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import quote, unquote

from loguru import logger

from yuliao.core.errors import CacheCorrupt
from yuliao.core.models import Clock, now_ms

CACHE_EXPIRY_MS = 3600 * 1000


def item_cache_key(item_id: str) -> str:
    """Key for a single item's learn content."""
    return f"learn:{item_id}"


def session_cache_key() -> str:
    """Key for the snapshot of the current learn session."""
    return "session"


def review_cache_key() -> str:
    """Key for the current review scenario."""
    return "review"


# =============================================================================
# Entries
# =============================================================================


@dataclass(frozen=True)
class CacheEntry:
    """One cached piece of generated content."""

    content: Any
    topic: str
    created_at: int

    def is_expired(self, now: int, expiry_ms: int = CACHE_EXPIRY_MS) -> bool:
        return now - self.created_at >= expiry_ms

    def to_dict(self) -> dict[str, Any]:
        return {"content": self.content, "topic": self.topic, "timestamp": self.created_at}

    @classmethod
    def decode(cls, key: str, raw: str) -> CacheEntry:
        """Parse a persisted entry, raising CacheCorrupt on any malformation."""
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CacheCorrupt(key, f"invalid JSON ({e})") from e

        if not isinstance(data, dict):
            raise CacheCorrupt(key, "entry is not an object")
        if "content" not in data or data["content"] is None:
            raise CacheCorrupt(key, "missing content")
        if not isinstance(data.get("topic"), str):
            raise CacheCorrupt(key, "missing topic")

        timestamp = data.get("timestamp")
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            raise CacheCorrupt(key, "missing timestamp")
        if not math.isfinite(timestamp):
            raise CacheCorrupt(key, "timestamp is not finite")

        return cls(content=data["content"], topic=data["topic"], created_at=int(timestamp))


# =============================================================================
# Backends
# =============================================================================


class CacheBackend(Protocol):
    """Raw string storage for cache entries."""

    def read(self, key: str) -> str | None: ...

    def write(self, key: str, raw: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


class MemoryCacheBackend:
    """Process-local backend; nothing survives a restart."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def read(self, key: str) -> str | None:
        return self._data.get(key)

    def write(self, key: str, raw: str) -> None:
        self._data[key] = raw

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileCacheBackend:
    """
    One JSON file per key under a cache directory.

    Keys are percent-encoded into file names so any key round-trips.
    """

    def __init__(self, cache_dir: Path):
        self.cache_dir = cache_dir
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.cache_dir / f"{quote(key, safe='')}.json"

    def read(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read cache file {path}: {e}")
            return ""

    def write(self, key: str, raw: str) -> None:
        path = self._path(key)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(raw, encoding="utf-8")
        os.replace(tmp_path, path)

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def keys(self) -> list[str]:
        return [unquote(path.stem) for path in self.cache_dir.glob("*.json")]


# =============================================================================
# Cache
# =============================================================================


class ContentCache:
    """
    Topic-aware, expiring cache of generated content.

    ``get`` returns the cached content or None for a miss; content itself
    is never None. One instance is created per application and passed to
    every consumer.
    """

    def __init__(
        self,
        backend: CacheBackend | None = None,
        clock: Clock = now_ms,
        expiry_ms: int = CACHE_EXPIRY_MS,
    ):
        """
        Initialize the cache.

        Args:
            backend: Entry storage (in-memory if None)
            clock: Returns current epoch ms (inject a fake for tests)
            expiry_ms: Entry lifetime
        """
        self.backend = backend if backend is not None else MemoryCacheBackend()
        self.clock = clock
        self.expiry_ms = expiry_ms

    def _load_entry(self, key: str) -> CacheEntry | None:
        raw = self.backend.read(key)
        if raw is None:
            return None
        try:
            return CacheEntry.decode(key, raw)
        except CacheCorrupt as e:
            logger.warning(f"{e} - discarding")
            self.backend.delete(key)
            return None

    def get(self, key: str, topic: str) -> Any | None:
        """
        Look up content for a key under a topic.

        Expired entries and entries generated for another topic are
        evicted and reported as a miss.
        """
        entry = self._load_entry(key)
        if entry is None:
            return None

        if entry.is_expired(self.clock(), self.expiry_ms):
            logger.debug(f"Cache entry {key} expired")
            self.backend.delete(key)
            return None

        if entry.topic != topic:
            logger.debug(f"Cache entry {key} is for topic {entry.topic!r}, wanted {topic!r}")
            self.backend.delete(key)
            return None

        return entry.content

    def contains(self, key: str, topic: str) -> bool:
        return self.get(key, topic) is not None

    def put(self, key: str, topic: str, content: Any) -> None:
        """Store content, replacing any previous entry for the key."""
        if content is None:
            raise ValueError("Cannot cache None content")
        entry = CacheEntry(content=content, topic=topic, created_at=self.clock())
        self.backend.write(key, json.dumps(entry.to_dict(), ensure_ascii=False))

    def invalidate(self, key: str) -> None:
        self.backend.delete(key)

    def invalidate_all(self) -> None:
        for key in self.backend.keys():
            self.backend.delete(key)
        logger.debug("Content cache cleared")

    def purge_expired(self) -> int:
        """Remove expired and unreadable entries. Returns how many were removed."""
        removed = 0
        now = self.clock()
        for key in self.backend.keys():
            raw = self.backend.read(key)
            if raw is None:
                continue
            try:
                entry = CacheEntry.decode(key, raw)
            except CacheCorrupt:
                self.backend.delete(key)
                removed += 1
                continue
            if entry.is_expired(now, self.expiry_ms):
                self.backend.delete(key)
                removed += 1
        return removed


def cache_from_settings(clock: Clock = now_ms) -> ContentCache:
    """Build the persistent cache configured in settings."""
    from config import get_settings

    settings = get_settings()
    return ContentCache(
        backend=JsonFileCacheBackend(settings.cache_dir),
        clock=clock,
        expiry_ms=settings.cache_expiry_seconds * 1000,
    )
