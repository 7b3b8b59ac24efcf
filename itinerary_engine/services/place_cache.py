"""
Versioned, TTL-bound cache of researched place knowledge.

Entries are keyed by the lower-cased place name. An entry is only trusted
when its version matches the current schema version and it is no older
than the TTL; anything else (including unreadable entries) is a miss.
"""

import json
import os
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol

from pydantic import ValidationError

from itinerary_engine.core.config import Settings, settings
from itinerary_engine.schemas.research import PlaceCacheEntry, PlaceKnowledge
from itinerary_engine.utils.logger import get_logger

logger = get_logger(__name__)

Clock = Callable[[], float]


# Storage backends


class CacheStorage(Protocol):
    """Protocol for key-value cache backends; values are JSON-compatible dicts."""

    def get(self, key: str) -> Optional[Dict[str, Any]]: ...

    def set(self, key: str, value: Dict[str, Any]) -> None: ...

    def delete(self, key: str) -> None: ...

    def clear(self) -> None: ...

    def keys(self) -> List[str]: ...


class InMemoryCacheStorage:
    def __init__(self):
        self._data: Dict[str, Dict[str, Any]] = {}

    def get(self, key):
        return self._data.get(key)

    def set(self, key, value):
        self._data[key] = value

    def delete(self, key):
        self._data.pop(key, None)

    def clear(self):
        self._data.clear()

    def keys(self):
        return list(self._data)


class JsonFileCacheStorage:
    """All entries in a single JSON document on disk."""

    def __init__(self, path: str):
        self.path = path

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Unreadable cache file %s, starting empty: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: Dict[str, Dict[str, Any]]) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)

    def get(self, key):
        return self._load().get(key)

    def set(self, key, value):
        data = self._load()
        data[key] = value
        self._save(data)

    def delete(self, key):
        data = self._load()
        if data.pop(key, None) is not None:
            self._save(data)

    def clear(self):
        if os.path.exists(self.path):
            os.remove(self.path)

    def keys(self):
        return list(self._load())


class SupabaseCacheStorage:
    """Rows of (key text primary key, entry jsonb) in a Supabase table."""

    def __init__(self, client, table: str):
        self.client = client
        self.table = table

    def get(self, key):
        resp = self.client.table(self.table).select("entry").eq("key", key).limit(1).execute()
        rows = resp.data or []
        return rows[0]["entry"] if rows else None

    def set(self, key, value):
        self.client.table(self.table).upsert({"key": key, "entry": value}).execute()

    def delete(self, key):
        self.client.table(self.table).delete().eq("key", key).execute()

    def clear(self):
        self.client.table(self.table).delete().neq("key", "").execute()

    def keys(self):
        resp = self.client.table(self.table).select("key").execute()
        return [row["key"] for row in resp.data or []]


def build_cache_storage(config: Settings = settings) -> CacheStorage:
    backend = config.PLACE_CACHE_BACKEND.lower()
    if backend == "file":
        return JsonFileCacheStorage(config.PLACE_CACHE_PATH)
    if backend == "supabase":
        from itinerary_engine.db.supabase_client import get_supabase

        return SupabaseCacheStorage(get_supabase(), config.PLACE_CACHE_TABLE)
    if backend != "memory":
        logger.warning("Unknown PLACE_CACHE_BACKEND %r, using memory", backend)
    return InMemoryCacheStorage()


# Cache


class PlaceKnowledgeCache:
    def __init__(
        self,
        storage: Optional[CacheStorage] = None,
        clock: Clock = time.time,
        ttl_seconds: Optional[float] = None,
        version: Optional[int] = None,
    ):
        self.storage = storage if storage is not None else InMemoryCacheStorage()
        self.clock = clock
        self.ttl_seconds = (
            ttl_seconds if ttl_seconds is not None else settings.PLACE_CACHE_TTL_DAYS * 86400
        )
        self.version = version if version is not None else settings.PLACE_CACHE_VERSION

    @staticmethod
    def key_for(place_name: str) -> str:
        return place_name.strip().lower()

    def _read_entry(self, key: str) -> Optional[PlaceCacheEntry]:
        try:
            raw = self.storage.get(key)
        except Exception as e:
            logger.warning("Cache read failed for %s: %s", key, e)
            return None
        if raw is None:
            return None
        try:
            return PlaceCacheEntry.model_validate(raw)
        except ValidationError as e:
            logger.warning("Corrupt cache entry for %s, ignoring: %s", key, e.errors()[:1])
            return None

    def _is_fresh(self, entry: PlaceCacheEntry) -> bool:
        return entry.version == self.version and self.clock() - entry.timestamp <= self.ttl_seconds

    def get(self, place_name: str) -> Optional[PlaceKnowledge]:
        key = self.key_for(place_name)
        entry = self._read_entry(key)
        if entry is None:
            return None

        if entry.version != self.version:
            logger.info("Cache version mismatch for %s (%s != %s)", place_name, entry.version, self.version)
            return None
        if not self._is_fresh(entry):
            logger.info("Cache entry expired for %s", place_name)
            return None

        logger.debug("Cache hit for %s", place_name)
        return entry.data

    def set(self, place_name: str, knowledge: PlaceKnowledge) -> None:
        entry = PlaceCacheEntry(data=knowledge, timestamp=self.clock(), version=self.version)
        try:
            self.storage.set(self.key_for(place_name), entry.model_dump(mode="json"))
        except Exception as e:
            logger.warning("Cache write failed for %s: %s", place_name, e)

    def delete(self, place_name: str) -> None:
        self.storage.delete(self.key_for(place_name))

    def clear(self) -> None:
        self.storage.clear()
        logger.info("Cleared place knowledge cache")

    def prune_expired(self) -> int:
        """Drop stale, version-mismatched and unreadable entries. Returns the count removed."""
        removed = 0
        for key in self.storage.keys():
            entry = self._read_entry(key)
            if entry is None or not self._is_fresh(entry):
                self.storage.delete(key)
                removed += 1
        return removed

    def stats(self) -> Dict[str, Any]:
        keys = self.storage.keys()
        entries = [e for e in (self._read_entry(k) for k in keys) if e is not None]
        fresh = [e for e in entries if self._is_fresh(e)]
        oldest = min((e.timestamp for e in entries), default=None)

        return {
            "entries": len(keys),
            "valid": len(fresh),
            "stale": len(keys) - len(fresh),
            "version": self.version,
            "oldestEntry": (
                datetime.fromtimestamp(oldest, tz=timezone.utc).isoformat() if oldest is not None else None
            ),
        }
