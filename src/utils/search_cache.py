"""
Search result cache.

Two interchangeable backends sit behind CacheBackend:

- RedisCacheBackend: shared cache using the SYNCHRONOUS Redis client. Keys are
  stored as "{group}:{key}" so the whole group can be flushed with SCAN+DEL.
- FileCacheBackend: persistent fallback, one pickled entry per key on disk,
  writes guarded by a FileLock.

select_cache_backend() probes Redis once at startup and picks the backend;
the choice is never revisited per call. SearchCache wraps the backend, owns
the key/TTL rules, and turns every backend failure into a miss.
"""

import os
import pickle
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, cast

from filelock import FileLock, Timeout
from redis import Redis
from redis.exceptions import RedisError

from contracts.errors import CacheError, SearchCoreError
from contracts.models import CacheEntry, SearchType, generate_cache_key
from utils.get_logger import get_logger

logger = get_logger(__name__)

DEFAULT_TTL = 900
API_TTL = 1800
PODCAST_TTL = 3600

# Catalog data changes slowly, video results go stale fastest
TTL_BY_SEARCH_TYPE: dict[str, int] = {
    SearchType.BY_ADVANCED_PODCAST.value: PODCAST_TTL,
    SearchType.BY_PERSON.value: API_TTL,
    SearchType.BY_TITLE.value: API_TTL,
    SearchType.BY_ADVANCED_EPISODE.value: API_TTL,
    SearchType.BY_YOUTUBE.value: DEFAULT_TTL,
}

CACHE_FILE_SUFFIX = ".pkl"


class CacheBackend(ABC):
    """Key/value store with per-entry TTL. Implementations may raise CacheError."""

    name: str = "base"

    @abstractmethod
    def get(self, key: str) -> Any | None: ...

    @abstractmethod
    def set(self, key: str, value: Any, ttl: int) -> None: ...

    @abstractmethod
    def delete(self, key: str) -> None: ...

    @abstractmethod
    def clear_all(self) -> int: ...

    def stats(self) -> dict[str, Any]:
        return {"backend": self.name}


def get_redis_client(
    host: str, port: int = 6379, password: str | None = None, timeout: float = 5
) -> Redis:
    # decode_responses=False because we are storing pickled binary values
    return Redis(
        host=host,
        port=port,
        password=password,
        decode_responses=False,
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
        retry_on_timeout=True,
        health_check_interval=30,
    )


class RedisCacheBackend(CacheBackend):
    """
    Redis-backed cache backend.

    Redis operations are fast enough (~1ms) that blocking inside the async
    orchestrator is acceptable.
    """

    name = "redis"

    def __init__(self, client: Redis, group: str = ""):
        self._redis = client
        self.group = group

    def _full_key(self, key: str) -> str:
        if self.group and not key.startswith(f"{self.group}:"):
            return f"{self.group}:{key}"
        return key

    def get(self, key: str) -> Any | None:
        try:
            raw = self._redis.get(self._full_key(key))
        except RedisError as e:
            raise CacheError(f"Redis read failed for {key}: {e}") from e
        if raw is None:
            return None
        try:
            entry = pickle.loads(cast(bytes, raw))
        except Exception as e:
            # Unpickling can raise almost anything for a damaged or foreign payload
            raise CacheError(f"Invalid cache entry format for {key}: {e}") from e
        if not isinstance(entry, CacheEntry):
            raise CacheError(f"Invalid cache entry format for {key}")
        return entry

    def set(self, key: str, value: Any, ttl: int) -> None:
        try:
            payload = pickle.dumps(value, protocol=pickle.HIGHEST_PROTOCOL)
        except (pickle.PicklingError, TypeError) as e:
            raise CacheError(f"Could not serialize cache entry for {key}: {e}") from e
        try:
            if ttl > 0:
                self._redis.set(self._full_key(key), payload, ex=ttl)
            else:
                self._redis.set(self._full_key(key), payload)
        except RedisError as e:
            raise CacheError(f"Redis add error for {key}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self._redis.delete(self._full_key(key))
        except RedisError as e:
            raise CacheError(f"Redis delete failed for {key}: {e}") from e

    def _scan(self) -> list[bytes]:
        found: list[bytes] = []
        cursor = 0
        while True:
            cursor, keys = cast(
                tuple[int, list[bytes]],
                self._redis.scan(cursor=cursor, match=f"{self.group}:*", count=100),
            )
            found.extend(keys)
            if cursor == 0:
                break
        return found

    def clear_all(self) -> int:
        """Flush this cache's group. Without a group nothing is flushed."""
        if not self.group:
            logger.warning("Clear called without cache group - skipping for safety")
            return 0

        deleted = 0
        try:
            cursor = 0
            while True:
                cursor, keys = cast(
                    tuple[int, list[bytes]],
                    self._redis.scan(cursor=cursor, match=f"{self.group}:*", count=100),
                )
                if keys:
                    deleted += cast(int, self._redis.delete(*keys))
                if cursor == 0:
                    break
        except RedisError as e:
            raise CacheError(f"Redis clear failed: {e}") from e
        return deleted

    def stats(self) -> dict[str, Any]:
        if not self.group:
            return {"backend": self.name, "group": "", "total_keys": 0}
        try:
            return {"backend": self.name, "group": self.group, "total_keys": len(self._scan())}
        except RedisError as e:
            raise CacheError(f"Redis stats failed: {e}") from e


class FileCacheBackend(CacheBackend):
    """
    File-backed cache backend.

    Each key is a pickled CacheEntry at "{directory}/{namespace}{key}.pkl".
    Expiry lives inside the entry and is checked on read. clear_all removes
    every file in the directory carrying the namespace prefix.
    """

    name = "file"

    def __init__(self, directory: str, namespace: str = "if_search_", lock_timeout: float = 3):
        self.directory = directory
        self.namespace = namespace
        self.lock_timeout = lock_timeout
        os.makedirs(self.directory, exist_ok=True)

    def _path(self, key: str) -> str:
        return os.path.join(self.directory, f"{self.namespace}{key}{CACHE_FILE_SUFFIX}")

    def get(self, key: str) -> Any | None:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "rb") as f:
                entry = pickle.load(f)
        except FileNotFoundError:
            return None
        except Exception as e:
            raise CacheError(f"File cache read failed for {key}: {e}") from e

        if not isinstance(entry, CacheEntry):
            raise CacheError(f"Invalid cache entry format for {key}")
        if entry.expiry and entry.expiry < time.time():
            logger.debug(f"Cache logically expired: {key}")
            self.delete(key)
            return None
        return entry

    def set(self, key: str, value: Any, ttl: int) -> None:
        path = self._path(key)
        tmp_path = f"{path}.tmp"
        try:
            with FileLock(f"{path}.lock", timeout=self.lock_timeout):
                with open(tmp_path, "wb") as f:
                    pickle.dump(value, f, protocol=pickle.HIGHEST_PROTOCOL)
                os.replace(tmp_path, path)
        except Timeout as e:
            raise CacheError(f"FileLock acquisition timed out for {path}") from e
        except (OSError, pickle.PicklingError, TypeError) as e:
            raise CacheError(f"File cache write failed for {key}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            os.remove(self._path(key))
        except FileNotFoundError:
            pass
        except OSError as e:
            raise CacheError(f"File cache delete failed for {key}: {e}") from e

    def _cache_files(self) -> list[str]:
        try:
            names = os.listdir(self.directory)
        except FileNotFoundError:
            return []
        return [
            n for n in names if n.startswith(self.namespace) and n.endswith(CACHE_FILE_SUFFIX)
        ]

    def clear_all(self) -> int:
        count = 0
        for name in self._cache_files():
            path = os.path.join(self.directory, name)
            try:
                os.remove(path)
                count += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                raise CacheError(f"File cache clear failed for {name}: {e}") from e
            lock_path = f"{path}.lock"
            if os.path.exists(lock_path):
                try:
                    os.remove(lock_path)
                except OSError:
                    logger.debug(f"Could not remove lock file {lock_path}")
        return count

    def stats(self) -> dict[str, Any]:
        files = self._cache_files()
        total_size = 0
        for name in files:
            try:
                total_size += os.path.getsize(os.path.join(self.directory, name))
            except OSError:
                continue
        return {
            "backend": self.name,
            "directory": self.directory,
            "total_keys": len(files),
            "total_bytes": total_size,
        }


def select_cache_backend(
    redis_host: str | None,
    redis_port: int = 6379,
    redis_password: str | None = None,
    group: str = "",
    cache_dir: str = "/tmp/cache/podcast_search",
    namespace: str = "if_search_",
) -> CacheBackend:
    """Probe Redis once and return the backend to use for the life of the process."""
    if redis_host:
        client = get_redis_client(redis_host, redis_port, redis_password)
        try:
            client.ping()
            logger.info(f"Using Redis cache backend at {redis_host}:{redis_port} (group={group!r})")
            return RedisCacheBackend(client, group=group)
        except RedisError as e:
            logger.warning(f"Redis unavailable at {redis_host}:{redis_port}: {e}. Using file cache")
    logger.info(f"Using file cache backend at {cache_dir}")
    return FileCacheBackend(cache_dir, namespace=namespace)


class SearchCache:
    """
    Cache facade used by the orchestrator.

    get/set/delete never raise: a failing backend is logged and treated as a
    miss (reads) or a skipped write.
    """

    def __init__(
        self,
        backend: CacheBackend,
        version: str = "1",
        ttls: dict[str, int] | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.backend = backend
        self.version = version
        self.ttls = dict(TTL_BY_SEARCH_TYPE if ttls is None else ttls)
        self._clock = clock
        self.hits = 0
        self.misses = 0
        self.errors = 0

    @staticmethod
    def generate_key(search_type: SearchType | str, params: dict[str, Any]) -> str:
        return generate_cache_key(str(getattr(search_type, "value", search_type)), params)

    def ttl_for_type(self, search_type: SearchType | str) -> int:
        return self.ttls.get(str(getattr(search_type, "value", search_type)), DEFAULT_TTL)

    def get(self, key: str) -> Any | None:
        try:
            entry = self.backend.get(key)
        except CacheError as e:
            self.errors += 1
            logger.warning(f"Cache read failed, treating as miss: {e.message}")
            self.delete(key)
            return None

        if entry is None:
            self.misses += 1
            return None
        if self.version and entry.version != self.version:
            logger.info(f"Version mismatch for {key}: {entry.version} != {self.version}")
            self.misses += 1
            self.delete(key)
            return None
        if entry.expiry and entry.expiry < self._clock():
            self.misses += 1
            self.delete(key)
            return None

        self.hits += 1
        return entry.data

    def set(self, key: str, value: Any, ttl: int | None = None, search_type: str = "") -> bool:
        if ttl is None:
            ttl = self.ttl_for_type(search_type) if search_type else DEFAULT_TTL
        entry = CacheEntry(
            key=key,
            data=value,
            expiry=self._clock() + ttl if ttl > 0 else 0.0,
            version=self.version,
            search_type=search_type,
        )
        try:
            self.backend.set(key, entry, ttl)
        except CacheError as e:
            self.errors += 1
            logger.warning(f"Cache write skipped: {e.message}")
            return False
        logger.debug(f"Cached {key} (ttl={ttl})")
        return True

    def delete(self, key: str) -> None:
        try:
            self.backend.delete(key)
        except CacheError as e:
            self.errors += 1
            logger.warning(f"Cache delete failed: {e.message}")

    def clear_all(self) -> int:
        try:
            count = self.backend.clear_all()
        except CacheError as e:
            self.errors += 1
            logger.error(f"Cache clear failed: {e.message}")
            return 0
        logger.info(f"Cleared {count} cached search results from {self.backend.name} backend")
        return count

    async def remember(self, key: str, producer: Callable[[], Awaitable[Any]], ttl: int) -> Any:
        """Return the cached value for key, or await producer and cache its result."""
        cached = self.get(key)
        if cached is not None:
            return cached
        value = await producer()
        # Failures are never cached
        if value is not None and not isinstance(value, SearchCoreError):
            self.set(key, value, ttl)
        return value

    def get_stats(self) -> dict[str, Any]:
        try:
            stats = self.backend.stats()
        except CacheError as e:
            logger.warning(f"Cache stats unavailable: {e.message}")
            stats = {"backend": self.backend.name, "error": e.message}
        stats.update(
            version=self.version,
            ttls=dict(self.ttls),
            hits=self.hits,
            misses=self.misses,
            errors=self.errors,
        )
        return stats
