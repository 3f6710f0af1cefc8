# core/storage.py
"""
Per-user key-value storage for FocusOS

Stands in for browser local storage: string values under string keys,
no transactions, no versioning. Two backends are provided, an in-process
dictionary and Redis.
"""

import json
import logging
import threading
from typing import Any, Dict, Iterator, Optional

import redis

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Storage backend unavailable or misconfigured"""
    pass


class LocalStore:
    """Interface shared by the storage backends"""

    backend_name = 'base'

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError

    def keys(self, prefix: str = '') -> Iterator[str]:
        raise NotImplementedError

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        pass

    def get_json(self, key: str, default: Any = None) -> Any:
        """Decode a JSON value; unreadable values are logged and replaced by default"""
        raw = self.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"Discarding unreadable value under {key}: {e}")
            return default

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, json.dumps(value, separators=(',', ':')))


class MemoryStorage(LocalStore):
    """Process-local dictionary storage"""

    backend_name = 'memory'

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self, prefix: str = '') -> Iterator[str]:
        with self._lock:
            matching = [key for key in self._data if key.startswith(prefix)]
        return iter(sorted(matching))

    def __len__(self):
        return len(self._data)


class RedisStorage(LocalStore):
    """Redis-backed storage, keys namespaced to share a database safely"""

    backend_name = 'redis'

    def __init__(self, client: redis.Redis, namespace: str = 'focusos'):
        self.client = client
        self.namespace = namespace

    @classmethod
    def from_url(cls, url: str, namespace: str = 'focusos') -> 'RedisStorage':
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            health_check_interval=30
        )
        return cls(client, namespace)

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def get(self, key: str) -> Optional[str]:
        value = self.client.get(self._key(key))
        if isinstance(value, bytes):
            value = value.decode('utf-8')
        return value

    def set(self, key: str, value: str) -> None:
        self.client.set(self._key(key), value)

    def remove(self, key: str) -> None:
        self.client.delete(self._key(key))

    def keys(self, prefix: str = '') -> Iterator[str]:
        strip = len(self.namespace) + 1
        for key in self.client.scan_iter(match=f"{self._key(prefix)}*"):
            if isinstance(key, bytes):
                key = key.decode('utf-8')
            yield key[strip:]

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError as e:
            logger.error(f"Redis ping failed: {e}")
            return False

    def close(self) -> None:
        self.client.close()


def create_storage(config: Dict[str, Any]) -> LocalStore:
    """
    Build the storage backend named by STORAGE_BACKEND

    Redis connectivity is checked up front; with REDIS_REQUIRED off an
    unreachable server degrades to memory storage.
    """
    backend = (config.get('STORAGE_BACKEND') or 'memory').lower()

    if backend == 'memory':
        logger.info("Using in-memory storage backend")
        return MemoryStorage()

    if backend == 'redis':
        storage = RedisStorage.from_url(
            config.get('REDIS_URL', 'redis://localhost:6379/0'),
            namespace=config.get('STORAGE_NAMESPACE', 'focusos')
        )
        if storage.ping():
            logger.info("Redis storage backend connected successfully")
            return storage
        if config.get('REDIS_REQUIRED', False):
            raise StorageError("Redis storage backend is unreachable")
        logger.warning("Redis unreachable, falling back to in-memory storage")
        return MemoryStorage()

    raise StorageError(f"Unknown storage backend: {backend}")
