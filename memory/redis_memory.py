"""Redis-backed (or in-memory fallback) key-value store.

Keys are namespaced with ``namespace:`` and values are stored as JSON.
When no Redis URL is configured, or the server does not answer the initial
ping, the store falls back to a local dict with TTL-based expiry.  Callers
see the same behaviour regardless of the backend.

The active backend (``"redis"`` or ``"memory"``) is exposed via
:attr:`RedisMemory.backend` for logging / diagnostics.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any

import redis

from utils.config import StoreConfig

_log = logging.getLogger("flipmatch.memory.redis")


@dataclass(slots=True)
class RedisMemory:
    """Dual-backend key-value store (Redis / in-memory).

    Attributes:
        redis_url:   Redis connection URL; empty selects the memory backend.
        namespace:   Prefix applied to every key.
        ttl_seconds: Default time-to-live; ``0`` keeps values forever.
        backend:     ``"redis"`` or ``"memory"`` (set during init).
    """

    redis_url: str = ""
    namespace: str = "flipmatch"
    ttl_seconds: int = 0
    _cache: dict[str, Any] = field(default_factory=dict)
    _expires_at: dict[str, float] = field(default_factory=dict)
    _redis_client: Any = field(init=False, default=None)
    backend: str = field(init=False, default="memory")

    def __post_init__(self) -> None:
        if not self.redis_url:
            return
        try:
            client = redis.Redis.from_url(self.redis_url, decode_responses=True)
            client.ping()
        except (redis.RedisError, ValueError) as exc:
            _log.warning("Redis unavailable (%s), using in-memory fallback", exc)
            return
        self._redis_client = client
        self.backend = "redis"

    @classmethod
    def from_config(cls, config: StoreConfig | None = None, namespace: str = "flipmatch") -> RedisMemory:
        config = config or StoreConfig()
        return cls(redis_url=config.redis_url, namespace=namespace, ttl_seconds=config.ttl_seconds)

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}" if self.namespace else key

    def _purge_if_expired(self, full_key: str, now: float) -> bool:
        expires_at = self._expires_at.get(full_key)
        if expires_at is not None and expires_at <= now:
            self._cache.pop(full_key, None)
            self._expires_at.pop(full_key, None)
            return True
        return False

    def set(self, key: str, value: Any, *, ttl: int | None = None) -> None:
        """Store *value* under *key*.

        *ttl* overrides the instance default; ``ttl=0`` persists without
        expiry.  Redis errors propagate to the caller.
        """
        full_key = self._key(key)
        effective_ttl = ttl if ttl is not None else self.ttl_seconds

        if self._redis_client is not None:
            payload = json.dumps(value)
            if effective_ttl > 0:
                self._redis_client.setex(full_key, effective_ttl, payload)
            else:
                self._redis_client.set(full_key, payload)
            return

        # Round-trip through JSON so both backends hand back equal copies.
        self._cache[full_key] = json.loads(json.dumps(value))
        if effective_ttl > 0:
            self._expires_at[full_key] = time.time() + effective_ttl
        else:
            self._expires_at.pop(full_key, None)

    def get(self, key: str, default: Any = None) -> Any:
        full_key = self._key(key)
        if self._redis_client is not None:
            payload = self._redis_client.get(full_key)
            if payload is None:
                return default
            try:
                return json.loads(payload)
            except json.JSONDecodeError:
                _log.warning("discarding undecodable payload at %s", full_key)
                return default

        if self._purge_if_expired(full_key, time.time()):
            return default
        return self._cache.get(full_key, default)

    def delete(self, key: str) -> bool:
        """Remove *key*. Returns ``True`` if the key existed."""
        full_key = self._key(key)
        if self._redis_client is not None:
            return bool(self._redis_client.delete(full_key))
        existed = full_key in self._cache and not self._purge_if_expired(full_key, time.time())
        self._cache.pop(full_key, None)
        self._expires_at.pop(full_key, None)
        return existed

    def exists(self, key: str) -> bool:
        """Check whether *key* is present (and not expired)."""
        full_key = self._key(key)
        if self._redis_client is not None:
            return bool(self._redis_client.exists(full_key))
        if self._purge_if_expired(full_key, time.time()):
            return False
        return full_key in self._cache

    def keys(self, pattern: str = "*") -> list[str]:
        """Return un-namespaced keys matching *pattern*.

        Redis uses glob matching; the memory backend only honours a trailing
        ``*`` (prefix match).
        """
        prefix_len = len(self._key(""))
        if self._redis_client is not None:
            return [k[prefix_len:] for k in self._redis_client.keys(self._key(pattern))]

        now = time.time()
        prefix = self._key(pattern.rstrip("*"))
        result: list[str] = []
        for full_key in list(self._cache):
            if self._purge_if_expired(full_key, now):
                continue
            if full_key.startswith(prefix):
                result.append(full_key[prefix_len:])
        return result
