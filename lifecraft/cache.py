"""
Key-value cache abstraction with expiry.

Supports an in-memory fallback for tests/local runs and a Redis-backed
implementation for production. Values are JSON-serialisable objects.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import redis
from redis import exceptions as redis_exceptions


class Cache(Protocol):
    """Minimal cache interface used for badges and recommendations."""

    def get_json(self, key: str) -> Optional[Any]:
        ...

    def set_json(self, key: str, value: Any, *, ttl_seconds: int) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


@dataclass
class InMemoryCache:
    """Dict-backed cache honouring TTLs; for testing/dev."""

    entries: dict[str, tuple[str, float]] = field(default_factory=dict)

    def get_json(self, key: str) -> Optional[Any]:
        entry = self.entries.get(key)
        if entry is None:
            return None
        raw, expires_at = entry
        if expires_at <= time.time():
            self.entries.pop(key, None)
            return None
        return json.loads(raw)

    def set_json(self, key: str, value: Any, *, ttl_seconds: int) -> None:
        self.entries[key] = (json.dumps(value, default=str), time.time() + ttl_seconds)

    def delete(self, key: str) -> None:
        self.entries.pop(key, None)

    def ttl(self, key: str) -> Optional[float]:
        entry = self.entries.get(key)
        if entry is None:
            return None
        return entry[1] - time.time()

    def reset(self) -> None:
        self.entries.clear()


@dataclass
class RedisCache:
    """Redis-backed cache using SET with EX."""

    url: str

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    def get_json(self, key: str) -> Optional[Any]:
        try:
            raw = self.client.get(key)
        except redis_exceptions.ConnectionError:
            # Reconnect on the next call; a dropped connection reads as a miss.
            self.client = redis.Redis.from_url(self.url)
            return None
        if raw is None:
            return None
        return json.loads(raw)

    def set_json(self, key: str, value: Any, *, ttl_seconds: int) -> None:
        self.client.set(key, json.dumps(value, default=str), ex=ttl_seconds)

    def delete(self, key: str) -> None:
        self.client.delete(key)
