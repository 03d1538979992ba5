"""
Queue abstraction for deferred badge jobs.

Supports an in-memory fallback for tests/local runs and a Redis-backed
implementation for production. Delivery is at-most-once: a consumer must
``ack`` or ``nack`` every message it receives, and a nacked message is
dropped unless ``requeue=True``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

import redis
from redis import exceptions as redis_exceptions

logger = logging.getLogger(__name__)


@dataclass
class QueueMessage:
    body: dict
    raw: bytes


class JobQueue(Protocol):
    """Minimal queue interface for dispatching job payloads to workers."""

    def enqueue(self, payload: dict) -> None:
        ...

    def dequeue(
        self, *, block: bool = True, timeout: int | None = None
    ) -> Optional[QueueMessage]:
        ...

    def ack(self, message: QueueMessage) -> None:
        ...

    def nack(self, message: QueueMessage, *, requeue: bool = False) -> None:
        ...


def _encode(payload: dict) -> bytes:
    return json.dumps(payload).encode("utf-8")


@dataclass
class InMemoryJobQueue:
    """Simple FIFO queue with an in-flight list; for testing/dev."""

    items: list[bytes] = field(default_factory=list)
    in_flight: list[bytes] = field(default_factory=list)

    def enqueue(self, payload: dict) -> None:
        self.items.append(_encode(payload))

    def dequeue(
        self, *, block: bool = True, timeout: int | None = None
    ) -> Optional[QueueMessage]:
        # Prefetch of one: nothing is handed out while a message is unacked.
        if not self.items or self.in_flight:
            return None
        raw = self.items.pop(0)
        self.in_flight.append(raw)
        return QueueMessage(body=json.loads(raw), raw=raw)

    def ack(self, message: QueueMessage) -> None:
        self.in_flight.remove(message.raw)

    def nack(self, message: QueueMessage, *, requeue: bool = False) -> None:
        self.in_flight.remove(message.raw)
        if requeue:
            self.items.insert(0, message.raw)


@dataclass
class RedisJobQueue:
    """
    Redis-backed queue. Messages move atomically from the queue list to a
    per-queue processing list and leave it on ack/nack.
    """

    url: str
    queue_key: str = "badge_processing_queue"

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    @property
    def processing_key(self) -> str:
        return f"{self.queue_key}:processing"

    def enqueue(self, payload: dict) -> None:
        self.client.rpush(self.queue_key, _encode(payload))

    def dequeue(
        self, *, block: bool = True, timeout: int | None = None
    ) -> Optional[QueueMessage]:
        try:
            if block:
                raw = self.client.blmove(
                    self.queue_key, self.processing_key, timeout or 0, "LEFT", "RIGHT"
                )
            else:
                raw = self.client.lmove(
                    self.queue_key, self.processing_key, "LEFT", "RIGHT"
                )
        except redis_exceptions.ConnectionError:
            # Connection resets can happen on managed Redis. Treat as empty queue
            # and allow the worker loop to retry.
            self.client = redis.Redis.from_url(self.url)
            return None
        if raw is None:
            return None
        try:
            body = json.loads(raw)
        except ValueError:
            logger.warning("Dropping malformed message from %s: %r", self.queue_key, raw)
            self.client.lrem(self.processing_key, 1, raw)
            return None
        return QueueMessage(body=body, raw=raw)

    def ack(self, message: QueueMessage) -> None:
        self.client.lrem(self.processing_key, 1, message.raw)

    def nack(self, message: QueueMessage, *, requeue: bool = False) -> None:
        pipe = self.client.pipeline()
        pipe.lrem(self.processing_key, 1, message.raw)
        if requeue:
            pipe.lpush(self.queue_key, message.raw)
        pipe.execute()
