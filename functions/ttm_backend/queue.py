"""
Hand-off of notification job ids from the API to the worker.

The job row in the database is the source of truth; the queue only carries
ids so the worker wakes up promptly. Lost ids are recovered by the worker's
database fallback.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Optional, Protocol

import redis
from redis import exceptions as redis_exceptions

logger = logging.getLogger(__name__)


class JobQueue(Protocol):
    def enqueue(self, job_id: str) -> None:
        ...

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[str]:
        ...

    def depth(self) -> int:
        ...


@dataclass
class InMemoryJobQueue:
    items: deque[str] = field(default_factory=deque)

    def enqueue(self, job_id: str) -> None:
        self.items.append(job_id)

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[str]:
        return self.items.popleft() if self.items else None

    def depth(self) -> int:
        return len(self.items)


@dataclass
class RedisJobQueue:
    """
    FIFO list in Redis: producers LPUSH, the worker BRPOPs.
    """

    url: str
    queue_key: str = "ttm:notifications"

    def __post_init__(self):
        self._connect()

    def _connect(self) -> None:
        self.client = redis.Redis.from_url(self.url, decode_responses=True)

    def enqueue(self, job_id: str) -> None:
        self.client.lpush(self.queue_key, job_id)

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[str]:
        try:
            if not block:
                return self.client.rpop(self.queue_key)
            popped = self.client.brpop([self.queue_key], timeout=timeout or 0)
        except redis_exceptions.ConnectionError:
            logger.warning("Redis connection dropped; reconnecting")
            self._connect()
            return None
        return popped[1] if popped else None

    def depth(self) -> int:
        return int(self.client.llen(self.queue_key))
