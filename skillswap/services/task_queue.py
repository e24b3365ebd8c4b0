"""Background task queue on Redis lists.

The API process only ENQUEUES work it does not need to finish before
replying (today: audit events).  ``python -m skillswap.worker`` drains
the queues.

  Producer (API):    LPUSH onto ``tasks:<queue>``, returns immediately
  Consumer (worker): BRPOP from the same list, dispatches, loops

LPUSH at the head plus BRPOP from the tail gives FIFO order.  BRPOP
blocks inside Redis until a task arrives or the timeout expires, so an
idle worker costs nothing.

Delivery is AT-MOST-ONCE: a worker that dies mid-task loses that task.
Audit records are informational and tolerate this; anything that must
not be lost belongs in the database transaction instead.
"""

from __future__ import annotations

import json
import uuid
from collections import deque
from dataclasses import asdict, dataclass
from typing import Protocol, runtime_checkable

from skillswap.core.metrics import QUEUE_DEPTH
from skillswap.db.redis import redis_pool


@dataclass(frozen=True, slots=True)
class Task:
    id: str
    queue: str
    payload: dict

    @classmethod
    def new(cls, queue: str, payload: dict) -> Task:
        return cls(id=str(uuid.uuid4()), queue=queue, payload=payload)

    def to_json(self) -> str:
        return json.dumps(asdict(self), default=str)

    @classmethod
    def from_json(cls, raw: str) -> Task:
        return cls(**json.loads(raw))


@runtime_checkable
class TaskQueue(Protocol):
    async def enqueue(self, queue: str, payload: dict) -> Task: ...
    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None: ...
    async def queue_length(self, queue: str) -> int: ...


class InMemoryTaskQueue:
    """Single-process FIFO used by tests and when REDIS_URL is unset.

    ``dequeue`` never blocks; an empty queue returns None at once.
    """

    def __init__(self) -> None:
        self._queues: dict[str, deque[Task]] = {}

    async def enqueue(self, queue: str, payload: dict) -> Task:
        task = Task.new(queue, payload)
        pending = self._queues.setdefault(queue, deque())
        pending.append(task)
        QUEUE_DEPTH.labels(queue_name=queue).set(len(pending))
        return task

    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None:
        pending = self._queues.get(queue)
        if not pending:
            return None
        task = pending.popleft()
        QUEUE_DEPTH.labels(queue_name=queue).set(len(pending))
        return task

    async def queue_length(self, queue: str) -> int:
        return len(self._queues.get(queue, ()))

    def clear(self) -> None:
        self._queues.clear()


class RedisTaskQueue:
    """Queues stored as Redis lists under ``tasks:<queue>``."""

    def __init__(self, redis_client, *, prefix: str = "tasks:") -> None:
        self._redis = redis_client
        self._prefix = prefix

    def _key(self, queue: str) -> str:
        return self._prefix + queue

    async def enqueue(self, queue: str, payload: dict) -> Task:
        task = Task.new(queue, payload)
        depth = await self._redis.lpush(self._key(queue), task.to_json())
        QUEUE_DEPTH.labels(queue_name=queue).set(depth)
        return task

    async def dequeue(self, queue: str, timeout: int = 5) -> Task | None:
        popped = await self._redis.brpop(self._key(queue), timeout=timeout)
        if popped is None:
            return None
        return Task.from_json(popped[1])

    async def queue_length(self, queue: str) -> int:
        return await self._redis.llen(self._key(queue))


task_queue: TaskQueue = (
    RedisTaskQueue(redis_pool) if redis_pool is not None else InMemoryTaskQueue()
)
