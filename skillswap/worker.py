"""Background worker process.

RUN:  python -m skillswap.worker

Same image as the API, different command:
  api:    uvicorn skillswap.main:app --host 0.0.0.0 --port 8000
  worker: python -m skillswap.worker

The loop polls every registered queue, pops one task at a time and
hands it to the queue's handler.  A failing handler is logged and the
loop moves on; delivery is at-most-once (see services/task_queue.py).
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from skillswap.core.config import SETTINGS
from skillswap.core.logging import setup_logging
from skillswap.services.audit import AUDIT_QUEUE
from skillswap.services.task_queue import TaskQueue, task_queue

TaskHandler = Callable[[dict], Coroutine[Any, Any, None]]

logger = logging.getLogger("skillswap.worker")
audit_logger = logging.getLogger("skillswap.audit")


# ---------------------------------------------------------------------------
# Handler registry
# ---------------------------------------------------------------------------

HANDLERS: dict[str, TaskHandler] = {}


def register_handler(queue: str):
    """Decorator: register a coroutine as the handler for a queue."""

    def decorator(func):
        HANDLERS[queue] = func
        return func

    return decorator


@register_handler(AUDIT_QUEUE)
async def handle_audit_event(payload: dict) -> None:
    """Write one audit event to the ``skillswap.audit`` logger as a JSON line.

    Log shipping takes it from there; retention is not this service's job.
    """
    if "action" not in payload:
        raise ValueError("audit payload has no action")
    audit_logger.info(json.dumps(payload, sort_keys=True, default=str))


# ---------------------------------------------------------------------------
# Main worker loop
# ---------------------------------------------------------------------------


async def drain_once(queue: TaskQueue, timeout: int = 1) -> int:
    """One pass over every registered queue.  Returns tasks handled."""
    handled = 0
    for queue_name, handler in HANDLERS.items():
        task = await queue.dequeue(queue_name, timeout=timeout)
        if task is None:
            continue
        handled += 1
        try:
            await handler(task.payload)
            logger.debug("Task %s on [%s] completed", task.id, queue_name)
        except Exception:
            # No dead-letter queue: log and move on.
            logger.exception("Task %s on [%s] failed", task.id, queue_name)
    return handled


async def run_worker(queue: TaskQueue = task_queue) -> None:
    logger.info("Worker started - listening on queues: %s", list(HANDLERS))
    while True:
        if not await drain_once(queue):
            # In-memory queues return immediately when empty; avoid a busy loop.
            await asyncio.sleep(0.5)


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())
