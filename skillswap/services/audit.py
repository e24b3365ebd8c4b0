"""Audit sink for ledger and lifecycle events.

Recording is fire-and-forget: ``record`` never raises.  A failure to
hand the event off is logged and counted, and the business operation
that produced it carries on.  Storage of the audit trail happens in
the worker (``skillswap.worker``), outside the request path.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from skillswap.core.metrics import AUDIT_EVENTS
from skillswap.services.task_queue import TaskQueue, task_queue

logger = logging.getLogger(__name__)

AUDIT_QUEUE = "audit"


@dataclass(frozen=True, slots=True)
class AuditEvent:
    action: str  # e.g. credit.debited, course.published
    actor_id: str
    subject_id: str
    data: dict[str, Any] = field(default_factory=dict)
    occurred_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)


@runtime_checkable
class AuditSink(Protocol):
    async def record(self, event: AuditEvent) -> None: ...


class QueueAuditSink:
    def __init__(self, queue: TaskQueue) -> None:
        self._queue = queue

    async def record(self, event: AuditEvent) -> None:
        try:
            await self._queue.enqueue(AUDIT_QUEUE, event.to_payload())
        except Exception:
            AUDIT_EVENTS.labels(result="dropped").inc()
            logger.exception(
                "Dropped audit event action=%s subject=%s", event.action, event.subject_id
            )
            return
        AUDIT_EVENTS.labels(result="queued").inc()


audit_sink: AuditSink = QueueAuditSink(task_queue)
