"""Undo log for the in-memory repositories.

InMemoryStore.transaction() opens an undo scope; every in-memory write
made inside it registers a closure that restores the previous value.
If the block raises, the closures run newest-first and the store is back
where it started.  Only the records written by the failing block are
touched, so concurrent transactions on other records are unaffected.

The active scope lives in a ContextVar, which keeps scopes of different
asyncio tasks apart even though they share one thread.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable, Hashable, MutableMapping
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any

logger = logging.getLogger(__name__)

UndoAction = Callable[[], None]

_undo_log: ContextVar[list[UndoAction] | None] = ContextVar("undo_log", default=None)

_MISSING = object()


def record_undo(action: UndoAction) -> None:
    log = _undo_log.get()
    if log is not None:
        log.append(action)


def put(mapping: MutableMapping[Hashable, Any], key: Hashable, value: Any) -> None:
    """mapping[key] = value, undoable."""
    previous = mapping.get(key, _MISSING)

    def _restore() -> None:
        if previous is _MISSING:
            mapping.pop(key, None)
        else:
            mapping[key] = previous

    mapping[key] = value
    record_undo(_restore)


def pop(mapping: MutableMapping[Hashable, Any], key: Hashable) -> Any:
    """mapping.pop(key, None), undoable."""
    if key not in mapping:
        return None
    previous = mapping.pop(key)

    def _restore() -> None:
        mapping[key] = previous

    record_undo(_restore)
    return previous


def append(items: list[Any], value: Any) -> None:
    items.append(value)

    def _restore() -> None:
        # Remove by identity; later appends may already have been undone.
        for i in range(len(items) - 1, -1, -1):
            if items[i] is value:
                del items[i]
                return

    record_undo(_restore)


@asynccontextmanager
async def undo_scope() -> AsyncIterator[None]:
    """Collect undo actions for the enclosed block.

    Nested scopes hand their actions to the enclosing scope on success,
    so an outer failure also reverts work done by inner transactions.
    """
    outer = _undo_log.get()
    actions: list[UndoAction] = []
    token = _undo_log.set(actions)
    try:
        yield
    except BaseException:
        _undo_log.reset(token)
        for action in reversed(actions):
            action()
        logger.debug("Rolled back %d in-memory writes", len(actions))
        raise
    else:
        _undo_log.reset(token)
        if outer is not None:
            outer.extend(actions)
