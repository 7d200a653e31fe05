"""In-process event bus implementing the notification channel.

Channel names follow the backend convention, e.g.
``transfer-progress-<id>`` / ``ftp-transfer-complete-<id>``.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any

from workspace.interfaces.notifications import Handler, NotificationChannel, Unsubscribe

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class _Subscription:
    name: str
    handler: Handler
    active: bool = True


class EventBus(NotificationChannel):
    """Name-keyed pub/sub on the running event loop.

    Sync handlers run inline during ``emit``. Coroutine handlers are scheduled
    as tasks; ``drain()`` waits for them.
    """

    def __init__(self) -> None:
        self._subs: dict[str, list[_Subscription]] = defaultdict(list)
        self._tasks: set[asyncio.Task] = set()

    async def subscribe(self, name: str, handler: Handler) -> Unsubscribe:
        sub = _Subscription(name=name, handler=handler)
        self._subs[name].append(sub)

        def unsubscribe() -> None:
            if not sub.active:
                return
            sub.active = False
            subs = self._subs.get(name)
            if subs is None:
                return
            try:
                subs.remove(sub)
            except ValueError:
                pass
            if not subs:
                del self._subs[name]

        return unsubscribe

    def emit(self, name: str, payload: Any = None) -> int:
        # Snapshot: handlers may unsubscribe themselves (or siblings) mid-dispatch
        subs = list(self._subs.get(name, ()))
        delivered = 0
        for sub in subs:
            if not sub.active:
                continue
            delivered += 1
            try:
                result = sub.handler(payload)
            except Exception:
                logger.exception("Handler for %s failed", name)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._on_task_done)
        return delivered

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Async event handler failed: %s", exc, exc_info=exc)

    def subscriber_count(self, name: str | None = None) -> int:
        if name is not None:
            return len(self._subs.get(name, ()))
        return sum(len(subs) for subs in self._subs.values())

    def channels(self) -> list[str]:
        return sorted(self._subs)

    async def drain(self) -> None:
        """Wait until every scheduled async handler has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
