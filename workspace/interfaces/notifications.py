"""Notification channel: per-name push events from the backend."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

Handler = Callable[[Any], None]
Unsubscribe = Callable[[], None]


class NotificationChannel(ABC):
    """Named event channels.

    Channel names carry the transfer id, so a subscriber only ever sees the
    events of the one transfer it asked for.
    """

    @abstractmethod
    async def subscribe(self, name: str, handler: Handler) -> Unsubscribe:
        """Register ``handler`` for ``name``. The returned callable is idempotent."""
        ...

    @abstractmethod
    def emit(self, name: str, payload: Any = None) -> int:
        """Deliver ``payload`` to every current subscriber of ``name``.

        Returns:
            Number of handlers invoked
        """
        ...
